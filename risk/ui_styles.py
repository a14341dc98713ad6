MARKER_SIZE = (20, 24)
SELECTED_SCALE = 1.5
SELECTED_Z_INDEX = 1000
DEFAULT_Z_INDEX = 1

SHADOW_ALPHA = 0.6

PIN_PATH = (
    "M12 2C8.14 2 5 5.08 5 8.86c0 5.19 7 12.28 7 12.28s7-7.09 7-12.28"
    "C19 5.08 15.86 2 12 2zm0 9.2a3.2 3.2 0 1 1 0-6.4 3.2 3.2 0 0 1 0 6.4z"
)

MODE_LABELS = {
    "water": "Water damage",
    "wind": "Storm",
}

CLAIMS_STATUS_TEXT = {
    "loading": "Loading claim history…",
    "empty": "No claims found.",
    "image_unavailable": "Image unavailable",
}


def marker_size(selected: bool) -> tuple[int, int]:
    width, height = MARKER_SIZE
    if selected:
        return round(width * SELECTED_SCALE), round(height * SELECTED_SCALE)
    return width, height


def marker_pin_html(fill: str, shadow: str, selected: bool, marker_id: str) -> str:
    width, height = marker_size(selected)
    return (
        f'<div class="building-marker" data-id="{marker_id}" '
        f'data-selected="{"true" if selected else "false"}" '
        f'style="cursor:pointer;width:{width}px;height:{height}px;">'
        f'<svg width="100%" height="100%" viewBox="0 0 24 24" '
        f'xmlns="http://www.w3.org/2000/svg" '
        f'style="display:block; filter: drop-shadow(0 2px 6px {shadow});">'
        f'<path d="{PIN_PATH}" fill="{fill}" stroke="white" stroke-width="1.5" />'
        f"</svg></div>"
    )

