"""Outbound "send info" notifications to property owners.

The map only decides *who* gets notified (one selected building, or every
building matching the active filter). Delivery is delegated to a Notifier.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Literal, Protocol, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """Raised when a notification could not be handed to the delivery service."""


@dataclass(frozen=True)
class SendInfoTarget:
    kind: Literal["building", "filtered"]
    count: int
    mode: str
    threshold: float
    address: str | None = None
    building_ids: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def enabled(self) -> bool:
        return self.count > 0

    @property
    def label(self) -> str:
        if self.kind == "building":
            return f"Send info to {self.address}"
        if self.count:
            return f"Send info to {self.count} properties"
        return "Send info to properties"

    @property
    def confirm_text(self) -> str:
        if self.kind == "building":
            who = self.address
        else:
            who = f"{self.count} properties"
        return f"Send the information to {who}? This cannot be undone."

    def to_message(self) -> dict:
        return {
            "kind": self.kind,
            "count": self.count,
            "address": self.address,
            "building_ids": list(self.building_ids),
            "risk_mode": self.mode,
            "threshold": self.threshold,
        }


class Notifier(Protocol):
    def send(self, target: SendInfoTarget) -> str | None: ...


class LogNotifier:
    """Records the send in the application log only."""

    def send(self, target: SendInfoTarget) -> str | None:
        if not target.enabled:
            raise NotificationError("Nothing to send: no matching properties")
        logger.info("Sending info to %s (%d properties)", target.address or "filter", target.count)
        return None


class SnsNotifier:
    """Publishes the send request to an SNS topic for downstream delivery."""

    def __init__(self, topic_arn: str, *, region_name: str | None = None, client=None):
        self._topic_arn = topic_arn
        self._client = client or boto3.client("sns", region_name=region_name)

    def send(self, target: SendInfoTarget) -> str | None:
        if not target.enabled:
            raise NotificationError("Nothing to send: no matching properties")
        try:
            resp = self._client.publish(
                TopicArn=self._topic_arn,
                Subject="Natural hazard information",
                Message=json.dumps(target.to_message()),
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("SNS publish failed: %s", exc)
            raise NotificationError("Could not send the notification") from exc
        message_id = resp.get("MessageId")
        logger.info("Published send-info request %s (%d properties)", message_id, target.count)
        return message_id
