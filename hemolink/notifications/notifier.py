# hemolink/notifications/notifier.py
"""
Outbound alert delivery.

Every emit is best effort: failures are logged and never propagate to the
caller.
"""

import logging
from enum import Enum as PyEnum
from functools import lru_cache
from typing import Any

from hemolink.core.config import Settings, get_settings
from hemolink.notifications.sms.base import send_sms
from hemolink.notifications.webhook import post_webhook

logger = logging.getLogger(__name__)


class NotificationChannel(str, PyEnum):
    WEBHOOK = "WEBHOOK"
    SMS = "SMS"


class EventKind(str, PyEnum):
    SHORTAGE = "SHORTAGE"
    FUTURE_SHORTAGE = "FUTURE_SHORTAGE"
    ITEM_EXPIRED = "ITEM_EXPIRED"
    DONOR_PROPOSAL = "DONOR_PROPOSAL"
    APPOINTMENT_CONFIRMED = "APPOINTMENT_CONFIRMED"


class Notifier:
    """
    Routes events to webhooks (hospital-facing alerts) or SMS (donor-facing).

    SMS payloads must carry `phone` and `message`.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def _webhook_url(self, event_kind: EventKind) -> str | None:
        return {
            EventKind.SHORTAGE: self.settings.webhook_url_shortage,
            EventKind.FUTURE_SHORTAGE: self.settings.webhook_url_future_shortage,
            EventKind.ITEM_EXPIRED: self.settings.webhook_url_expired,
        }.get(event_kind)

    def emit(
        self,
        channel: NotificationChannel,
        event_kind: EventKind,
        payload: dict[str, Any],
    ) -> None:
        try:
            if channel == NotificationChannel.SMS:
                send_sms(
                    phone=payload["phone"],
                    message=payload["message"],
                    reason=event_kind.value,
                )
                return

            url = self._webhook_url(event_kind)
            if not url:
                logger.info("[%s] %s", event_kind.value, payload)
                return
            post_webhook(
                url,
                event_kind.value,
                payload,
                timeout=self.settings.webhook_timeout_seconds,
            )
        except Exception as exc:
            logger.warning(
                f"[NOTIFY FAILED:{event_kind.value}] channel={channel.value} error={exc}",
                exc_info=True,
            )
            logger.info("[%s] %s", event_kind.value, payload)


@lru_cache()
def get_notifier() -> Notifier:
    """FastAPI dependency; overridden in tests with a recording fake."""
    return Notifier()


class NotificationOutbox:
    """
    Collects events raised inside a unit of work.

    Services emit into the outbox while the transaction (and any ledger row
    lock) is open; the caller dispatches to the real notifier after commit.
    A rolled back unit of work simply drops the outbox.
    """

    def __init__(self) -> None:
        self.pending: list[tuple[NotificationChannel, EventKind, dict[str, Any]]] = []

    def emit(
        self,
        channel: NotificationChannel,
        event_kind: EventKind,
        payload: dict[str, Any],
    ) -> None:
        self.pending.append((channel, event_kind, payload))

    def dispatch(self, notifier: Notifier) -> int:
        events, self.pending = self.pending, []
        for channel, event_kind, payload in events:
            notifier.emit(channel, event_kind, payload)
        if events:
            logger.debug(f"Dispatched {len(events)} notification(s)")
        return len(events)
