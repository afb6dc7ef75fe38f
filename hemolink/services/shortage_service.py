# hemolink/services/shortage_service.py
"""
Current and projected shortage analysis over one ledger.

Both checks are reads of the ledger's stock snapshot and usage log; the only
side effect is alert emission. Alerts are always returned; emission of an
alert that is still active is debounced through Redis when it is configured.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

from hemolink.core.config import Settings, get_settings
from hemolink.core.redis import cache_delete, cache_set_if_absent
from hemolink.models.inventory import ORGAN_TYPES, InventoryLedger, ItemKind
from hemolink.notifications.notifier import EventKind, NotificationChannel, Notifier
from hemolink.utils.blood_compatibility import BLOOD_TYPES
from hemolink.utils.datetime_utils import utc_day, utc_now

logger = logging.getLogger(__name__)

ALERT_KEY_PREFIX = "alert:"


@dataclass
class ShortageAlert:
    hospital_id: str
    ledger_id: str
    type: str
    sub_type: str
    available: int
    threshold: int

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ProjectedShortageAlert:
    hospital_id: str
    ledger_id: str
    type: str
    sub_type: str
    available: int
    avg_daily_usage: float
    days_of_stock: float

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


def all_sub_types() -> list[tuple[ItemKind, str]]:
    """Every known (kind, sub-type) pair, blood first."""
    return [(ItemKind.BLOOD, bt) for bt in BLOOD_TYPES] + [
        (ItemKind.ORGAN, ot) for ot in ORGAN_TYPES
    ]


def shortage_threshold(settings: Settings, kind: ItemKind, sub_type: str) -> int:
    if kind == ItemKind.ORGAN:
        return settings.shortage_threshold_organ
    return int(
        settings.shortage_threshold_blood_overrides.get(
            sub_type, settings.shortage_threshold_default_blood
        )
    )


def available_by_sub_type(ledger: InventoryLedger) -> dict[tuple[ItemKind, str], int]:
    """Availability from the ledger's snapshot rows; missing keys count as zero."""
    return {
        (row.type, row.sub_type): int(row.available_quantity or 0)
        for row in ledger.stock_status
    }


def _alert_key(event_kind: EventKind, ledger: InventoryLedger, kind: ItemKind, sub_type: str) -> str:
    return f"{ALERT_KEY_PREFIX}{event_kind.value}:{ledger.id}:{kind.value}:{sub_type}"


def _emit_alert(
    notifier: Notifier,
    settings: Settings,
    event_kind: EventKind,
    key: str,
    payload: dict[str, Any],
) -> None:
    cooldown = settings.alert_cooldown_seconds
    if cooldown > 0 and not cache_set_if_absent(key, "1", cooldown):
        logger.debug(f"Alert debounced key={key}")
        return
    notifier.emit(NotificationChannel.WEBHOOK, event_kind, payload)


def _clear_alert(settings: Settings, key: str) -> None:
    if settings.alert_cooldown_seconds > 0:
        cache_delete(key)


def check_current_shortage(
    ledger: InventoryLedger,
    *,
    notifier: Notifier,
    settings: Settings | None = None,
) -> list[ShortageAlert]:
    """
    One alert per sub-type whose available quantity is below its threshold.
    """
    settings = settings or get_settings()
    available = available_by_sub_type(ledger)
    alerts: list[ShortageAlert] = []

    for kind, sub_type in all_sub_types():
        qty = available.get((kind, sub_type), 0)
        threshold = shortage_threshold(settings, kind, sub_type)
        key = _alert_key(EventKind.SHORTAGE, ledger, kind, sub_type)

        if qty >= threshold:
            _clear_alert(settings, key)
            continue

        alert = ShortageAlert(
            hospital_id=str(ledger.hospital_id),
            ledger_id=str(ledger.id),
            type=kind.value,
            sub_type=sub_type,
            available=qty,
            threshold=threshold,
        )
        logger.warning(
            f"[SHORTAGE] hospital={alert.hospital_id} type={alert.type} "
            f"sub_type={alert.sub_type} available={alert.available} threshold={alert.threshold}"
        )
        alerts.append(alert)
        _emit_alert(notifier, settings, EventKind.SHORTAGE, key, alert.to_payload())

    return alerts


def average_daily_usage(
    ledger: InventoryLedger,
    kind: ItemKind,
    sub_type: str,
    *,
    lookback_days: int,
    now: datetime | None = None,
) -> float:
    """
    Mean consumption per recorded day within the lookback window.

    Only usage entries whose item matches (kind, sub_type) are summed; the
    divisor is the number of usage days recorded in the window.
    """
    now = now or utc_now()
    cutoff = utc_day(now - timedelta(days=lookback_days))

    totals_by_day: dict = {}
    for record in ledger.daily_usage:
        if record.day < cutoff:
            continue
        day_total = 0
        for entry in record.items_used:
            item = entry.item
            if item is None or item.type != kind or item.sub_type != sub_type:
                continue
            day_total += int(entry.quantity or 0)
        totals_by_day[record.day] = totals_by_day.get(record.day, 0) + day_total

    if not totals_by_day:
        return 0.0
    return sum(totals_by_day.values()) / len(totals_by_day)


def check_projected_shortage(
    ledger: InventoryLedger,
    *,
    notifier: Notifier,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> list[ProjectedShortageAlert]:
    """
    Alert when days-of-stock (available / average daily usage) drops below
    the configured threshold. Sub-types with no recent usage are exempt.
    """
    settings = settings or get_settings()
    available = available_by_sub_type(ledger)
    alerts: list[ProjectedShortageAlert] = []

    for kind, sub_type in all_sub_types():
        avg = average_daily_usage(
            ledger,
            kind,
            sub_type,
            lookback_days=settings.future_shortage_lookback_days,
            now=now,
        )
        key = _alert_key(EventKind.FUTURE_SHORTAGE, ledger, kind, sub_type)
        qty = available.get((kind, sub_type), 0)

        if avg <= 0 or qty / avg >= settings.future_shortage_days:
            _clear_alert(settings, key)
            continue

        alert = ProjectedShortageAlert(
            hospital_id=str(ledger.hospital_id),
            ledger_id=str(ledger.id),
            type=kind.value,
            sub_type=sub_type,
            available=qty,
            avg_daily_usage=round(avg, 2),
            days_of_stock=round(qty / avg, 2),
        )
        logger.warning(
            f"[FUTURE_SHORTAGE] hospital={alert.hospital_id} type={alert.type} "
            f"sub_type={alert.sub_type} days_of_stock={alert.days_of_stock} "
            f"avg_daily_usage={alert.avg_daily_usage} available={alert.available}"
        )
        alerts.append(alert)
        _emit_alert(notifier, settings, EventKind.FUTURE_SHORTAGE, key, alert.to_payload())

    return alerts


def run_shortage_checks(
    ledger: InventoryLedger,
    *,
    notifier: Notifier,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> tuple[list[ShortageAlert], list[ProjectedShortageAlert]]:
    current = check_current_shortage(ledger, notifier=notifier, settings=settings)
    projected = check_projected_shortage(ledger, notifier=notifier, settings=settings, now=now)
    return current, projected
