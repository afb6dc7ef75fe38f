# hemolink/services/inventory_service.py
"""
Inventory ledger: per-hospital stock with an append-only item log.

Every mutation runs as one unit against a row-locked ledger: change items,
append usage, rebuild the stock snapshot, re-run shortage checks. Services
only flush; the caller commits.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Sequence
from uuid import UUID

import pydantic
from sqlalchemy.orm import Session

from hemolink.core.exceptions import ConflictError, NotFoundError, ValidationError
from hemolink.models.demand import DemandUnit
from hemolink.models.donor import Donor
from hemolink.models.hospital import Hospital
from hemolink.models.inventory import (
    DailyUsage,
    InventoryItem,
    InventoryLedger,
    ItemKind,
    ItemStatus,
    StockSnapshot,
    UsageEntry,
)
from hemolink.notifications.notifier import EventKind, NotificationChannel, Notifier
from hemolink.schemas.inventory import (
    BloodItemCreate,
    OrganItemCreate,
    item_create_adapter,
)
from hemolink.services.shortage_service import run_shortage_checks
from hemolink.utils.datetime_utils import as_utc, utc_day, utc_now

logger = logging.getLogger(__name__)

StockKey = tuple[ItemKind, str]


# -------------------------
# Lookup helpers
# -------------------------
def _lock_ledger(db: Session, ledger_id: UUID) -> InventoryLedger:
    """
    Load the ledger with a row lock held until the caller's commit/rollback.
    """
    ledger = (
        db.query(InventoryLedger)
        .filter(InventoryLedger.id == ledger_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if not ledger:
        raise NotFoundError("Inventory not found")
    return ledger


def _get_item(db: Session, ledger: InventoryLedger, item_id: UUID) -> InventoryItem:
    item = (
        db.query(InventoryItem)
        .filter(InventoryItem.id == item_id, InventoryItem.ledger_id == ledger.id)
        .one_or_none()
    )
    if not item:
        raise NotFoundError("Item not found")
    return item


def _touch(ledger: InventoryLedger) -> None:
    ledger.version = (ledger.version or 0) + 1
    ledger.updated_at = utc_now()


def create_ledger(db: Session, hospital_id: UUID) -> InventoryLedger:
    hospital = db.get(Hospital, hospital_id)
    if not hospital:
        raise NotFoundError("Hospital not found")

    existing = (
        db.query(InventoryLedger)
        .filter(InventoryLedger.hospital_id == hospital_id)
        .first()
    )
    if existing:
        raise ConflictError("Inventory already exists for this hospital")

    ledger = InventoryLedger(hospital_id=hospital.id, version=0)
    db.add(ledger)
    db.flush()
    logger.info(f"Created inventory ledger={ledger.id} hospital={hospital.id}")
    return ledger


def get_ledger(db: Session, ledger_id: UUID) -> InventoryLedger:
    ledger = db.get(InventoryLedger, ledger_id)
    if not ledger:
        raise NotFoundError("Inventory not found")
    return ledger


def get_ledger_for_hospital(db: Session, hospital_id: UUID) -> InventoryLedger:
    ledger = (
        db.query(InventoryLedger)
        .filter(InventoryLedger.hospital_id == hospital_id)
        .one_or_none()
    )
    if not ledger:
        raise NotFoundError("Inventory not found")
    return ledger


# -------------------------
# Stock snapshot
# -------------------------
def compute_stock_totals(items: Iterable[InventoryItem]) -> dict[StockKey, int]:
    """
    From-scratch AVAILABLE quantity per (kind, sub-type). Pure function of the
    item list; the stored snapshot must always equal this.
    """
    totals: dict[StockKey, int] = defaultdict(int)
    for item in items:
        if item.status != ItemStatus.AVAILABLE:
            continue
        totals[(item.type, item.sub_type)] += int(item.quantity or 0)
    return dict(totals)


def recompute_snapshot(db: Session, ledger: InventoryLedger) -> dict[StockKey, int]:
    """
    Rebuild the ledger's snapshot rows from its items. Idempotent.

    Existing rows are updated in place and stale ones removed, so the
    (ledger, type, sub_type) unique key never collides within a flush.
    """
    totals = compute_stock_totals(ledger.items)

    rows_by_key = {(row.type, row.sub_type): row for row in ledger.stock_status}
    for key, row in rows_by_key.items():
        if key in totals:
            row.available_quantity = totals[key]
        else:
            ledger.stock_status.remove(row)

    for (kind, sub_type), qty in totals.items():
        if (kind, sub_type) not in rows_by_key:
            ledger.stock_status.append(
                StockSnapshot(type=kind, sub_type=sub_type, available_quantity=qty)
            )

    db.flush()
    return totals


def snapshot_as_mapping(ledger: InventoryLedger) -> dict[StockKey, int]:
    return {(row.type, row.sub_type): int(row.available_quantity) for row in ledger.stock_status}


def get_stock_snapshot(db: Session, ledger_id: UUID) -> dict[str, Any]:
    ledger = get_ledger(db, ledger_id)
    blood: dict[str, int] = {}
    organ: dict[str, int] = {}
    for (kind, sub_type), qty in snapshot_as_mapping(ledger).items():
        (blood if kind == ItemKind.BLOOD else organ)[sub_type] = qty
    return {"ledger_id": ledger.id, "blood": blood, "organ": organ}


def _after_mutation(
    db: Session,
    ledger: InventoryLedger,
    *,
    notifier: Notifier,
    now: datetime | None = None,
) -> None:
    _touch(ledger)
    recompute_snapshot(db, ledger)
    run_shortage_checks(ledger, notifier=notifier, now=now)


# -------------------------
# Mutations
# -------------------------
def parse_items(raw_items: Sequence[Any]) -> list[BloodItemCreate | OrganItemCreate]:
    """
    Validate raw item payloads into the BLOOD / ORGAN variants.

    Fails on the first invalid entry with its index in the error.
    """
    if not raw_items:
        raise ValidationError("items array is required", field="items")

    parsed: list[BloodItemCreate | OrganItemCreate] = []
    for index, raw in enumerate(raw_items):
        if isinstance(raw, (BloodItemCreate, OrganItemCreate)):
            parsed.append(raw)
            continue
        try:
            parsed.append(item_create_adapter.validate_python(raw))
        except pydantic.ValidationError as exc:
            first = exc.errors()[0]
            loc = ".".join(str(part) for part in first.get("loc", ()))
            message = first.get("msg", "invalid item")
            field = f"items[{index}]" + (f".{loc}" if loc else "")
            raise ValidationError(f"{field}: {message}", field=field) from exc
    return parsed


def _check_donor_refs(db: Session, parsed: Sequence[BloodItemCreate | OrganItemCreate]) -> None:
    for index, entry in enumerate(parsed):
        if entry.donor_id is not None and db.get(Donor, entry.donor_id) is None:
            raise NotFoundError(f"items[{index}].donor_id: Donor not found")


def add_items(
    db: Session,
    ledger_id: UUID,
    items: Sequence[Any],
    *,
    notifier: Notifier,
    now: datetime | None = None,
) -> InventoryLedger:
    """
    Append a batch of items as AVAILABLE. All-or-nothing: validation runs
    over the whole batch before anything is written.
    """
    parsed = parse_items(items)
    _check_donor_refs(db, parsed)
    ledger = _lock_ledger(db, ledger_id)
    now = now or utc_now()

    for entry in parsed:
        ledger.items.append(
            InventoryItem(
                type=ItemKind(entry.type),
                blood_type=entry.blood_type,
                organ_type=entry.organ_type,
                quantity=entry.quantity,
                donor_id=entry.donor_id,
                received_at=as_utc(entry.received_at) if entry.received_at else now,
                expires_at=as_utc(entry.expires_at),
                status=ItemStatus.AVAILABLE,
            )
        )

    _after_mutation(db, ledger, notifier=notifier, now=now)
    logger.info(f"Added {len(parsed)} item(s) to inventory ledger={ledger.id}")
    return ledger


def _usage_record_for(ledger: InventoryLedger, day: date) -> DailyUsage:
    for record in ledger.daily_usage:
        if record.day == day:
            return record
    record = DailyUsage(day=day)
    ledger.daily_usage.append(record)
    return record


def consume(
    db: Session,
    ledger_id: UUID,
    item_id: UUID,
    quantity: int,
    demand_unit_id: UUID | None = None,
    *,
    notifier: Notifier,
    now: datetime | None = None,
) -> InventoryItem:
    """
    Take up to `quantity` units from an AVAILABLE, unexpired item.

    The decrement is clamped to what the item holds; the item becomes USED
    at zero. The consumed amount is logged under the current UTC day.
    """
    if quantity is None or int(quantity) < 1:
        raise ValidationError("quantity must be >= 1", field="quantity")

    now = now or utc_now()
    ledger = _lock_ledger(db, ledger_id)
    item = _get_item(db, ledger, item_id)

    if demand_unit_id is not None and db.get(DemandUnit, demand_unit_id) is None:
        raise NotFoundError("Demand unit not found")

    if item.status != ItemStatus.AVAILABLE:
        raise ConflictError("Item is not AVAILABLE")
    if item.expires_at <= now:
        raise ConflictError("Item expired")

    decrement = min(int(quantity), item.quantity)
    item.quantity -= decrement
    if demand_unit_id is not None:
        item.demand_unit_id = demand_unit_id
    if item.quantity == 0:
        item.status = ItemStatus.USED

    record = _usage_record_for(ledger, utc_day(now))
    record.items_used.append(UsageEntry(item=item, quantity=decrement))

    _after_mutation(db, ledger, notifier=notifier, now=now)
    logger.info(
        f"[USE] inventory={ledger.id} item={item.id} quantity={decrement} remaining={item.quantity}"
    )
    return item


def discard(
    db: Session,
    ledger_id: UUID,
    item_id: UUID,
    reason: str | None = None,
    *,
    notifier: Notifier,
) -> InventoryItem:
    """Force an item to EXPIRED whatever its remaining quantity."""
    ledger = _lock_ledger(db, ledger_id)
    item = _get_item(db, ledger, item_id)

    item.status = ItemStatus.EXPIRED
    item.discard_reason = reason or "OTHER"

    _after_mutation(db, ledger, notifier=notifier)
    logger.info(f"[DISCARD] inventory={ledger.id} item={item.id} reason={item.discard_reason}")
    return item


def _expired_payload(ledger: InventoryLedger, item: InventoryItem) -> dict[str, Any]:
    return {
        "inventory": str(ledger.id),
        "hospital_id": str(ledger.hospital_id),
        "item_id": str(item.id),
        "type": item.type.value,
        "sub_type": item.sub_type,
        "quantity": item.quantity,
        "expired_at": item.expires_at.isoformat(),
    }


def sweep_expired(
    db: Session,
    *,
    notifier: Notifier,
    now: datetime | None = None,
) -> dict[str, int]:
    """
    Expire every AVAILABLE item past its expiry, across all ledgers.

    Each ledger is processed in its own savepoint; a failure is logged and
    the sweep moves on. Expiry notifications go out only for ledgers whose
    changes were kept.
    """
    now = now or utc_now()
    ledger_ids = [
        row[0]
        for row in db.query(InventoryItem.ledger_id)
        .filter(
            InventoryItem.status == ItemStatus.AVAILABLE,
            InventoryItem.expires_at <= now,
        )
        .distinct()
        .all()
    ]

    processed = 0
    expired = 0
    failed = 0
    for ledger_id in ledger_ids:
        payloads: list[dict[str, Any]] = []
        try:
            with db.begin_nested():
                ledger = _lock_ledger(db, ledger_id)
                for item in ledger.items:
                    if item.status == ItemStatus.AVAILABLE and item.expires_at <= now:
                        item.status = ItemStatus.EXPIRED
                        payloads.append(_expired_payload(ledger, item))
                if payloads:
                    _after_mutation(db, ledger, notifier=notifier, now=now)
        except Exception:
            failed += 1
            logger.exception(f"[EXPIRY_SWEEP_ERROR] inventory={ledger_id}")
            continue

        processed += 1
        for payload in payloads:
            logger.info(
                f"[ITEM_EXPIRED] inventory={payload['inventory']} item={payload['item_id']} "
                f"type={payload['type']} sub_type={payload['sub_type']} expired_at={payload['expired_at']}"
            )
            notifier.emit(NotificationChannel.WEBHOOK, EventKind.ITEM_EXPIRED, payload)
        expired += len(payloads)

    return {"processed": processed, "expired": expired, "failed": failed}


# -------------------------
# Read models
# -------------------------
def get_inventory_summary(
    db: Session,
    ledger_id: UUID,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Dashboard view: availability by kind, expiring-soon buckets, and what
    was received / used today.
    """
    ledger = get_ledger(db, ledger_id)
    now = now or utc_now()
    today = utc_day(now)
    in_24h = now + timedelta(hours=24)
    in_3d = now + timedelta(days=3)
    in_7d = now + timedelta(days=7)

    result: dict[str, Any] = {
        "blood": {"total_available": 0, "by_type": {}},
        "organs": {"total_available": 0, "by_type": {}},
        "expiring": {"in_24h": 0, "in_3d": 0, "in_7d": 0},
        "today": {"used": 0, "received": 0},
    }

    for item in ledger.items:
        if item.status == ItemStatus.AVAILABLE:
            bucket = result["blood"] if item.type == ItemKind.BLOOD else result["organs"]
            bucket["total_available"] += item.quantity
            bucket["by_type"][item.sub_type] = bucket["by_type"].get(item.sub_type, 0) + item.quantity

            if item.expires_at <= in_24h:
                result["expiring"]["in_24h"] += 1
            elif item.expires_at <= in_3d:
                result["expiring"]["in_3d"] += 1
            elif item.expires_at <= in_7d:
                result["expiring"]["in_7d"] += 1

        if utc_day(item.received_at) == today:
            result["today"]["received"] += item.quantity

    for record in ledger.daily_usage:
        if record.day == today:
            result["today"]["used"] += sum(entry.quantity for entry in record.items_used)

    return result


def get_usage_series(
    db: Session,
    ledger_id: UUID,
    *,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[dict[str, Any]]:
    """Per-day consumption totals, oldest first, optionally bounded (inclusive)."""
    ledger = get_ledger(db, ledger_id)
    series: list[dict[str, Any]] = []
    for record in sorted(ledger.daily_usage, key=lambda r: r.day):
        if from_date and record.day < from_date:
            continue
        if to_date and record.day > to_date:
            continue
        series.append(
            {"day": record.day, "used": sum(entry.quantity for entry in record.items_used)}
        )
    return series
