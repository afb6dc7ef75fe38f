# hemolink/api/v1/endpoints/inventory.py
from __future__ import annotations

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from hemolink.background.tasks import enqueue_notifications
from hemolink.core.database import commit_or_500, get_db
from hemolink.notifications.notifier import NotificationOutbox, Notifier, get_notifier
from hemolink.schemas.inventory import (
    AddItemsRequest,
    ConsumeItemRequest,
    DiscardItemRequest,
    InventoryItemResponse,
    InventorySummaryResponse,
    LedgerCreate,
    LedgerResponse,
    StockSnapshotResponse,
    UsagePoint,
)
from hemolink.services import inventory_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=LedgerResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["inventory"],
)
def create_ledger(
    payload: LedgerCreate,
    db: Session = Depends(get_db),
) -> LedgerResponse:
    """
    Create the (single) inventory ledger of a hospital.
    """
    ledger = inventory_service.create_ledger(db, payload.hospital_id)
    ledger_id = ledger.id
    commit_or_500(db, "Failed to create inventory.")
    return LedgerResponse.model_validate(inventory_service.get_ledger(db, ledger_id))


@router.get("/{ledger_id}", response_model=LedgerResponse, tags=["inventory"])
def get_ledger(
    ledger_id: UUID,
    db: Session = Depends(get_db),
) -> LedgerResponse:
    return LedgerResponse.model_validate(inventory_service.get_ledger(db, ledger_id))


@router.post("/{ledger_id}/items", response_model=LedgerResponse, tags=["inventory"])
def add_items(
    ledger_id: UUID,
    payload: AddItemsRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> LedgerResponse:
    """
    Append a batch of BLOOD / ORGAN items. The whole batch is rejected if any
    entry is invalid.
    """
    outbox = NotificationOutbox()
    inventory_service.add_items(db, ledger_id, payload.items, notifier=outbox)
    commit_or_500(db, "Failed to add items.")
    enqueue_notifications(background_tasks, outbox, notifier)
    return LedgerResponse.model_validate(inventory_service.get_ledger(db, ledger_id))


@router.post(
    "/{ledger_id}/items/{item_id}/use",
    response_model=InventoryItemResponse,
    tags=["inventory"],
)
def consume_item(
    ledger_id: UUID,
    item_id: UUID,
    payload: ConsumeItemRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> InventoryItemResponse:
    outbox = NotificationOutbox()
    item = inventory_service.consume(
        db,
        ledger_id,
        item_id,
        payload.quantity,
        payload.demand_unit_id,
        notifier=outbox,
    )
    response = InventoryItemResponse.model_validate(item)
    commit_or_500(db, "Failed to record usage.")
    enqueue_notifications(background_tasks, outbox, notifier)
    return response


@router.post(
    "/{ledger_id}/items/{item_id}/discard",
    response_model=InventoryItemResponse,
    tags=["inventory"],
)
def discard_item(
    ledger_id: UUID,
    item_id: UUID,
    payload: DiscardItemRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> InventoryItemResponse:
    outbox = NotificationOutbox()
    item = inventory_service.discard(db, ledger_id, item_id, payload.reason, notifier=outbox)
    response = InventoryItemResponse.model_validate(item)
    commit_or_500(db, "Failed to discard item.")
    enqueue_notifications(background_tasks, outbox, notifier)
    return response


@router.get("/{ledger_id}/stock", response_model=StockSnapshotResponse, tags=["inventory"])
def get_stock_snapshot(
    ledger_id: UUID,
    db: Session = Depends(get_db),
) -> StockSnapshotResponse:
    return StockSnapshotResponse(**inventory_service.get_stock_snapshot(db, ledger_id))


@router.get(
    "/{ledger_id}/summary",
    response_model=InventorySummaryResponse,
    tags=["inventory"],
)
def get_inventory_summary(
    ledger_id: UUID,
    db: Session = Depends(get_db),
) -> InventorySummaryResponse:
    return InventorySummaryResponse.model_validate(
        inventory_service.get_inventory_summary(db, ledger_id)
    )


@router.get("/{ledger_id}/usage", response_model=list[UsagePoint], tags=["inventory"])
def get_usage_series(
    ledger_id: UUID,
    from_date: Optional[date] = Query(None, alias="from", description="First UTC day (inclusive)"),
    to_date: Optional[date] = Query(None, alias="to", description="Last UTC day (inclusive)"),
    db: Session = Depends(get_db),
) -> list[UsagePoint]:
    series = inventory_service.get_usage_series(
        db, ledger_id, from_date=from_date, to_date=to_date
    )
    return [UsagePoint(**point) for point in series]
