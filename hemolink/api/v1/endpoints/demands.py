# hemolink/api/v1/endpoints/demands.py
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from hemolink.background.tasks import enqueue_notifications
from hemolink.core.database import commit_or_500, get_db
from hemolink.notifications.notifier import NotificationOutbox, Notifier, get_notifier
from hemolink.schemas.demand import (
    DemandUnitCreate,
    DemandUnitCreatedResponse,
    DemandUnitResponse,
    ProposalResponse,
)
from hemolink.services import demand_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=DemandUnitCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["demand-units"],
)
def create_demand_unit(
    payload: DemandUnitCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> DemandUnitCreatedResponse:
    """
    Record a patient's blood demand and propose to compatible donors nearby.
    """
    outbox = NotificationOutbox()
    demand_unit, proposals = demand_service.create_demand_unit(
        db,
        hospital_id=payload.hospital_id,
        patient_name=payload.patient_name,
        blood_type=payload.blood_type,
        units_needed=payload.units_needed,
        notifier=outbox,
    )
    response = DemandUnitCreatedResponse(
        demand_unit=DemandUnitResponse.model_validate(demand_unit),
        proposals=[ProposalResponse.model_validate(p) for p in proposals],
    )
    commit_or_500(db, "Failed to create demand unit.")
    enqueue_notifications(background_tasks, outbox, notifier)
    return response
