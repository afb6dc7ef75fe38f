# hemolink/api/v1/endpoints/proposals.py
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from hemolink.background.tasks import enqueue_notifications
from hemolink.core.database import commit_or_500, get_db
from hemolink.notifications.notifier import NotificationOutbox, Notifier, get_notifier
from hemolink.schemas.demand import AppointmentResponse
from hemolink.services import proposal_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/confirm/{token}", response_model=AppointmentResponse, tags=["proposals"])
def confirm_proposal(
    token: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> AppointmentResponse:
    """
    Donor-facing confirmation link. Unknown, expired or already used tokens
    answer 409.
    """
    outbox = NotificationOutbox()
    appointment = proposal_service.confirm(db, token, notifier=outbox)
    response = AppointmentResponse.model_validate(appointment)
    commit_or_500(db, "Failed to confirm proposal.")
    enqueue_notifications(background_tasks, outbox, notifier)
    return response
