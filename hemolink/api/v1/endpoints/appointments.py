# hemolink/api/v1/endpoints/appointments.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from hemolink.core.database import commit_or_500, get_db
from hemolink.schemas.demand import AppointmentResponse, AppointmentStatusUpdate
from hemolink.services import proposal_service

router = APIRouter()


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse, tags=["appointments"])
def update_appointment_status(
    appointment_id: UUID,
    payload: AppointmentStatusUpdate,
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = proposal_service.update_appointment_status(db, appointment_id, payload.status)
    response = AppointmentResponse.model_validate(appointment)
    commit_or_500(db, "Failed to update appointment.")
    return response
