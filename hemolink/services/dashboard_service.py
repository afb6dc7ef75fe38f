# hemolink/services/dashboard_service.py
"""
Hospital-facing analytics over demand, stock and proposals.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from hemolink.core.exceptions import NotFoundError, ValidationError
from hemolink.models.appointment import Appointment, AppointmentStatus
from hemolink.models.demand import DemandStatus, DemandUnit
from hemolink.models.hospital import Hospital
from hemolink.models.inventory import InventoryLedger, ItemKind, StockSnapshot
from hemolink.models.proposal import Proposal, ProposalStatus
from hemolink.utils.datetime_utils import start_of_day_utc, utc_now

logger = logging.getLogger(__name__)


def _get_hospital(db: Session, hospital_id: UUID) -> Hospital:
    hospital = db.get(Hospital, hospital_id)
    if not hospital:
        raise NotFoundError("Hospital not found")
    return hospital


def get_hospital_overview(
    db: Session,
    hospital_id: UUID,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Headline numbers for a hospital: blood units still wanted by PENDING
    demand, blood units on the shelf, their ratio, and live proposals.
    """
    hospital = _get_hospital(db, hospital_id)
    now = now or utc_now()

    pending_units = (
        db.query(func.coalesce(func.sum(DemandUnit.units_needed), 0))
        .filter(
            DemandUnit.hospital_id == hospital.id,
            DemandUnit.status == DemandStatus.PENDING,
        )
        .scalar()
    )

    available_units = (
        db.query(func.coalesce(func.sum(StockSnapshot.available_quantity), 0))
        .join(InventoryLedger, StockSnapshot.ledger_id == InventoryLedger.id)
        .filter(
            InventoryLedger.hospital_id == hospital.id,
            StockSnapshot.type == ItemKind.BLOOD,
        )
        .scalar()
    )

    pending_proposals = (
        db.query(func.count(Proposal.id))
        .join(DemandUnit, Proposal.demand_unit_id == DemandUnit.id)
        .filter(
            DemandUnit.hospital_id == hospital.id,
            Proposal.status == ProposalStatus.PROPOSED,
            Proposal.expires_at > now,
        )
        .scalar()
    )

    pending_units = int(pending_units or 0)
    available_units = int(available_units or 0)
    return {
        "hospital_id": hospital.id,
        "pending_units": pending_units,
        "available_units": available_units,
        "urgency_ratio": round(pending_units / max(available_units, 1), 2),
        "pending_proposals": int(pending_proposals or 0),
    }


def get_funnel(
    db: Session,
    hospital_id: UUID,
    *,
    from_date: date | None = None,
    to_date: date | None = None,
) -> dict[str, dict[str, int]]:
    """
    Proposal -> appointment funnel: counts per status of the proposals made
    for the hospital's demand units and of its appointments, optionally
    limited to records created between from_date and to_date (UTC, inclusive).
    """
    hospital = _get_hospital(db, hospital_id)
    if from_date and to_date and from_date > to_date:
        raise ValidationError("from must not be after to", field="from")

    start = start_of_day_utc(from_date) if from_date else None
    end = start_of_day_utc(to_date + timedelta(days=1)) if to_date else None

    proposal_query = (
        db.query(Proposal.status, func.count(Proposal.id))
        .join(DemandUnit, Proposal.demand_unit_id == DemandUnit.id)
        .filter(DemandUnit.hospital_id == hospital.id)
    )
    appointment_query = db.query(Appointment.status, func.count(Appointment.id)).filter(
        Appointment.hospital_id == hospital.id
    )
    if start:
        proposal_query = proposal_query.filter(Proposal.created_at >= start)
        appointment_query = appointment_query.filter(Appointment.created_at >= start)
    if end:
        proposal_query = proposal_query.filter(Proposal.created_at < end)
        appointment_query = appointment_query.filter(Appointment.created_at < end)

    proposals = {status.value: 0 for status in ProposalStatus}
    for status, count in proposal_query.group_by(Proposal.status).all():
        proposals[ProposalStatus(status).value] = int(count)

    appointments = {status.value: 0 for status in AppointmentStatus}
    for status, count in appointment_query.group_by(Appointment.status).all():
        appointments[AppointmentStatus(status).value] = int(count)

    return {"proposals": proposals, "appointments": appointments}
