# hemolink/services/proposal_service.py
"""
Proposal lifecycle: PROPOSED -> CONFIRMED | EXPIRED, and the appointment that
a confirmation books.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from hemolink.core.config import Settings, get_settings
from hemolink.core.exceptions import ConflictError, NotFoundError, ValidationError
from hemolink.models.appointment import Appointment, AppointmentStatus
from hemolink.models.demand import DemandStatus, DemandUnit
from hemolink.models.donor import Donor
from hemolink.models.proposal import Proposal, ProposalStatus
from hemolink.notifications.notifier import EventKind, NotificationChannel, Notifier
from hemolink.utils.datetime_utils import next_day_at_hour, utc_now

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or expired token"


def confirm(
    db: Session,
    token: str,
    *,
    notifier: Notifier,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> Appointment:
    """
    Confirm a proposal by its token and book the donation appointment.

    The PROPOSED -> CONFIRMED transition is a compare-and-swap on
    (token, status, expiry): exactly one caller wins, every other attempt
    (repeat, concurrent, unknown or expired token) gets ConflictError.
    """
    settings = settings or get_settings()
    now = now or utc_now()

    result = db.execute(
        update(Proposal)
        .where(
            Proposal.token == token,
            Proposal.status == ProposalStatus.PROPOSED,
            Proposal.expires_at > now,
        )
        .values(status=ProposalStatus.CONFIRMED, confirmed_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(INVALID_TOKEN_MESSAGE)

    proposal = db.query(Proposal).filter(Proposal.token == token).populate_existing().one()
    demand_unit = db.get(DemandUnit, proposal.demand_unit_id)

    appointment = Appointment(
        proposal_id=proposal.id,
        donor_id=proposal.donor_id,
        hospital_id=demand_unit.hospital_id,
        scheduled_at=next_day_at_hour(now, settings.appointment_default_hour),
        status=AppointmentStatus.SCHEDULED,
        created_at=now,
    )
    db.add(appointment)

    db.execute(
        update(DemandUnit)
        .where(DemandUnit.id == demand_unit.id)
        .values(confirmed_count=DemandUnit.confirmed_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.flush()
    db.refresh(demand_unit)

    if (
        demand_unit.status == DemandStatus.PENDING
        and demand_unit.confirmed_count >= demand_unit.units_needed
    ):
        demand_unit.status = DemandStatus.FULFILLED
        demand_unit.fulfilled_at = now
        logger.info(f"Demand unit {demand_unit.id} fulfilled")

    db.flush()
    logger.info(
        f"Proposal {proposal.id} confirmed; appointment {appointment.id} at {appointment.scheduled_at.isoformat()}"
    )

    donor = db.get(Donor, proposal.donor_id)
    if donor:
        notifier.emit(
            NotificationChannel.SMS,
            EventKind.APPOINTMENT_CONFIRMED,
            {
                "phone": donor.phone,
                "message": (
                    f"Thank you {donor.name}! Your donation is booked for "
                    f"{appointment.scheduled_at.strftime('%Y-%m-%d %H:%M')} UTC."
                ),
                "appointment_id": str(appointment.id),
            },
        )
    return appointment


def expire_stale_proposals(db: Session, *, now: datetime | None = None) -> int:
    """Flip every PROPOSED proposal past its expiry to EXPIRED. Returns the count."""
    now = now or utc_now()
    result = db.execute(
        update(Proposal)
        .where(
            Proposal.status == ProposalStatus.PROPOSED,
            Proposal.expires_at <= now,
        )
        .values(status=ProposalStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount or 0
    if count:
        logger.info(f"Expired {count} stale proposal(s)")
    return count


def update_appointment_status(
    db: Session,
    appointment_id: UUID,
    status: Any,
    *,
    now: datetime | None = None,
) -> Appointment:
    """
    Set an appointment's status. Completing it records the donation on the
    donor, which starts their rest period.
    """
    try:
        new_status = AppointmentStatus(status)
    except ValueError:
        raise ValidationError("Invalid status", field="status")

    appointment = db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found")

    now = now or utc_now()
    appointment.status = new_status
    if new_status == AppointmentStatus.COMPLETED:
        appointment.completed_at = now
        donor = db.get(Donor, appointment.donor_id)
        if donor:
            donor.last_donation_at = now

    db.flush()
    return appointment
