# hemolink/services/demand_service.py
import logging
from uuid import UUID

from sqlalchemy.orm import Session

from hemolink.core.exceptions import NotFoundError
from hemolink.models.demand import DemandStatus, DemandUnit
from hemolink.models.hospital import Hospital
from hemolink.models.proposal import Proposal
from hemolink.notifications.notifier import Notifier
from hemolink.services.matching_service import propose_donors

logger = logging.getLogger(__name__)


def create_demand_unit(
    db: Session,
    *,
    hospital_id: UUID,
    patient_name: str,
    blood_type: str,
    units_needed: int,
    notifier: Notifier,
) -> tuple[DemandUnit, list[Proposal]]:
    """
    Record a patient's need and run first-pass matching for all of it.

    Matching problems (no hospital location, no donors) never fail intake;
    the periodic recheck keeps trying.
    """
    hospital = db.get(Hospital, hospital_id)
    if not hospital:
        raise NotFoundError("Hospital not found")

    demand_unit = DemandUnit(
        hospital_id=hospital.id,
        patient_name=patient_name,
        blood_type=blood_type,
        units_needed=units_needed,
        status=DemandStatus.PENDING,
        confirmed_count=0,
    )
    db.add(demand_unit)
    db.flush()
    logger.info(f"Demand unit created id={demand_unit.id} hospital={hospital.id}")

    proposals = propose_donors(db, demand_unit, demand_unit.units_needed, notifier=notifier)
    return demand_unit, proposals


def list_demand_units(
    db: Session,
    hospital_id: UUID,
    *,
    status: DemandStatus | None = None,
) -> list[DemandUnit]:
    query = db.query(DemandUnit).filter(DemandUnit.hospital_id == hospital_id)
    if status is not None:
        query = query.filter(DemandUnit.status == status)
    return query.order_by(DemandUnit.created_at.desc()).all()
