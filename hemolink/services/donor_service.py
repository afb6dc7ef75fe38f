# hemolink/services/donor_service.py
import logging
from uuid import UUID

from sqlalchemy.orm import Session

from hemolink.core.exceptions import ConflictError, NotFoundError
from hemolink.models.donor import Donor, DonorAvailability
from hemolink.services.geocoding_service import NominatimGeocoder

logger = logging.getLogger(__name__)


def register_donor(
    db: Session,
    *,
    name: str,
    phone: str,
    blood_type: str,
    postal_code: str,
    country: str | None = None,
    organ_donation: list[str] | None = None,
    geocoder: NominatimGeocoder,
) -> Donor:
    """
    New donors start unverified and unavailable; they become matchable once
    verified and self-declared available.
    """
    existing = db.query(Donor).filter(Donor.phone == phone).first()
    if existing:
        raise ConflictError("Phone number already registered")

    coords = geocoder.resolve(postal_code, country)

    donor = Donor(
        name=name,
        phone=phone,
        blood_type=blood_type,
        organ_donation=list(organ_donation or []),
        postal_code=postal_code,
        latitude=coords.latitude,
        longitude=coords.longitude,
        is_verified=False,
        availability=DonorAvailability.UNAVAILABLE,
    )
    db.add(donor)
    db.flush()
    logger.info(f"Donor registered id={donor.id}")
    return donor


def set_availability(
    db: Session,
    donor_id: UUID,
    availability: DonorAvailability,
) -> Donor:
    donor = db.get(Donor, donor_id)
    if not donor:
        raise NotFoundError("Donor not found")
    donor.availability = availability
    db.flush()
    return donor


def set_verified(db: Session, donor_id: UUID, verified: bool = True) -> Donor:
    donor = db.get(Donor, donor_id)
    if not donor:
        raise NotFoundError("Donor not found")
    donor.is_verified = verified
    db.flush()
    return donor
