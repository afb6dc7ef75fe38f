# hemolink/services/hospital_service.py
from sqlalchemy.orm import Session

from hemolink.core.exceptions import ConflictError
from hemolink.models.hospital import Hospital, HospitalType
from hemolink.services.geocoding_service import NominatimGeocoder


def create_hospital(
    db: Session,
    *,
    name: str,
    license_no: str,
    postal_code: str,
    country: str,
    type: HospitalType = HospitalType.HOSPITAL,
    geocoder: NominatimGeocoder,
) -> Hospital:
    """
    Register a hospital, resolving its coordinates from the postal code.

    GeocodingError propagates so the caller reports an invalid postal code.
    """
    existing = db.query(Hospital).filter(Hospital.license_no == license_no).first()
    if existing:
        raise ConflictError("A hospital with this license number already exists")

    coords = geocoder.resolve(postal_code, country)

    hospital = Hospital(
        name=name,
        license_no=license_no,
        type=type,
        postal_code=postal_code,
        country=country,
        latitude=coords.latitude,
        longitude=coords.longitude,
        is_active=True,
    )
    db.add(hospital)
    db.flush()
    return hospital
