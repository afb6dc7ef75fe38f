# hemolink/api/v1/endpoints/donors.py
from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from hemolink.core.database import commit_or_500, get_db
from hemolink.core.exceptions import NotFoundError
from hemolink.models.donor import Donor
from hemolink.schemas.donor import (
    DonorAvailabilityUpdate,
    DonorCreate,
    DonorResponse,
    DonorVerificationUpdate,
    NearbyRequestResponse,
)
from hemolink.services import donor_service, matching_service
from hemolink.services.geocoding_service import NominatimGeocoder, get_geocoder

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=DonorResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["donors"],
)
def register_donor(
    payload: DonorCreate,
    db: Session = Depends(get_db),
    geocoder: NominatimGeocoder = Depends(get_geocoder),
) -> DonorResponse:
    """
    Register a donor. New donors are unverified and unavailable until they
    are verified and opt in.
    """
    donor = donor_service.register_donor(
        db,
        name=payload.name,
        phone=payload.phone,
        blood_type=payload.blood_type,
        postal_code=payload.postal_code,
        country=payload.country,
        organ_donation=list(payload.organ_donation),
        geocoder=geocoder,
    )
    response = DonorResponse.model_validate(donor)
    commit_or_500(db, "Failed to register donor.")
    return response


@router.get("/{donor_id}", response_model=DonorResponse, tags=["donors"])
def get_donor(
    donor_id: UUID,
    db: Session = Depends(get_db),
) -> DonorResponse:
    donor = db.get(Donor, donor_id)
    if not donor:
        raise NotFoundError("Donor not found")
    return DonorResponse.model_validate(donor)


@router.patch("/{donor_id}/availability", response_model=DonorResponse, tags=["donors"])
def update_availability(
    donor_id: UUID,
    payload: DonorAvailabilityUpdate,
    db: Session = Depends(get_db),
) -> DonorResponse:
    donor = donor_service.set_availability(db, donor_id, payload.availability)
    response = DonorResponse.model_validate(donor)
    commit_or_500(db, "Failed to update availability.")
    return response


@router.patch("/{donor_id}/verification", response_model=DonorResponse, tags=["donors"])
def update_verification(
    donor_id: UUID,
    payload: DonorVerificationUpdate,
    db: Session = Depends(get_db),
) -> DonorResponse:
    donor = donor_service.set_verified(db, donor_id, payload.is_verified)
    response = DonorResponse.model_validate(donor)
    commit_or_500(db, "Failed to update verification.")
    logger.info(f"Donor id={donor_id} verified={payload.is_verified}")
    return response


@router.get(
    "/{donor_id}/nearby-requests",
    response_model=list[NearbyRequestResponse],
    tags=["donors"],
)
def list_nearby_requests(
    donor_id: UUID,
    radius_km: float = Query(20.0, gt=0, le=200, description="Search radius in km"),
    db: Session = Depends(get_db),
) -> list[NearbyRequestResponse]:
    """
    Hospitals near the donor and how much of the donor's blood type they
    hold, so the donor can see where a donation is most needed.
    """
    requests = matching_service.list_nearby_requests(db, donor_id, radius_km=radius_km)
    return [NearbyRequestResponse(**r) for r in requests]
