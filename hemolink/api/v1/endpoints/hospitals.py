# hemolink/api/v1/endpoints/hospitals.py
from __future__ import annotations

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from hemolink.background.tasks import enqueue_notifications
from hemolink.core.database import commit_or_500, get_db
from hemolink.core.exceptions import NotFoundError
from hemolink.models.demand import DemandStatus
from hemolink.models.hospital import Hospital
from hemolink.notifications.notifier import NotificationOutbox, Notifier, get_notifier
from hemolink.schemas.demand import DemandUnitResponse, ProposalResponse, SOSRequest, SOSResponse
from hemolink.schemas.donor import NearbyDonorResponse
from hemolink.schemas.hospital import (
    FunnelResponse,
    HospitalCreate,
    HospitalOverviewResponse,
    HospitalResponse,
)
from hemolink.schemas.inventory import BloodType, LedgerResponse
from hemolink.services import (
    dashboard_service,
    demand_service,
    hospital_service,
    inventory_service,
    matching_service,
)
from hemolink.services.geocoding_service import NominatimGeocoder, get_geocoder

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_hospital_or_404(db: Session, hospital_id: UUID) -> Hospital:
    hospital = db.get(Hospital, hospital_id)
    if not hospital:
        raise NotFoundError("Hospital not found")
    return hospital


@router.post(
    "",
    response_model=HospitalResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["hospitals"],
)
def create_hospital(
    payload: HospitalCreate,
    db: Session = Depends(get_db),
    geocoder: NominatimGeocoder = Depends(get_geocoder),
) -> HospitalResponse:
    """
    Register a hospital. Its coordinates are resolved from the postal code;
    an unresolvable postal code is rejected with 400.
    """
    hospital = hospital_service.create_hospital(
        db,
        name=payload.name,
        license_no=payload.license_no,
        postal_code=payload.postal_code,
        country=payload.country,
        type=payload.type,
        geocoder=geocoder,
    )
    response = HospitalResponse.model_validate(hospital)
    commit_or_500(db, "Failed to create hospital.")
    logger.info(f"Hospital created id={response.id}")
    return response


@router.get("/{hospital_id}", response_model=HospitalResponse, tags=["hospitals"])
def get_hospital(
    hospital_id: UUID,
    db: Session = Depends(get_db),
) -> HospitalResponse:
    return HospitalResponse.model_validate(_get_hospital_or_404(db, hospital_id))


@router.get("/{hospital_id}/inventory", response_model=LedgerResponse, tags=["hospitals"])
def get_hospital_inventory(
    hospital_id: UUID,
    db: Session = Depends(get_db),
) -> LedgerResponse:
    return LedgerResponse.model_validate(
        inventory_service.get_ledger_for_hospital(db, hospital_id)
    )


@router.get(
    "/{hospital_id}/demand-units",
    response_model=list[DemandUnitResponse],
    tags=["hospitals"],
)
def list_demand_units(
    hospital_id: UUID,
    status_filter: Optional[DemandStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
) -> list[DemandUnitResponse]:
    _get_hospital_or_404(db, hospital_id)
    units = demand_service.list_demand_units(db, hospital_id, status=status_filter)
    return [DemandUnitResponse.model_validate(u) for u in units]


@router.get(
    "/{hospital_id}/overview",
    response_model=HospitalOverviewResponse,
    tags=["hospitals"],
)
def get_hospital_overview(
    hospital_id: UUID,
    db: Session = Depends(get_db),
) -> HospitalOverviewResponse:
    """
    Pending blood units against units in stock, and live proposals.
    """
    return HospitalOverviewResponse(**dashboard_service.get_hospital_overview(db, hospital_id))


@router.get("/{hospital_id}/funnel", response_model=FunnelResponse, tags=["hospitals"])
def get_funnel(
    hospital_id: UUID,
    from_date: Optional[date] = Query(None, alias="from", description="First UTC day (inclusive)"),
    to_date: Optional[date] = Query(None, alias="to", description="Last UTC day (inclusive)"),
    db: Session = Depends(get_db),
) -> FunnelResponse:
    return FunnelResponse(
        **dashboard_service.get_funnel(db, hospital_id, from_date=from_date, to_date=to_date)
    )


@router.get(
    "/{hospital_id}/donors-nearby",
    response_model=list[NearbyDonorResponse],
    tags=["hospitals"],
)
def list_nearby_donors(
    hospital_id: UUID,
    blood_type: Optional[BloodType] = Query(None, description="Exact blood type filter"),
    verified_only: bool = Query(False, description="Only verified donors"),
    radius_km: float = Query(25.0, gt=0, le=200, description="Search radius in km"),
    db: Session = Depends(get_db),
) -> list[NearbyDonorResponse]:
    """
    Available donors around the hospital, nearest first.
    """
    donors = matching_service.list_nearby_donors(
        db,
        hospital_id,
        blood_type=blood_type,
        verified_only=verified_only,
        radius_km=radius_km,
    )
    return [NearbyDonorResponse(**d) for d in donors]


@router.post("/{hospital_id}/sos", response_model=SOSResponse, tags=["hospitals"])
def send_sos(
    hospital_id: UUID,
    payload: SOSRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> SOSResponse:
    outbox = NotificationOutbox()
    proposals = matching_service.create_sos_proposals(
        db,
        hospital_id,
        payload.blood_type,
        radius_km=payload.radius_km,
        limit=payload.limit,
        demand_unit_id=payload.demand_unit_id,
        notifier=outbox,
    )
    response = SOSResponse(
        created=len(proposals),
        proposals=[ProposalResponse.model_validate(p) for p in proposals],
    )
    commit_or_500(db, "Failed to send SOS.")
    enqueue_notifications(background_tasks, outbox, notifier)
    return response
