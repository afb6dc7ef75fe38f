# hemolink/services/matching_service.py
"""
Donor matching: find compatible, nearby, rested donors for a demand unit and
extend time-boxed proposals to them.

Spatial search is a bounding-box prefilter in SQL followed by an exact
geodesic distance in Python.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from geopy.distance import geodesic
from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from hemolink.core.config import Settings, get_settings
from hemolink.core.exceptions import NotFoundError, ValidationError
from hemolink.models.demand import DemandStatus, DemandUnit
from hemolink.models.donor import Donor, DonorAvailability
from hemolink.models.hospital import Hospital
from hemolink.models.inventory import InventoryLedger, ItemKind, StockSnapshot
from hemolink.models.proposal import Proposal, ProposalStatus
from hemolink.notifications.notifier import EventKind, NotificationChannel, Notifier
from hemolink.utils.blood_compatibility import compatible_donor_types
from hemolink.utils.datetime_utils import utc_now
from hemolink.utils.token_utils import generate_proposal_token, proposal_expiry

logger = logging.getLogger(__name__)

KM_PER_DEGREE_LAT = 111.32
NEARBY_DONORS_LIMIT = 100
INITIAL_CANDIDATE_LIMIT = 30
CRITICAL_STOCK_UNITS = 2
LOW_STOCK_UNITS = 5


@dataclass
class DonorCandidate:
    donor: Donor
    distance_km: float


def _bounding_box(lat: float, lon: float, radius_km: float) -> tuple[float, float, float, float]:
    d_lat = radius_km / KM_PER_DEGREE_LAT
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    d_lon = min(radius_km / (KM_PER_DEGREE_LAT * cos_lat), 180.0)
    return lat - d_lat, lat + d_lat, lon - d_lon, lon + d_lon


def _longitude_filter(column: Any, min_lon: float, max_lon: float) -> Any:
    """
    Longitude range condition. A range crossing the antimeridian is split in
    two; a range spanning the whole circle matches every longitude.
    """
    if max_lon - min_lon >= 360.0:
        return column.between(-180.0, 180.0)
    if min_lon < -180.0:
        return or_(column >= min_lon + 360.0, column <= max_lon)
    if max_lon > 180.0:
        return or_(column >= min_lon, column <= max_lon - 360.0)
    return column.between(min_lon, max_lon)


def _donors_within(
    db: Session,
    hospital: Hospital,
    radius_km: float,
    *filters: Any,
) -> list[DonorCandidate]:
    """Donors matching filters within radius_km of the hospital, unordered."""
    min_lat, max_lat, min_lon, max_lon = _bounding_box(
        hospital.latitude, hospital.longitude, radius_km
    )
    query = db.query(Donor).filter(
        Donor.latitude.isnot(None),
        Donor.longitude.isnot(None),
        Donor.latitude.between(min_lat, max_lat),
        _longitude_filter(Donor.longitude, min_lon, max_lon),
        *filters,
    )

    origin = (hospital.latitude, hospital.longitude)
    candidates: list[DonorCandidate] = []
    for donor in query.all():
        distance = geodesic(origin, (donor.latitude, donor.longitude)).km
        if distance <= radius_km:
            candidates.append(DonorCandidate(donor=donor, distance_km=distance))
    return candidates


def _eligibility_filters(
    settings: Settings,
    donor_types: list[str],
    now: datetime,
) -> list[Any]:
    rest_cutoff = now - timedelta(days=settings.matching_rest_period_days)
    ping_cutoff = now - timedelta(days=settings.matching_ping_cooldown_days)
    return [
        Donor.availability == DonorAvailability.AVAILABLE,
        Donor.is_verified.is_(True),
        Donor.blood_type.in_(donor_types),
        or_(Donor.last_donation_at.is_(None), Donor.last_donation_at <= rest_cutoff),
        or_(Donor.last_pinged_at.is_(None), Donor.last_pinged_at <= ping_cutoff),
    ]


def _rank(candidates: list[DonorCandidate]) -> list[DonorCandidate]:
    """
    Nearest first, then longest since last donation (never donated first),
    then a uniform random tiebreak so the same donors aren't always picked.
    """
    oldest = datetime.min

    def key(c: DonorCandidate):
        last = c.donor.last_donation_at
        return (
            c.distance_km,
            last.replace(tzinfo=None) if last else oldest,
            random.random(),
        )

    return sorted(candidates, key=key)


def find_eligible_donors(
    db: Session,
    *,
    hospital: Hospital,
    recipient_blood_type: str,
    radius_km: float,
    limit: int,
    exclude_donor_ids: set[UUID] | None = None,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> list[DonorCandidate]:
    settings = settings or get_settings()
    now = now or utc_now()
    donor_types = compatible_donor_types(recipient_blood_type)
    if not donor_types or limit <= 0:
        return []

    filters = _eligibility_filters(settings, donor_types, now)
    if exclude_donor_ids:
        filters.append(Donor.id.notin_(exclude_donor_ids))

    candidates = _donors_within(db, hospital, radius_km, *filters)
    return _rank(candidates)[:limit]


def _claim_donor(db: Session, donor: Donor, now: datetime, settings: Settings) -> bool:
    """
    Stamp last_pinged_at only if the donor is still outside the ping cooldown.

    Conditional UPDATE, so two concurrent matching runs can't both claim the
    same donor.
    """
    ping_cutoff = now - timedelta(days=settings.matching_ping_cooldown_days)
    result = db.execute(
        update(Donor)
        .where(
            Donor.id == donor.id,
            or_(Donor.last_pinged_at.is_(None), Donor.last_pinged_at <= ping_cutoff),
        )
        .values(last_pinged_at=now)
        .execution_options(synchronize_session=False)
    )
    db.expire(donor, ["last_pinged_at"])
    return result.rowcount == 1


def _notify_donor(
    notifier: Notifier,
    settings: Settings,
    donor: Donor,
    proposal: Proposal,
    demand_unit: DemandUnit,
    hospital: Hospital,
) -> None:
    confirm_path = settings.confirm_url_template.format(token=proposal.token)
    message = (
        f"Hello {donor.name}, {hospital.name} urgently needs {demand_unit.blood_type} blood. "
        f"Confirm your donation within {settings.proposal_lifetime_hours}h at {confirm_path}"
    )
    notifier.emit(
        NotificationChannel.SMS,
        EventKind.DONOR_PROPOSAL,
        {
            "phone": donor.phone,
            "message": message,
            "token": proposal.token,
            "demand_unit_id": str(demand_unit.id),
            "expires_at": proposal.expires_at.isoformat(),
        },
    )


def _create_proposals(
    db: Session,
    demand_unit: DemandUnit,
    hospital: Hospital,
    candidates: list[DonorCandidate],
    target: int,
    *,
    notifier: Notifier,
    now: datetime,
    settings: Settings,
) -> list[Proposal]:
    created: list[Proposal] = []
    for candidate in candidates:
        if len(created) >= target:
            break
        donor = candidate.donor
        if not _claim_donor(db, donor, now, settings):
            logger.info(f"Donor {donor.id} was claimed concurrently; skipping")
            continue

        proposal = Proposal(
            demand_unit_id=demand_unit.id,
            donor_id=donor.id,
            status=ProposalStatus.PROPOSED,
            token=generate_proposal_token(),
            expires_at=proposal_expiry(now, settings.proposal_lifetime_hours),
            created_at=now,
        )
        db.add(proposal)
        db.flush()
        created.append(proposal)
        _notify_donor(notifier, settings, donor, proposal, demand_unit, hospital)

    return created


def propose_donors(
    db: Session,
    demand_unit: DemandUnit,
    target_unit_count: int,
    *,
    notifier: Notifier,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> list[Proposal]:
    """
    First-pass matching for a demand unit (initial radius).

    A hospital without a location aborts matching for this demand unit; no
    eligible donors simply yields no proposals.
    """
    settings = settings or get_settings()
    now = now or utc_now()

    hospital = db.get(Hospital, demand_unit.hospital_id)
    if not hospital or not hospital.has_location:
        logger.warning(
            f"Hospital location missing; skipping matching demand_unit={demand_unit.id}"
        )
        return []

    candidates = find_eligible_donors(
        db,
        hospital=hospital,
        recipient_blood_type=demand_unit.blood_type,
        radius_km=settings.matching_initial_radius_km,
        limit=max(target_unit_count, INITIAL_CANDIDATE_LIMIT),
        now=now,
        settings=settings,
    )
    proposals = _create_proposals(
        db,
        demand_unit,
        hospital,
        candidates,
        target_unit_count,
        notifier=notifier,
        now=now,
        settings=settings,
    )
    logger.info(f"Proposed {len(proposals)} donor(s) for demand_unit={demand_unit.id}")
    return proposals


def _already_proposed_donor_ids(db: Session, demand_unit_id: UUID) -> set[UUID]:
    rows = (
        db.query(Proposal.donor_id)
        .filter(Proposal.demand_unit_id == demand_unit_id)
        .distinct()
        .all()
    )
    return {row[0] for row in rows}


def recheck_unfulfilled(
    db: Session,
    *,
    notifier: Notifier,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> dict[str, int]:
    """
    Top up proposals for every PENDING demand unit with a remaining deficit,
    searching a wider radius and skipping donors already asked for it.

    Each demand unit runs in its own savepoint; failures are logged and skipped.
    """
    settings = settings or get_settings()
    now = now or utc_now()

    pending = (
        db.query(DemandUnit)
        .filter(DemandUnit.status == DemandStatus.PENDING)
        .order_by(DemandUnit.created_at.asc())
        .all()
    )

    checked = 0
    proposed = 0
    failed = 0
    for demand_unit in pending:
        deficit = demand_unit.deficit
        if deficit <= 0:
            continue
        checked += 1
        try:
            with db.begin_nested():
                hospital = db.get(Hospital, demand_unit.hospital_id)
                if not hospital or not hospital.has_location:
                    logger.warning(
                        f"Hospital location missing; skipping recheck demand_unit={demand_unit.id}"
                    )
                    continue

                candidates = find_eligible_donors(
                    db,
                    hospital=hospital,
                    recipient_blood_type=demand_unit.blood_type,
                    radius_km=settings.matching_recheck_radius_km,
                    limit=deficit * 2,
                    exclude_donor_ids=_already_proposed_donor_ids(db, demand_unit.id),
                    now=now,
                    settings=settings,
                )
                created = _create_proposals(
                    db,
                    demand_unit,
                    hospital,
                    candidates,
                    deficit,
                    notifier=notifier,
                    now=now,
                    settings=settings,
                )
                proposed += len(created)
        except Exception:
            failed += 1
            logger.exception(f"[RECHECK_ERROR] demand_unit={demand_unit.id}")

    logger.info(f"Recheck done: checked={checked} proposed={proposed} failed={failed}")
    return {"checked": checked, "proposed": proposed, "failed": failed}


def list_nearby_donors(
    db: Session,
    hospital_id: UUID,
    *,
    blood_type: str | None = None,
    verified_only: bool = False,
    radius_km: float = 25.0,
) -> list[dict[str, Any]]:
    hospital = db.get(Hospital, hospital_id)
    if not hospital:
        raise NotFoundError("Hospital not found")
    if not hospital.has_location:
        return []

    filters: list[Any] = [Donor.availability == DonorAvailability.AVAILABLE]
    if blood_type:
        filters.append(Donor.blood_type == blood_type)
    if verified_only:
        filters.append(Donor.is_verified.is_(True))

    candidates = sorted(
        _donors_within(db, hospital, radius_km, *filters),
        key=lambda c: c.distance_km,
    )[:NEARBY_DONORS_LIMIT]

    return [
        {
            "id": c.donor.id,
            "name": c.donor.name,
            "blood_type": c.donor.blood_type,
            "is_verified": c.donor.is_verified,
            "distance_km": round(c.distance_km, 2),
            "last_donation_at": c.donor.last_donation_at,
        }
        for c in candidates
    ]


def create_sos_proposals(
    db: Session,
    hospital_id: UUID,
    blood_type: str,
    *,
    radius_km: float = 25.0,
    limit: int = 5,
    demand_unit_id: UUID | None = None,
    notifier: Notifier,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> list[Proposal]:
    """
    SOS broadcast: propose to the nearest available, verified donors of the
    exact blood type, linked to a PENDING demand unit of that hospital.
    """
    settings = settings or get_settings()
    now = now or utc_now()

    hospital = db.get(Hospital, hospital_id)
    if not hospital:
        raise NotFoundError("Hospital not found")
    if not hospital.has_location:
        raise ValidationError("Hospital location missing", field="hospital_id")

    if demand_unit_id is not None:
        demand_unit = db.get(DemandUnit, demand_unit_id)
        if not demand_unit or demand_unit.hospital_id != hospital.id:
            raise NotFoundError("Demand unit not found")
    else:
        demand_unit = (
            db.query(DemandUnit)
            .filter(
                DemandUnit.hospital_id == hospital.id,
                DemandUnit.status == DemandStatus.PENDING,
                DemandUnit.blood_type == blood_type,
            )
            .order_by(DemandUnit.created_at.asc())
            .first()
        )
        if not demand_unit:
            raise ValidationError(
                "No pending demand unit for this blood type", field="demand_unit_id"
            )

    ping_cutoff = now - timedelta(days=settings.matching_ping_cooldown_days)
    candidates = _donors_within(
        db,
        hospital,
        radius_km,
        Donor.availability == DonorAvailability.AVAILABLE,
        Donor.is_verified.is_(True),
        Donor.blood_type == blood_type,
        or_(Donor.last_pinged_at.is_(None), Donor.last_pinged_at <= ping_cutoff),
    )
    candidates.sort(key=lambda c: c.distance_km)

    proposals = _create_proposals(
        db,
        demand_unit,
        hospital,
        candidates,
        limit,
        notifier=notifier,
        now=now,
        settings=settings,
    )
    logger.info(
        f"[SOS] hospital={hospital.id} blood_type={blood_type} proposals={len(proposals)}"
    )
    return proposals


def stock_level(available_units: int) -> str:
    if available_units <= CRITICAL_STOCK_UNITS:
        return "CRITICAL"
    if available_units <= LOW_STOCK_UNITS:
        return "LOW"
    return "OK"


def list_nearby_requests(
    db: Session,
    donor_id: UUID,
    *,
    radius_km: float = 20.0,
) -> list[dict[str, Any]]:
    """
    Hospitals around a donor with their stock of the donor's blood type,
    nearest first, each rated CRITICAL / LOW / OK.
    """
    donor = db.get(Donor, donor_id)
    if not donor:
        raise NotFoundError("Donor not found")
    if donor.latitude is None or donor.longitude is None:
        return []

    min_lat, max_lat, min_lon, max_lon = _bounding_box(donor.latitude, donor.longitude, radius_km)
    hospitals = (
        db.query(Hospital)
        .filter(
            Hospital.is_active.is_(True),
            Hospital.latitude.isnot(None),
            Hospital.longitude.isnot(None),
            Hospital.latitude.between(min_lat, max_lat),
            _longitude_filter(Hospital.longitude, min_lon, max_lon),
        )
        .all()
    )

    origin = (donor.latitude, donor.longitude)
    nearby: list[tuple[float, Hospital]] = []
    for hospital in hospitals:
        distance = geodesic(origin, (hospital.latitude, hospital.longitude)).km
        if distance <= radius_km:
            nearby.append((distance, hospital))
    if not nearby:
        return []
    nearby.sort(key=lambda pair: pair[0])

    rows = (
        db.query(InventoryLedger.hospital_id, StockSnapshot.available_quantity)
        .join(StockSnapshot, StockSnapshot.ledger_id == InventoryLedger.id)
        .filter(
            InventoryLedger.hospital_id.in_([hospital.id for _, hospital in nearby]),
            StockSnapshot.type == ItemKind.BLOOD,
            StockSnapshot.sub_type == donor.blood_type,
        )
        .all()
    )
    available = {hospital_id: int(quantity or 0) for hospital_id, quantity in rows}

    results = []
    for distance, hospital in nearby:
        units = available.get(hospital.id, 0)
        results.append(
            {
                "hospital_id": hospital.id,
                "hospital_name": hospital.name,
                "distance_km": round(distance, 2),
                "blood_type": donor.blood_type,
                "available_units": units,
                "status": stock_level(units),
            }
        )
    return results
