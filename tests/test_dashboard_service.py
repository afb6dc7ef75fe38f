import uuid
from datetime import date, timedelta

import pytest

from conftest import NOW, blood_item, make_demand, make_donor, make_hospital
from hemolink.core.config import Settings
from hemolink.core.exceptions import NotFoundError, ValidationError
from hemolink.models.demand import DemandStatus
from hemolink.services import dashboard_service, inventory_service, matching_service, proposal_service


@pytest.fixture
def settings():
    return Settings(proposal_lifetime_hours=24, appointment_default_hour=10)


def test_overview_counts_pending_demand_against_stock(db, hospital, ledger, notifier, settings):
    inventory_service.add_items(
        db,
        ledger.id,
        [
            blood_item("O+", 3, expires_at=NOW + timedelta(days=10)),
            blood_item("A+", 2, expires_at=NOW + timedelta(days=10)),
        ],
        notifier=notifier,
        now=NOW,
    )
    make_demand(db, hospital, blood_type="A+", units_needed=4)
    make_demand(db, hospital, blood_type="B+", units_needed=2)
    fulfilled = make_demand(db, hospital, blood_type="O+", units_needed=5)
    fulfilled.status = DemandStatus.FULFILLED
    make_demand(db, make_hospital(db, name="Elsewhere"), units_needed=9)

    make_donor(db, blood_type="O-", km_north=1)
    demand_unit = make_demand(db, hospital, blood_type="O-", units_needed=1)
    matching_service.propose_donors(db, demand_unit, 1, notifier=notifier, now=NOW, settings=settings)
    db.flush()

    overview = dashboard_service.get_hospital_overview(db, hospital.id, now=NOW + timedelta(hours=1))

    assert overview == {
        "hospital_id": hospital.id,
        "pending_units": 7,
        "available_units": 5,
        "urgency_ratio": 1.4,
        "pending_proposals": 1,
    }


def test_overview_ignores_expired_proposals_and_empty_stock(db, hospital, notifier, settings):
    make_donor(db, blood_type="O-", km_north=1)
    demand_unit = make_demand(db, hospital, blood_type="O-", units_needed=3)
    matching_service.propose_donors(db, demand_unit, 1, notifier=notifier, now=NOW, settings=settings)
    db.flush()

    overview = dashboard_service.get_hospital_overview(db, hospital.id, now=NOW + timedelta(hours=25))

    assert overview["pending_proposals"] == 0
    assert overview["available_units"] == 0
    assert overview["urgency_ratio"] == 3.0


def test_overview_unknown_hospital(db):
    with pytest.raises(NotFoundError):
        dashboard_service.get_hospital_overview(db, uuid.uuid4())


def _build_funnel(db, hospital, notifier, settings):
    # Proposal made five days earlier and left to lapse
    make_donor(db, blood_type="O-", km_north=1)
    old_demand = make_demand(db, hospital, blood_type="O-", units_needed=1)
    matching_service.propose_donors(
        db, old_demand, 1, notifier=notifier, now=NOW - timedelta(days=5), settings=settings
    )

    make_donor(db, blood_type="O-", km_north=2)
    make_donor(db, blood_type="O-", km_north=3)
    demand_unit = make_demand(db, hospital, blood_type="O-", units_needed=2)
    first, _ = matching_service.propose_donors(
        db, demand_unit, 2, notifier=notifier, now=NOW, settings=settings
    )
    proposal_service.expire_stale_proposals(db, now=NOW)
    proposal_service.confirm(
        db, first.token, notifier=notifier, now=NOW + timedelta(hours=1), settings=settings
    )
    db.flush()


def test_funnel_counts_every_status(db, hospital, notifier, settings):
    _build_funnel(db, hospital, notifier, settings)

    funnel = dashboard_service.get_funnel(db, hospital.id)

    assert funnel == {
        "proposals": {"PROPOSED": 1, "CONFIRMED": 1, "EXPIRED": 1},
        "appointments": {"SCHEDULED": 1, "COMPLETED": 0, "CANCELLED": 0},
    }


def test_funnel_date_range_is_inclusive_utc_days(db, hospital, notifier, settings):
    _build_funnel(db, hospital, notifier, settings)

    today = dashboard_service.get_funnel(db, hospital.id, from_date=NOW.date(), to_date=NOW.date())
    assert today["proposals"] == {"PROPOSED": 1, "CONFIRMED": 1, "EXPIRED": 0}
    assert today["appointments"]["SCHEDULED"] == 1

    earlier = dashboard_service.get_funnel(db, hospital.id, to_date=date(2026, 3, 9))
    assert earlier["proposals"] == {"PROPOSED": 0, "CONFIRMED": 0, "EXPIRED": 1}
    assert earlier["appointments"] == {"SCHEDULED": 0, "COMPLETED": 0, "CANCELLED": 0}


def test_funnel_of_other_hospital_is_empty(db, hospital, notifier, settings):
    _build_funnel(db, hospital, notifier, settings)
    other = make_hospital(db, name="Other")

    funnel = dashboard_service.get_funnel(db, other.id)

    assert set(funnel["proposals"].values()) == {0}
    assert set(funnel["appointments"].values()) == {0}


def test_funnel_rejects_inverted_range(db, hospital):
    with pytest.raises(ValidationError) as exc_info:
        dashboard_service.get_funnel(
            db, hospital.id, from_date=date(2026, 3, 10), to_date=date(2026, 3, 9)
        )
    assert exc_info.value.field == "from"
