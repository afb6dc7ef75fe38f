import threading
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from conftest import NOW, make_demand, make_donor, make_hospital
from hemolink.core.config import Settings
from hemolink.core.exceptions import ConflictError, NotFoundError, ValidationError
from hemolink.models.appointment import Appointment, AppointmentStatus
from hemolink.models.base import Base
from hemolink.models.demand import DemandStatus, DemandUnit
from hemolink.models.proposal import Proposal, ProposalStatus
from hemolink.notifications.notifier import EventKind
from hemolink.services import matching_service, proposal_service
from hemolink.services.proposal_service import INVALID_TOKEN_MESSAGE


@pytest.fixture
def settings():
    return Settings(proposal_lifetime_hours=24, appointment_default_hour=10)


def _proposals_for(db, hospital, notifier, settings, *, donors=1, units_needed=1):
    for km in range(1, donors + 1):
        make_donor(db, blood_type="O-", km_north=km)
    demand_unit = make_demand(db, hospital, blood_type="O-", units_needed=units_needed)
    proposals = matching_service.propose_donors(
        db, demand_unit, units_needed, notifier=notifier, now=NOW, settings=settings
    )
    assert len(proposals) == min(donors, units_needed)
    return demand_unit, proposals


def test_confirm_books_appointment_and_fulfils_demand(db, hospital, notifier, settings):
    demand_unit, (proposal,) = _proposals_for(db, hospital, notifier, settings)
    confirmed_at = NOW + timedelta(hours=1)

    appointment = proposal_service.confirm(
        db, proposal.token, notifier=notifier, now=confirmed_at, settings=settings
    )

    assert appointment.proposal_id == proposal.id
    assert appointment.donor_id == proposal.donor_id
    assert appointment.hospital_id == hospital.id
    assert appointment.status == AppointmentStatus.SCHEDULED
    assert appointment.scheduled_at == datetime(2026, 3, 11, 10, 0, tzinfo=timezone.utc)

    assert proposal.status == ProposalStatus.CONFIRMED
    assert proposal.confirmed_at == confirmed_at
    assert demand_unit.confirmed_count == 1
    assert demand_unit.status == DemandStatus.FULFILLED
    assert demand_unit.fulfilled_at == confirmed_at

    sms = notifier.payloads(EventKind.APPOINTMENT_CONFIRMED)
    assert len(sms) == 1
    assert sms[0]["appointment_id"] == str(appointment.id)


def test_confirm_twice_conflicts(db, hospital, notifier, settings):
    _, (proposal,) = _proposals_for(db, hospital, notifier, settings)
    proposal_service.confirm(db, proposal.token, notifier=notifier, now=NOW, settings=settings)

    with pytest.raises(ConflictError) as exc_info:
        proposal_service.confirm(db, proposal.token, notifier=notifier, now=NOW, settings=settings)
    assert exc_info.value.message == INVALID_TOKEN_MESSAGE


def test_confirm_unknown_token_conflicts(db, notifier, settings):
    with pytest.raises(ConflictError):
        proposal_service.confirm(db, "f" * 64, notifier=notifier, now=NOW, settings=settings)


def test_confirm_after_expiry_conflicts(db, hospital, notifier, settings):
    demand_unit, (proposal,) = _proposals_for(db, hospital, notifier, settings)
    too_late = NOW + timedelta(hours=24)

    with pytest.raises(ConflictError):
        proposal_service.confirm(db, proposal.token, notifier=notifier, now=too_late, settings=settings)

    db.refresh(proposal)
    db.refresh(demand_unit)
    assert proposal.status == ProposalStatus.PROPOSED
    assert demand_unit.confirmed_count == 0


def test_expire_stale_proposals(db, hospital, notifier, settings):
    _, (proposal,) = _proposals_for(db, hospital, notifier, settings)

    assert proposal_service.expire_stale_proposals(db, now=NOW + timedelta(hours=23)) == 0
    assert proposal_service.expire_stale_proposals(db, now=NOW + timedelta(hours=24)) == 1

    db.refresh(proposal)
    assert proposal.status == ProposalStatus.EXPIRED
    with pytest.raises(ConflictError):
        proposal_service.confirm(db, proposal.token, notifier=notifier, now=NOW, settings=settings)


def test_partial_confirmation_keeps_demand_pending(db, hospital, notifier, settings):
    demand_unit, proposals = _proposals_for(
        db, hospital, notifier, settings, donors=2, units_needed=2
    )

    proposal_service.confirm(db, proposals[0].token, notifier=notifier, now=NOW, settings=settings)
    assert demand_unit.status == DemandStatus.PENDING
    assert demand_unit.deficit == 1

    proposal_service.confirm(db, proposals[1].token, notifier=notifier, now=NOW, settings=settings)
    assert demand_unit.status == DemandStatus.FULFILLED
    assert demand_unit.confirmed_count == 2
    assert db.query(Proposal).filter(Proposal.status == ProposalStatus.CONFIRMED).count() == 2


def test_completing_appointment_records_donation(db, hospital, notifier, settings):
    _, (proposal,) = _proposals_for(db, hospital, notifier, settings)
    appointment = proposal_service.confirm(
        db, proposal.token, notifier=notifier, now=NOW, settings=settings
    )
    done_at = NOW + timedelta(days=1)

    updated = proposal_service.update_appointment_status(db, appointment.id, "COMPLETED", now=done_at)

    assert updated.status == AppointmentStatus.COMPLETED
    assert updated.completed_at == done_at
    assert proposal.donor.last_donation_at == done_at


def test_cancelling_appointment_keeps_donor_history(db, hospital, notifier, settings):
    _, (proposal,) = _proposals_for(db, hospital, notifier, settings)
    appointment = proposal_service.confirm(
        db, proposal.token, notifier=notifier, now=NOW, settings=settings
    )

    proposal_service.update_appointment_status(db, appointment.id, AppointmentStatus.CANCELLED)

    assert appointment.status == AppointmentStatus.CANCELLED
    assert appointment.completed_at is None
    assert proposal.donor.last_donation_at is None


def test_update_appointment_status_validation(db, hospital, notifier, settings):
    _, (proposal,) = _proposals_for(db, hospital, notifier, settings)
    appointment = proposal_service.confirm(
        db, proposal.token, notifier=notifier, now=NOW, settings=settings
    )

    with pytest.raises(ValidationError) as exc_info:
        proposal_service.update_appointment_status(db, appointment.id, "DONE")
    assert exc_info.value.field == "status"

    with pytest.raises(NotFoundError):
        proposal_service.update_appointment_status(db, uuid.uuid4(), "COMPLETED")


# -------------------------
# Concurrent confirmation
# -------------------------
@pytest.fixture
def file_session_factory(tmp_path):
    """Separate connections to one SQLite file, so sessions really race."""
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'confirm.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    # writers queue on the database lock instead of failing with SQLITE_BUSY
    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


def test_concurrent_confirms_have_one_winner(file_session_factory, notifier, settings):
    with file_session_factory() as setup:
        hospital = make_hospital(setup)
        make_donor(setup, blood_type="O-", km_north=1)
        demand_unit = make_demand(setup, hospital, blood_type="O-")
        (proposal,) = matching_service.propose_donors(
            setup, demand_unit, 1, notifier=notifier, now=NOW, settings=settings
        )
        token, demand_unit_id = proposal.token, demand_unit.id
        setup.commit()

    attempts = 4
    barrier = threading.Barrier(attempts)
    outcomes = []

    def attempt():
        db = file_session_factory()
        try:
            barrier.wait()
            proposal_service.confirm(db, token, notifier=notifier, now=NOW, settings=settings)
            db.commit()
            outcomes.append("confirmed")
        except ConflictError:
            db.rollback()
            outcomes.append("conflict")
        finally:
            db.close()

    threads = [threading.Thread(target=attempt) for _ in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(outcomes) == ["confirmed"] + ["conflict"] * (attempts - 1)
    with file_session_factory() as check:
        assert check.query(Appointment).count() == 1
        assert check.get(DemandUnit, demand_unit_id).confirmed_count == 1
        assert check.query(Proposal).one().status == ProposalStatus.CONFIRMED
