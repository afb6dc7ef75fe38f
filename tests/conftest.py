import os

# Must be set before anything imports hemolink.core.config
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["REDIS_URL"] = ""
os.environ["SMS_ENABLED"] = "false"

import itertools
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hemolink.core.exceptions import GeocodingError
from hemolink.models import (
    DemandUnit,
    DemandStatus,
    Donor,
    DonorAvailability,
    Hospital,
    HospitalType,
)
from hemolink.models.base import Base
from hemolink.notifications.notifier import EventKind
from hemolink.services import inventory_service
from hemolink.services.geocoding_service import Coordinates

HOSPITAL_LAT = 12.9716
HOSPITAL_LON = 77.5946

# Fixed clock for deterministic tests
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

_counter = itertools.count(1)


def offset_north(lat: float, km: float) -> float:
    """Latitude `km` kilometres north of lat."""
    return lat + km / 111.32


class RecordingNotifier:
    """Stands in for Notifier; keeps every emitted event in memory."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def emit(self, channel, event_kind, payload) -> None:
        self.events.append((channel, event_kind, payload))

    def payloads(self, event_kind: EventKind) -> list[dict]:
        return [payload for _, kind, payload in self.events if kind == event_kind]

    def clear(self) -> None:
        self.events.clear()


class FakeGeocoder:
    """Postal-code lookup table; anything unknown is an invalid postal code."""

    def __init__(self, table: dict[str, tuple[float, float]] | None = None) -> None:
        self.table = table or {
            "560001": (HOSPITAL_LAT, HOSPITAL_LON),
            "560002": (offset_north(HOSPITAL_LAT, 3), HOSPITAL_LON),
        }
        self.calls: list[tuple[str, str | None]] = []

    def resolve(self, postal_code: str, country: str | None = None) -> Coordinates:
        self.calls.append((postal_code, country))
        if postal_code not in self.table:
            raise GeocodingError()
        lat, lon = self.table[postal_code]
        return Coordinates(latitude=lat, longitude=lon)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


# -------------------------
# Factories
# -------------------------
def make_hospital(
    db,
    *,
    latitude: float | None = HOSPITAL_LAT,
    longitude: float | None = HOSPITAL_LON,
    name: str = "City General",
) -> Hospital:
    hospital = Hospital(
        name=name,
        type=HospitalType.HOSPITAL,
        license_no=f"LIC-{next(_counter)}",
        postal_code="560001",
        country="India",
        latitude=latitude,
        longitude=longitude,
        is_active=True,
    )
    db.add(hospital)
    db.flush()
    return hospital


def make_donor(
    db,
    *,
    blood_type: str = "O+",
    km_north: float = 1.0,
    verified: bool = True,
    available: bool = True,
    last_donation_at: datetime | None = None,
    last_pinged_at: datetime | None = None,
    name: str | None = None,
) -> Donor:
    n = next(_counter)
    donor = Donor(
        name=name or f"Donor {n}",
        phone=f"+9170000{n:05d}",
        blood_type=blood_type,
        organ_donation=[],
        postal_code="560001",
        latitude=offset_north(HOSPITAL_LAT, km_north),
        longitude=HOSPITAL_LON,
        is_verified=verified,
        availability=DonorAvailability.AVAILABLE if available else DonorAvailability.UNAVAILABLE,
        last_donation_at=last_donation_at,
        last_pinged_at=last_pinged_at,
    )
    db.add(donor)
    db.flush()
    return donor


def make_demand(
    db,
    hospital: Hospital,
    *,
    blood_type: str = "A+",
    units_needed: int = 1,
) -> DemandUnit:
    demand_unit = DemandUnit(
        hospital_id=hospital.id,
        patient_name="Patient X",
        blood_type=blood_type,
        units_needed=units_needed,
        status=DemandStatus.PENDING,
        confirmed_count=0,
    )
    db.add(demand_unit)
    db.flush()
    return demand_unit


def blood_item(blood_type: str, quantity: int, *, expires_at: datetime, **extra) -> dict:
    return {
        "type": "BLOOD",
        "blood_type": blood_type,
        "quantity": quantity,
        "expires_at": expires_at,
        **extra,
    }


def organ_item(organ_type: str, *, expires_at: datetime, quantity: int = 1) -> dict:
    return {
        "type": "ORGAN",
        "organ_type": organ_type,
        "quantity": quantity,
        "expires_at": expires_at,
    }


@pytest.fixture
def hospital(db):
    return make_hospital(db)


@pytest.fixture
def ledger(db, hospital):
    return inventory_service.create_ledger(db, hospital.id)
