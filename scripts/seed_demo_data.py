#!/usr/bin/env python3
# scripts/seed_demo_data.py
"""
HemoLink demo data seeder + reset.

- Two demo hospitals with fixed coordinates (no geocoder call).
- ~60 donors scattered around each hospital: mixed blood types, mostly
  verified, some available, some with a recent donation.
- One inventory ledger per hospital with blood and organ items, a week of
  usage history and a few items close to expiry.
- A couple of PENDING demand units, which run first-pass matching.

Demo rows are recognisable by their license number / phone prefix, so
--reset only touches demo data.

Run:
  python -m scripts.seed_demo_data --seed
  python -m scripts.seed_demo_data --reset
"""
from __future__ import annotations

import argparse
import logging
import math
import random
import sys
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from sqlalchemy import create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

# Allow "python -m scripts.seed_demo_data" from repo root
REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT))

from hemolink.core.config import get_settings  # noqa: E402
from hemolink.models import (  # noqa: E402
    Appointment,
    DailyUsage,
    DemandUnit,
    Donor,
    DonorAvailability,
    Hospital,
    HospitalType,
    InventoryItem,
    InventoryLedger,
    Proposal,
    StockSnapshot,
    UsageEntry,
)
from hemolink.models.inventory import ORGAN_TYPES  # noqa: E402
from hemolink.notifications.notifier import get_notifier  # noqa: E402
from hemolink.services import demand_service, inventory_service  # noqa: E402
from hemolink.utils.blood_compatibility import BLOOD_TYPES  # noqa: E402
from hemolink.utils.datetime_utils import utc_now  # noqa: E402

logger = logging.getLogger(__name__)

DEMO_LICENSE_PREFIX = "DEMO-HL-"
DEMO_PHONE_PREFIX = "+91999"

# Rough population frequencies, used only to make the demo look plausible.
BLOOD_TYPE_WEIGHTS: dict[str, float] = {
    "O+": 0.36,
    "B+": 0.30,
    "A+": 0.20,
    "AB+": 0.07,
    "O-": 0.02,
    "B-": 0.02,
    "A-": 0.02,
    "AB-": 0.01,
}

_seed_engine = create_engine(
    str(get_settings().database_url),
    future=True,
    pool_pre_ping=True,
    poolclass=NullPool,
)

SeedSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=_seed_engine,
    future=True,
    expire_on_commit=False,
)


@dataclass(frozen=True)
class DemoHospitalSpec:
    suffix: str
    name: str
    postal_code: str
    latitude: float
    longitude: float


DEMO_HOSPITALS = [
    DemoHospitalSpec("A", "City General Hospital (Demo)", "560001", 12.9716, 77.5946),
    DemoHospitalSpec("B", "Lakeside Blood Bank (Demo)", "570001", 12.2958, 76.6394),
]


def _log_db_error(e: Exception) -> None:
    logger.error("Seed failed: %s", e, exc_info=True)
    if isinstance(e, SQLAlchemyError) and getattr(e, "orig", None) is not None:
        logger.error("DBAPI orig: %r", e.orig)


def choose_blood_type(rng: random.Random) -> str:
    types = list(BLOOD_TYPE_WEIGHTS)
    return rng.choices(types, weights=[BLOOD_TYPE_WEIGHTS[t] for t in types], k=1)[0]


def jitter_location(rng: random.Random, lat: float, lon: float, max_km: float) -> tuple[float, float]:
    """Random point within max_km of (lat, lon)."""
    distance = max_km * math.sqrt(rng.random())
    bearing = rng.uniform(0, 2 * math.pi)
    dlat = (distance * math.cos(bearing)) / 111.32
    dlon = (distance * math.sin(bearing)) / (111.32 * math.cos(math.radians(lat)))
    return lat + dlat, lon + dlon


def upsert_hospital(db: Session, spec: DemoHospitalSpec) -> Hospital:
    license_no = f"{DEMO_LICENSE_PREFIX}{spec.suffix}"
    hospital = db.query(Hospital).filter(Hospital.license_no == license_no).first()
    if hospital:
        return hospital
    hospital = Hospital(
        name=spec.name,
        type=HospitalType.BLOOD_BANK if spec.suffix == "B" else HospitalType.HOSPITAL,
        license_no=license_no,
        postal_code=spec.postal_code,
        country="India",
        latitude=spec.latitude,
        longitude=spec.longitude,
        is_active=True,
    )
    db.add(hospital)
    db.flush()
    return hospital


def seed_donors(db: Session, rng: random.Random, spec: DemoHospitalSpec, count: int = 60) -> int:
    now = utc_now()
    created = 0
    for i in range(count):
        phone = f"{DEMO_PHONE_PREFIX}{spec.suffix}{i:05d}"
        if db.query(Donor.id).filter(Donor.phone == phone).first():
            continue
        lat, lon = jitter_location(rng, spec.latitude, spec.longitude, max_km=15)
        last_donation = None
        if rng.random() < 0.3:
            last_donation = now - timedelta(days=rng.randint(10, 200))
        db.add(
            Donor(
                name=f"Demo Donor {spec.suffix}{i:03d}",
                phone=phone,
                blood_type=choose_blood_type(rng),
                organ_donation=rng.sample(ORGAN_TYPES[:6], k=rng.randint(0, 2)),
                postal_code=spec.postal_code,
                latitude=lat,
                longitude=lon,
                is_verified=rng.random() < 0.8,
                availability=(
                    DonorAvailability.AVAILABLE
                    if rng.random() < 0.6
                    else DonorAvailability.UNAVAILABLE
                ),
                last_donation_at=last_donation,
            )
        )
        created += 1
    db.flush()
    return created


def seed_inventory(db: Session, rng: random.Random, hospital: Hospital) -> InventoryLedger:
    notifier = get_notifier()
    now = utc_now()

    ledger = db.query(InventoryLedger).filter(InventoryLedger.hospital_id == hospital.id).first()
    if ledger is None:
        ledger = inventory_service.create_ledger(db, hospital.id)

    items: list[dict] = []
    for blood_type in BLOOD_TYPES:
        for _ in range(rng.randint(1, 3)):
            items.append(
                {
                    "type": "BLOOD",
                    "blood_type": blood_type,
                    "quantity": rng.randint(1, 6),
                    "received_at": now - timedelta(days=rng.randint(1, 20)),
                    "expires_at": now + timedelta(days=rng.randint(1, 35)),
                }
            )
    for organ_type in rng.sample(ORGAN_TYPES, k=3):
        items.append(
            {
                "type": "ORGAN",
                "organ_type": organ_type,
                "quantity": 1,
                "expires_at": now + timedelta(hours=rng.randint(6, 48)),
            }
        )
    inventory_service.add_items(db, ledger.id, items, notifier=notifier, now=now)

    # A week of usage history so the projection has something to work with.
    for days_ago in range(6, 0, -1):
        candidates = [
            item
            for item in ledger.items
            if item.type.value == "BLOOD" and item.quantity > 1 and item.expires_at > now
        ]
        if not candidates:
            break
        item = rng.choice(candidates)
        inventory_service.consume(
            db,
            ledger.id,
            item.id,
            rng.randint(1, 2),
            notifier=notifier,
            now=now - timedelta(days=days_ago),
        )
    return ledger


def seed_demand(db: Session, rng: random.Random, hospital: Hospital) -> int:
    notifier = get_notifier()
    created = 0
    for i in range(2):
        _, proposals = demand_service.create_demand_unit(
            db,
            hospital_id=hospital.id,
            patient_name=f"Demo Patient {i + 1}",
            blood_type=choose_blood_type(rng),
            units_needed=rng.randint(1, 3),
            notifier=notifier,
        )
        created += len(proposals)
    return created


def seed_one_hospital(spec: DemoHospitalSpec, rng: random.Random) -> None:
    db: Session = SeedSessionLocal()
    try:
        hospital = upsert_hospital(db, spec)
        donors = seed_donors(db, rng, spec)
        ledger = seed_inventory(db, rng, hospital)
        proposals = seed_demand(db, rng, hospital)
        db.commit()
        print(
            f"Hospital {spec.suffix}: id={hospital.id} ledger={ledger.id} "
            f"donors_created={donors} proposals={proposals}"
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def reset_demo_data(db: Session) -> dict[str, int]:
    """Delete demo rows child-first, so it works without ON DELETE CASCADE."""
    hospital_ids = select(Hospital.id).where(Hospital.license_no.like(f"{DEMO_LICENSE_PREFIX}%"))
    donor_ids = select(Donor.id).where(Donor.phone.like(f"{DEMO_PHONE_PREFIX}%"))
    ledger_ids = select(InventoryLedger.id).where(InventoryLedger.hospital_id.in_(hospital_ids))
    demand_ids = select(DemandUnit.id).where(DemandUnit.hospital_id.in_(hospital_ids))
    usage_ids = select(DailyUsage.id).where(DailyUsage.ledger_id.in_(ledger_ids))

    stats: dict[str, int] = {}
    steps = [
        ("appointments", delete(Appointment).where(
            Appointment.hospital_id.in_(hospital_ids) | Appointment.donor_id.in_(donor_ids)
        )),
        ("proposals", delete(Proposal).where(
            Proposal.demand_unit_id.in_(demand_ids) | Proposal.donor_id.in_(donor_ids)
        )),
        ("usage_entries", delete(UsageEntry).where(UsageEntry.daily_usage_id.in_(usage_ids))),
        ("daily_usage", delete(DailyUsage).where(DailyUsage.ledger_id.in_(ledger_ids))),
        ("stock_status", delete(StockSnapshot).where(StockSnapshot.ledger_id.in_(ledger_ids))),
        ("items", delete(InventoryItem).where(InventoryItem.ledger_id.in_(ledger_ids))),
        ("ledgers", delete(InventoryLedger).where(InventoryLedger.id.in_(ledger_ids))),
        ("demand_units", delete(DemandUnit).where(DemandUnit.id.in_(demand_ids))),
        ("donors", delete(Donor).where(Donor.id.in_(donor_ids))),
        ("hospitals", delete(Hospital).where(Hospital.id.in_(hospital_ids))),
    ]
    for label, stmt in steps:
        result = db.execute(stmt.execution_options(synchronize_session=False))
        stats[label] = result.rowcount or 0
    return stats


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed / reset HemoLink demo data")
    parser.add_argument("--seed", action="store_true", help="Seed demo hospitals, donors and stock")
    parser.add_argument("--reset", action="store_true", help="Delete demo data only")
    parser.add_argument("--random-seed", type=int, default=42, help="RNG seed (default: 42)")
    args = parser.parse_args()

    if not (args.seed or args.reset):
        parser.print_help()
        raise SystemExit(1)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")

    if args.reset:
        db: Session = SeedSessionLocal()
        try:
            stats = reset_demo_data(db)
            db.commit()
            print(f"Reset done: {stats}")
        except Exception as e:
            db.rollback()
            _log_db_error(e)
            raise
        finally:
            db.close()

    if args.seed:
        rng = random.Random(args.random_seed)
        failures: list[tuple[str, str]] = []
        for spec in DEMO_HOSPITALS:
            try:
                seed_one_hospital(spec, rng)
            except Exception as e:
                _log_db_error(e)
                failures.append((spec.suffix, str(e)))
        if failures:
            raise RuntimeError(f"Seed finished with failures: {failures}")


if __name__ == "__main__":
    main()
