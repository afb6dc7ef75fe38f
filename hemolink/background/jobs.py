# hemolink/background/jobs.py
"""
The periodic jobs. Each takes a session and the notifier, walks every
ledger / demand unit independently, and isolates per-entity failures.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from hemolink.models.inventory import InventoryLedger
from hemolink.notifications.notifier import Notifier
from hemolink.services.inventory_service import recompute_snapshot, sweep_expired
from hemolink.services.matching_service import recheck_unfulfilled
from hemolink.services.proposal_service import expire_stale_proposals
from hemolink.services.shortage_service import check_current_shortage, check_projected_shortage

logger = logging.getLogger(__name__)


def run_unmet_demand_recheck(db: Session, *, notifier: Notifier) -> dict[str, int]:
    return recheck_unfulfilled(db, notifier=notifier)


def run_expiry_sweep(db: Session, *, notifier: Notifier) -> dict[str, int]:
    summary = sweep_expired(db, notifier=notifier)
    summary["proposals_expired"] = expire_stale_proposals(db)
    return summary


def _for_each_ledger(db: Session, label: str, check) -> dict[str, Any]:
    ledger_ids = [row[0] for row in db.query(InventoryLedger.id).all()]
    alerts = 0
    failed = 0
    for ledger_id in ledger_ids:
        try:
            with db.begin_nested():
                ledger = db.get(InventoryLedger, ledger_id)
                if ledger is None:
                    continue
                recompute_snapshot(db, ledger)
                alerts += len(check(ledger))
        except Exception:
            failed += 1
            logger.exception(f"[{label}_ERROR] inventory={ledger_id}")
    return {"processed": len(ledger_ids), "alerts": alerts, "failed": failed}


def run_shortage_sweep(db: Session, *, notifier: Notifier) -> dict[str, Any]:
    return _for_each_ledger(
        db,
        "SHORTAGE_CHECK",
        lambda ledger: check_current_shortage(ledger, notifier=notifier),
    )


def run_future_shortage_sweep(db: Session, *, notifier: Notifier) -> dict[str, Any]:
    return _for_each_ledger(
        db,
        "FUTURE_SHORTAGE_CHECK",
        lambda ledger: check_projected_shortage(ledger, notifier=notifier),
    )
