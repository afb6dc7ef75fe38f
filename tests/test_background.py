import asyncio
from datetime import timedelta

from conftest import NOW, blood_item, make_demand, make_donor, make_hospital
from hemolink.background import jobs
from hemolink.background.scheduler import PeriodicTask, Scheduler
from hemolink.core.config import Settings
from hemolink.models.inventory import InventoryItem, ItemStatus
from hemolink.models.proposal import Proposal, ProposalStatus
from hemolink.notifications.notifier import EventKind, NotificationChannel, NotificationOutbox
from hemolink.services import inventory_service


class FakeSession:
    def __init__(self):
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


def test_periodic_task_commits_successful_tick(notifier):
    session = FakeSession()
    calls = []

    def job(db, *, notifier):
        calls.append(db)
        return {"ok": 1}

    task = PeriodicTask("TEST", 1, job, session_factory=lambda: session, notifier=notifier)

    assert task.run_once() == {"ok": 1}
    assert calls == [session]
    assert session.committed and session.closed
    assert not session.rolled_back


def test_periodic_task_swallows_failing_tick(notifier):
    session = FakeSession()

    def job(db, *, notifier):
        raise RuntimeError("boom")

    task = PeriodicTask("TEST", 1, job, session_factory=lambda: session, notifier=notifier)

    assert task.run_once() is None
    assert session.rolled_back and session.closed
    assert not session.committed


def test_periodic_task_notifies_after_commit(notifier):
    class CommitCheckingSession(FakeSession):
        def commit(self):
            # nothing may be delivered while the transaction is still open
            assert notifier.events == []
            super().commit()

    session = CommitCheckingSession()

    def job(db, *, notifier):
        notifier.emit(NotificationChannel.WEBHOOK, EventKind.SHORTAGE, {"sub_type": "O+"})
        return {"alerts": 1}

    task = PeriodicTask("TEST", 1, job, session_factory=lambda: session, notifier=notifier)

    assert task.run_once() == {"alerts": 1}
    assert session.committed
    assert notifier.payloads(EventKind.SHORTAGE) == [{"sub_type": "O+"}]


def test_periodic_task_drops_notifications_of_failed_tick(notifier):
    session = FakeSession()

    def job(db, *, notifier):
        notifier.emit(NotificationChannel.WEBHOOK, EventKind.SHORTAGE, {"sub_type": "O+"})
        raise RuntimeError("boom")

    task = PeriodicTask("TEST", 1, job, session_factory=lambda: session, notifier=notifier)

    assert task.run_once() is None
    assert session.rolled_back
    assert notifier.events == []


def test_outbox_dispatch_empties_queue(notifier):
    outbox = NotificationOutbox()
    outbox.emit(NotificationChannel.SMS, EventKind.DONOR_PROPOSAL, {"phone": "+91", "message": "hi"})

    assert notifier.events == []
    assert outbox.dispatch(notifier) == 1
    assert outbox.dispatch(notifier) == 0
    assert len(notifier.payloads(EventKind.DONOR_PROPOSAL)) == 1


def test_periodic_task_keeps_running_after_failure(notifier):
    ticks = []

    def job(db, *, notifier):
        ticks.append(1)
        raise RuntimeError("boom")

    async def scenario():
        task = PeriodicTask(
            "TEST", 0.01, job, session_factory=FakeSession, notifier=notifier
        )
        task.start()
        assert task.running
        await asyncio.sleep(0.2)
        await task.stop()
        assert not task.running

    asyncio.run(scenario())
    assert len(ticks) >= 2


def test_scheduler_wires_four_tasks(notifier):
    settings = Settings(
        recheck_interval_seconds=1800,
        expiry_sweep_interval_seconds=600,
        shortage_sweep_interval_seconds=30,
        future_shortage_sweep_interval_seconds=30,
    )
    scheduler = Scheduler(session_factory=FakeSession, notifier=notifier, settings=settings)

    assert {t.name: t.interval_seconds for t in scheduler.tasks} == {
        "UNMET_DEMAND_RECHECK": 1800,
        "EXPIRY_SWEEP": 600,
        "SHORTAGE_SWEEP": 30,
        "FUTURE_SHORTAGE_SWEEP": 30,
    }

    async def scenario():
        scheduler.start()
        assert all(t.running for t in scheduler.tasks)
        await scheduler.stop()
        assert not any(t.running for t in scheduler.tasks)

    asyncio.run(scenario())


def test_expiry_sweep_job_expires_items_and_proposals(db, hospital, ledger, notifier):
    inventory_service.add_items(
        db,
        ledger.id,
        [blood_item("O+", 2, expires_at=NOW - timedelta(hours=1))],
        notifier=notifier,
        now=NOW - timedelta(days=1),
    )
    demand_unit = make_demand(db, hospital, blood_type="O+")
    stale = Proposal(
        demand_unit_id=demand_unit.id,
        donor_id=make_donor(db, blood_type="O+", km_north=2).id,
        status=ProposalStatus.PROPOSED,
        token="a" * 64,
        expires_at=NOW - timedelta(days=2),
    )
    db.add(stale)
    db.flush()
    notifier.clear()

    summary = jobs.run_expiry_sweep(db, notifier=notifier)

    assert summary["expired"] == 1
    assert summary["proposals_expired"] == 1
    assert db.query(InventoryItem).one().status == ItemStatus.EXPIRED
    db.refresh(stale)
    assert stale.status == ProposalStatus.EXPIRED
    assert len(notifier.payloads(EventKind.ITEM_EXPIRED)) == 1


def test_shortage_sweep_covers_every_ledger(db, ledger, notifier):
    other = inventory_service.create_ledger(db, make_hospital(db, name="Other").id)
    inventory_service.add_items(
        db,
        other.id,
        [blood_item(bt, 10, expires_at=NOW + timedelta(days=365)) for bt in ("A+", "O+")],
        notifier=notifier,
        now=NOW,
    )
    notifier.clear()

    summary = jobs.run_shortage_sweep(db, notifier=notifier)

    assert summary["processed"] == 2
    assert summary["failed"] == 0
    assert summary["alerts"] > 0
    ledgers_alerted = {p["ledger_id"] for p in notifier.payloads(EventKind.SHORTAGE)}
    assert ledgers_alerted == {str(ledger.id), str(other.id)}


def test_per_ledger_failures_are_isolated(db, ledger, notifier):
    other = inventory_service.create_ledger(db, make_hospital(db, name="Other").id)
    seen = []

    def check(current):
        if current.id == ledger.id:
            raise RuntimeError("boom")
        seen.append(current.id)
        return ["alert"]

    summary = jobs._for_each_ledger(db, "TEST", check)

    assert summary == {"processed": 2, "alerts": 1, "failed": 1}
    assert seen == [other.id]


def test_unmet_demand_recheck_job(db, hospital, notifier):
    make_donor(db, blood_type="AB-", km_north=15)
    make_demand(db, hospital, blood_type="AB-")

    summary = jobs.run_unmet_demand_recheck(db, notifier=notifier)

    assert summary == {"checked": 1, "proposed": 1, "failed": 0}
    assert len(notifier.payloads(EventKind.DONOR_PROPOSAL)) == 1
