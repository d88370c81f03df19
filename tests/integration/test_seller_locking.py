"""Integration tests for concurrent writers on one seller's ledger"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Callable, List

import pytest
from sqlalchemy.orm import Session
from payout_ledger.domain.exceptions import DuplicatePayoutError, UnclassifiableEvent
from payout_ledger.domain.models import PayoutFrequency
from payout_ledger.domain.money import Money
from payout_ledger.infrastructure.database.models import LedgerPayout, LedgerTransaction
from payout_ledger.services import locking
from payout_ledger.services.ledger import BalanceLedger
from payout_ledger.services.scheduler import PayoutScheduler

NEXT_FRIDAY = date(2024, 6, 14)


def run_together(session_factory, work: Callable[[Session], object], workers: int = 2) -> List[object]:
    """Run work on several threads at once, each with its own session; exceptions are returned"""
    barrier = threading.Barrier(workers)

    def run():
        session = session_factory()
        try:
            barrier.wait(timeout=5)
            return work(session)
        except Exception as e:
            return e
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(run) for _ in range(workers)]
        return [f.result(timeout=30) for f in futures]


def test_concurrent_refunds_never_over_refund(ledger: BalanceLedger, make_event, session_factory, db: Session):
    sale = ledger.ingest(make_event("sale", amount_cents=10000))
    refunds = iter([make_event("partial_refund", amount_cents=6000, reference_id=sale.id) for _ in range(2)])
    guard = threading.Lock()

    def refund(session: Session):
        with guard:
            event = next(refunds)
        return BalanceLedger(session).ingest(event)

    results = run_together(session_factory, refund)

    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(rejected) == 1
    assert isinstance(rejected[0], UnclassifiableEvent)
    assert db.query(LedgerTransaction).count() == 2
    assert ledger.unpaid_balance("seller_1", via="sql") == Money(4000, "usd")
    assert ledger.reconcile("seller_1") == []


def test_concurrent_payouts_record_once(ledger: BalanceLedger, make_event, set_policy, session_factory, db: Session):
    set_policy("seller_1", PayoutFrequency.WEEKLY)
    ledger.ingest(make_event("sale", amount_cents=1500))

    def pay(session: Session):
        scheduler = PayoutScheduler(session, BalanceLedger(session), lambda seller_id, day: False)
        return scheduler.record_payout("seller_1", NEXT_FRIDAY)

    results = run_together(session_factory, pay)

    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(rejected) == 1
    assert isinstance(rejected[0], DuplicatePayoutError)
    assert db.query(LedgerPayout).count() == 1
    assert ledger.unpaid_balance("seller_1", via="sql") == Money(0, "usd")


def test_concurrent_sales_are_all_attributed(ledger: BalanceLedger, make_event, session_factory):
    events = iter([make_event("sale", amount_cents=1000) for _ in range(4)])
    guard = threading.Lock()

    def sell(session: Session):
        with guard:
            event = next(events)
        return BalanceLedger(session).ingest(event)

    results = run_together(session_factory, sell, workers=4)

    assert not [r for r in results if isinstance(r, Exception)]
    assert len(ledger.unpaid_periods("seller_1")) == 1
    assert ledger.unpaid_balance("seller_1") == Money(4000, "usd")


def test_lock_registry_is_emptied_after_use(ledger: BalanceLedger, make_event, db: Session):
    with locking.seller_transaction(db, "seller_1"):
        with locking.seller_transaction(db, "seller_1"):
            assert locking.holds_seller_lock("seller_1")
        assert "seller_1" in locking._seller_locks

    assert "seller_1" not in locking._seller_locks
    assert not locking.holds_seller_lock("seller_1")

    ledger.ingest(make_event("sale", amount_cents=1000, seller_id="seller_2"))
    assert "seller_2" not in locking._seller_locks


def test_lock_registry_is_emptied_after_failure(db: Session):
    with pytest.raises(RuntimeError):
        with locking.seller_transaction(db, "seller_1"):
            raise RuntimeError("boom")

    assert "seller_1" not in locking._seller_locks
