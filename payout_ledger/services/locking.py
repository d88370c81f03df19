"""Per-seller exclusive section for read-then-write ledger sequences"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from sqlalchemy.orm import Session

from payout_ledger.infrastructure.database.models import SellerAccount
from payout_ledger.infrastructure.database.repositories import SellerRepository

_registry_guard = threading.Lock()
# seller_id -> [lock, number of threads holding or waiting for it]
_seller_locks: Dict[str, List] = {}
_held = threading.local()


@contextmanager
def _seller_lock(seller_id: str) -> Iterator[None]:
    with _registry_guard:
        entry = _seller_locks.get(seller_id)
        if entry is None:
            entry = _seller_locks[seller_id] = [threading.RLock(), 0]
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _registry_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _seller_locks[seller_id]


def _depths() -> Dict[str, int]:
    if not hasattr(_held, "depths"):
        _held.depths = {}
    return _held.depths


def holds_seller_lock(seller_id: str) -> bool:
    """True while the calling thread is inside seller_transaction for seller_id"""
    return _depths().get(seller_id, 0) > 0


@contextmanager
def seller_transaction(db: Session, seller_id: str) -> Iterator[SellerAccount]:
    """
    Run a block with exclusive write access to one seller's ledger state.

    Two layers:
    - a process-local re-entrant lock, serialising threads of this worker
    - SELECT ... FOR UPDATE on the seller_account row, serialising workers

    The outermost section commits on success and rolls back on error before
    the lock is released. Nested sections for the same seller join the outer
    one and leave commit/rollback to it. The process-local lock is dropped
    from the registry once no thread holds or waits for it.

    Example:
        with seller_transaction(db, "seller-1") as seller:
            seller.closed_at = now
    """
    with _seller_lock(seller_id):
        depths = _depths()
        outermost = depths.get(seller_id, 0) == 0
        depths[seller_id] = depths.get(seller_id, 0) + 1
        try:
            seller = SellerRepository(db).lock(seller_id)
            yield seller
            if outermost:
                db.commit()
        except Exception:
            if outermost:
                db.rollback()
            raise
        finally:
            depths[seller_id] -= 1
            if depths[seller_id] == 0:
                del depths[seller_id]
