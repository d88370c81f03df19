"""Precomputed unpaid-balance index backing the fast balance read path"""

from datetime import date
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from payout_ledger.domain.models import Holder, PeriodState
from payout_ledger.infrastructure.database.models import BalanceIndexEntry, LedgerBalancePeriod


class BalanceIndex:
    """
    One entry per unpaid balance period.

    The ledger calls sync() after every change to a period's amount or state,
    inside the same transaction, so a committed index matches the periods it
    mirrors. Readers must still treat it as a cache: a failing or stale index
    is recovered by summing the periods directly.
    """

    def __init__(self, db: Session):
        self.db = db

    def sync(self, period: LedgerBalancePeriod) -> None:
        """Upsert the entry for an unpaid period, drop it for any other state"""
        self._apply(period)
        self.db.flush()

    def sync_all(self, periods: Iterable[LedgerBalancePeriod]) -> None:
        for period in periods:
            self._apply(period)
        self.db.flush()

    def _apply(self, period: LedgerBalancePeriod) -> None:
        entry = self.db.get(BalanceIndexEntry, period.id)
        if period.state != PeriodState.UNPAID.value:
            if entry is not None:
                self.db.delete(entry)
            return

        if entry is None:
            entry = BalanceIndexEntry(period_id=period.id)
            self.db.add(entry)
        entry.seller_id = period.seller_id
        entry.period_date = period.period_date
        entry.holder = period.holder
        entry.amount_cents = period.amount_cents

    def unpaid_cents(self, seller_id: str, as_of: Optional[date] = None, holder: Optional[Holder] = None) -> int:
        """Sum of indexed unpaid period amounts with period_date <= as_of"""
        query = self.db.query(func.coalesce(func.sum(BalanceIndexEntry.amount_cents), 0)).filter(
            BalanceIndexEntry.seller_id == seller_id
        )
        if as_of is not None:
            query = query.filter(BalanceIndexEntry.period_date <= as_of)
        if holder is not None:
            query = query.filter(BalanceIndexEntry.holder == holder.value)
        return int(query.scalar())

    def entry_count(self, seller_id: str) -> int:
        return self.db.query(BalanceIndexEntry).filter(BalanceIndexEntry.seller_id == seller_id).count()
