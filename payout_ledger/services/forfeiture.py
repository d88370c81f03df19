"""Forfeiture engine - balance write-offs and the account closure gate"""

from datetime import datetime, timezone
from typing import List

from sqlalchemy.orm import Session

from payout_ledger.config import settings
from payout_ledger.domain.exceptions import UnpaidBalanceError
from payout_ledger.domain.forfeiture import ForfeiturePlan, forfeiture_comment, plan_forfeiture
from payout_ledger.domain.models import ForfeitReason, ForfeitureRecord, PeriodState, check_period_transition
from payout_ledger.domain.money import Money
from payout_ledger.infrastructure.database.repositories import (
    BalancePeriodRepository,
    ForfeitureRepository,
    SellerRepository,
    to_forfeiture,
)
from payout_ledger.infrastructure.observability.logging import log_forfeiture
from payout_ledger.infrastructure.observability.metrics import record_forfeiture
from payout_ledger.services.ledger import BalanceLedger
from payout_ledger.services.locking import seller_transaction


class ForfeitureEngine:
    """Writes off unpaid balances and blocks account closure while money is unresolved"""

    def __init__(self, db: Session, ledger: BalanceLedger):
        self.db = db
        self.ledger = ledger
        self.sellers = SellerRepository(db)
        self.periods = BalancePeriodRepository(db)
        self.forfeitures = ForfeitureRepository(db)

    def _plan(self, seller_id: str, reason: ForfeitReason) -> ForfeiturePlan:
        policy = self.sellers.policy_for(seller_id)
        forfeit_on_closure = policy.forfeit_balance_on_closure if policy else settings.forfeit_balance_on_closure
        return plan_forfeiture(
            self.ledger.unpaid_periods(seller_id),
            reason,
            forfeit_on_closure,
            settings.ledger_currency,
        )

    def amount_to_forfeit(self, seller_id: str, reason: ForfeitReason) -> Money:
        return self._plan(seller_id, reason).amount

    def forfeit(self, seller_id: str, reason: ForfeitReason) -> Money:
        """
        Write off the unpaid balance a reason requires.

        Affected periods move to forfeited, which takes them out of every
        payable sum; their amount_cents is left as is so they still reconcile.
        A second call finds nothing unpaid and records nothing.

        Returns:
            Amount forfeited (zero when nothing was due)
        """
        with seller_transaction(self.db, seller_id):
            plan = self._plan(seller_id, reason)
            if plan.empty:
                return plan.amount

            rows = [self.periods.get(p.id) for p in plan.periods]
            for row in rows:
                check_period_transition(PeriodState(row.state), PeriodState.FORFEITED)
                row.state = PeriodState.FORFEITED.value
            self.ledger.index.sync_all(rows)

            period_ids = [p.id for p in plan.periods]
            self.forfeitures.create(seller_id, reason, plan.amount, period_ids, forfeiture_comment(plan, reason))

        record_forfeiture(reason.value, plan.amount.cents)
        log_forfeiture(seller_id, reason.value, plan.amount.cents, period_ids)
        return plan.amount

    def forfeitures_for(self, seller_id: str) -> List[ForfeitureRecord]:
        """Write-offs recorded for a seller, oldest first"""
        return [to_forfeiture(row) for row in self.forfeitures.for_seller(seller_id)]

    def validate_closure(self, seller_id: str) -> None:
        """
        Raises:
            UnpaidBalanceError: any non-zero unpaid balance remains, negative included
        """
        unpaid = self.ledger.unpaid_balance(seller_id, via="sql")
        if not unpaid.is_zero():
            raise UnpaidBalanceError(unpaid)

    def close_account(self, seller_id: str) -> datetime:
        """Mark the account closed once its balance is resolved"""
        with seller_transaction(self.db, seller_id) as seller:
            self.validate_closure(seller_id)
            if seller.closed_at is None:
                seller.closed_at = datetime.now(timezone.utc)
            closed_at = seller.closed_at

        return closed_at
