"""Payout scheduler service - next payout date, payable amount and payout records"""

import logging
from datetime import date, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from payout_ledger.config import settings
from payout_ledger.domain import scheduling
from payout_ledger.domain.exceptions import DuplicatePayoutError, InvariantViolation
from payout_ledger.domain.models import (
    Holder,
    PayoutDecision,
    PayoutFrequency,
    PayoutRecord,
    PayoutSchedulePolicy,
    PayoutState,
    PeriodState,
    check_payout_transition,
    check_period_transition,
)
from payout_ledger.domain.money import Money
from payout_ledger.infrastructure.database.models import LedgerPayout
from payout_ledger.infrastructure.database.repositories import (
    BalancePeriodRepository,
    PayoutRepository,
    SellerRepository,
    to_payout,
)
from payout_ledger.infrastructure.observability.logging import log_payout_decision
from payout_ledger.infrastructure.observability.metrics import payouts_scheduled_counter, record_payout
from payout_ledger.services.ledger import BalanceLedger
from payout_ledger.services.locking import seller_transaction

logger = logging.getLogger(__name__)

InstantEligibility = Callable[[str, date], bool]


class PayoutScheduler:
    """Decides when a seller is paid and how much, and records the payouts"""

    def __init__(self, db: Session, ledger: BalanceLedger, is_instant_eligible: InstantEligibility):
        self.db = db
        self.ledger = ledger
        self.is_instant_eligible = is_instant_eligible
        self.sellers = SellerRepository(db)
        self.periods = BalancePeriodRepository(db)
        self.payouts = PayoutRepository(db)
        self.delay_days = settings.payout_delay_days

    def policy_for(self, seller_id: str) -> PayoutSchedulePolicy:
        policy = self.sellers.policy_for(seller_id)
        if policy is None:
            raise InvariantViolation(f"Seller {seller_id} has no payout schedule policy")
        return policy

    def minimum_for(self, policy: PayoutSchedulePolicy) -> Money:
        """Seller minimum, never below the platform-wide floor"""
        return Money(max(policy.minimum_payout_cents, settings.minimum_payout_cents), settings.ledger_currency)

    def _instant_track(self, seller_id: str, policy: PayoutSchedulePolicy, payout_date: date) -> bool:
        if policy.frequency != PayoutFrequency.DAILY:
            return False
        return self.is_instant_eligible(seller_id, payout_date - timedelta(days=1))

    def next_payout_date(self, seller_id: str, today: date) -> Optional[date]:
        """
        Next date a payout is due, or None while the balance is below the minimum.

        Raises:
            InvariantViolation: the seller has no payout schedule policy
        """
        policy = self.policy_for(seller_id)
        minimum = self.minimum_for(policy)
        instant = self._instant_track(seller_id, policy, today)

        payout_date = scheduling.next_payout_date(
            today=today,
            frequency=policy.frequency,
            minimum=minimum,
            unpaid_today=self.ledger.unpaid_balance(seller_id),
            amount_as_of=lambda cutoff: self.ledger.unpaid_balance_up_to(seller_id, cutoff),
            instant_eligible_yesterday=instant,
            payout_exists_on=lambda day: self.payouts.exists_on(seller_id, day),
            delay_days=self.delay_days,
        )

        payouts_scheduled_counter.labels(
            track="instant" if instant else "standard",
            outcome="due" if payout_date else "not_due",
        ).inc()
        return payout_date

    def payout_amount_for_date(self, seller_id: str, payout_date: date) -> Money:
        """
        Amount payable on a date.

        Instant track (daily sellers eligible the day before): platform-held
        unpaid balance through the payout date. Otherwise: unpaid balance up to
        payout_date - delay_days.
        """
        policy = self.policy_for(seller_id)
        if self._instant_track(seller_id, policy, payout_date):
            return self.ledger.instantly_payable_balance(seller_id, payout_date)
        return self.ledger.unpaid_balance_up_to(seller_id, payout_date - timedelta(days=self.delay_days))

    def decide(self, seller_id: str, today: date, request_id: str = "internal") -> PayoutDecision:
        """Next payout date together with the amount it would carry"""
        payout_date = self.next_payout_date(seller_id, today)
        if payout_date is None:
            decision = PayoutDecision(payout_date=None, amount=Money.zero(settings.ledger_currency))
        else:
            policy = self.policy_for(seller_id)
            decision = PayoutDecision(
                payout_date=payout_date,
                amount=self.payout_amount_for_date(seller_id, payout_date),
                instant=self._instant_track(seller_id, policy, payout_date),
            )

        log_payout_decision(
            seller_id,
            decision.payout_date.isoformat() if decision.payout_date else None,
            decision.amount.cents,
            decision.instant,
            request_id,
        )
        return decision

    def record_payout(self, seller_id: str, payout_date: date, today: Optional[date] = None) -> PayoutRecord:
        """
        Atomically check for an existing payout and record a new one.

        The window runs from the day after the previous payout's window up to
        payout_date - delay_days (payout_date itself on the instant track).
        Every unpaid period dated inside or before the window is included and
        moves to processing.
        Instant eligibility is resolved before the seller's exclusive section
        is entered.

        Raises:
            DuplicatePayoutError: a non-failed payout exists on payout_date or
                covers an overlapping window
            InvariantViolation: no policy, a past payout date, or nothing payable
        """
        if today is not None and payout_date < today:
            raise InvariantViolation(f"Cannot record a payout for past date {payout_date}")

        policy = self.policy_for(seller_id)
        instant = self._instant_track(seller_id, policy, payout_date)

        with seller_transaction(self.db, seller_id):
            if self.payouts.exists_on(seller_id, payout_date):
                raise DuplicatePayoutError(f"Seller {seller_id} already has a payout on {payout_date}")

            if instant:
                period_end = payout_date
                periods = self.periods.unpaid(seller_id, up_to=period_end, holder=Holder.PLATFORM)
            else:
                period_end = payout_date - timedelta(days=self.delay_days)
                periods = self.periods.unpaid(seller_id, up_to=period_end)

            amount = Money.sum((Money(p.amount_cents, p.currency) for p in periods), settings.ledger_currency)
            if amount.cents <= 0:
                raise InvariantViolation(f"Nothing payable for seller {seller_id} on {payout_date}")

            period_start = self._window_start(seller_id, periods)
            if period_start > period_end or self.payouts.overlapping(seller_id, period_start, period_end):
                raise DuplicatePayoutError(
                    f"Seller {seller_id} already has a payout covering {period_start}..{period_end}"
                )

            payout = self.payouts.create(seller_id, payout_date, period_start, period_end, amount, instant)
            for period in periods:
                check_period_transition(PeriodState(period.state), PeriodState.PROCESSING)
                period.state = PeriodState.PROCESSING.value
                period.payout_id = payout.id
            self.ledger.index.sync_all(periods)
            record = to_payout(payout)

        record_payout(record.amount.cents, record.instant)
        logger.info(
            "Payout recorded",
            extra={
                "seller_id": seller_id,
                "payout_id": record.id,
                "payout_date": payout_date.isoformat(),
                "amount_cents": record.amount.cents,
                "balance_period_ids": [p.id for p in periods],
            },
        )
        return record

    def _window_start(self, seller_id: str, periods) -> date:
        previous = [p for p in self.payouts.for_seller(seller_id) if p.state != PayoutState.FAILED.value]
        if previous:
            return max(p.period_end for p in previous) + timedelta(days=1)
        return min(p.period_date for p in periods)

    def get_payout(self, payout_id: int) -> Optional[PayoutRecord]:
        payout = self.payouts.get(payout_id)
        return to_payout(payout) if payout else None

    def payouts_for(self, seller_id: str) -> List[PayoutRecord]:
        return [to_payout(p) for p in self.payouts.for_seller(seller_id)]

    def complete_payout(self, payout_id: int) -> PayoutRecord:
        """Money arrived: payout completed, its periods paid"""
        return self._transition(payout_id, PayoutState.COMPLETED, PeriodState.PAID)

    def fail_payout(self, payout_id: int) -> PayoutRecord:
        """Money bounced: payout failed, its periods unpaid again and back in every payable sum"""
        return self._transition(payout_id, PayoutState.FAILED, PeriodState.UNPAID)

    def mark_payout_unclaimed(self, payout_id: int) -> PayoutRecord:
        """Processor holds the money until the seller claims it; periods stay processing"""
        return self._transition(payout_id, PayoutState.UNCLAIMED, None)

    def _transition(self, payout_id: int, new_state: PayoutState, period_state: Optional[PeriodState]) -> PayoutRecord:
        payout = self._require(payout_id)
        with seller_transaction(self.db, payout.seller_id):
            payout = self._require(payout_id)
            check_payout_transition(PayoutState(payout.state), new_state)
            payout.state = new_state.value

            if period_state is not None:
                periods = self.periods.for_payout(payout.id)
                for period in periods:
                    check_period_transition(PeriodState(period.state), period_state)
                    period.state = period_state.value
                    if period_state == PeriodState.UNPAID:
                        period.payout_id = None
                self.ledger.index.sync_all(periods)

            record = to_payout(payout)

        logger.info(
            "Payout state changed",
            extra={"seller_id": record.seller_id, "payout_id": record.id, "state": new_state.value},
        )
        return record

    def _require(self, payout_id: int) -> LedgerPayout:
        payout = self.payouts.get(payout_id)
        if payout is None:
            raise InvariantViolation(f"Payout {payout_id} not found")
        return payout
