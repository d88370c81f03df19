"""Balance ledger service - ingestion, attribution and balance reads"""

import dataclasses
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from payout_ledger.config import settings
from payout_ledger.domain.breakdown import sales_breakdown
from payout_ledger.domain.classifier import classify
from payout_ledger.domain.exceptions import (
    CurrencyMismatch,
    InvariantViolation,
    LedgerIntegrityError,
    UnclassifiableEvent,
)
from payout_ledger.domain.models import (
    BalancePeriod,
    Holder,
    Kind,
    PayoutFrequency,
    RawEvent,
    SalesBreakdown,
    Transaction,
)
from payout_ledger.domain.money import Money
from payout_ledger.domain.scheduling import period_date_for
from payout_ledger.domain.tiers import Tier, fee_for, next_tier
from payout_ledger.infrastructure.database.models import LedgerBalancePeriod, LedgerTransaction, SellerAccount
from payout_ledger.infrastructure.database.repositories import (
    BalancePeriodRepository,
    SellerRepository,
    TransactionRepository,
    to_period,
    to_transaction,
)
from payout_ledger.infrastructure.observability.logging import (
    log_attribution,
    log_integrity_event,
    log_tier_transition,
)
from payout_ledger.infrastructure.observability.metrics import (
    balance_index_fallback_counter,
    integrity_discrepancy_counter,
    transactions_attributed_counter,
    unpaid_periods_gauge,
)
from payout_ledger.infrastructure.search.balance_index import BalanceIndex
from payout_ledger.services.locking import seller_transaction

logger = logging.getLogger(__name__)

MAX_CENTS = 2**63 - 1

# Kinds that move lifetime sales volume, and with it the fee tier
SALES_VOLUME_KINDS = frozenset(
    {Kind.SALE, Kind.REFUND, Kind.PARTIAL_REFUND, Kind.CHARGEBACK, Kind.CHARGEBACK_REVERSAL}
)


def _check_range(amount: Money, what: str) -> None:
    if not -MAX_CENTS <= amount.cents <= MAX_CENTS:
        raise LedgerIntegrityError(f"{what} of {amount.cents} cents is outside the storable range")


class BalanceLedger:
    """Attributes transactions to balance periods and answers balance queries"""

    def __init__(self, db: Session, index: Optional[BalanceIndex] = None):
        self.db = db
        self.sellers = SellerRepository(db)
        self.transactions = TransactionRepository(db)
        self.periods = BalancePeriodRepository(db)
        self.index = index or BalanceIndex(db)

    # Writes

    def ingest(self, event: RawEvent) -> Transaction:
        """
        Record a raw marketplace event.

        Flow (inside the seller's exclusive section):
        1. Replay check by idempotency key
        2. Resolve a missing sale fee from the seller's cached fee tier
        3. Classify into a ledger transaction
        4. Persist and attribute it to a balance period
        5. Update lifetime sales and upgrade the cached tier

        Returns:
            The recorded transaction, or the original one on replay

        Raises:
            UnclassifiableEvent: the event is rejected before touching the ledger,
                including events outside the ledger currency
            LedgerIntegrityError: currency mismatch or amount overflow
        """
        existing = self.transactions.by_idempotency_key(event.idempotency_key)
        if existing is not None:
            return existing

        if event.currency.lower() != settings.ledger_currency.lower():
            raise UnclassifiableEvent(
                f"Event {event.idempotency_key} is in {event.currency}, the ledger only holds {settings.ledger_currency}"
            )

        with seller_transaction(self.db, event.seller_id) as seller:
            existing = self.transactions.by_idempotency_key(event.idempotency_key)
            if existing is not None:
                return existing

            event = self._resolve_fee(event, seller)
            transaction = classify(event, self.transactions)
            for label, amount in (
                ("Gross amount", transaction.gross_amount),
                ("Fee amount", transaction.fee_amount),
                ("Tax amount", transaction.tax_amount),
                ("Affiliate amount", transaction.affiliate_amount),
            ):
                _check_range(amount, label)

            row = self.transactions.add(transaction)
            self._attribute_row(row, seller)
            self._record_sales_volume(seller, transaction)
            recorded = to_transaction(row)

        return recorded

    def attribute(self, transaction: Transaction) -> BalancePeriod:
        """
        Attach a recorded transaction to its balance period.

        Periods are keyed by (seller, period date, holder) and created lazily.
        Attributing an already attributed transaction returns its period
        unchanged.
        """
        if transaction.id is None:
            raise InvariantViolation("Only recorded transactions can be attributed")

        with seller_transaction(self.db, transaction.seller_id) as seller:
            row = self.transactions.get_row(transaction.id)
            if row is None:
                raise InvariantViolation(f"Transaction {transaction.id} not found")
            if row.balance_period_id is not None:
                return to_period(self.periods.get(row.balance_period_id))
            period = to_period(self._attribute_row(row, seller))

        return period

    def _resolve_fee(self, event: RawEvent, seller: SellerAccount) -> RawEvent:
        if event.kind != Kind.SALE.value or event.fee_cents is not None:
            return event
        using_merchant_account = event.holder == Holder.PROCESSOR.value
        fee = fee_for(Money(event.amount_cents, event.currency), Tier(seller.tier or 0), using_merchant_account)
        return dataclasses.replace(event, fee_cents=fee.cents)

    def _frequency_for(self, seller: SellerAccount) -> PayoutFrequency:
        return PayoutFrequency(seller.payout_frequency or settings.default_payout_frequency)

    def _attribute_row(self, row: LedgerTransaction, seller: SellerAccount) -> LedgerBalancePeriod:
        transaction = to_transaction(row)
        period_date = period_date_for(transaction.occurred_at.date(), self._frequency_for(seller))
        period = self.periods.find_unpaid(seller.id, period_date, transaction.holder)
        if period is None:
            period = self.periods.create(seller.id, period_date, transaction.holder, transaction.currency)

        net = transaction.net_effect
        try:
            amount = Money(period.amount_cents, period.currency) + net
            holding = Money(period.holding_amount_cents, period.currency) + net
        except CurrencyMismatch as e:
            raise LedgerIntegrityError(
                f"Transaction {row.id} in {transaction.currency} cannot join balance period {period.id} in {period.currency}"
            ) from e
        _check_range(amount, f"Balance period {period.id}")
        _check_range(holding, f"Holding amount of balance period {period.id}")

        period.amount_cents = amount.cents
        period.holding_amount_cents = holding.cents
        row.balance_period_id = period.id
        self.db.flush()
        self.index.sync(period)

        transactions_attributed_counter.labels(kind=row.kind).inc()
        log_attribution(seller.id, row.id, row.kind, period.id, net.cents)
        return period

    def _record_sales_volume(self, seller: SellerAccount, transaction: Transaction) -> None:
        if transaction.kind not in SALES_VOLUME_KINDS:
            return
        seller.lifetime_sales_cents = (seller.lifetime_sales_cents or 0) + transaction.gross_amount.cents
        previous = Tier(seller.tier or 0)
        upgraded = next_tier(previous, seller.lifetime_sales_cents)
        if upgraded != previous:
            seller.tier = upgraded.value
            log_tier_transition(seller.id, previous.value, upgraded.value, seller.lifetime_sales_cents)
        self.db.flush()

    # Reads

    def unpaid_balance(
        self,
        seller_id: str,
        as_of: Optional[date] = None,
        holder: Optional[Holder] = None,
        via: str = "index",
    ) -> Money:
        """
        Sum of unpaid balance periods dated on or before as_of.

        Reads the balance index first, inside a savepoint. If the index fails
        only the savepoint is rolled back and the direct sum over balance
        periods is returned instead, the fallback being reported.
        With verify_balance_index on, both are computed and the direct sum
        wins on disagreement. via="sql" skips the index entirely.
        """
        currency = settings.ledger_currency
        if via == "sql":
            return Money(self.periods.sum_unpaid(seller_id, as_of, holder), currency)

        try:
            with self.db.begin_nested():
                indexed = self.index.unpaid_cents(seller_id, as_of, holder)
        except Exception as e:
            balance_index_fallback_counter.inc()
            log_integrity_event(
                seller_id,
                "Balance index read failed, falling back to balance periods",
                error=str(e),
                as_of=as_of.isoformat() if as_of else None,
            )
            return Money(self.periods.sum_unpaid(seller_id, as_of, holder), currency)

        if settings.verify_balance_index:
            direct = self.periods.sum_unpaid(seller_id, as_of, holder)
            if direct != indexed:
                integrity_discrepancy_counter.labels(source="index").inc()
                log_integrity_event(
                    seller_id,
                    "Balance index disagrees with balance periods",
                    error_type=LedgerIntegrityError.__name__,
                    index_cents=indexed,
                    direct_cents=direct,
                )
                return Money(direct, currency)

        return Money(indexed, currency)

    def unpaid_balance_up_to(self, seller_id: str, up_to: date, via: str = "index") -> Money:
        return self.unpaid_balance(seller_id, as_of=up_to, via=via)

    def instantly_payable_balance(self, seller_id: str, up_to: date) -> Money:
        """Unpaid balance the platform itself holds, the only money an instant payout can move"""
        return self.unpaid_balance(seller_id, as_of=up_to, holder=Holder.PLATFORM)

    def unpaid_periods(
        self,
        seller_id: str,
        up_to: Optional[date] = None,
        holder: Optional[Holder] = None,
    ) -> List[BalancePeriod]:
        periods = [to_period(row) for row in self.periods.unpaid(seller_id, up_to, holder)]
        unpaid_periods_gauge.set(len(periods))
        return periods

    def periods_for(self, seller_id: str) -> List[BalancePeriod]:
        return [to_period(row) for row in self.periods.for_seller(seller_id)]

    def sales_data_for_period(self, seller_id: str, period_ids: Iterable[int]) -> SalesBreakdown:
        """Sales breakdown over the given balance periods; ids of other sellers are ignored"""
        rows = self.periods.for_seller(seller_id, period_ids)
        currency = rows[0].currency if rows else settings.ledger_currency
        return sales_breakdown(
            self.transactions.for_seller(seller_id),
            [row.id for row in rows],
            currency,
        )

    def reconcile(self, seller_id: str) -> List[Dict[str, Any]]:
        """
        Re-sum every balance period of a seller from its transactions.

        Returns:
            One entry per period whose stored amount disagrees with the sum of
            the net effects attributed to it; empty when the ledger is consistent
        """
        discrepancies = []
        for period in self.periods.for_seller(seller_id):
            expected = self.transactions.sum_net_for_period(period.id)
            if expected != period.amount_cents:
                discrepancies.append(
                    {
                        "balance_period_id": period.id,
                        "amount_cents": period.amount_cents,
                        "transactions_cents": expected,
                    }
                )

        if discrepancies:
            integrity_discrepancy_counter.labels(source="reconcile").inc(len(discrepancies))
            log_integrity_event(
                seller_id,
                "Balance periods do not reconcile with their transactions",
                discrepancies=discrepancies,
            )
        else:
            logger.debug("Ledger reconciled", extra={"seller_id": seller_id})
        return discrepancies
