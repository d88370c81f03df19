"""Data access layer for ledger entities"""

from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from payout_ledger.config import settings
from payout_ledger.domain.models import (
    BalancePeriod,
    ForfeitReason,
    ForfeitureRecord,
    Holder,
    Kind,
    PayoutFrequency,
    PayoutRecord,
    PayoutSchedulePolicy,
    PayoutState,
    PeriodState,
    Transaction,
)
from payout_ledger.domain.money import Money
from payout_ledger.infrastructure.database.models import (
    BalanceForfeiture,
    LedgerBalancePeriod,
    LedgerPayout,
    LedgerTransaction,
    SellerAccount,
)


def to_transaction(row: LedgerTransaction) -> Transaction:
    """Map an ORM row to the immutable domain transaction"""
    return Transaction(
        id=row.id,
        seller_id=row.seller_id,
        occurred_at=row.occurred_at,
        kind=Kind(row.kind),
        gross_amount=Money(row.gross_cents, row.currency),
        fee_amount=Money(row.fee_cents, row.currency),
        tax_amount=Money(row.tax_cents, row.currency),
        affiliate_amount=Money(row.affiliate_cents, row.currency),
        processor=row.processor,
        holder=Holder(row.holder),
        balance_period_id=row.balance_period_id,
        reference_id=row.reference_id,
        discover=row.discover,
        refund_fee_waived=row.refund_fee_waived,
        idempotency_key=row.idempotency_key,
    )


def to_period(row: LedgerBalancePeriod) -> BalancePeriod:
    return BalancePeriod(
        id=row.id,
        seller_id=row.seller_id,
        period_date=row.period_date,
        holder=Holder(row.holder),
        state=PeriodState(row.state),
        amount=Money(row.amount_cents, row.currency),
        holding_amount=Money(row.holding_amount_cents, row.currency),
        payout_id=row.payout_id,
    )


def to_payout(row: LedgerPayout) -> PayoutRecord:
    return PayoutRecord(
        id=row.id,
        seller_id=row.seller_id,
        payout_date=row.payout_date,
        period_start=row.period_start,
        period_end=row.period_end,
        amount=Money(row.amount_cents, row.currency),
        state=PayoutState(row.state),
        instant=row.instant,
    )


def to_forfeiture(row: BalanceForfeiture) -> ForfeitureRecord:
    return ForfeitureRecord(
        id=row.id,
        seller_id=row.seller_id,
        reason=ForfeitReason(row.reason),
        amount=Money(row.amount_cents, row.currency),
        period_ids=list(row.period_ids or []),
        comment=row.comment,
        created_at=row.created_at,
    )


class SellerRepository:
    """Repository for seller accounts and their payout policy"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, seller_id: str) -> Optional[SellerAccount]:
        return self.db.query(SellerAccount).filter(SellerAccount.id == seller_id).first()

    def get_or_create(self, seller_id: str) -> SellerAccount:
        seller = self.get(seller_id)
        if seller is None:
            seller = SellerAccount(id=seller_id, lifetime_sales_cents=0, tier=0)
            self.db.add(seller)
            self.db.flush()
        return seller

    def lock(self, seller_id: str) -> SellerAccount:
        """Row-lock the seller (SELECT ... FOR UPDATE), creating the row on first use"""
        seller = (
            self.db.query(SellerAccount)
            .filter(SellerAccount.id == seller_id)
            .with_for_update()
            .first()
        )
        return seller if seller is not None else self.get_or_create(seller_id)

    def set_policy(self, seller_id: str, policy: PayoutSchedulePolicy) -> SellerAccount:
        """Written by the seller settings subsystem; the ledger only reads it"""
        seller = self.get_or_create(seller_id)
        seller.payout_frequency = policy.frequency.value
        seller.minimum_payout_cents = policy.minimum_payout_cents
        seller.forfeit_balance_on_closure = policy.forfeit_balance_on_closure
        self.db.flush()
        return seller

    def policy_for(self, seller_id: str) -> Optional[PayoutSchedulePolicy]:
        seller = self.get(seller_id)
        if seller is None or seller.payout_frequency is None:
            return None
        forfeit = seller.forfeit_balance_on_closure
        return PayoutSchedulePolicy(
            frequency=PayoutFrequency(seller.payout_frequency),
            minimum_payout_cents=seller.minimum_payout_cents or 0,
            forfeit_balance_on_closure=settings.forfeit_balance_on_closure if forfeit is None else forfeit,
        )


class TransactionRepository:
    """Repository for ledger transactions; doubles as the classifier's lookup"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, transaction: Transaction) -> LedgerTransaction:
        """Persist a classified transaction (unattributed)"""
        row = LedgerTransaction(
            idempotency_key=transaction.idempotency_key,
            seller_id=transaction.seller_id,
            occurred_at=transaction.occurred_at,
            kind=transaction.kind.value,
            gross_cents=transaction.gross_amount.cents,
            fee_cents=transaction.fee_amount.cents,
            tax_cents=transaction.tax_amount.cents,
            affiliate_cents=transaction.affiliate_amount.cents,
            currency=transaction.currency,
            processor=transaction.processor,
            holder=transaction.holder.value,
            discover=transaction.discover,
            refund_fee_waived=transaction.refund_fee_waived,
            reference_id=transaction.reference_id,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def get_row(self, transaction_id: int) -> Optional[LedgerTransaction]:
        return self.db.query(LedgerTransaction).filter(LedgerTransaction.id == transaction_id).first()

    def get(self, transaction_id: int) -> Optional[Transaction]:
        row = self.get_row(transaction_id)
        return to_transaction(row) if row else None

    def children_of(self, transaction_id: int) -> List[Transaction]:
        rows = (
            self.db.query(LedgerTransaction)
            .filter(LedgerTransaction.reference_id == transaction_id)
            .order_by(LedgerTransaction.id)
            .all()
        )
        return [to_transaction(row) for row in rows]

    def by_idempotency_key(self, key: str) -> Optional[Transaction]:
        row = self.db.query(LedgerTransaction).filter(LedgerTransaction.idempotency_key == key).first()
        return to_transaction(row) if row else None

    def for_seller(self, seller_id: str) -> List[Transaction]:
        rows = (
            self.db.query(LedgerTransaction)
            .filter(LedgerTransaction.seller_id == seller_id)
            .order_by(LedgerTransaction.id)
            .all()
        )
        return [to_transaction(row) for row in rows]

    def sum_net_for_period(self, period_id: int) -> int:
        """Direct re-summation of a period's transactions, for reconciliation"""
        total = (
            self.db.query(
                func.coalesce(
                    func.sum(
                        LedgerTransaction.gross_cents
                        - LedgerTransaction.fee_cents
                        - LedgerTransaction.affiliate_cents
                    ),
                    0,
                )
            )
            .filter(LedgerTransaction.balance_period_id == period_id)
            .scalar()
        )
        return int(total)


class BalancePeriodRepository:
    """Repository for balance periods"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, period_id: int) -> Optional[LedgerBalancePeriod]:
        return self.db.query(LedgerBalancePeriod).filter(LedgerBalancePeriod.id == period_id).first()

    def find_unpaid(self, seller_id: str, period_date: date, holder: Holder) -> Optional[LedgerBalancePeriod]:
        return (
            self.db.query(LedgerBalancePeriod)
            .filter(
                LedgerBalancePeriod.seller_id == seller_id,
                LedgerBalancePeriod.period_date == period_date,
                LedgerBalancePeriod.holder == holder.value,
                LedgerBalancePeriod.state == PeriodState.UNPAID.value,
            )
            .first()
        )

    def create(self, seller_id: str, period_date: date, holder: Holder, currency: str) -> LedgerBalancePeriod:
        row = LedgerBalancePeriod(
            seller_id=seller_id,
            period_date=period_date,
            holder=holder.value,
            currency=currency,
            state=PeriodState.UNPAID.value,
            amount_cents=0,
            holding_amount_cents=0,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def _unpaid_query(self, seller_id: str, up_to: Optional[date], holder: Optional[Holder]):
        query = self.db.query(LedgerBalancePeriod).filter(
            LedgerBalancePeriod.seller_id == seller_id,
            LedgerBalancePeriod.state == PeriodState.UNPAID.value,
        )
        if up_to is not None:
            query = query.filter(LedgerBalancePeriod.period_date <= up_to)
        if holder is not None:
            query = query.filter(LedgerBalancePeriod.holder == holder.value)
        return query

    def unpaid(
        self,
        seller_id: str,
        up_to: Optional[date] = None,
        holder: Optional[Holder] = None,
    ) -> List[LedgerBalancePeriod]:
        """Unpaid periods, oldest first"""
        return (
            self._unpaid_query(seller_id, up_to, holder)
            .order_by(LedgerBalancePeriod.period_date, LedgerBalancePeriod.id)
            .all()
        )

    def sum_unpaid(self, seller_id: str, up_to: Optional[date] = None, holder: Optional[Holder] = None) -> int:
        """Direct summation over balance periods (strongly consistent path)"""
        query = self._unpaid_query(seller_id, up_to, holder).with_entities(
            func.coalesce(func.sum(LedgerBalancePeriod.amount_cents), 0)
        )
        return int(query.scalar())

    def for_seller(self, seller_id: str, period_ids: Optional[Iterable[int]] = None) -> List[LedgerBalancePeriod]:
        query = self.db.query(LedgerBalancePeriod).filter(LedgerBalancePeriod.seller_id == seller_id)
        if period_ids is not None:
            query = query.filter(LedgerBalancePeriod.id.in_(list(period_ids)))
        return query.order_by(LedgerBalancePeriod.period_date, LedgerBalancePeriod.id).all()

    def for_payout(self, payout_id: int) -> List[LedgerBalancePeriod]:
        return (
            self.db.query(LedgerBalancePeriod)
            .filter(LedgerBalancePeriod.payout_id == payout_id)
            .order_by(LedgerBalancePeriod.period_date)
            .all()
        )


class PayoutRepository:
    """Repository for payout records"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        seller_id: str,
        payout_date: date,
        period_start: date,
        period_end: date,
        amount: Money,
        instant: bool,
    ) -> LedgerPayout:
        row = LedgerPayout(
            seller_id=seller_id,
            payout_date=payout_date,
            period_start=period_start,
            period_end=period_end,
            amount_cents=amount.cents,
            currency=amount.currency,
            state=PayoutState.PROCESSING.value,
            instant=instant,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def get(self, payout_id: int) -> Optional[LedgerPayout]:
        return self.db.query(LedgerPayout).filter(LedgerPayout.id == payout_id).first()

    def _active(self, seller_id: str):
        return self.db.query(LedgerPayout).filter(
            LedgerPayout.seller_id == seller_id,
            LedgerPayout.state != PayoutState.FAILED.value,
        )

    def exists_on(self, seller_id: str, payout_date: date) -> bool:
        """Whether a non-failed payout is recorded for the date"""
        return self._active(seller_id).filter(LedgerPayout.payout_date == payout_date).first() is not None

    def overlapping(self, seller_id: str, period_start: date, period_end: date) -> List[LedgerPayout]:
        """Non-failed payouts whose [period_start, period_end] intersects the given range"""
        return (
            self._active(seller_id)
            .filter(LedgerPayout.period_start <= period_end, LedgerPayout.period_end >= period_start)
            .all()
        )

    def for_seller(self, seller_id: str) -> List[LedgerPayout]:
        return (
            self.db.query(LedgerPayout)
            .filter(LedgerPayout.seller_id == seller_id)
            .order_by(LedgerPayout.payout_date.desc())
            .all()
        )


class ForfeitureRepository:
    """Repository for forfeiture audit records"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        seller_id: str,
        reason: ForfeitReason,
        amount: Money,
        period_ids: List[int],
        comment: str,
    ) -> BalanceForfeiture:
        row = BalanceForfeiture(
            seller_id=seller_id,
            reason=reason.value,
            amount_cents=amount.cents,
            currency=amount.currency,
            period_ids=period_ids,
            comment=comment,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def for_seller(self, seller_id: str) -> List[BalanceForfeiture]:
        return (
            self.db.query(BalanceForfeiture)
            .filter(BalanceForfeiture.seller_id == seller_id)
            .order_by(BalanceForfeiture.id)
            .all()
        )
