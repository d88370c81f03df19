"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from payout_ledger.domain.exceptions import InvariantViolation
from payout_ledger.domain.money import Money


class Kind(str, Enum):
    """Ledger-relevant category of a transaction"""

    SALE = "sale"
    REFUND = "refund"
    PARTIAL_REFUND = "partial_refund"
    CHARGEBACK = "chargeback"
    CHARGEBACK_REVERSAL = "chargeback_reversal"
    CREDIT = "credit"
    LOAN_REPAYMENT = "loan_repayment"
    FEE_WAIVER = "fee_waiver"


REFUND_KINDS = frozenset({Kind.REFUND, Kind.PARTIAL_REFUND})


class Holder(str, Enum):
    """Party holding settled funds before payout"""

    PLATFORM = "platform"
    PROCESSOR = "processor"


class PayoutFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class PeriodState(str, Enum):
    UNPAID = "unpaid"
    PROCESSING = "processing"
    PAID = "paid"
    FORFEITED = "forfeited"


class PayoutState(str, Enum):
    PROCESSING = "processing"
    UNCLAIMED = "unclaimed"
    COMPLETED = "completed"
    FAILED = "failed"


class ForfeitReason(str, Enum):
    ACCOUNT_CLOSURE = "account_closure"
    COUNTRY_CHANGE = "country_change"


# Balance periods only move forward; a failed payout hands its periods back to unpaid.
PERIOD_TRANSITIONS: Dict[PeriodState, FrozenSet[PeriodState]] = {
    PeriodState.UNPAID: frozenset({PeriodState.PROCESSING, PeriodState.FORFEITED}),
    PeriodState.PROCESSING: frozenset({PeriodState.PAID, PeriodState.UNPAID}),
    PeriodState.PAID: frozenset(),
    PeriodState.FORFEITED: frozenset(),
}

PAYOUT_TRANSITIONS: Dict[PayoutState, FrozenSet[PayoutState]] = {
    PayoutState.PROCESSING: frozenset({PayoutState.UNCLAIMED, PayoutState.COMPLETED, PayoutState.FAILED}),
    PayoutState.UNCLAIMED: frozenset({PayoutState.COMPLETED, PayoutState.FAILED}),
    PayoutState.COMPLETED: frozenset(),
    PayoutState.FAILED: frozenset(),
}


def check_period_transition(current: PeriodState, new: PeriodState) -> None:
    """Raise InvariantViolation unless current -> new is an allowed period transition"""
    if new not in PERIOD_TRANSITIONS[current]:
        raise InvariantViolation(f"Balance period cannot move from {current.value} to {new.value}")


def check_payout_transition(current: PayoutState, new: PayoutState) -> None:
    """Raise InvariantViolation unless current -> new is an allowed payout transition"""
    if new not in PAYOUT_TRANSITIONS[current]:
        raise InvariantViolation(f"Payout cannot move from {current.value} to {new.value}")


@dataclass(frozen=True)
class RawEvent:
    """Sale/refund/chargeback/credit fact pushed by the checkout subsystem"""

    idempotency_key: str
    seller_id: str
    kind: str
    occurred_at: datetime
    currency: str
    processor: str = "stripe"
    holder: Optional[str] = None
    amount_cents: int = 0
    fee_cents: Optional[int] = None  # None: resolve from the seller's fee tier
    tax_cents: int = 0
    affiliate_cents: int = 0
    reference_id: Optional[int] = None
    discover: bool = False
    refund_fee_waived: bool = False
    retained_fee_cents: int = 0


@dataclass(frozen=True)
class Transaction:
    """Immutable ledger fact; corrections are new transactions"""

    seller_id: str
    occurred_at: datetime
    kind: Kind
    gross_amount: Money
    fee_amount: Money
    tax_amount: Money
    affiliate_amount: Money
    processor: str
    holder: Holder
    id: Optional[int] = None
    balance_period_id: Optional[int] = None
    reference_id: Optional[int] = None
    discover: bool = False
    refund_fee_waived: bool = False
    idempotency_key: Optional[str] = None

    @property
    def currency(self) -> str:
        return self.gross_amount.currency

    @property
    def net_effect(self) -> Money:
        """What this transaction adds to the seller's balance: gross - fee - affiliate"""
        return self.gross_amount - self.fee_amount - self.affiliate_amount


@dataclass
class BalancePeriod:
    """One payable bucket for a seller"""

    seller_id: str
    period_date: date
    holder: Holder
    state: PeriodState
    amount: Money
    holding_amount: Money
    id: Optional[int] = None
    payout_id: Optional[int] = None


@dataclass
class PayoutRecord:
    """Money that left (or is leaving) the ledger"""

    seller_id: str
    payout_date: date
    period_start: date
    period_end: date
    amount: Money
    state: PayoutState
    instant: bool
    id: Optional[int] = None


@dataclass(frozen=True)
class PayoutSchedulePolicy:
    """Per-seller payout settings, owned by the seller settings subsystem"""

    frequency: PayoutFrequency
    minimum_payout_cents: int
    forfeit_balance_on_closure: bool = True


@dataclass
class SalesBreakdown:
    """Independent sums over a set of balance periods"""

    currency: str
    sales_cents: int = 0
    refunds_cents: int = 0
    chargebacks_cents: int = 0
    credits_cents: int = 0
    loan_repayment_cents: int = 0
    fees_cents: int = 0
    discover_fees_cents: int = 0
    direct_fees_cents: int = 0
    discover_sales_count: int = 0
    direct_sales_count: int = 0
    taxes_cents: int = 0
    affiliate_credits_cents: int = 0
    affiliate_fees_cents: int = 0
    net_cents: int = 0


@dataclass(frozen=True)
class PayoutDecision:
    """Outcome of scheduling: when the next payout lands and how much it carries"""

    payout_date: Optional[date]
    amount: Money
    instant: bool = False

    @property
    def due(self) -> bool:
        return self.payout_date is not None


@dataclass(frozen=True)
class ForfeitureRecord:
    """Audit trail of a balance write-off"""

    seller_id: str
    reason: ForfeitReason
    amount: Money
    period_ids: List[int] = field(default_factory=list)
    comment: str = ""
    created_at: Optional[datetime] = None
    id: Optional[int] = None
