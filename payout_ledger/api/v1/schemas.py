"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from payout_ledger.domain.models import (
    BalancePeriod,
    ForfeitReason,
    ForfeitureRecord,
    Holder,
    Kind,
    PayoutFrequency,
    PayoutRecord,
    PayoutState,
    PeriodState,
    Transaction,
)


class EventRequest(BaseModel):
    """Request body for POST /v1/events"""

    idempotency_key: str = Field(..., min_length=1, description="Replays with the same key return the original transaction")
    seller_id: str = Field(..., min_length=1)
    kind: str = Field(..., description="sale, refund, partial_refund, chargeback, chargeback_reversal, credit, loan_repayment or fee_waiver")
    occurred_at: datetime
    currency: str = Field("usd", min_length=3, max_length=3)
    processor: str = "stripe"
    holder: Optional[str] = Field(None, description="platform (default) or processor")
    amount_cents: int = 0
    fee_cents: Optional[int] = Field(None, description="Omit on sales to apply the seller's tier fee")
    tax_cents: int = 0
    affiliate_cents: int = 0
    reference_id: Optional[int] = None
    discover: bool = False
    refund_fee_waived: bool = False
    retained_fee_cents: int = Field(0, ge=0)


class TransactionResponse(BaseModel):
    transaction_id: int
    seller_id: str
    kind: Kind
    occurred_at: datetime
    currency: str
    gross_cents: int
    fee_cents: int
    tax_cents: int
    affiliate_cents: int
    net_effect_cents: int
    holder: Holder
    balance_period_id: Optional[int] = None
    reference_id: Optional[int] = None

    @classmethod
    def from_domain(cls, transaction: Transaction) -> "TransactionResponse":
        return cls(
            transaction_id=transaction.id,
            seller_id=transaction.seller_id,
            kind=transaction.kind,
            occurred_at=transaction.occurred_at,
            currency=transaction.currency,
            gross_cents=transaction.gross_amount.cents,
            fee_cents=transaction.fee_amount.cents,
            tax_cents=transaction.tax_amount.cents,
            affiliate_cents=transaction.affiliate_amount.cents,
            net_effect_cents=transaction.net_effect.cents,
            holder=transaction.holder,
            balance_period_id=transaction.balance_period_id,
            reference_id=transaction.reference_id,
        )


class BalanceResponse(BaseModel):
    """Response for GET /v1/sellers/{seller_id}/balance"""

    seller_id: str
    as_of: Optional[date] = None
    holder: Optional[Holder] = None
    unpaid_cents: int
    currency: str
    formatted: str


class BalancePeriodSchema(BaseModel):
    balance_period_id: int
    period_date: date
    holder: Holder
    state: PeriodState
    amount_cents: int
    holding_amount_cents: int
    currency: str
    payout_id: Optional[int] = None

    @classmethod
    def from_domain(cls, period: BalancePeriod) -> "BalancePeriodSchema":
        return cls(
            balance_period_id=period.id,
            period_date=period.period_date,
            holder=period.holder,
            state=period.state,
            amount_cents=period.amount.cents,
            holding_amount_cents=period.holding_amount.cents,
            currency=period.amount.currency,
            payout_id=period.payout_id,
        )


class BalancePeriodsResponse(BaseModel):
    seller_id: str
    periods: List[BalancePeriodSchema]


class SalesBreakdownResponse(BaseModel):
    """Response for GET /v1/sellers/{seller_id}/sales-breakdown"""

    seller_id: str
    balance_period_ids: List[int]
    currency: str
    sales_cents: int
    refunds_cents: int
    chargebacks_cents: int
    credits_cents: int
    loan_repayment_cents: int
    fees_cents: int
    discover_fees_cents: int
    direct_fees_cents: int
    discover_sales_count: int
    direct_sales_count: int
    taxes_cents: int
    affiliate_credits_cents: int
    affiliate_fees_cents: int
    net_cents: int


class ReconciliationResponse(BaseModel):
    seller_id: str
    consistent: bool
    discrepancies: List[Dict[str, Any]]


class PolicyRequest(BaseModel):
    """Request body for PUT /v1/sellers/{seller_id}/policy"""

    frequency: PayoutFrequency
    minimum_payout_cents: int = Field(..., ge=0)
    forfeit_balance_on_closure: bool = True


class PolicyResponse(PolicyRequest):
    seller_id: str


class PayoutDecisionResponse(BaseModel):
    """Response for GET /v1/sellers/{seller_id}/payouts/next"""

    seller_id: str
    payout_date: Optional[date] = None
    amount_cents: int
    currency: str
    instant: bool
    status: Literal["payout_due", "below_minimum"]


class PayoutAmountResponse(BaseModel):
    seller_id: str
    payout_date: date
    amount_cents: int
    currency: str


class RecordPayoutRequest(BaseModel):
    payout_date: date
    today: Optional[date] = None


class PayoutResponse(BaseModel):
    payout_id: int
    seller_id: str
    payout_date: date
    period_start: date
    period_end: date
    amount_cents: int
    currency: str
    state: PayoutState
    instant: bool

    @classmethod
    def from_domain(cls, payout: PayoutRecord) -> "PayoutResponse":
        return cls(
            payout_id=payout.id,
            seller_id=payout.seller_id,
            payout_date=payout.payout_date,
            period_start=payout.period_start,
            period_end=payout.period_end,
            amount_cents=payout.amount.cents,
            currency=payout.amount.currency,
            state=payout.state,
            instant=payout.instant,
        )


class PayoutHistoryResponse(BaseModel):
    seller_id: str
    payouts: List[PayoutResponse]


class ForfeitureRequest(BaseModel):
    reason: ForfeitReason = ForfeitReason.ACCOUNT_CLOSURE


class ForfeitureResponse(BaseModel):
    seller_id: str
    reason: ForfeitReason
    forfeited_cents: int
    currency: str


class ForfeitureRecordResponse(BaseModel):
    forfeiture_id: int
    reason: ForfeitReason
    amount_cents: int
    currency: str
    balance_period_ids: List[int]
    comment: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, record: ForfeitureRecord) -> "ForfeitureRecordResponse":
        return cls(
            forfeiture_id=record.id,
            reason=record.reason,
            amount_cents=record.amount.cents,
            currency=record.amount.currency,
            balance_period_ids=record.period_ids,
            comment=record.comment,
            created_at=record.created_at,
        )


class ForfeitureHistoryResponse(BaseModel):
    """Response for GET /v1/sellers/{seller_id}/forfeitures"""

    seller_id: str
    forfeitures: List[ForfeitureRecordResponse]


class ClosureResponse(BaseModel):
    seller_id: str
    closed_at: datetime
