"""Transaction classification - turns raw marketplace events into ledger transactions"""

from dataclasses import dataclass
from typing import List, Optional, Protocol

from payout_ledger.domain.exceptions import UnclassifiableEvent
from payout_ledger.domain.models import REFUND_KINDS, Holder, Kind, RawEvent, Transaction
from payout_ledger.domain.money import Money


class TransactionLookup(Protocol):
    """Read access to already-recorded transactions"""

    def get(self, transaction_id: int) -> Optional[Transaction]:
        ...

    def children_of(self, transaction_id: int) -> List[Transaction]:
        ...


@dataclass(frozen=True)
class SaleHistory:
    """What has already happened to a sale, derived from the transactions that reference it"""

    sale: Transaction
    refunded: Money
    returned_fee: Money
    has_open_chargeback: bool
    fee_waived: bool

    @property
    def remaining(self) -> Money:
        """Gross amount still held by the seller for this sale"""
        if self.has_open_chargeback:
            return Money.zero(self.sale.currency)
        return self.sale.gross_amount - self.refunded

    def cumulative_share(self, amount: Money, refunded_cents: int) -> Money:
        """Portion of a sale-level amount attributable to the first refunded_cents of gross"""
        return amount.prorate(refunded_cents, self.sale.gross_amount.cents)


def sale_history(sale: Transaction, lookup: TransactionLookup) -> SaleHistory:
    """Summarise refunds, chargebacks and fee waivers recorded against a sale"""
    currency = sale.currency
    children = lookup.children_of(sale.id)

    refunds = [t for t in children if t.kind in REFUND_KINDS]
    refunded = -Money.sum((t.gross_amount for t in refunds), currency)

    # Follow-ups carry returned fees as negative fee amounts; reversals hang off their chargeback
    returned_fee = -Money.sum((t.fee_amount for t in children), currency)
    open_chargeback = False
    for chargeback in (t for t in children if t.kind == Kind.CHARGEBACK):
        reversals = [r for r in lookup.children_of(chargeback.id) if r.kind == Kind.CHARGEBACK_REVERSAL]
        returned_fee = returned_fee - Money.sum((r.fee_amount for r in reversals), currency)
        open_chargeback = open_chargeback or not reversals

    return SaleHistory(
        sale=sale,
        refunded=refunded,
        returned_fee=returned_fee,
        has_open_chargeback=open_chargeback,
        fee_waived=any(t.kind == Kind.FEE_WAIVER for t in children),
    )


def _parse_kind(value: str) -> Kind:
    try:
        return Kind(value)
    except ValueError:
        raise UnclassifiableEvent(f"Unknown event kind: {value!r}") from None


def _parse_holder(value: Optional[str]) -> Holder:
    try:
        return Holder(value) if value else Holder.PLATFORM
    except ValueError:
        raise UnclassifiableEvent(f"Unknown holder: {value!r}") from None


def _resolve_reference(
    event: RawEvent,
    lookup: TransactionLookup,
    expected_kind: Optional[Kind] = None,
    required: bool = True,
) -> Optional[Transaction]:
    if event.reference_id is None:
        if required:
            raise UnclassifiableEvent(f"{event.kind} event must reference an original transaction")
        return None

    original = lookup.get(event.reference_id)
    if original is None:
        raise UnclassifiableEvent(f"Referenced transaction {event.reference_id} not found")
    if original.seller_id != event.seller_id:
        raise UnclassifiableEvent(f"Referenced transaction {event.reference_id} belongs to another seller")
    if original.currency != event.currency.lower():
        raise UnclassifiableEvent(
            f"Event currency {event.currency} differs from referenced transaction currency {original.currency}"
        )
    if expected_kind is not None and original.kind != expected_kind:
        raise UnclassifiableEvent(
            f"{event.kind} must reference a {expected_kind.value}, got {original.kind.value}"
        )
    return original


def _follow_up(event: RawEvent, kind: Kind, original: Transaction, gross: Money, fee: Money,
               tax: Money, affiliate: Money) -> Transaction:
    """Transaction derived from an earlier one: holder, processor and channel are inherited"""
    return Transaction(
        seller_id=event.seller_id,
        occurred_at=event.occurred_at,
        kind=kind,
        gross_amount=gross,
        fee_amount=fee,
        tax_amount=tax,
        affiliate_amount=affiliate,
        processor=original.processor,
        holder=original.holder,
        reference_id=original.id,
        discover=original.discover,
        refund_fee_waived=event.refund_fee_waived,
        idempotency_key=event.idempotency_key,
    )


def _classify_sale(event: RawEvent) -> Transaction:
    if event.amount_cents <= 0:
        raise UnclassifiableEvent("Sale amount must be positive")
    if event.fee_cents is None:
        raise UnclassifiableEvent("Sale fee has not been resolved")
    currency = event.currency
    return Transaction(
        seller_id=event.seller_id,
        occurred_at=event.occurred_at,
        kind=Kind.SALE,
        gross_amount=Money(event.amount_cents, currency),
        fee_amount=Money(event.fee_cents, currency),
        tax_amount=Money(event.tax_cents, currency),
        affiliate_amount=Money(event.affiliate_cents, currency),
        processor=event.processor,
        holder=_parse_holder(event.holder),
        discover=event.discover,
        idempotency_key=event.idempotency_key,
    )


def _classify_refund(event: RawEvent, kind: Kind, lookup: TransactionLookup) -> Transaction:
    """
    Refund or partial refund of a sale.

    Fee, tax and affiliate amounts are returned in proportion to the refunded
    gross. Shares are computed cumulatively so a sale refunded in several parts
    returns exactly its original amounts in total. A sale whose fee was already
    waived returns no fee; otherwise the platform may retain part of the fee
    unless the refund waives that retention.
    """
    sale = _resolve_reference(event, lookup, expected_kind=Kind.SALE)
    history = sale_history(sale, lookup)
    remaining = history.remaining
    if remaining.cents <= 0:
        raise UnclassifiableEvent(f"Sale {sale.id} has nothing left to refund")

    if kind == Kind.REFUND:
        portion = remaining.cents
    else:
        portion = event.amount_cents
        if portion <= 0 or portion > remaining.cents:
            raise UnclassifiableEvent(
                f"Partial refund of {portion} outside refundable range 1..{remaining.cents}"
            )

    before = history.refunded.cents
    after = before + portion

    def share(amount: Money) -> Money:
        return history.cumulative_share(amount, after) - history.cumulative_share(amount, before)

    returned_fee = Money.zero(sale.currency) if history.fee_waived else share(sale.fee_amount)
    if not history.fee_waived and not event.refund_fee_waived and event.retained_fee_cents:
        retained = Money(event.retained_fee_cents, sale.currency)
        if retained.cents < 0 or retained > returned_fee:
            raise UnclassifiableEvent(
                f"Retained fee {retained.cents} exceeds returnable fee {returned_fee.cents}"
            )
        returned_fee = returned_fee - retained

    return _follow_up(
        event,
        kind,
        sale,
        gross=Money(-portion, sale.currency),
        fee=-returned_fee,
        tax=-share(sale.tax_amount),
        affiliate=-share(sale.affiliate_amount),
    )


def _classify_chargeback(event: RawEvent, lookup: TransactionLookup) -> Transaction:
    """Chargeback nets everything of the sale that refunds have not already returned"""
    sale = _resolve_reference(event, lookup, expected_kind=Kind.SALE)
    history = sale_history(sale, lookup)
    if history.has_open_chargeback:
        raise UnclassifiableEvent(f"Sale {sale.id} already has an open chargeback")
    remaining = history.remaining
    if remaining.cents <= 0:
        raise UnclassifiableEvent(f"Sale {sale.id} is fully refunded")

    refunded = history.refunded.cents

    def rest(amount: Money) -> Money:
        return amount - history.cumulative_share(amount, refunded)

    fee = Money.zero(sale.currency) if history.fee_waived else rest(sale.fee_amount)
    return _follow_up(
        event,
        Kind.CHARGEBACK,
        sale,
        gross=-remaining,
        fee=-fee,
        tax=-rest(sale.tax_amount),
        affiliate=-rest(sale.affiliate_amount),
    )


def _classify_chargeback_reversal(event: RawEvent, lookup: TransactionLookup) -> Transaction:
    chargeback = _resolve_reference(event, lookup, expected_kind=Kind.CHARGEBACK)
    if any(t.kind == Kind.CHARGEBACK_REVERSAL for t in lookup.children_of(chargeback.id)):
        raise UnclassifiableEvent(f"Chargeback {chargeback.id} is already reversed")
    return _follow_up(
        event,
        Kind.CHARGEBACK_REVERSAL,
        chargeback,
        gross=-chargeback.gross_amount,
        fee=-chargeback.fee_amount,
        tax=-chargeback.tax_amount,
        affiliate=-chargeback.affiliate_amount,
    )


def _classify_fee_waiver(event: RawEvent, lookup: TransactionLookup) -> Transaction:
    """Hand back the part of a sale's fee that refunds and chargebacks have not returned yet"""
    sale = _resolve_reference(event, lookup, expected_kind=Kind.SALE)
    history = sale_history(sale, lookup)
    if history.fee_waived:
        raise UnclassifiableEvent(f"Fee on sale {sale.id} is already waived")
    waivable = sale.fee_amount - history.returned_fee
    if waivable.cents <= 0:
        raise UnclassifiableEvent(f"Sale {sale.id} has no fee left to waive")
    zero = Money.zero(sale.currency)
    return _follow_up(event, Kind.FEE_WAIVER, sale, gross=zero, fee=-waivable, tax=zero, affiliate=zero)


def _classify_adjustment(event: RawEvent, kind: Kind, lookup: TransactionLookup) -> Transaction:
    """Credits and loan repayments: standalone, optionally tied to a transaction"""
    original = _resolve_reference(event, lookup, required=False)
    currency = event.currency
    zero = Money.zero(currency)

    if kind == Kind.CREDIT:
        gross = Money(event.amount_cents, currency)
        # Affiliate earnings arrive positive; they are stored negated so they add to the net effect
        affiliate = Money(-event.affiliate_cents, currency)
        if gross.is_zero() and affiliate.is_zero():
            raise UnclassifiableEvent("Credit carries no amount")
    else:
        if event.amount_cents == 0:
            raise UnclassifiableEvent("Loan repayment carries no amount")
        gross = Money(-abs(event.amount_cents), currency)
        affiliate = zero

    return Transaction(
        seller_id=event.seller_id,
        occurred_at=event.occurred_at,
        kind=kind,
        gross_amount=gross,
        fee_amount=zero,
        tax_amount=zero,
        affiliate_amount=affiliate,
        processor=original.processor if original else event.processor,
        holder=original.holder if original else _parse_holder(event.holder),
        reference_id=original.id if original else None,
        idempotency_key=event.idempotency_key,
    )


def classify(event: RawEvent, lookup: TransactionLookup) -> Transaction:
    """
    Main entry point: categorize a raw event into a ledger transaction.

    Raises:
        UnclassifiableEvent: unknown kind, missing or unusable reference,
            or amounts that do not fit what the original allows
    """
    kind = _parse_kind(event.kind)

    if kind == Kind.SALE:
        return _classify_sale(event)
    if kind in REFUND_KINDS:
        return _classify_refund(event, kind, lookup)
    if kind == Kind.CHARGEBACK:
        return _classify_chargeback(event, lookup)
    if kind == Kind.CHARGEBACK_REVERSAL:
        return _classify_chargeback_reversal(event, lookup)
    if kind == Kind.FEE_WAIVER:
        return _classify_fee_waiver(event, lookup)
    return _classify_adjustment(event, kind, lookup)
