"""Sales breakdown over a set of balance periods"""

from typing import Dict, Iterable, List, Set

from payout_ledger.domain.models import REFUND_KINDS, Kind, SalesBreakdown, Transaction


def _add_fee(breakdown: SalesBreakdown, transaction: Transaction, fee_cents: int) -> None:
    breakdown.fees_cents += fee_cents
    if transaction.discover:
        breakdown.discover_fees_cents += fee_cents
    else:
        breakdown.direct_fees_cents += fee_cents


def refund_fee_period(refund: Transaction, sales_by_id: Dict[int, Transaction]):
    """
    Period a refund's returned fee is deducted from.

    A refund that waived fee retention claws the fee back from the sale's own
    period; otherwise the deduction follows the refund's period.
    """
    sale = sales_by_id.get(refund.reference_id)
    if refund.refund_fee_waived and sale is not None:
        return sale.balance_period_id
    return refund.balance_period_id


def sales_breakdown(
    transactions: Iterable[Transaction],
    period_ids: Iterable[int],
    currency: str,
) -> SalesBreakdown:
    """
    Compute independent sums for the given balance periods.

    Requirements:
    - Sales, taxes and affiliate fees count in the sale's period
    - Refunds, chargebacks, reversals, credits, loan repayments and fee
      waivers count in their own period
    - Refund fee clawback follows refund_fee_period()
    - net_cents equals the sum of the periods' amount_cents

    Args:
        transactions: every transaction of the seller that may be relevant
            (refunds must be able to see the sale they reference)
        period_ids: balance periods to report on
    """
    periods: Set[int] = set(period_ids)
    all_transactions: List[Transaction] = list(transactions)
    sales_by_id = {t.id: t for t in all_transactions if t.kind == Kind.SALE}
    breakdown = SalesBreakdown(currency=currency)

    for t in all_transactions:
        in_periods = t.balance_period_id in periods

        if in_periods:
            breakdown.net_cents += t.net_effect.cents

        if t.kind == Kind.SALE:
            if not in_periods:
                continue
            breakdown.sales_cents += t.gross_amount.cents
            breakdown.taxes_cents += t.tax_amount.cents
            breakdown.affiliate_fees_cents += t.affiliate_amount.cents
            _add_fee(breakdown, t, t.fee_amount.cents)
            if t.discover:
                breakdown.discover_sales_count += 1
            else:
                breakdown.direct_sales_count += 1

        elif t.kind in REFUND_KINDS:
            if refund_fee_period(t, sales_by_id) in periods:
                _add_fee(breakdown, t, t.fee_amount.cents)
            if not in_periods:
                continue
            breakdown.refunds_cents -= t.gross_amount.cents
            breakdown.taxes_cents += t.tax_amount.cents
            breakdown.affiliate_fees_cents += t.affiliate_amount.cents

        elif not in_periods:
            continue

        elif t.kind in (Kind.CHARGEBACK, Kind.CHARGEBACK_REVERSAL):
            # Chargebacks carry negative gross; reversals positive, shrinking the total
            breakdown.chargebacks_cents -= t.gross_amount.cents
            breakdown.taxes_cents += t.tax_amount.cents
            breakdown.affiliate_fees_cents += t.affiliate_amount.cents
            _add_fee(breakdown, t, t.fee_amount.cents)

        elif t.kind == Kind.CREDIT:
            breakdown.credits_cents += t.gross_amount.cents
            breakdown.affiliate_credits_cents -= t.affiliate_amount.cents

        elif t.kind == Kind.LOAN_REPAYMENT:
            breakdown.loan_repayment_cents += t.gross_amount.cents

        elif t.kind == Kind.FEE_WAIVER:
            _add_fee(breakdown, t, t.fee_amount.cents)

    return breakdown
