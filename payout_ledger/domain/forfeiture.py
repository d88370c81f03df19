"""Balance forfeiture rules"""

from dataclasses import dataclass
from typing import List

from payout_ledger.domain.models import BalancePeriod, ForfeitReason, Holder, PeriodState
from payout_ledger.domain.money import Money

REASON_LABELS = {
    ForfeitReason.ACCOUNT_CLOSURE: "Account closed",
    ForfeitReason.COUNTRY_CHANGE: "Country changed",
}


@dataclass(frozen=True)
class ForfeiturePlan:
    """Periods to write off and the total they carry"""

    amount: Money
    periods: List[BalancePeriod]

    @property
    def empty(self) -> bool:
        return not self.periods


def plan_forfeiture(
    unpaid_periods: List[BalancePeriod],
    reason: ForfeitReason,
    forfeit_on_closure: bool,
    currency: str,
) -> ForfeiturePlan:
    """
    Select the unpaid periods a reason writes off.

    - account_closure: every unpaid period, only when the seller's policy
      forfeits balances on closure
    - country_change: unpaid periods held by the payment processor, which
      can no longer pay out to the new country

    A total that is zero or negative forfeits nothing: a seller who owes
    money is not let off by a write-off.
    """
    if reason == ForfeitReason.ACCOUNT_CLOSURE:
        selected = unpaid_periods if forfeit_on_closure else []
    else:
        selected = [p for p in unpaid_periods if p.holder == Holder.PROCESSOR]

    selected = [p for p in selected if p.state == PeriodState.UNPAID]
    amount = Money.sum((p.amount for p in selected), currency)
    if amount.cents <= 0:
        return ForfeiturePlan(amount=Money.zero(currency), periods=[])
    return ForfeiturePlan(amount=amount, periods=selected)


def forfeiture_comment(plan: ForfeiturePlan, reason: ForfeitReason) -> str:
    """Audit note, e.g. "Balance of $8.90 has been forfeited. Reason: Account closed. Balance IDs: 1, 2" """
    ids = ", ".join(str(p.id) for p in plan.periods)
    return f"Balance of {plan.amount.format()} has been forfeited. Reason: {REASON_LABELS[reason]}. Balance IDs: {ids}"
