"""Unit tests for forfeiture planning"""

from datetime import date
from payout_ledger.domain.forfeiture import forfeiture_comment, plan_forfeiture
from payout_ledger.domain.models import BalancePeriod, ForfeitReason, Holder, PeriodState
from payout_ledger.domain.money import Money


def period(id: int, cents: int, holder: Holder = Holder.PLATFORM, state: PeriodState = PeriodState.UNPAID) -> BalancePeriod:
    return BalancePeriod(
        id=id,
        seller_id="seller_1",
        period_date=date(2024, 6, id),
        holder=holder,
        state=state,
        amount=Money(cents, "usd"),
        holding_amount=Money(cents, "usd"),
    )


def test_account_closure_takes_every_unpaid_period():
    plan = plan_forfeiture([period(1, 1500), period(2, 1000, Holder.PROCESSOR)], ForfeitReason.ACCOUNT_CLOSURE, True, "usd")

    assert plan.amount == Money(2500, "usd")
    assert [p.id for p in plan.periods] == [1, 2]


def test_account_closure_without_policy_forfeits_nothing():
    plan = plan_forfeiture([period(1, 1500)], ForfeitReason.ACCOUNT_CLOSURE, False, "usd")

    assert plan.empty
    assert plan.amount == Money.zero("usd")


def test_country_change_takes_processor_held_periods_only():
    plan = plan_forfeiture([period(1, 1500), period(2, 1000, Holder.PROCESSOR)], ForfeitReason.COUNTRY_CHANGE, False, "usd")

    assert plan.amount == Money(1000, "usd")
    assert [p.id for p in plan.periods] == [2]


def test_negative_total_forfeits_nothing():
    plan = plan_forfeiture([period(1, 500), period(2, -2000)], ForfeitReason.ACCOUNT_CLOSURE, True, "usd")

    assert plan.empty


def test_only_unpaid_periods_are_forfeited():
    plan = plan_forfeiture(
        [period(1, 1500), period(2, 9000, state=PeriodState.PROCESSING)],
        ForfeitReason.ACCOUNT_CLOSURE,
        True,
        "usd",
    )

    assert plan.amount == Money(1500, "usd")


def test_comment():
    plan = plan_forfeiture([period(1, 1500), period(2, 1000)], ForfeitReason.ACCOUNT_CLOSURE, True, "usd")
    assert forfeiture_comment(plan, ForfeitReason.ACCOUNT_CLOSURE) == (
        "Balance of $25 has been forfeited. Reason: Account closed. Balance IDs: 1, 2"
    )

    plan = plan_forfeiture([period(3, 890, Holder.PROCESSOR)], ForfeitReason.COUNTRY_CHANGE, True, "usd")
    assert forfeiture_comment(plan, ForfeitReason.COUNTRY_CHANGE) == (
        "Balance of $8.90 has been forfeited. Reason: Country changed. Balance IDs: 3"
    )
