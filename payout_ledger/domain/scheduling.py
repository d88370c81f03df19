"""Payout date computation - recurrence snapping and the minimum/duplicate guards"""

from datetime import date, timedelta
from typing import Callable, Optional

from payout_ledger.domain.models import PayoutFrequency
from payout_ledger.domain.money import Money
from payout_ledger.utils.date_utils import (
    add_months,
    end_of_month,
    end_of_quarter,
    last_friday_on_or_before,
)

DEFAULT_PAYOUT_DELAY_DAYS = 7


def period_date_for(occurred_on: date, frequency: PayoutFrequency) -> date:
    """
    Balance period a transaction date falls into.

    Daily and weekly sellers get one bucket per calendar day; monthly and
    quarterly sellers get one bucket dated on the last day of the period, so
    a bucket never counts towards a cutoff before all of its days have passed.
    """
    if frequency == PayoutFrequency.MONTHLY:
        return end_of_month(occurred_on)
    if frequency == PayoutFrequency.QUARTERLY:
        return end_of_quarter(occurred_on)
    return occurred_on


def initial_candidate(today: date, frequency: PayoutFrequency) -> date:
    """First recurrence date to consider: the Friday anchor of today's period"""
    if frequency == PayoutFrequency.MONTHLY:
        return last_friday_on_or_before(end_of_month(today))
    if frequency == PayoutFrequency.QUARTERLY:
        return last_friday_on_or_before(end_of_quarter(today))
    return last_friday_on_or_before(today)


def advance(candidate: date, frequency: PayoutFrequency) -> date:
    """One recurrence step forward, re-snapped to the period's last Friday"""
    if frequency == PayoutFrequency.MONTHLY:
        return last_friday_on_or_before(end_of_month(add_months(candidate.replace(day=1), 1)))
    if frequency == PayoutFrequency.QUARTERLY:
        return last_friday_on_or_before(end_of_quarter(add_months(candidate.replace(day=1), 3)))
    return candidate + timedelta(days=7)


def next_payout_date(
    today: date,
    frequency: PayoutFrequency,
    minimum: Money,
    unpaid_today: Money,
    amount_as_of: Callable[[date], Money],
    instant_eligible_yesterday: bool,
    payout_exists_on: Callable[[date], bool],
    delay_days: int = DEFAULT_PAYOUT_DELAY_DAYS,
) -> Optional[date]:
    """
    Decide the next payout date for a seller.

    Algorithm:
    1. Unpaid balance below the minimum: nothing is due (None)
    2. Daily sellers eligible for instant payout yesterday: tomorrow
    3. Start from the Friday anchor of today's week/month/quarter
    4. Step forward while the candidate is before today
    5. If the balance as of (candidate - delay_days) is below the minimum,
       step once more; amounts can clear the threshold by the next window
    6. If the candidate is today and a payout already went out today,
       step once more so the same day is never paid twice

    Args:
        amount_as_of: unpaid balance with period dates up to a cutoff
        payout_exists_on: whether a non-failed payout is recorded for a date

    Example (weekly, today = Tuesday 2024-06-04):
        candidate 2024-05-31 (last Friday) -> 2024-06-07 (upcoming Friday)
    """
    if unpaid_today < minimum:
        return None

    if frequency == PayoutFrequency.DAILY and instant_eligible_yesterday:
        return today + timedelta(days=1)

    candidate = initial_candidate(today, frequency)
    while candidate < today:
        candidate = advance(candidate, frequency)

    if amount_as_of(candidate - timedelta(days=delay_days)) < minimum:
        candidate = advance(candidate, frequency)

    if candidate == today and payout_exists_on(today):
        candidate = advance(candidate, frequency)

    return candidate
