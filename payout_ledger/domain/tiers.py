"""Tiered platform fees keyed on cumulative lifetime sales"""

from decimal import Decimal
from enum import IntEnum
from typing import Dict

from payout_ledger.domain.money import Money


class Tier(IntEnum):
    """Fee tier; each value is the band's inclusive lower bound in cents"""

    TIER_0 = 0
    TIER_1 = 100_000  # $1,000
    TIER_2 = 1_000_000  # $10,000
    TIER_3 = 10_000_000  # $100,000
    TIER_4 = 100_000_000  # $1,000,000


# Sales processed through the platform's own account: platform fee includes card processing.
PLATFORM_ACCOUNT_FEES: Dict[Tier, Decimal] = {
    Tier.TIER_0: Decimal("9"),
    Tier.TIER_1: Decimal("7"),
    Tier.TIER_2: Decimal("5"),
    Tier.TIER_3: Decimal("3"),
    Tier.TIER_4: Decimal("2.9"),
}

# Sales processed through the seller's own merchant account: the processor charges them directly.
MERCHANT_ACCOUNT_FEES: Dict[Tier, Decimal] = {
    Tier.TIER_0: Decimal("6.1"),
    Tier.TIER_1: Decimal("4.1"),
    Tier.TIER_2: Decimal("2.1"),
    Tier.TIER_3: Decimal("0.1"),
    Tier.TIER_4: Decimal("0"),
}


def tier_for(cumulative_sales_cents: int) -> Tier:
    """
    Map lifetime sales to a fee tier.

    Bands are half-open [lower, upper); the top band is unbounded.
    Zero or negative sales clamp to the lowest tier instead of failing.
    """
    current = Tier.TIER_0
    for tier in Tier:
        if cumulative_sales_cents >= tier.value:
            current = tier
    return current


def fee_percentage(tier: Tier, using_merchant_account: bool) -> Decimal:
    """Fee percentage for a tier (Decimal("2.9") means 2.9%)"""
    table = MERCHANT_ACCOUNT_FEES if using_merchant_account else PLATFORM_ACCOUNT_FEES
    return table[tier]


def fee_for(amount: Money, tier: Tier, using_merchant_account: bool) -> Money:
    """Platform fee owed on a sale amount, rounded half up to whole cents"""
    return amount.percentage(fee_percentage(tier, using_merchant_account))


def next_tier(current: Tier, cumulative_sales_cents: int) -> Tier:
    """Cached tiers only upgrade; refunds never push a seller back down"""
    return max(current, tier_for(cumulative_sales_cents))
