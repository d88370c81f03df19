"""Exact minor-unit money arithmetic with a currency tag"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from payout_ledger.domain.exceptions import CurrencyMismatch

CURRENCY_SYMBOLS = {"usd": "$", "eur": "€", "gbp": "£"}


def round_half_up(numerator: int, denominator: int) -> int:
    """
    Integer division rounding halves away from zero.

    Works purely on ints so the result never depends on float behaviour:
        round_half_up(5, 2) == 3, round_half_up(-5, 2) == -3
    """
    if denominator == 0:
        raise ZeroDivisionError("denominator must be non-zero")
    if denominator < 0:
        numerator, denominator = -numerator, -denominator

    magnitude = (2 * abs(numerator) + denominator) // (2 * denominator)
    return magnitude if numerator >= 0 else -magnitude


@dataclass(frozen=True)
class Money:
    """Signed amount in minor units (cents) of a single currency"""

    cents: int
    currency: str

    def __post_init__(self) -> None:
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise TypeError(f"Money requires integer minor units, got {type(self.cents).__name__}")
        object.__setattr__(self, "currency", self.currency.lower())

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(0, currency)

    @classmethod
    def sum(cls, amounts: Iterable["Money"], currency: str) -> "Money":
        """Add up amounts, starting from zero in the given currency"""
        total = cls.zero(currency)
        for amount in amounts:
            total = total + amount
        return total

    def _check(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot combine Money with {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatch(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.cents + other.cents, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.cents - other.cents, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.cents, self.currency)

    def __abs__(self) -> "Money":
        return Money(abs(self.cents), self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._check(other)
        return self.cents < other.cents

    def __le__(self, other: "Money") -> bool:
        self._check(other)
        return self.cents <= other.cents

    def __gt__(self, other: "Money") -> bool:
        self._check(other)
        return self.cents > other.cents

    def __ge__(self, other: "Money") -> bool:
        self._check(other)
        return self.cents >= other.cents

    def __bool__(self) -> bool:
        return self.cents != 0

    def is_zero(self) -> bool:
        return self.cents == 0

    def prorate(self, numerator: int, denominator: int) -> "Money":
        """Share numerator/denominator of this amount, rounded half up"""
        return Money(round_half_up(self.cents * numerator, denominator), self.currency)

    def percentage(self, percent: Decimal) -> "Money":
        """
        Apply a percentage given as a Decimal (Decimal("2.9") means 2.9%).

        The Decimal is turned into an exact integer ratio first, so no
        intermediate rounding happens before the final half-up step.
        """
        numerator, denominator = Decimal(percent).as_integer_ratio()
        return Money(round_half_up(self.cents * numerator, denominator * 100), self.currency)

    def format(self) -> str:
        """Display string, e.g. "$8.90", "$10", "$-13.33" """
        symbol = CURRENCY_SYMBOLS.get(self.currency, f"{self.currency.upper()} ")
        sign = "-" if self.cents < 0 else ""
        whole, fraction = divmod(abs(self.cents), 100)
        if fraction == 0:
            return f"{symbol}{sign}{whole}"
        return f"{symbol}{sign}{whole}.{fraction:02d}"

    def __str__(self) -> str:
        return self.format()
