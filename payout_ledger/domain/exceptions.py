"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class CurrencyMismatch(DomainException):
    """Arithmetic attempted across two different currencies"""

    def __init__(self, left: str, right: str):
        super().__init__(f"Cannot combine {left} with {right}")
        self.left = left
        self.right = right


class UnclassifiableEvent(DomainException):
    """Raw event is malformed or references a transaction that cannot be used"""

    pass


class LedgerIntegrityError(DomainException):
    """Reconciliation invariant violated, or an amount left the storable range"""

    pass


class InvariantViolation(DomainException):
    """Programmer or configuration error, e.g. a seller with no payout policy"""

    pass


class DuplicatePayoutError(InvariantViolation):
    """A non-failed payout already covers the requested date or period range"""

    pass


class UnpaidBalanceError(DomainException):
    """Account cannot be closed while money is still unresolved"""

    def __init__(self, amount):
        super().__init__(f"Unpaid balance of {amount.format()} must be resolved first")
        self.amount = amount


class EligibilityServiceError(DomainException):
    """Instant-payout eligibility service returned an error or is unavailable"""

    pass
