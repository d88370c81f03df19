"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from payout_ledger.infrastructure.clients.eligibility import EligibilityClient
from payout_ledger.infrastructure.clients.webhooks import NotificationClient
from payout_ledger.infrastructure.database.session import get_db
from payout_ledger.services.forfeiture import ForfeitureEngine
from payout_ledger.services.ledger import BalanceLedger
from payout_ledger.services.scheduler import PayoutScheduler


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_eligibility_client() -> EligibilityClient:
    """Provide instant-payout eligibility client instance"""
    return EligibilityClient()


def get_notification_client() -> NotificationClient:
    """Provide notification webhook client instance"""
    return NotificationClient()


def get_ledger(db: Session = Depends(get_db)) -> BalanceLedger:
    return BalanceLedger(db)


def get_scheduler(
    db: Session = Depends(get_db),
    ledger: BalanceLedger = Depends(get_ledger),
    eligibility: EligibilityClient = Depends(get_eligibility_client),
) -> PayoutScheduler:
    return PayoutScheduler(db, ledger, eligibility.is_instant_eligible)


def get_forfeiture_engine(
    db: Session = Depends(get_db),
    ledger: BalanceLedger = Depends(get_ledger),
) -> ForfeitureEngine:
    return ForfeitureEngine(db, ledger)
