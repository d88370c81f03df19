"""Pytest fixtures for testing"""

import itertools
import pytest
from datetime import date, datetime, timezone
from typing import Callable, Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from payout_ledger.api.main import create_app
from payout_ledger.api.dependencies import get_eligibility_client, get_notification_client
from payout_ledger.infrastructure.database.models import Base
from payout_ledger.infrastructure.database.repositories import SellerRepository
from payout_ledger.infrastructure.database.session import get_db
from payout_ledger.domain.models import PayoutFrequency, PayoutSchedulePolicy, RawEvent
from payout_ledger.services.forfeiture import ForfeitureEngine
from payout_ledger.services.ledger import BalanceLedger
from payout_ledger.services.scheduler import PayoutScheduler


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeEligibility:
    """Instant-payout eligibility keyed on (seller, day)"""

    def __init__(self):
        self.eligible = set()
        self.error = None
        self.calls = []

    def allow(self, seller_id: str, *days: date) -> None:
        self.eligible.update((seller_id, d) for d in days)

    def is_instant_eligible(self, seller_id: str, day: date) -> bool:
        self.calls.append((seller_id, day))
        if self.error is not None:
            raise self.error
        return (seller_id, day) in self.eligible


class RecordingNotifier:
    """Collects webhook payloads instead of sending them"""

    def __init__(self):
        self.events: List[dict] = []

    async def send_event(self, payload: dict) -> None:
        self.events.append(payload)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Independent sessions on the test database, one per worker thread"""
    return TestingSessionLocal


@pytest.fixture
def eligibility() -> FakeEligibility:
    return FakeEligibility()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ledger(db: Session) -> BalanceLedger:
    return BalanceLedger(db)


@pytest.fixture
def scheduler(db: Session, ledger: BalanceLedger, eligibility: FakeEligibility) -> PayoutScheduler:
    return PayoutScheduler(db, ledger, eligibility.is_instant_eligible)


@pytest.fixture
def forfeiture(db: Session, ledger: BalanceLedger) -> ForfeitureEngine:
    return ForfeitureEngine(db, ledger)


@pytest.fixture
def client(db: Session, eligibility: FakeEligibility, notifier: RecordingNotifier) -> TestClient:
    """Create FastAPI test client with test database and in-memory collaborators"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_eligibility_client] = lambda: eligibility
    app.dependency_overrides[get_notification_client] = lambda: notifier
    return TestClient(app)


@pytest.fixture
def set_policy(db: Session) -> Callable[..., None]:
    """Write a seller's payout policy the way the settings subsystem would"""

    def _set(
        seller_id: str,
        frequency: PayoutFrequency = PayoutFrequency.WEEKLY,
        minimum_payout_cents: int = 1000,
        forfeit_balance_on_closure: bool = True,
    ) -> None:
        SellerRepository(db).set_policy(
            seller_id,
            PayoutSchedulePolicy(frequency, minimum_payout_cents, forfeit_balance_on_closure),
        )
        db.commit()

    return _set


@pytest.fixture
def make_event() -> Callable[..., RawEvent]:
    """
    Raw event factory with unique idempotency keys.

    Sales default to a zero fee so balances are easy to follow; pass
    fee_cents=None to let the ledger apply the tier fee.
    """
    counter = itertools.count(1)

    def _make(kind: str = "sale", seller_id: str = "seller_1", occurred_on: date = date(2024, 6, 4), **fields) -> RawEvent:
        if kind == "sale":
            fields.setdefault("fee_cents", 0)
        return RawEvent(
            idempotency_key=fields.pop("idempotency_key", f"evt_{next(counter)}"),
            seller_id=seller_id,
            kind=kind,
            occurred_at=datetime(occurred_on.year, occurred_on.month, occurred_on.day, 12, 0, tzinfo=timezone.utc),
            currency=fields.pop("currency", "usd"),
            **fields,
        )

    return _make
