"""
E2E tests for a seller's full ledger lifecycle against the real eligibility API.

These tests require the mock eligibility server to be running:
    uvicorn mock.eligibility_server.main:app --port 8001

Sellers:
- seller_daily: daily payouts, instant-eligible 2024-06-03..05 (eligibility_stub/)
- seller_weekly: weekly payouts, unknown to the eligibility service
"""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from payout_ledger.api.dependencies import get_notification_client
from payout_ledger.api.main import create_app
from payout_ledger.config import settings
from payout_ledger.infrastructure.database.session import get_db


@pytest.fixture(scope="module", autouse=True)
def eligibility_server():
    try:
        httpx.get(f"{settings.eligibility_api_base}/health", timeout=1.0).raise_for_status()
    except httpx.HTTPError:
        pytest.skip("mock eligibility server is not running")


@pytest.fixture
def live_client(db: Session, notifier) -> TestClient:
    """Test client that talks to the running eligibility service"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_client] = lambda: notifier
    return TestClient(app)


def post_event(client: TestClient, key: str, seller_id: str, kind: str, day: str, **fields) -> dict:
    response = client.post(
        "/v1/events",
        json={
            "idempotency_key": key,
            "seller_id": seller_id,
            "kind": kind,
            "occurred_at": f"{day}T12:00:00Z",
            **fields,
        },
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.integration
def test_daily_seller_instant_payout(live_client: TestClient):
    """
    seller_daily: instant-eligible yesterday
    Expected: paid tomorrow, from platform-held funds only
    """
    live_client.put("/v1/sellers/seller_daily/policy", json={"frequency": "daily", "minimum_payout_cents": 1000})
    post_event(live_client, "d-1", "seller_daily", "sale", "2024-06-04", amount_cents=5000)
    post_event(live_client, "d-2", "seller_daily", "sale", "2024-06-04", amount_cents=3000, holder="processor")

    data = live_client.get("/v1/sellers/seller_daily/payouts/next", params={"today": "2024-06-04"}).json()
    assert data["payout_date"] == "2024-06-05"
    assert data["instant"] is True
    assert data["amount_cents"] == 4550  # $50 less the 9% tier fee

    payout = live_client.post(
        "/v1/sellers/seller_daily/payouts",
        json={"payout_date": "2024-06-05", "today": "2024-06-04"},
    ).json()
    assert payout["instant"] is True
    assert payout["amount_cents"] == data["amount_cents"]

    remaining = live_client.get("/v1/sellers/seller_daily/balance").json()
    assert remaining["unpaid_cents"] == 2817  # processor-held $30 less 6.1%


@pytest.mark.integration
def test_weekly_seller_full_lifecycle(live_client: TestClient, notifier):
    """
    seller_weekly: sale, partial refund, weekly payout, failure, retry, closure
    Expected: balance always reconciles, closure only once everything is resolved
    """
    live_client.put("/v1/sellers/seller_weekly/policy", json={"frequency": "weekly", "minimum_payout_cents": 1000})
    sale = post_event(live_client, "w-1", "seller_weekly", "sale", "2024-05-20", amount_cents=10000, fee_cents=1000)
    post_event(
        live_client, "w-2", "seller_weekly", "partial_refund", "2024-05-21", amount_cents=4000, reference_id=sale["transaction_id"]
    )

    next_payout = live_client.get("/v1/sellers/seller_weekly/payouts/next", params={"today": "2024-05-28"}).json()
    assert next_payout["payout_date"] == "2024-05-31"
    assert next_payout["amount_cents"] == 5400

    payout = live_client.post("/v1/sellers/seller_weekly/payouts", json={"payout_date": "2024-05-31"}).json()
    assert payout["amount_cents"] == 5400

    failed = live_client.post(f"/v1/payouts/{payout['payout_id']}/fail").json()
    assert failed["state"] == "failed"
    assert live_client.get("/v1/sellers/seller_weekly/balance").json()["unpaid_cents"] == 5400

    retry = live_client.post("/v1/sellers/seller_weekly/payouts", json={"payout_date": "2024-05-31"}).json()
    live_client.post(f"/v1/payouts/{retry['payout_id']}/complete")
    assert live_client.get("/v1/sellers/seller_weekly/balance").json()["unpaid_cents"] == 0
    assert live_client.get("/v1/sellers/seller_weekly/reconciliation").json()["consistent"] is True

    closed = live_client.post("/v1/sellers/seller_weekly/closure")
    assert closed.status_code == 200
    assert [e["event"] for e in notifier.events] == ["PAYOUT_RECORDED", "PAYOUT_RECORDED", "ACCOUNT_CLOSED"]
