"""Integration tests for API endpoints"""

import pytest
from datetime import date
from fastapi.testclient import TestClient
from payout_ledger.domain.exceptions import EligibilityServiceError


def sale(key: str, amount_cents: int, day: str = "2024-06-04", seller_id: str = "seller_1", **fields) -> dict:
    body = {
        "idempotency_key": key,
        "seller_id": seller_id,
        "kind": "sale",
        "occurred_at": f"{day}T12:00:00Z",
        "amount_cents": amount_cents,
        "fee_cents": 0,
    }
    body.update(fields)
    return body


@pytest.fixture
def weekly_seller(client: TestClient) -> str:
    response = client.put(
        "/v1/sellers/seller_1/policy",
        json={"frequency": "weekly", "minimum_payout_cents": 1000},
    )
    assert response.status_code == 200
    return "seller_1"


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "http_request_duration_seconds" in response.text
    assert "balance_index_fallback_total" in response.text


def test_request_id_is_propagated(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"

    assert client.get("/health").headers["X-Request-ID"]


def test_event_ingestion_and_replay(client: TestClient):
    """Test POST /v1/events records once per idempotency key"""
    first = client.post("/v1/events", json=sale("order-1", 10000, fee_cents=1000))
    assert first.status_code == 200
    data = first.json()
    assert data["kind"] == "sale"
    assert data["net_effect_cents"] == 9000
    assert data["balance_period_id"] is not None

    replay = client.post("/v1/events", json=sale("order-1", 10000, fee_cents=1000))
    assert replay.status_code == 200
    assert replay.json()["transaction_id"] == data["transaction_id"]

    balance = client.get("/v1/sellers/seller_1/balance").json()
    assert balance["unpaid_cents"] == 9000
    assert balance["formatted"] == "$90"


def test_tier_fee_applied_when_fee_omitted(client: TestClient):
    body = sale("order-1", 10000)
    del body["fee_cents"]

    response = client.post("/v1/events", json=body)
    assert response.status_code == 200
    assert response.json()["fee_cents"] == 900


def test_unclassifiable_event_is_rejected(client: TestClient):
    """Test refund of an unknown sale returns 422"""
    response = client.post(
        "/v1/events",
        json={
            "idempotency_key": "refund-1",
            "seller_id": "seller_1",
            "kind": "refund",
            "occurred_at": "2024-06-04T12:00:00Z",
            "reference_id": 999,
        },
    )
    assert response.status_code == 422

    assert client.get("/v1/sellers/seller_1/balance").json()["unpaid_cents"] == 0


def test_event_in_foreign_currency_is_rejected(client: TestClient):
    response = client.post("/v1/events", json=sale("order-1", 2500, currency="eur"))
    assert response.status_code == 422

    balance = client.get("/v1/sellers/seller_1/balance").json()
    assert balance["unpaid_cents"] == 0
    assert balance["currency"] == "usd"

    preview = client.get("/v1/sellers/seller_1/forfeitures/preview", params={"reason": "account_closure"})
    assert preview.status_code == 200
    assert preview.json()["forfeited_cents"] == 0


def test_balance_filters(client: TestClient):
    client.post("/v1/events", json=sale("order-1", 1500, day="2024-06-03"))
    client.post("/v1/events", json=sale("order-2", 1000, holder="processor"))

    def unpaid(**params) -> int:
        response = client.get("/v1/sellers/seller_1/balance", params=params)
        assert response.status_code == 200
        return response.json()["unpaid_cents"]

    assert unpaid() == 2500
    assert unpaid(as_of="2024-06-03") == 1500
    assert unpaid(holder="processor") == 1000
    assert unpaid(via="sql") == 2500


def test_periods_and_reconciliation(client: TestClient):
    client.post("/v1/events", json=sale("order-1", 1500))

    periods = client.get("/v1/sellers/seller_1/periods").json()["periods"]
    assert len(periods) == 1
    assert periods[0]["state"] == "unpaid"
    assert periods[0]["amount_cents"] == 1500

    reconciliation = client.get("/v1/sellers/seller_1/reconciliation").json()
    assert reconciliation["consistent"] is True
    assert reconciliation["discrepancies"] == []


def test_sales_breakdown(client: TestClient):
    sold = client.post("/v1/events", json=sale("order-1", 10000, day="2024-06-03", fee_cents=1000)).json()
    refunded = client.post(
        "/v1/events",
        json={
            "idempotency_key": "refund-1",
            "seller_id": "seller_1",
            "kind": "partial_refund",
            "occurred_at": "2024-06-10T12:00:00Z",
            "amount_cents": 4000,
            "reference_id": sold["transaction_id"],
        },
    ).json()

    response = client.get(
        "/v1/sellers/seller_1/sales-breakdown",
        params=[("period_ids", sold["balance_period_id"]), ("period_ids", refunded["balance_period_id"])],
    )
    assert response.status_code == 200
    data = response.json()
    assert data["sales_cents"] == 10000
    assert data["refunds_cents"] == 4000
    assert data["fees_cents"] == 600
    assert data["net_cents"] == 5400


def test_next_payout_requires_policy(client: TestClient):
    client.post("/v1/events", json=sale("order-1", 5000))

    response = client.get("/v1/sellers/seller_1/payouts/next", params={"today": "2024-06-04"})
    assert response.status_code == 409


def test_next_payout_below_minimum(client: TestClient, weekly_seller: str):
    client.post("/v1/events", json=sale("order-1", 500))

    response = client.get(f"/v1/sellers/{weekly_seller}/payouts/next", params={"today": "2024-06-04"})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "below_minimum"
    assert data["payout_date"] is None


def test_payout_flow(client: TestClient, weekly_seller: str, notifier):
    """Test next date, amount, recording, duplicate rejection and webhook"""
    client.post("/v1/events", json=sale("order-1", 1500))

    next_payout = client.get(f"/v1/sellers/{weekly_seller}/payouts/next", params={"today": "2024-06-04"}).json()
    assert next_payout["status"] == "payout_due"
    assert next_payout["payout_date"] == "2024-06-14"
    assert next_payout["amount_cents"] == 1500

    amount = client.get(f"/v1/sellers/{weekly_seller}/payouts/amount", params={"date": "2024-06-07"}).json()
    assert amount["amount_cents"] == 0

    recorded = client.post(
        f"/v1/sellers/{weekly_seller}/payouts",
        json={"payout_date": "2024-06-14", "today": "2024-06-04"},
    )
    assert recorded.status_code == 200
    payout = recorded.json()
    assert payout["amount_cents"] == 1500
    assert payout["state"] == "processing"
    assert payout["period_end"] == "2024-06-07"

    assert notifier.events == [
        {
            "event": "PAYOUT_RECORDED",
            "payout_id": payout["payout_id"],
            "seller_id": weekly_seller,
            "payout_date": "2024-06-14",
            "amount_cents": 1500,
            "instant": False,
        }
    ]

    duplicate = client.post(f"/v1/sellers/{weekly_seller}/payouts", json={"payout_date": "2024-06-14"})
    assert duplicate.status_code == 409

    history = client.get(f"/v1/sellers/{weekly_seller}/payouts").json()
    assert [p["payout_id"] for p in history["payouts"]] == [payout["payout_id"]]

    completed = client.post(f"/v1/payouts/{payout['payout_id']}/complete")
    assert completed.status_code == 200
    assert completed.json()["state"] == "completed"

    again = client.post(f"/v1/payouts/{payout['payout_id']}/fail")
    assert again.status_code == 409


def test_failed_payout_returns_balance(client: TestClient, weekly_seller: str):
    client.post("/v1/events", json=sale("order-1", 1500))
    payout = client.post(f"/v1/sellers/{weekly_seller}/payouts", json={"payout_date": "2024-06-14"}).json()
    assert client.get(f"/v1/sellers/{weekly_seller}/balance").json()["unpaid_cents"] == 0

    failed = client.post(f"/v1/payouts/{payout['payout_id']}/fail")
    assert failed.status_code == 200
    assert failed.json()["state"] == "failed"
    assert client.get(f"/v1/sellers/{weekly_seller}/balance").json()["unpaid_cents"] == 1500


def test_unknown_payout_returns_404(client: TestClient):
    response = client.post("/v1/payouts/404/complete")
    assert response.status_code == 404


def test_eligibility_outage_returns_503(client: TestClient, eligibility):
    client.put("/v1/sellers/seller_1/policy", json={"frequency": "daily", "minimum_payout_cents": 1000})
    client.post("/v1/events", json=sale("order-1", 5000))
    eligibility.error = EligibilityServiceError("Eligibility API timeout")

    response = client.get("/v1/sellers/seller_1/payouts/next", params={"today": "2024-06-04"})
    assert response.status_code == 503


def test_instant_payout_for_eligible_daily_seller(client: TestClient, eligibility):
    client.put("/v1/sellers/seller_1/policy", json={"frequency": "daily", "minimum_payout_cents": 1000})
    client.post("/v1/events", json=sale("order-1", 5000))
    eligibility.allow("seller_1", date(2024, 6, 3))

    data = client.get("/v1/sellers/seller_1/payouts/next", params={"today": "2024-06-04"}).json()
    assert data["payout_date"] == "2024-06-05"


def test_closure_requires_resolved_balance(client: TestClient, notifier):
    """Test closure is blocked with $25 unpaid, then allowed after forfeiture"""
    client.post("/v1/events", json=sale("order-1", 1500))
    client.post("/v1/events", json=sale("order-2", 1000, holder="processor"))

    blocked = client.post("/v1/sellers/seller_1/closure")
    assert blocked.status_code == 409
    detail = blocked.json()["detail"]
    assert detail["unpaid_cents"] == 2500
    assert detail["formatted"] == "$25"

    preview = client.get("/v1/sellers/seller_1/forfeitures/preview", params={"reason": "country_change"}).json()
    assert preview["forfeited_cents"] == 1000

    forfeited = client.post("/v1/sellers/seller_1/forfeitures", json={"reason": "account_closure"})
    assert forfeited.status_code == 200
    assert forfeited.json()["forfeited_cents"] == 2500

    repeat = client.post("/v1/sellers/seller_1/forfeitures", json={})
    assert repeat.json()["forfeited_cents"] == 0

    history = client.get("/v1/sellers/seller_1/forfeitures")
    assert history.status_code == 200
    forfeitures = history.json()["forfeitures"]
    assert len(forfeitures) == 1
    assert forfeitures[0]["reason"] == "account_closure"
    assert forfeitures[0]["amount_cents"] == 2500
    assert len(forfeitures[0]["balance_period_ids"]) == 2
    assert forfeitures[0]["comment"].startswith("Balance of $25 has been forfeited.")

    closed = client.post("/v1/sellers/seller_1/closure")
    assert closed.status_code == 200
    assert closed.json()["closed_at"]

    assert [e["event"] for e in notifier.events] == ["BALANCE_FORFEITED", "ACCOUNT_CLOSED"]
