"""Integration tests for the outbound HTTP clients"""

import asyncio
import httpx
import pytest
from datetime import date
from payout_ledger.domain.exceptions import EligibilityServiceError
from payout_ledger.infrastructure.clients.eligibility import EligibilityClient
from payout_ledger.infrastructure.clients.webhooks import NotificationClient

BASE_URL = "http://eligibility.test"


def eligibility_client(handler) -> EligibilityClient:
    return EligibilityClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


def test_eligibility_query():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"seller_id": "seller_daily", "eligible": True})

    assert eligibility_client(handler).is_instant_eligible("seller_daily", date(2024, 6, 3)) is True
    assert seen[0].url.path == "/eligibility/instant"
    assert seen[0].url.params["seller_id"] == "seller_daily"
    assert seen[0].url.params["date"] == "2024-06-03"


def test_eligibility_server_error():
    client = eligibility_client(lambda request: httpx.Response(500))

    with pytest.raises(EligibilityServiceError, match="500"):
        client.is_instant_eligible("seller_daily", date(2024, 6, 3))


def test_eligibility_invalid_payload():
    for body in ({"status": "ok"}, {"eligible": "yes"}):
        client = eligibility_client(lambda request, body=body: httpx.Response(200, json=body))
        with pytest.raises(EligibilityServiceError, match="Invalid eligibility data"):
            client.is_instant_eligible("seller_daily", date(2024, 6, 3))

    client = eligibility_client(lambda request: httpx.Response(200, text="not json"))
    with pytest.raises(EligibilityServiceError):
        client.is_instant_eligible("seller_daily", date(2024, 6, 3))


def test_eligibility_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(EligibilityServiceError, match="unreachable"):
        eligibility_client(handler).is_instant_eligible("seller_daily", date(2024, 6, 3))


def test_eligibility_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(EligibilityServiceError, match="timeout"):
        eligibility_client(handler).is_instant_eligible("seller_daily", date(2024, 6, 3))


def test_webhook_retries_until_delivered():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(503) if len(attempts) < 3 else httpx.Response(200, json={"received": True})

    client = NotificationClient(webhook_url="http://notify.test/hook", transport=httpx.MockTransport(handler))
    client.backoff_base = 0

    asyncio.run(client.send_event({"event": "PAYOUT_RECORDED", "seller_id": "seller_1"}))

    assert len(attempts) == 3


def test_webhook_gives_up_after_max_retries():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(500)

    client = NotificationClient(webhook_url="http://notify.test/hook", transport=httpx.MockTransport(handler))
    client.backoff_base = 0
    client.max_retries = 2

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.send_event({"event": "ACCOUNT_CLOSED", "seller_id": "seller_1"}))

    assert len(attempts) == 2
