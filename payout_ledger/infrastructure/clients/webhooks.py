"""Notification webhook client with exponential backoff retry logic"""

import httpx
import asyncio
import logging
from typing import Dict, Any
from payout_ledger.config import settings
from payout_ledger.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter


class NotificationClient:
    """Sends ledger events (payouts, forfeitures, closures) to the notification service"""

    def __init__(self, webhook_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.transport = transport

    async def send_event(self, payload: Dict[str, Any]) -> None:
        """
        Deliver one event, retrying with exponential backoff.

        Only ever scheduled after the ledger mutation committed, so a failed
        delivery never affects balances.

        Retry strategy:
        - Backoff base * 2^(attempt - 1): 1s, 2s, 4s, 8s with the defaults
        - Retries on 5xx/4xx errors and network failures
        - Tracks latency histogram and failure counter

        Args:
            payload: Event data, e.g. {"event": "PAYOUT_RECORDED", "seller_id": ...}
        """
        attempt = 0
        async with httpx.AsyncClient(transport=self.transport) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json=payload,
                            timeout=settings.http_timeout_seconds,
                        )
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.inc()

                    if attempt >= self.max_retries:
                        logging.error(
                            f"Webhook delivery failed after {attempt} attempts: {e}",
                            extra={"event": payload.get("event"), "seller_id": payload.get("seller_id")},
                        )
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
