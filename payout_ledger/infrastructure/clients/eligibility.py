"""Instant-payout eligibility HTTP client"""

import httpx
from datetime import date
from payout_ledger.domain.exceptions import EligibilityServiceError
from payout_ledger.config import settings


class EligibilityClient:
    """Client for the external risk/eligibility service"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url or settings.eligibility_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    def is_instant_eligible(self, seller_id: str, day: date) -> bool:
        """
        Whether the seller could take an instant payout on the given day.

        Raises:
            EligibilityServiceError: On timeout, HTTP errors, or invalid response
        """
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = client.get(
                    f"{self.base_url}/eligibility/instant",
                    params={"seller_id": seller_id, "date": day.isoformat()},
                )
                response.raise_for_status()
                data = response.json()
                eligible = data["eligible"]
                if not isinstance(eligible, bool):
                    raise TypeError(f"eligible must be a bool, got {type(eligible).__name__}")
                return eligible

            except httpx.TimeoutException as e:
                raise EligibilityServiceError(f"Eligibility API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise EligibilityServiceError(f"Eligibility API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise EligibilityServiceError(f"Eligibility API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise EligibilityServiceError(f"Invalid eligibility data: {e}") from e
