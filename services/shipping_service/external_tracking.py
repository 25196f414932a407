"""AfterShip tracking lookup, mapped onto a carrier-neutral event list."""
import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.errors import ExternalServiceError

from .models import ExternalCheckpoint, ExternalTracking

logger = logging.getLogger(__name__)

NO_KEY_MESSAGE = "No tracking API key configured"


def map_checkpoint(checkpoint: Dict[str, Any]) -> ExternalCheckpoint:
    """Normalise one AfterShip checkpoint."""
    parts = (checkpoint.get("city"), checkpoint.get("state"), checkpoint.get("country_name"))
    return ExternalCheckpoint(
        date=checkpoint.get("checkpoint_time") or checkpoint.get("created_at"),
        status=checkpoint.get("message") or checkpoint.get("tag"),
        location=", ".join(part for part in parts if part),
        tag=checkpoint.get("tag"),
    )


class AfterShipClient:
    """Client for the AfterShip v4 trackings API."""

    api_url = "https://api.aftership.com/v4"

    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        max_attempts: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def open(self):
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self):
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def track(self, tracking_number: str) -> ExternalTracking:
        """
        Look up a tracking number.

        Returns an empty event list with an explanation when no key is
        configured or the provider reports an error.

        Raises:
            ExternalServiceError: the provider could not be reached or
                returned an unreadable response
        """
        if not self.configured:
            return ExternalTracking(error=NO_KEY_MESSAGE)

        data = await self._fetch(tracking_number)

        meta = data.get("meta") or {}
        if meta.get("code") != 200:
            logger.warning(f"AfterShip lookup for {tracking_number} failed: {meta.get('message')}")
            return ExternalTracking(error=meta.get("message") or "Tracking lookup failed")

        trackings = (data.get("data") or {}).get("trackings") or []
        if not trackings:
            return ExternalTracking()

        tracking = trackings[0]
        return ExternalTracking(
            events=[map_checkpoint(cp) for cp in tracking.get("checkpoints") or []],
            current_status=tracking.get("tag"),
            slug=tracking.get("slug"),
        )

    async def _fetch(self, tracking_number: str) -> Dict[str, Any]:
        if self.client is None:
            raise RuntimeError("AfterShip client not opened")

        params = {
            "tracking_numbers": tracking_number,
            "fields": "checkpoints,tag,expected_delivery",
        }
        headers = {
            "aftership-api-key": self.api_key,
            "Content-Type": "application/json",
        }

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await self.client.get(
                        f"{self.api_url}/trackings", params=params, headers=headers
                    )
            data = response.json()
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Tracking provider unreachable: {e}") from e
        except ValueError as e:
            raise ExternalServiceError(f"Tracking provider returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ExternalServiceError("Tracking provider returned an unexpected response")
        return data
