"""Certificate revocation lookups: simulated OCSP responder and HTTP revocation client"""

import asyncio
import random
from typing import Optional, Sequence

import httpx

from telemed_core.config import settings
from telemed_core.domain.certificates import STATUS_REVOKED, STATUS_VALID
from telemed_core.infrastructure.observability.metrics import revocation_failure_counter


class SimulatedOcspResponder:
    """
    Development stand-in for an ICP-Brasil OCSP responder.

    Answers after a short delay with a status drawn from `statuses`
    (by default three in four answers are VÁLIDO). Pass a seeded `rng` or a
    single-status sequence for deterministic behaviour.
    """

    DEFAULT_STATUSES = (STATUS_VALID, STATUS_VALID, STATUS_VALID, STATUS_REVOKED)

    def __init__(
        self,
        delay_seconds: Optional[float] = None,
        statuses: Sequence[str] = DEFAULT_STATUSES,
        rng: Optional[random.Random] = None,
    ):
        self.delay_seconds = settings.ocsp_delay_seconds if delay_seconds is None else delay_seconds
        self.statuses = tuple(statuses)
        self.rng = rng or random.Random()

    async def check(self, serial_number: str) -> str:
        await asyncio.sleep(self.delay_seconds)
        return self.rng.choice(self.statuses)


class HttpRevocationChecker:
    """Client for a revocation status service: GET {base_url}/certificates/{serial}/status"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.revocation_service_url or "").rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.revocation_max_retries
        self.backoff_base = settings.revocation_backoff_base
        self.transport = transport

    async def check(self, serial_number: str) -> str:
        """
        Fetch certificate status with retry logic.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base, ...
        - Retries on 5xx errors and network failures; 4xx fails immediately

        Raises:
            httpx.HTTPError: after the final failed attempt
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    response = await client.get(f"{self.base_url}/certificates/{serial_number}/status")
                    response.raise_for_status()
                    return response.json()["status"]

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    revocation_failure_counter.inc()

                    retryable = not isinstance(e, httpx.HTTPStatusError) or e.response.status_code >= 500
                    if not retryable or attempt >= self.max_retries:
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
