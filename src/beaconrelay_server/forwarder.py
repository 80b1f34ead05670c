from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from .logging_config import get_logger

logger = get_logger(__name__)

# One attempt plus exactly one retry. Any httpx.RequestError (network, timeout,
# redirect loop, undecodable response) counts as a transport failure.
MAX_ATTEMPTS = 2


class Outcome(str, Enum):
    SUCCESS = "success"
    DOWNSTREAM_ERROR = "downstream_error"
    DOWNSTREAM_FAILURE = "downstream_failure"
    TRANSPORT_FAILURE = "transport_failure"


@dataclass(frozen=True)
class ForwardResult:
    outcome: Outcome
    status: Optional[int] = None
    reason: str = ""


class WebhookForwarder:
    """POSTs sanitized beacons to the downstream webhook.

    A response below 500 is final. A 5xx or a transport error (timeouts
    included) gets exactly one identical retry, with no backoff.
    """

    def __init__(
        self,
        url: str,
        timeout_s: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = (url or "").strip()
        self.timeout_s = timeout_s
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s),
            follow_redirects=True,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        return await self._client.post(
            self.url,
            json=payload,
            headers={"Content-Type": "application/json"},
        )

    async def forward(self, payload: Dict[str, Any], request_id: str = "-") -> ForwardResult:
        if not self.configured:
            return ForwardResult(Outcome.TRANSPORT_FAILURE, reason="webhook url not configured")

        last_status: Optional[int] = None
        last_error = ""
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                r = await self._post(payload)
            except httpx.RequestError as ex:
                last_status, last_error = None, type(ex).__name__
                logger.warning(f"[{request_id}] Webhook attempt {attempt}/{MAX_ATTEMPTS} failed: {last_error}: {ex}")
                continue

            if r.status_code >= 500:
                last_status, last_error = r.status_code, f"webhook {r.status_code}"
                logger.warning(f"[{request_id}] Webhook attempt {attempt}/{MAX_ATTEMPTS} returned {r.status_code}")
                continue

            if 200 <= r.status_code < 300:
                return ForwardResult(Outcome.SUCCESS, status=r.status_code)
            return ForwardResult(Outcome.DOWNSTREAM_ERROR, status=r.status_code, reason=f"webhook {r.status_code}")

        if last_status is not None:
            return ForwardResult(Outcome.DOWNSTREAM_FAILURE, status=last_status, reason=last_error)
        return ForwardResult(Outcome.TRANSPORT_FAILURE, reason=last_error)
