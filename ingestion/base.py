"""
Base class for upstream feed clients with bounded retry and rate limiting
"""

from abc import ABC
from typing import Any, Callable, Dict, Optional, TypeVar
import logging

import httpx

from core.config import settings
from core.exceptions import ApiError
from core.rate_limit import RequestGate
from core.retry import retry_async

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transport failures and undecodable bodies are retried; so are these statuses
RETRYABLE_STATUSES = {408, 425, 429, 500, 502, 503, 504}


class RetryableStatus(Exception):
    """Raised inside an attempt for a status worth retrying"""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class FeedClient(ABC):
    """
    Shared request plumbing for every upstream feed.

    Responsibilities:
    - One request in flight per feed (through the shared ``RequestGate``)
    - Fixed attempt ceiling with a fixed delay between attempts
    - Decoding the body inside the attempt so that a garbled response is
      retried like a transport failure
    - Surfacing an exhausted budget as ``ApiError``

    Network I/O only; clients never persist anything.
    """

    def __init__(
        self,
        base_url: str,
        source_name: str,
        gate: Optional[RequestGate] = None,
        timeout: float = None,
        max_retries: int = None,
        retry_delay: float = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.source_name = source_name
        self.gate = gate or RequestGate(settings.REQUEST_MIN_INTERVAL)
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self.max_retries = max_retries if max_retries is not None else settings.MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else settings.RETRY_DELAY
        self.headers = headers or {}
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=self.headers,
            transport=self.transport,
        )

    async def _request(
        self,
        method: str,
        url: str,
        parse: Callable[[Any], T],
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> T:
        """
        Issue one logical request, retrying transient failures.

        Args:
            method: HTTP method
            url: Absolute URL
            parse: Maps the decoded JSON body to the caller's type; a
                ``ValueError`` raised here counts as a decode failure
            params: Query parameters
            json_body: JSON request body

        Raises:
            ApiError: Non-retryable status, or retry budget exhausted
        """

        async def attempt() -> T:
            async with self.gate:
                logger.debug(f"[{self.source_name}] {method} {url} params={params}")
                async with self._client() as client:
                    response = await client.request(method, url, params=params, json=json_body)

            if response.status_code in RETRYABLE_STATUSES:
                raise RetryableStatus(response.status_code, response.text[:500])

            if response.status_code >= 400:
                raise ApiError(
                    f"Upstream rejected request with HTTP {response.status_code}",
                    context={
                        "source_name": self.source_name,
                        "url": url,
                        "params": params,
                        "status_code": response.status_code,
                        "response_body": response.text[:500],
                    }
                )

            return parse(response.json())

        outcome = await retry_async(
            attempt,
            max_attempts=self.max_retries,
            delay=self.retry_delay,
            retry_on=(httpx.TransportError, RetryableStatus, ValueError),
            label=f"{self.source_name} {method} {url}",
        )

        if not outcome.ok:
            context = {
                "source_name": self.source_name,
                "url": url,
                "params": params,
                "attempts": outcome.attempts,
            }
            if isinstance(outcome.error, RetryableStatus):
                context["status_code"] = outcome.error.status_code
                context["response_body"] = outcome.error.body
            raise ApiError(
                f"Request failed after {outcome.attempts} attempts",
                context=context,
                original_exception=outcome.error,
            )

        return outcome.value
