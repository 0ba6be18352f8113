"""Conditional GETs against the Nexus, with retry for the retryable failures.

A stored validator token (the ``ETag`` of the last full response) is sent as
``If-None-Match``. The Nexus answers 304 when nothing changed, but a 304 still
spends one request of the hourly/daily budget, so every attempt is counted.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from modcache.exceptions import (
    AuthFailedError,
    FetchError,
    RateLimitedError,
    RemoteNotFoundError,
    TransientError,
)
from modcache.nexus.client import NexusClient, TransportResponse

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 3
_BACKOFF_BASE = 2.0  # seconds; doubled per retry


@dataclass(frozen=True, slots=True)
class Unchanged:
    token: str


@dataclass(frozen=True, slots=True)
class Changed:
    payload: Any
    token: str | None


FetchResult = Unchanged | Changed


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, FetchError) and error.retryable


def _log_retry(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome else None
    delay = state.next_action.sleep if state.next_action else 0.0
    logger.warning(
        "%s (attempt %d/%d); retrying in %.1fs", error, state.attempt_number, _MAX_ATTEMPTS, delay
    )


class ConditionalFetcher:
    def __init__(self, client: NexusClient) -> None:
        self.client = client
        self.requests = 0
        self.unchanged = 0

    def _classify(self, resource: str, resp: TransportResponse) -> FetchError:
        status = resp.status_code
        if status in (401, 403):
            return AuthFailedError(f"Nexus rejected the API key for {resource}", status)
        if status == 404:
            return RemoteNotFoundError(f"{resource} not found on the Nexus", status)
        if status == 429:
            return RateLimitedError(
                hourly_remaining=self.client.hourly_remaining,
                daily_remaining=self.client.daily_remaining,
                reset=self.client.hourly_reset,
            )
        if status >= 500:
            return TransientError(f"Nexus returned {status} for {resource}", status)
        return FetchError(f"Unexpected response {status} for {resource}", status)

    async def _attempt(
        self,
        method: str,
        resource: str,
        etag: str | None,
        data: dict[str, Any] | None,
    ) -> TransportResponse:
        self.requests += 1
        try:
            resp = await self.client.request(method, resource, etag=etag, data=data)
        except httpx.TransportError as e:
            raise TransientError(f"Transport error for {resource}: {e}") from e
        if resp.status_code < 300 or resp.status_code == 304:
            return resp
        raise self._classify(resource, resp)

    async def _call(
        self,
        method: str,
        resource: str,
        *,
        etag: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> TransportResponse:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(_MAX_ATTEMPTS),
            wait=wait_exponential(multiplier=_BACKOFF_BASE),
            retry=retry_if_exception(_is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(self._attempt, method, resource, etag, data)

    async def fetch(
        self, resource: str, prior_token: str | None = None, *, force: bool = False
    ) -> FetchResult:
        etag = None if force else prior_token
        resp = await self._call("GET", resource, etag=etag)
        if resp.status_code == 304:
            if not etag:
                raise FetchError(f"Unsolicited 304 for {resource}", 304)
            self.unchanged += 1
            return Unchanged(token=etag)
        return Changed(payload=resp.body, token=resp.etag)

    async def send(
        self, method: str, resource: str, *, data: dict[str, Any] | None = None
    ) -> Any:
        """Issue an unconditional write (track, endorse, ...) and return its body."""
        resp = await self._call(method, resource, data=data)
        return resp.body
