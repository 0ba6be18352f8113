import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Self

import httpx

from modcache import __version__
from modcache.schemas.nexus import NexusKeyResult

logger = logging.getLogger(__name__)

BASE_URL = "https://api.nexusmods.com"
USER_AGENT = f"modcache/{__version__}"


@dataclass(frozen=True, slots=True)
class TransportResponse:
    status_code: int
    body: Any
    etag: str | None
    headers: httpx.Headers


class NexusClient:
    """Thin transport over the Nexus v1 API, bound to one API key.

    ``request`` never interprets status codes; classification lives in
    :class:`modcache.nexus.fetcher.ConditionalFetcher`. Transport-level
    failures surface as ``httpx.TransportError``.
    """

    def __init__(self, api_key: str, *, base_url: str = BASE_URL) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._client: httpx.AsyncClient | None = None
        self.hourly_remaining: int | None = None
        self.daily_remaining: int | None = None
        self.hourly_reset: str = ""
        self.daily_reset: str = ""

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "APIKEY": self._api_key,
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            },
            timeout=30.0,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("NexusClient not entered as context manager")
        return self._client

    def _read_rate_limit_headers(self, resp: httpx.Response) -> None:
        h_rem = resp.headers.get("X-RL-Hourly-Remaining")
        d_rem = resp.headers.get("X-RL-Daily-Remaining")
        if h_rem is not None:
            self.hourly_remaining = int(h_rem)
        if d_rem is not None:
            self.daily_remaining = int(d_rem)
        self.hourly_reset = resp.headers.get("X-RL-Hourly-Reset", self.hourly_reset)
        self.daily_reset = resp.headers.get("X-RL-Daily-Reset", self.daily_reset)

    async def request(
        self,
        method: str,
        path: str,
        *,
        etag: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> TransportResponse:
        headers = {"If-None-Match": etag} if etag else None
        resp = await self.client.request(method, path, headers=headers, data=data)
        self._read_rate_limit_headers(resp)
        logger.debug("%s %s -> %d", method, path, resp.status_code)

        body: Any = None
        if resp.status_code != 304 and resp.content:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
        return TransportResponse(
            status_code=resp.status_code,
            body=body,
            etag=resp.headers.get("ETag"),
            headers=resp.headers,
        )

    async def validate_key(self) -> NexusKeyResult:
        try:
            resp = await self.request("GET", "/v1/users/validate.json")
        except httpx.HTTPError as e:
            return NexusKeyResult(valid=False, error=str(e))
        if resp.status_code != 200 or not isinstance(resp.body, dict):
            return NexusKeyResult(valid=False, error=f"HTTP {resp.status_code}")
        data = resp.body
        return NexusKeyResult(
            valid=True,
            username=data.get("name", ""),
            user_id=data.get("user_id"),
            is_premium=data.get("is_premium", False),
            is_supporter=data.get("is_supporter", False),
        )


def game_path(game_domain: str) -> str:
    return f"/v1/games/{game_domain}.json"


def mod_path(game_domain: str, mod_id: int) -> str:
    return f"/v1/games/{game_domain}/mods/{mod_id}.json"


def changelogs_path(game_domain: str, mod_id: int) -> str:
    return f"/v1/games/{game_domain}/mods/{mod_id}/changelogs.json"


def files_path(game_domain: str, mod_id: int) -> str:
    return f"/v1/games/{game_domain}/mods/{mod_id}/files.json"


def endorse_path(game_domain: str, mod_id: int) -> str:
    return f"/v1/games/{game_domain}/mods/{mod_id}/endorse.json"


def abstain_path(game_domain: str, mod_id: int) -> str:
    return f"/v1/games/{game_domain}/mods/{mod_id}/abstain.json"


def tracked_path(game_domain: str | None = None) -> str:
    if game_domain:
        return f"/v1/user/tracked_mods.json?domain_name={game_domain}"
    return "/v1/user/tracked_mods.json"


ENDORSEMENTS_PATH = "/v1/user/endorsements.json"
