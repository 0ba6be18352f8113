"""Bounded bulk ingestion of tracked mods that are not cached yet (or are stale).

The walker keeps no position of its own: every page is re-read from the
store, so an interrupted or capped run is resumed simply by running again.
"""

import logging
from datetime import datetime, timedelta
from enum import StrEnum

from sqlmodel import Session

from modcache.exceptions import AuthFailedError, FetchError, RemoteNotFoundError, StoreError
from modcache.nexus.client import mod_path
from modcache.nexus.fetcher import ConditionalFetcher
from modcache.schemas.nexus import PopulateResult
from modcache.services import store
from modcache.services.sync import reconcile_mod
from modcache.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

PAGE_SIZE = 10


class WalkState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    DONE = "done"
    ABORTED = "aborted"


class PopulationWalker:
    def __init__(
        self,
        fetcher: ConditionalFetcher,
        session: Session,
        *,
        limit: int,
        game: str | None = None,
        stale_after: timedelta | None = None,
        force: bool = False,
    ) -> None:
        self.fetcher = fetcher
        self.session = session
        self.limit = limit
        self.game = game
        self.stale_after = stale_after
        self.force = force
        self.state = WalkState.IDLE
        self.page = 0
        self._started: datetime | None = None
        self._attempted: set[tuple[str, int]] = set()
        self._last_pending = 0

    def _stale_before(self) -> datetime | None:
        if self.stale_after is None or self._started is None:
            return None
        return self._started - self.stale_after

    def _pending(self) -> list[tuple[str, int]]:
        with store.reading(self.session):
            pending = store.pending_mods(
                self.session, self.game, stale_before=self._stale_before()
            )
        self._last_pending = len(pending)
        return pending

    def _next_page(self) -> list[tuple[str, int]]:
        room = min(PAGE_SIZE, self.limit - len(self._attempted))
        if room <= 0:
            return []
        return [key for key in self._pending() if key not in self._attempted][:room]

    async def _process(self, domain_name: str, mod_id: int, result: PopulateResult) -> None:
        self._attempted.add((domain_name, mod_id))
        self.state = WalkState.FETCHING
        with store.reading(self.session):
            mod = store.find_mod(self.session, domain_name, mod_id)
        try:
            fetched = await self.fetcher.fetch(
                mod_path(domain_name, mod_id), mod.etag if mod else None, force=self.force
            )
        except RemoteNotFoundError:
            self.state = WalkState.RECONCILING
            store.mark_deleted(self.session, domain_name, mod_id)
            result.processed += 1
            return
        except AuthFailedError:
            raise
        except FetchError as e:
            logger.warning("Skipping %s/%d: %s", domain_name, mod_id, e)
            result.skipped += 1
            return

        self.state = WalkState.RECONCILING
        try:
            reconcile_mod(self.session, domain_name, mod_id, fetched)
        except FetchError as e:
            # malformed payload; nothing was written
            logger.warning("Skipping %s/%d: %s", domain_name, mod_id, e)
            result.skipped += 1
            return
        result.processed += 1

    async def run(self) -> PopulateResult:
        self._started = utcnow()
        self._attempted.clear()
        requests_before = self.fetcher.requests
        unchanged_before = self.fetcher.unchanged
        result = PopulateResult(game=self.game)
        logger.info("Population walk started (game=%s, limit=%d)", self.game or "*", self.limit)

        try:
            while page := self._next_page():
                self.page += 1
                logger.debug("Page %d: %d item(s)", self.page, len(page))
                for domain_name, mod_id in page:
                    await self._process(domain_name, mod_id, result)
            self.state = WalkState.DONE
        except AuthFailedError as e:
            self.state = WalkState.ABORTED
            result.aborted = True
            result.abort_reason = str(e)
            logger.error("Population walk aborted: %s", e)
        except StoreError as e:
            self.state = WalkState.ABORTED
            result.aborted = True
            result.abort_reason = str(e)
            logger.exception("Population walk aborted on a store failure")

        try:
            result.remaining = len(self._pending())
        except StoreError as e:
            # keep the last count that could be read
            logger.warning("Could not count remaining mods: %s", e)
            result.remaining = self._last_pending
        result.requests = self.fetcher.requests - requests_before
        result.unchanged = self.fetcher.unchanged - unchanged_before
        logger.info(
            "Population walk %s: processed=%d skipped=%d remaining=%d requests=%d",
            self.state,
            result.processed,
            result.skipped,
            result.remaining,
            result.requests,
        )
        return result
