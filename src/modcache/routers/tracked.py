from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from modcache.config import settings
from modcache.database import get_session
from modcache.exceptions import FetchError
from modcache.nexus.fetcher import ConditionalFetcher
from modcache.routers.deps import get_fetcher, get_game_or_404
from modcache.schemas.mod import TrackedGameSummary, TrackedModOut
from modcache.schemas.nexus import (
    ModActionResult,
    PopulateResult,
    TrackedSyncResult,
    UntrackRemovedResult,
)
from modcache.services import mod_actions, queries, sync
from modcache.services.populate import PopulationWalker

router = APIRouter(prefix="/tracked", tags=["tracked"])


@router.get("/", response_model=list[TrackedGameSummary])
def tracked_games(session: Session = Depends(get_session)) -> list[TrackedGameSummary]:
    return queries.tracked_summary(session)


@router.post("/sync", response_model=TrackedSyncResult)
async def sync_tracked(
    force: bool = False,
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> TrackedSyncResult:
    return await sync.sync_tracked(fetcher, session, force=force or settings.force_refresh)


def _populate_walker(
    fetcher: ConditionalFetcher,
    session: Session,
    domain_name: str,
    limit: int | None,
    force: bool,
) -> PopulationWalker:
    stale_after = (
        timedelta(days=settings.stale_after_days) if settings.stale_after_days > 0 else None
    )
    return PopulationWalker(
        fetcher,
        session,
        limit=limit or settings.populate_limit,
        game=domain_name,
        stale_after=stale_after,
        force=force or settings.force_refresh,
    )


async def _update(
    fetcher: ConditionalFetcher, session: Session, domain_name: str, limit: int | None
) -> PopulateResult:
    # refresh the tracked list first so newly tracked mods are walked too
    await sync.sync_tracked(fetcher, session, force=settings.force_refresh)
    walker = PopulationWalker(
        fetcher,
        session,
        limit=limit or settings.populate_limit,
        game=domain_name,
        stale_after=timedelta(0),
        force=settings.force_refresh,
    )
    return await walker.run()


@router.post("/populate", response_model=PopulateResult)
async def populate_default(
    limit: int | None = Query(default=None, ge=1),
    force: bool = False,
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> PopulateResult:
    """Populate the configured default game."""
    walker = _populate_walker(fetcher, session, settings.default_game, limit, force)
    return await walker.run()


@router.post("/update", response_model=PopulateResult)
async def update_default(
    limit: int | None = Query(default=None, ge=1),
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> PopulateResult:
    """Update the configured default game."""
    return await _update(fetcher, session, settings.default_game, limit)


@router.get("/{domain_name}", response_model=list[TrackedModOut])
def tracked_for_game(
    domain_name: str, session: Session = Depends(get_session)
) -> list[TrackedModOut]:
    get_game_or_404(domain_name, session)
    return queries.tracked_mods(session, domain_name)


@router.post("/{domain_name}/populate", response_model=PopulateResult)
async def populate(
    domain_name: str,
    limit: int | None = Query(default=None, ge=1),
    force: bool = False,
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> PopulateResult:
    """Fetch tracked mods that are not cached yet, then any past the staleness window."""
    return await _populate_walker(fetcher, session, domain_name, limit, force).run()


@router.post("/{domain_name}/update", response_model=PopulateResult)
async def update(
    domain_name: str,
    limit: int | None = Query(default=None, ge=1),
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> PopulateResult:
    """Sync the tracked list, then re-check every tracked mod of the game conditionally."""
    return await _update(fetcher, session, domain_name, limit)


@router.post("/{domain_name}/untrack-removed", response_model=UntrackRemovedResult)
async def untrack_removed(
    domain_name: str,
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> UntrackRemovedResult:
    get_game_or_404(domain_name, session)
    return await mod_actions.untrack_removed(fetcher, session, domain_name)


@router.post("/{domain_name}/{mod_id}", response_model=ModActionResult)
async def track_mod(
    domain_name: str,
    mod_id: int,
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> ModActionResult:
    return await mod_actions.track(fetcher, session, domain_name, mod_id)


@router.delete("/{domain_name}", response_model=list[ModActionResult])
async def untrack_mods(
    domain_name: str,
    ids: list[int] = Query(min_length=1),
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> list[ModActionResult]:
    results: list[ModActionResult] = []
    for mod_id in ids:
        try:
            results.append(await mod_actions.untrack(fetcher, session, domain_name, mod_id))
        except FetchError as e:
            if e.fatal:
                raise
            results.append(
                ModActionResult(
                    domain_name=domain_name, mod_id=mod_id, success=False, message=str(e)
                )
            )
    return results
