from collections.abc import Sequence

from fastapi import APIRouter, Depends
from sqlmodel import Session

from modcache.config import settings
from modcache.database import get_session
from modcache.models.tracking import Endorsement
from modcache.nexus.fetcher import ConditionalFetcher
from modcache.routers.deps import get_fetcher
from modcache.schemas.mod import EndorsementOut
from modcache.schemas.nexus import EndorsementSyncResult, ModActionResult
from modcache.services import mod_actions, queries, sync

router = APIRouter(prefix="/endorsements", tags=["endorsements"])


@router.get("/", response_model=list[EndorsementOut])
def list_endorsements(
    game: str | None = None, session: Session = Depends(get_session)
) -> Sequence[Endorsement]:
    return queries.endorsements(session, game)


@router.post("/sync", response_model=EndorsementSyncResult)
async def sync_endorsements(
    force: bool = False,
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> EndorsementSyncResult:
    return await sync.sync_endorsements(fetcher, session, force=force or settings.force_refresh)


@router.post("/{domain_name}/{mod_id}/endorse", response_model=ModActionResult)
async def endorse_mod(
    domain_name: str,
    mod_id: int,
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> ModActionResult:
    return await mod_actions.endorse(fetcher, session, domain_name, mod_id)


@router.post("/{domain_name}/{mod_id}/abstain", response_model=ModActionResult)
async def abstain_mod(
    domain_name: str,
    mod_id: int,
    session: Session = Depends(get_session),
    fetcher: ConditionalFetcher = Depends(get_fetcher),
) -> ModActionResult:
    return await mod_actions.abstain(fetcher, session, domain_name, mod_id)
