"""Remote write actions. Each one is mirrored into the cache only after the Nexus accepted it."""

import logging

from sqlalchemy import func
from sqlmodel import Session, select

from modcache.exceptions import FetchError
from modcache.models.mod import Mod, ModStatus
from modcache.models.tracking import EndorsementStatus, Tracked
from modcache.nexus.client import abstain_path, endorse_path, tracked_path
from modcache.nexus.fetcher import ConditionalFetcher
from modcache.schemas.nexus import ModActionResult, UntrackRemovedResult
from modcache.services import store
from modcache.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


def _message(body: object) -> str:
    if isinstance(body, dict):
        return str(body.get("message", ""))
    return ""


async def track(
    fetcher: ConditionalFetcher, session: Session, domain_name: str, mod_id: int
) -> ModActionResult:
    body = await fetcher.send("POST", tracked_path(domain_name), data={"mod_id": mod_id})
    store.set_tracked(session, domain_name, [mod_id], replace=False)
    logger.info("Tracked %s/%d", domain_name, mod_id)
    return ModActionResult(
        domain_name=domain_name, mod_id=mod_id, success=True, message=_message(body)
    )


async def untrack(
    fetcher: ConditionalFetcher, session: Session, domain_name: str, mod_id: int
) -> ModActionResult:
    body = await fetcher.send("DELETE", tracked_path(domain_name), data={"mod_id": mod_id})
    store.remove_tracked(session, domain_name, [mod_id])
    logger.info("Untracked %s/%d", domain_name, mod_id)
    return ModActionResult(
        domain_name=domain_name, mod_id=mod_id, success=True, message=_message(body)
    )


async def _set_endorsement(
    fetcher: ConditionalFetcher,
    session: Session,
    domain_name: str,
    mod_id: int,
    status: EndorsementStatus,
    path: str,
) -> ModActionResult:
    # the Nexus wants the version being endorsed; use the cached one if we have it
    mod = store.find_mod(session, domain_name, mod_id)
    version = mod.version if mod and mod.version else None
    body = await fetcher.send("POST", path, data={"version": version} if version else None)
    store.upsert_endorsement(session, domain_name, mod_id, status, version, utcnow())
    logger.info("%s %s/%d", status, domain_name, mod_id)
    return ModActionResult(
        domain_name=domain_name,
        mod_id=mod_id,
        success=True,
        message=_message(body),
        status=status,
    )


async def endorse(
    fetcher: ConditionalFetcher, session: Session, domain_name: str, mod_id: int
) -> ModActionResult:
    return await _set_endorsement(
        fetcher,
        session,
        domain_name,
        mod_id,
        EndorsementStatus.ENDORSED,
        endorse_path(domain_name, mod_id),
    )


async def abstain(
    fetcher: ConditionalFetcher, session: Session, domain_name: str, mod_id: int
) -> ModActionResult:
    return await _set_endorsement(
        fetcher,
        session,
        domain_name,
        mod_id,
        EndorsementStatus.ABSTAINED,
        abstain_path(domain_name, mod_id),
    )


async def untrack_removed(
    fetcher: ConditionalFetcher, session: Session, domain_name: str
) -> UntrackRemovedResult:
    """Untrack every tracked mod of a game that its author removed or wastebinned.

    Failures are collected per mod; an auth failure still propagates because
    every following request would fail the same way.
    """
    candidates = session.exec(
        select(Mod.mod_id)
        .join(
            Tracked,
            (Tracked.domain_name == Mod.domain_name) & (Tracked.mod_id == Mod.mod_id),
        )
        .where(
            Mod.domain_name == domain_name,
            func.lower(Mod.status).in_([ModStatus.REMOVED.value, ModStatus.WASTEBINNED.value]),
        )
        .order_by(Mod.mod_id)
    ).all()

    result = UntrackRemovedResult()
    for mod_id in candidates:
        try:
            await untrack(fetcher, session, domain_name, mod_id)
        except FetchError as e:
            if e.fatal:
                raise
            logger.warning("Could not untrack %s/%d: %s", domain_name, mod_id, e)
            result.failed.append(
                ModActionResult(
                    domain_name=domain_name, mod_id=mod_id, success=False, message=str(e)
                )
            )
        else:
            result.untracked.append(mod_id)
    return result
