import logging
from collections import defaultdict
from typing import Any

from pydantic import ValidationError
from sqlmodel import Session, select

from modcache.exceptions import FetchError, RemoteNotFoundError
from modcache.models.mod import Mod, ModChangelog, ModFiles, ModStatus
from modcache.models.tracking import Endorsement, EndorsementStatus, Tracked
from modcache.nexus.client import (
    ENDORSEMENTS_PATH,
    changelogs_path,
    files_path,
    mod_path,
    tracked_path,
)
from modcache.nexus.fetcher import Changed, ConditionalFetcher, FetchResult, Unchanged
from modcache.schemas.nexus import (
    EndorsementPayload,
    EndorsementSyncResult,
    FilesPayload,
    ModPayload,
    TrackedRefPayload,
    TrackedSyncResult,
)
from modcache.services import store
from modcache.utils.timestamps import from_timestamp

logger = logging.getLogger(__name__)

TRACKED_LIST = "tracked_mods"
ENDORSEMENT_LIST = "endorsements"


def endorsement_status_value(raw: str | None) -> str:
    """Canonical spelling of a known status; an unknown one is kept as sent."""
    raw = (raw or "").strip()
    if not raw:
        return EndorsementStatus.UNDECIDED.value
    status = EndorsementStatus.decode(raw)
    if status is EndorsementStatus.UNKNOWN:
        logger.warning("Unrecognised endorsement status %r, keeping it as is", raw)
        return raw
    return status.value


def parse_mod_payload(domain_name: str, mod_id: int, payload: Any) -> ModPayload:
    if not isinstance(payload, dict):
        raise FetchError(f"Malformed payload for {domain_name}/{mod_id}")
    try:
        return ModPayload.model_validate({**payload, "domain_name": domain_name, "mod_id": mod_id})
    except ValidationError as e:
        raise FetchError(f"Malformed payload for {domain_name}/{mod_id}: {e}") from e


def mod_record_from_payload(payload: ModPayload, token: str | None) -> Mod:
    status = ModStatus.decode(payload.status)
    return Mod(
        domain_name=payload.domain_name,
        mod_id=payload.mod_id,
        etag=token,
        uid=payload.uid,
        game_id=payload.game_id,
        category_id=payload.category_id,
        name=payload.name or "",
        version=payload.version or "",
        summary=payload.summary or "",
        description=payload.description or "",
        picture_url=payload.picture_url,
        status=payload.status or status.value,
        available=payload.available,
        allow_rating=payload.allow_rating,
        contains_adult_content=payload.contains_adult_content,
        author=payload.author or "",
        uploaded_by=payload.uploaded_by or "",
        uploaded_users_profile_url=payload.uploaded_users_profile_url or "",
        user_id=payload.user.member_id if payload.user else None,
        endorsement_count=payload.endorsement_count,
        mod_downloads=payload.mod_downloads,
        nexus_created=from_timestamp(payload.created_timestamp),
        nexus_updated=from_timestamp(payload.updated_timestamp),
        deleted=None,
    )


def reconcile_mod(session: Session, domain_name: str, mod_id: int, result: FetchResult) -> None:
    """Apply one mod fetch result to the store.

    ``Unchanged`` only refreshes the mod's check time; the Mod row itself,
    token included, is left exactly as it was.
    """
    if isinstance(result, Unchanged):
        store.record_check(session, domain_name, mod_id)
        return

    payload = parse_mod_payload(domain_name, mod_id, result.payload)
    with store.transaction(session):
        if payload.user:
            store.upsert_user(
                session,
                payload.user.member_id,
                payload.user.name,
                payload.user.member_group_id,
            )
        store.upsert_mod(session, mod_record_from_payload(payload, result.token))
        if payload.endorsement:
            store.upsert_endorsement(
                session,
                domain_name,
                mod_id,
                endorsement_status_value(payload.endorsement.endorse_status),
                payload.endorsement.version,
                from_timestamp(payload.endorsement.timestamp),
            )
        store.record_check(session, domain_name, mod_id)


def reconcile_tracked(session: Session, refs: list[TrackedRefPayload]) -> TrackedSyncResult:
    """Make the stored tracked set equal to the complete remote list.

    Games that no longer appear in the list at all lose every tracked row.
    """
    wanted: dict[str, set[int]] = defaultdict(set)
    for ref in refs:
        wanted[ref.domain_name].add(ref.mod_id)
    stored_games = set(session.exec(select(Tracked.domain_name).distinct()))

    result = TrackedSyncResult(unchanged=False)
    with store.transaction(session):
        for domain_name in sorted(stored_games | wanted.keys()):
            diff = store.set_tracked(session, domain_name, wanted.get(domain_name, set()))
            result.added += len(diff.added)
            result.removed += len(diff.removed)
            if diff.added or diff.removed:
                logger.info(
                    "Tracked %s: +%d -%d", domain_name, len(diff.added), len(diff.removed)
                )
    result.games = len(wanted)
    result.total_tracked = sum(len(ids) for ids in wanted.values())
    return result


def reconcile_endorsements(
    session: Session, records: list[EndorsementPayload]
) -> EndorsementSyncResult:
    seen: dict[str, set[int]] = defaultdict(set)
    removed = 0
    with store.transaction(session):
        for record in records:
            store.upsert_endorsement(
                session,
                record.domain_name,
                record.mod_id,
                endorsement_status_value(record.status),
                record.version,
                from_timestamp(record.date),
            )
            seen[record.domain_name].add(record.mod_id)
        for domain_name, mod_id in session.exec(
            select(Endorsement.domain_name, Endorsement.mod_id)
        ).all():
            if mod_id not in seen.get(domain_name, set()):
                removed += store.remove_endorsements(session, domain_name, [mod_id])
    return EndorsementSyncResult(unchanged=False, total=len(records), removed=removed)


def _parse_list(payload: Any, model: type, what: str) -> list:
    if not isinstance(payload, list):
        raise FetchError(f"Malformed {what} list")
    try:
        return [model.model_validate(item) for item in payload]
    except ValidationError as e:
        raise FetchError(f"Malformed {what} list: {e}") from e


async def sync_tracked(
    fetcher: ConditionalFetcher, session: Session, *, force: bool = False
) -> TrackedSyncResult:
    token = store.get_list_token(session, TRACKED_LIST)
    result = await fetcher.fetch(tracked_path(), token, force=force)
    if isinstance(result, Unchanged):
        logger.info("Tracked list unchanged")
        games = session.exec(select(Tracked.domain_name)).all()
        return TrackedSyncResult(
            unchanged=True, games=len(set(games)), total_tracked=len(games)
        )

    refs = _parse_list(result.payload, TrackedRefPayload, "tracked")
    with store.transaction(session):
        summary = reconcile_tracked(session, refs)
        store.set_list_token(session, TRACKED_LIST, result.token)
    return summary


async def sync_endorsements(
    fetcher: ConditionalFetcher, session: Session, *, force: bool = False
) -> EndorsementSyncResult:
    token = store.get_list_token(session, ENDORSEMENT_LIST)
    result = await fetcher.fetch(ENDORSEMENTS_PATH, token, force=force)
    if isinstance(result, Unchanged):
        logger.info("Endorsement list unchanged")
        total = len(session.exec(select(Endorsement.id)).all())
        return EndorsementSyncResult(unchanged=True, total=total)

    records = _parse_list(result.payload, EndorsementPayload, "endorsement")
    with store.transaction(session):
        summary = reconcile_endorsements(session, records)
        store.set_list_token(session, ENDORSEMENT_LIST, result.token)
    return summary


async def get_mod(
    fetcher: ConditionalFetcher,
    session: Session,
    domain_name: str,
    mod_id: int,
    *,
    refresh: bool = False,
    force: bool = False,
) -> Mod:
    """Return a mod from the cache, fetching it when missing or asked to refresh.

    A 404 from the Nexus soft-deletes the mod before the error propagates.
    """
    mod = store.find_mod(session, domain_name, mod_id)
    if mod is not None and not (refresh or force):
        return mod

    try:
        result = await fetcher.fetch(
            mod_path(domain_name, mod_id), mod.etag if mod else None, force=force
        )
    except RemoteNotFoundError:
        logger.info("Mod %s/%d is gone upstream, marking deleted", domain_name, mod_id)
        store.mark_deleted(session, domain_name, mod_id)
        raise
    reconcile_mod(session, domain_name, mod_id, result)
    return store.get_mod(session, domain_name, mod_id)


async def get_changelogs(
    fetcher: ConditionalFetcher,
    session: Session,
    domain_name: str,
    mod_id: int,
    *,
    refresh: bool = False,
    force: bool = False,
) -> ModChangelog:
    changelog = store.find_changelog(session, domain_name, mod_id)
    if changelog is not None and not (refresh or force):
        return changelog

    result = await fetcher.fetch(
        changelogs_path(domain_name, mod_id),
        changelog.etag if changelog else None,
        force=force,
    )
    if isinstance(result, Changed):
        # an empty changelog comes back as [] rather than {}
        versions = result.payload if isinstance(result.payload, dict) else {}
        changelog = store.upsert_changelog(
            session,
            domain_name,
            mod_id,
            {str(v): [str(line) for line in entries or []] for v, entries in versions.items()},
            result.token,
        )
    return changelog


async def get_files(
    fetcher: ConditionalFetcher,
    session: Session,
    domain_name: str,
    mod_id: int,
    *,
    refresh: bool = False,
    force: bool = False,
) -> ModFiles:
    """Return a mod's file listing, fetching it when missing or asked to refresh."""
    listing = store.find_files(session, domain_name, mod_id)
    if listing is not None and not (refresh or force):
        return listing

    result = await fetcher.fetch(
        files_path(domain_name, mod_id), listing.etag if listing else None, force=force
    )
    if isinstance(result, Unchanged):
        return listing

    if not isinstance(result.payload, dict):
        raise FetchError(f"Malformed file listing for {domain_name}/{mod_id}")
    try:
        payload = FilesPayload.model_validate(result.payload)
    except ValidationError as e:
        raise FetchError(f"Malformed file listing for {domain_name}/{mod_id}: {e}") from e
    logger.debug("Caching %d file(s) of %s/%d", len(payload.files), domain_name, mod_id)
    return store.upsert_files(
        session,
        domain_name,
        mod_id,
        [f.model_dump() for f in payload.files],
        [u.model_dump() for u in payload.file_updates],
        result.token,
    )
