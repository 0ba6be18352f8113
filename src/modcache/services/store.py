"""Write and lookup primitives over the cache database.

Every public write runs inside :func:`transaction`, so a failure can never
leave a mod with a new validator token but a stale payload, or a tracked-set
diff half applied. Transactions nest; only the outermost one commits.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlmodel import Session, col, select

from modcache.exceptions import ConflictError, NotFoundError, StoreIOError
from modcache.models.game import Category, Game
from modcache.models.mod import (
    MOD_PAYLOAD_FIELDS,
    Mod,
    ModChangelog,
    ModCheck,
    ModFiles,
    ModStatus,
)
from modcache.models.settings import AppSetting
from modcache.models.tracking import Endorsement, EndorsementStatus, Tracked
from modcache.models.user import NexusUser
from modcache.schemas.nexus import CategoryPayload
from modcache.utils.timestamps import as_utc, utcnow

logger = logging.getLogger(__name__)

_TX_DEPTH = "modcache_tx_depth"

GAME_FIELDS: tuple[str, ...] = (
    "id",
    "name",
    "genre",
    "approved_date",
    "authors",
    "downloads",
    "file_count",
    "file_endorsements",
    "file_views",
    "mod_count",
    "forum_url",
    "nexusmods_url",
    "etag",
)


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    depth = session.info.get(_TX_DEPTH, 0)
    session.info[_TX_DEPTH] = depth + 1
    outermost = depth == 0
    try:
        yield session
        if outermost:
            session.commit()
        else:
            session.flush()
    except IntegrityError as e:
        if outermost:
            session.rollback()
        raise ConflictError(str(e.orig)) from e
    except DBAPIError as e:
        if outermost:
            session.rollback()
        raise StoreIOError(str(e.orig)) from e
    except BaseException:
        if outermost:
            session.rollback()
        raise
    finally:
        session.info[_TX_DEPTH] = depth


@contextmanager
def reading(session: Session) -> Iterator[Session]:
    """Map driver failures of plain lookups the same way :func:`transaction` does."""
    try:
        yield session
    except DBAPIError as e:
        if not session.info.get(_TX_DEPTH, 0):
            session.rollback()
        raise StoreIOError(str(e.orig)) from e


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, datetime) or isinstance(b, datetime):
        return as_utc(a) == as_utc(b)
    return a == b


def _apply(target: Any, source: Any, fields: Iterable[str]) -> bool:
    """Copy ``fields`` from source to target; report whether anything differed."""
    changed = False
    for name in fields:
        new = getattr(source, name)
        if not _same(getattr(target, name), new):
            setattr(target, name, new)
            changed = True
    return changed


# ----------------------------------------------------------------------------
# games and categories
# ----------------------------------------------------------------------------


def ensure_game(session: Session, domain_name: str) -> Game:
    """Return the game row, inserting a stub when the game was never fetched."""
    game = session.get(Game, domain_name)
    if game is None:
        logger.debug("Inserting stub game %s", domain_name)
        game = Game(domain_name=domain_name)
        session.add(game)
        session.flush()
    return game


def get_game(session: Session, domain_name: str) -> Game:
    game = session.get(Game, domain_name)
    if game is None:
        raise NotFoundError(f"Game '{domain_name}' is not cached")
    return game


def upsert_game(
    session: Session, record: Game, categories: Iterable[CategoryPayload] | None = None
) -> Game:
    """Replace a game's metadata wholesale.

    When ``categories`` is given it becomes the complete category set: listed
    categories are upserted and any other stored category of the game is dropped.
    """
    with transaction(session):
        existing = session.get(Game, record.domain_name)
        if existing is None:
            session.add(record)
            game = record
        else:
            game = existing
            if _apply(game, record, GAME_FIELDS):
                game.modified = utcnow()
        session.flush()
        if categories is None:
            return game
        wanted: set[int] = set()
        for category in categories:
            wanted.add(category.category_id)
            upsert_category(
                session,
                game.domain_name,
                category.category_id,
                category.name,
                parent_category_id=category.parent_category_id,
            )
        stale = session.exec(
            select(Category).where(
                Category.domain_name == game.domain_name,
                col(Category.category_id).not_in(wanted),
            )
        ).all()
        for row in stale:
            logger.debug("Dropping category %s/%d", game.domain_name, row.category_id)
            session.delete(row)
    return game


def upsert_category(
    session: Session,
    domain_name: str,
    category_id: int,
    name: str,
    *,
    parent_category_id: int | None = None,
) -> Category:
    with transaction(session):
        ensure_game(session, domain_name)
        category = session.exec(
            select(Category).where(
                Category.domain_name == domain_name,
                Category.category_id == category_id,
            )
        ).first()
        if category is None:
            category = Category(
                domain_name=domain_name,
                category_id=category_id,
                name=name,
                parent_category_id=parent_category_id,
            )
            session.add(category)
        else:
            category.name = name
            category.parent_category_id = parent_category_id
    return category


# ----------------------------------------------------------------------------
# mods
# ----------------------------------------------------------------------------


def find_mod(session: Session, domain_name: str, mod_id: int) -> Mod | None:
    return session.exec(
        select(Mod).where(Mod.domain_name == domain_name, Mod.mod_id == mod_id)
    ).first()


def get_mod(session: Session, domain_name: str, mod_id: int) -> Mod:
    mod = find_mod(session, domain_name, mod_id)
    if mod is None:
        raise NotFoundError(f"Mod {domain_name}/{mod_id} is not cached")
    return mod


def upsert_mod(session: Session, record: Mod) -> Mod:
    """Store a freshly fetched mod.

    ``record`` is a transient ``Mod`` built from a changed payload. On an
    existing row the payload fields, the validator token and the soft-delete
    marker are replaced; ``modified`` advances only if one of them actually
    differs, so re-applying the same payload is a no-op.
    """
    with transaction(session):
        ensure_game(session, record.domain_name)
        existing = find_mod(session, record.domain_name, record.mod_id)
        if existing is None:
            now = utcnow()
            record.created = now
            record.modified = now
            session.add(record)
            logger.debug("Cached new mod %s/%d", record.domain_name, record.mod_id)
            return record
        if _apply(existing, record, (*MOD_PAYLOAD_FIELDS, "etag", "deleted")):
            existing.modified = utcnow()
            logger.debug("Updated mod %s/%d", record.domain_name, record.mod_id)
    return existing


def mark_deleted(session: Session, domain_name: str, mod_id: int) -> Mod:
    """Soft-delete a mod the Nexus no longer serves, inserting a tombstone if needed."""
    with transaction(session):
        ensure_game(session, domain_name)
        mod = find_mod(session, domain_name, mod_id)
        now = utcnow()
        if mod is None:
            mod = Mod(
                domain_name=domain_name,
                mod_id=mod_id,
                status=ModStatus.REMOVED.value,
                available=False,
                created=now,
                modified=now,
                deleted=now,
            )
            session.add(mod)
        elif mod.deleted is None:
            mod.deleted = now
            mod.modified = now
        record_check(session, domain_name, mod_id)
    return mod


def record_check(session: Session, domain_name: str, mod_id: int) -> ModCheck:
    with transaction(session):
        ensure_game(session, domain_name)
        check = session.exec(
            select(ModCheck).where(
                ModCheck.domain_name == domain_name, ModCheck.mod_id == mod_id
            )
        ).first()
        if check is None:
            check = ModCheck(domain_name=domain_name, mod_id=mod_id)
            session.add(check)
        else:
            check.checked_at = utcnow()
    return check


def upsert_user(
    session: Session, member_id: int, name: str, member_group_id: int | None = None
) -> NexusUser:
    with transaction(session):
        user = session.get(NexusUser, member_id)
        if user is None:
            user = NexusUser(member_id=member_id, name=name, member_group_id=member_group_id)
            session.add(user)
        else:
            user.name = name
            user.member_group_id = member_group_id
    return user


def pending_mods(
    session: Session,
    domain_name: str | None = None,
    *,
    stale_before: datetime | None = None,
) -> list[tuple[str, int]]:
    """Tracked mods that still need a fetch.

    Never-cached mods come first (by game, then mod id). When ``stale_before``
    is given, cached mods last checked before it follow, oldest first.
    """
    stmt = select(Tracked.domain_name, Tracked.mod_id)
    if domain_name:
        stmt = stmt.where(Tracked.domain_name == domain_name)
    tracked = sorted((d, m) for d, m in session.exec(stmt).all())
    if not tracked:
        return []

    mod_stmt = select(Mod.domain_name, Mod.mod_id, Mod.modified)
    check_stmt = select(ModCheck.domain_name, ModCheck.mod_id, ModCheck.checked_at)
    if domain_name:
        mod_stmt = mod_stmt.where(Mod.domain_name == domain_name)
        check_stmt = check_stmt.where(ModCheck.domain_name == domain_name)
    last_seen: dict[tuple[str, int], datetime] = {
        (d, m): as_utc(modified) for d, m, modified in session.exec(mod_stmt).all()
    }
    for d, m, checked_at in session.exec(check_stmt).all():
        key = (d, m)
        if key in last_seen:
            last_seen[key] = max(last_seen[key], as_utc(checked_at))

    missing = [key for key in tracked if key not in last_seen]
    if stale_before is None:
        return missing
    cutoff = as_utc(stale_before)
    stale = sorted(
        (key for key in tracked if key in last_seen and last_seen[key] < cutoff),
        key=lambda key: (last_seen[key], key),
    )
    return missing + stale


# ----------------------------------------------------------------------------
# tracked set
# ----------------------------------------------------------------------------


@dataclass
class TrackedDiff:
    added: set[int] = field(default_factory=set)
    removed: set[int] = field(default_factory=set)


def tracked_ids(session: Session, domain_name: str) -> set[int]:
    return set(session.exec(select(Tracked.mod_id).where(Tracked.domain_name == domain_name)))


def set_tracked(
    session: Session, domain_name: str, mod_ids: Iterable[int], *, replace: bool = True
) -> TrackedDiff:
    """Make the stored tracked set for a game match ``mod_ids``.

    With ``replace`` the ids become the complete set (ids not listed are
    dropped); otherwise they are merged into the existing set.
    """
    wanted = set(mod_ids)
    with transaction(session):
        ensure_game(session, domain_name)
        current = tracked_ids(session, domain_name)
        diff = TrackedDiff(added=wanted - current)
        for mod_id in sorted(diff.added):
            session.add(Tracked(domain_name=domain_name, mod_id=mod_id))
        if replace:
            diff.removed = current - wanted
            if diff.removed:
                remove_tracked(session, domain_name, diff.removed)
    return diff


def remove_tracked(session: Session, domain_name: str, mod_ids: Iterable[int]) -> int:
    ids = set(mod_ids)
    if not ids:
        return 0
    with transaction(session):
        rows = session.exec(
            select(Tracked).where(
                Tracked.domain_name == domain_name, col(Tracked.mod_id).in_(ids)
            )
        ).all()
        for row in rows:
            session.delete(row)
    return len(rows)


# ----------------------------------------------------------------------------
# endorsements
# ----------------------------------------------------------------------------


def upsert_endorsement(
    session: Session,
    domain_name: str,
    mod_id: int,
    status: EndorsementStatus | str,
    version: str | None = None,
    timestamp: datetime | None = None,
) -> Endorsement:
    with transaction(session):
        ensure_game(session, domain_name)
        endorsement = session.exec(
            select(Endorsement).where(
                Endorsement.domain_name == domain_name, Endorsement.mod_id == mod_id
            )
        ).first()
        if endorsement is None:
            endorsement = Endorsement(domain_name=domain_name, mod_id=mod_id)
            session.add(endorsement)
        endorsement.status = str(status)
        endorsement.version = version
        endorsement.endorsed_at = timestamp
    return endorsement


def remove_endorsements(session: Session, domain_name: str, mod_ids: Iterable[int]) -> int:
    ids = set(mod_ids)
    if not ids:
        return 0
    with transaction(session):
        rows = session.exec(
            select(Endorsement).where(
                Endorsement.domain_name == domain_name, col(Endorsement.mod_id).in_(ids)
            )
        ).all()
        for row in rows:
            session.delete(row)
    return len(rows)


# ----------------------------------------------------------------------------
# changelogs, file listings and list validators
# ----------------------------------------------------------------------------


def find_changelog(session: Session, domain_name: str, mod_id: int) -> ModChangelog | None:
    return session.exec(
        select(ModChangelog).where(
            ModChangelog.domain_name == domain_name, ModChangelog.mod_id == mod_id
        )
    ).first()


def upsert_changelog(
    session: Session,
    domain_name: str,
    mod_id: int,
    versions: dict[str, list[str]],
    etag: str | None,
) -> ModChangelog:
    encoded = json.dumps(versions, sort_keys=True)
    with transaction(session):
        ensure_game(session, domain_name)
        changelog = find_changelog(session, domain_name, mod_id)
        if changelog is None:
            changelog = ModChangelog(
                domain_name=domain_name, mod_id=mod_id, versions_json=encoded, etag=etag
            )
            session.add(changelog)
        elif changelog.versions_json != encoded or changelog.etag != etag:
            changelog.versions_json = encoded
            changelog.etag = etag
            changelog.modified = utcnow()
    return changelog


def find_files(session: Session, domain_name: str, mod_id: int) -> ModFiles | None:
    return session.exec(
        select(ModFiles).where(ModFiles.domain_name == domain_name, ModFiles.mod_id == mod_id)
    ).first()


def upsert_files(
    session: Session,
    domain_name: str,
    mod_id: int,
    files: list[dict[str, Any]],
    file_updates: list[dict[str, Any]],
    etag: str | None,
) -> ModFiles:
    """Replace a mod's cached file listing."""
    files_json = json.dumps(files, sort_keys=True)
    updates_json = json.dumps(file_updates, sort_keys=True)
    with transaction(session):
        ensure_game(session, domain_name)
        listing = find_files(session, domain_name, mod_id)
        if listing is None:
            listing = ModFiles(
                domain_name=domain_name,
                mod_id=mod_id,
                files_json=files_json,
                file_updates_json=updates_json,
                etag=etag,
            )
            session.add(listing)
        elif (listing.files_json, listing.file_updates_json, listing.etag) != (
            files_json,
            updates_json,
            etag,
        ):
            listing.files_json = files_json
            listing.file_updates_json = updates_json
            listing.etag = etag
            listing.modified = utcnow()
    return listing


def get_list_token(session: Session, name: str) -> str | None:
    """Validator token of an account-wide list (``tracked_mods``, ``endorsements``)."""
    setting = session.exec(select(AppSetting).where(AppSetting.key == f"etag:{name}")).first()
    return setting.value if setting and setting.value else None


def set_list_token(session: Session, name: str, token: str | None) -> None:
    with transaction(session):
        key = f"etag:{name}"
        setting = session.exec(select(AppSetting).where(AppSetting.key == key)).first()
        if setting:
            setting.value = token or ""
        else:
            session.add(AppSetting(key=key, value=token or ""))
