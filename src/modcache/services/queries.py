"""Read-only views over the cache. Nothing here touches the network."""

from collections.abc import Sequence
from enum import StrEnum

from sqlalchemy import func, or_
from sqlmodel import Session, col, select
from sqlmodel.sql.expression import SelectOfScalar

from modcache.models.mod import Mod, ModStatus
from modcache.models.tracking import Endorsement, Tracked
from modcache.schemas.mod import TrackedGameSummary, TrackedModOut

TOP_N = 10


class SortKey(StrEnum):
    ID = "id"
    NAME = "name"
    DATE = "date"
    AUTHOR = "author"


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, text: str):
    return col(column).ilike(f"%{_escape_like(text)}%", escape="\\")


def _game_mods(domain_name: str, include_deleted: bool) -> SelectOfScalar[Mod]:
    stmt = select(Mod).where(Mod.domain_name == domain_name)
    if not include_deleted:
        stmt = stmt.where(col(Mod.deleted).is_(None))
    return stmt


def _sorted(stmt: SelectOfScalar[Mod], sort: SortKey) -> SelectOfScalar[Mod]:
    match sort:
        case SortKey.NAME:
            stmt = stmt.order_by(func.lower(Mod.name))
        case SortKey.DATE:
            stmt = stmt.order_by(col(Mod.nexus_updated).asc().nulls_first())
        case SortKey.AUTHOR:
            stmt = stmt.order_by(func.lower(Mod.uploaded_by))
    return stmt.order_by(col(Mod.mod_id).asc())


def game_mods(
    session: Session,
    domain_name: str,
    *,
    sort: SortKey = SortKey.ID,
    include_deleted: bool = False,
) -> Sequence[Mod]:
    return session.exec(_sorted(_game_mods(domain_name, include_deleted), sort)).all()


def search_text(
    session: Session,
    domain_name: str,
    text: str,
    *,
    sort: SortKey = SortKey.ID,
    include_deleted: bool = False,
) -> Sequence[Mod]:
    """Case-insensitive substring match over name, summary and description."""
    stmt = _game_mods(domain_name, include_deleted).where(
        or_(
            _contains(Mod.name, text),
            _contains(Mod.summary, text),
            _contains(Mod.description, text),
        )
    )
    return session.exec(_sorted(stmt, sort)).all()


def by_name(
    session: Session,
    domain_name: str,
    name: str,
    *,
    sort: SortKey = SortKey.ID,
    include_deleted: bool = False,
) -> Sequence[Mod]:
    stmt = _game_mods(domain_name, include_deleted).where(_contains(Mod.name, name))
    return session.exec(_sorted(stmt, sort)).all()


def by_author(
    session: Session,
    domain_name: str,
    author: str,
    *,
    sort: SortKey = SortKey.ID,
    include_deleted: bool = False,
) -> Sequence[Mod]:
    """Exact, case-insensitive match on either the credited author or the uploader."""
    wanted = author.strip().lower()
    stmt = _game_mods(domain_name, include_deleted).where(
        or_(func.lower(Mod.author) == wanted, func.lower(Mod.uploaded_by) == wanted)
    )
    return session.exec(_sorted(stmt, sort)).all()


def _with_status(
    domain_name: str, status: ModStatus, include_deleted: bool
) -> SelectOfScalar[Mod]:
    return _game_mods(domain_name, include_deleted).where(
        func.lower(Mod.status) == status.value
    )


def hidden(
    session: Session,
    domain_name: str,
    *,
    tracked_only: bool = False,
    include_deleted: bool = False,
) -> Sequence[Mod]:
    stmt = _with_status(domain_name, ModStatus.HIDDEN, include_deleted)
    if tracked_only:
        stmt = stmt.join(
            Tracked,
            (Tracked.domain_name == Mod.domain_name) & (Tracked.mod_id == Mod.mod_id),
        )
    return session.exec(stmt.order_by(col(Mod.mod_id).asc())).all()


def removed(session: Session, domain_name: str, *, include_deleted: bool = False) -> Sequence[Mod]:
    stmt = _with_status(domain_name, ModStatus.REMOVED, include_deleted)
    return session.exec(stmt.order_by(col(Mod.mod_id).asc())).all()


def wastebinned(
    session: Session, domain_name: str, *, include_deleted: bool = False
) -> Sequence[Mod]:
    stmt = _with_status(domain_name, ModStatus.WASTEBINNED, include_deleted)
    return session.exec(stmt.order_by(col(Mod.mod_id).asc())).all()


def _top(session: Session, domain_name: str, order, include_deleted: bool) -> Sequence[Mod]:
    stmt = (
        _game_mods(domain_name, include_deleted)
        .order_by(order, col(Mod.mod_id).asc())
        .limit(TOP_N)
    )
    return session.exec(stmt).all()


def trending(session: Session, domain_name: str, *, include_deleted: bool = False) -> Sequence[Mod]:
    return _top(session, domain_name, col(Mod.endorsement_count).desc(), include_deleted)


def latest(session: Session, domain_name: str, *, include_deleted: bool = False) -> Sequence[Mod]:
    return _top(session, domain_name, col(Mod.nexus_created).desc().nulls_last(), include_deleted)


def updated(session: Session, domain_name: str, *, include_deleted: bool = False) -> Sequence[Mod]:
    return _top(session, domain_name, col(Mod.nexus_updated).desc().nulls_last(), include_deleted)


def tracked_mods(session: Session, domain_name: str) -> list[TrackedModOut]:
    """Every tracked mod of a game, with whatever the cache knows about it."""
    rows = session.exec(
        select(Tracked, Mod)
        .outerjoin(
            Mod,
            (Mod.domain_name == Tracked.domain_name) & (Mod.mod_id == Tracked.mod_id),
        )
        .where(Tracked.domain_name == domain_name)
        .order_by(col(Tracked.mod_id).asc())
    ).all()
    return [
        TrackedModOut(
            domain_name=tracked.domain_name,
            mod_id=tracked.mod_id,
            cached=mod is not None,
            name=mod.name if mod else "",
            status=mod.status if mod else None,
            category_id=mod.category_id if mod else None,
        )
        for tracked, mod in rows
    ]


def tracked_summary(session: Session) -> list[TrackedGameSummary]:
    rows = session.exec(
        select(Tracked.domain_name, func.count(col(Tracked.id)), func.count(col(Mod.id)))
        .outerjoin(
            Mod,
            (Mod.domain_name == Tracked.domain_name) & (Mod.mod_id == Tracked.mod_id),
        )
        .group_by(Tracked.domain_name)
        .order_by(Tracked.domain_name)
    ).all()
    return [
        TrackedGameSummary(domain_name=domain_name, tracked=tracked, cached=cached)
        for domain_name, tracked, cached in rows
    ]


def endorsements(session: Session, domain_name: str | None = None) -> Sequence[Endorsement]:
    stmt = select(Endorsement)
    if domain_name:
        stmt = stmt.where(Endorsement.domain_name == domain_name)
    return session.exec(
        stmt.order_by(Endorsement.domain_name, col(Endorsement.mod_id).asc())
    ).all()
