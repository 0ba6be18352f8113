from collections.abc import Sequence

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from modcache.config import settings
from modcache.database import get_session
from modcache.exceptions import NotFoundError
from modcache.models.mod import Mod, ModFiles
from modcache.routers.deps import get_game_or_404, open_fetcher
from modcache.schemas.mod import ChangelogOut, FileOut, ModDetailOut, ModFilesOut, ModOut
from modcache.services import queries, store, sync
from modcache.services.queries import SortKey

router = APIRouter(prefix="/mods", tags=["mods"])


@router.get("/{domain_name}", response_model=list[ModOut])
def list_mods(
    domain_name: str,
    sort: SortKey = SortKey.ID,
    include_deleted: bool = False,
    session: Session = Depends(get_session),
) -> Sequence[Mod]:
    get_game_or_404(domain_name, session)
    return queries.game_mods(session, domain_name, sort=sort, include_deleted=include_deleted)


@router.get("/{domain_name}/search", response_model=list[ModOut])
def search_mods(
    domain_name: str,
    q: str = Query(min_length=1),
    sort: SortKey = SortKey.ID,
    include_deleted: bool = False,
    session: Session = Depends(get_session),
) -> Sequence[Mod]:
    get_game_or_404(domain_name, session)
    return queries.search_text(
        session, domain_name, q, sort=sort, include_deleted=include_deleted
    )


@router.get("/{domain_name}/by-name", response_model=list[ModOut])
def mods_by_name(
    domain_name: str,
    name: str = Query(min_length=1),
    sort: SortKey = SortKey.ID,
    include_deleted: bool = False,
    session: Session = Depends(get_session),
) -> Sequence[Mod]:
    get_game_or_404(domain_name, session)
    return queries.by_name(session, domain_name, name, sort=sort, include_deleted=include_deleted)


@router.get("/{domain_name}/by-author", response_model=list[ModOut])
def mods_by_author(
    domain_name: str,
    author: str = Query(min_length=1),
    sort: SortKey = SortKey.ID,
    include_deleted: bool = False,
    session: Session = Depends(get_session),
) -> Sequence[Mod]:
    get_game_or_404(domain_name, session)
    return queries.by_author(
        session, domain_name, author, sort=sort, include_deleted=include_deleted
    )


@router.get("/{domain_name}/hidden", response_model=list[ModOut])
def hidden_mods(
    domain_name: str,
    tracked_only: bool = False,
    include_deleted: bool = False,
    session: Session = Depends(get_session),
) -> Sequence[Mod]:
    get_game_or_404(domain_name, session)
    return queries.hidden(
        session, domain_name, tracked_only=tracked_only, include_deleted=include_deleted
    )


@router.get("/{domain_name}/removed", response_model=list[ModOut])
def removed_mods(
    domain_name: str, include_deleted: bool = False, session: Session = Depends(get_session)
) -> Sequence[Mod]:
    get_game_or_404(domain_name, session)
    return queries.removed(session, domain_name, include_deleted=include_deleted)


@router.get("/{domain_name}/wastebinned", response_model=list[ModOut])
def wastebinned_mods(
    domain_name: str, include_deleted: bool = False, session: Session = Depends(get_session)
) -> Sequence[Mod]:
    get_game_or_404(domain_name, session)
    return queries.wastebinned(session, domain_name, include_deleted=include_deleted)


@router.get("/{domain_name}/trending", response_model=list[ModOut])
def trending_mods(domain_name: str, session: Session = Depends(get_session)) -> Sequence[Mod]:
    get_game_or_404(domain_name, session)
    return queries.trending(session, domain_name)


@router.get("/{domain_name}/latest", response_model=list[ModOut])
def latest_mods(domain_name: str, session: Session = Depends(get_session)) -> Sequence[Mod]:
    get_game_or_404(domain_name, session)
    return queries.latest(session, domain_name)


@router.get("/{domain_name}/updated", response_model=list[ModOut])
def updated_mods(domain_name: str, session: Session = Depends(get_session)) -> Sequence[Mod]:
    get_game_or_404(domain_name, session)
    return queries.updated(session, domain_name)


@router.get("/{domain_name}/{mod_id}", response_model=ModDetailOut)
async def get_mod(
    domain_name: str,
    mod_id: int,
    refresh: bool = False,
    session: Session = Depends(get_session),
) -> Mod:
    mod = store.find_mod(session, domain_name, mod_id)
    if mod is not None and not refresh:
        return mod
    async with open_fetcher() as fetcher:
        return await sync.get_mod(
            fetcher, session, domain_name, mod_id, refresh=refresh, force=settings.force_refresh
        )


@router.get("/{domain_name}/{mod_id}/changelogs", response_model=ChangelogOut)
async def get_changelogs(
    domain_name: str,
    mod_id: int,
    refresh: bool = False,
    session: Session = Depends(get_session),
) -> ChangelogOut:
    changelog = store.find_changelog(session, domain_name, mod_id)
    if changelog is None or refresh:
        async with open_fetcher() as fetcher:
            changelog = await sync.get_changelogs(
                fetcher,
                session,
                domain_name,
                mod_id,
                refresh=refresh,
                force=settings.force_refresh,
            )
    return ChangelogOut(domain_name=domain_name, mod_id=mod_id, versions=changelog.versions)


async def _files(session: Session, domain_name: str, mod_id: int, refresh: bool) -> ModFiles:
    listing = store.find_files(session, domain_name, mod_id)
    if listing is None or refresh:
        async with open_fetcher() as fetcher:
            listing = await sync.get_files(
                fetcher,
                session,
                domain_name,
                mod_id,
                refresh=refresh,
                force=settings.force_refresh,
            )
    return listing


@router.get("/{domain_name}/{mod_id}/files", response_model=ModFilesOut)
async def get_files(
    domain_name: str,
    mod_id: int,
    refresh: bool = False,
    session: Session = Depends(get_session),
) -> ModFilesOut:
    listing = await _files(session, domain_name, mod_id, refresh)
    return ModFilesOut(
        domain_name=domain_name,
        mod_id=mod_id,
        files=listing.files,
        file_updates=listing.file_updates,
    )


@router.get("/{domain_name}/{mod_id}/files/primary", response_model=FileOut)
async def get_primary_file(
    domain_name: str,
    mod_id: int,
    refresh: bool = False,
    session: Session = Depends(get_session),
) -> FileOut:
    listing = await _files(session, domain_name, mod_id, refresh)
    found = listing.primary_file()
    if found is None:
        raise NotFoundError(f"Mod {domain_name}/{mod_id} has no primary file")
    return FileOut.model_validate(found)


@router.get("/{domain_name}/{mod_id}/files/{file_id}", response_model=FileOut)
async def get_file(
    domain_name: str,
    mod_id: int,
    file_id: int,
    refresh: bool = False,
    session: Session = Depends(get_session),
) -> FileOut:
    listing = await _files(session, domain_name, mod_id, refresh)
    found = listing.file_by_id(file_id)
    if found is None:
        raise NotFoundError(f"File {file_id} not found for mod {domain_name}/{mod_id}")
    return FileOut.model_validate(found)
