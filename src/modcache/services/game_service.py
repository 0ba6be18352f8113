import logging

from pydantic import ValidationError
from sqlmodel import Session

from modcache.exceptions import FetchError
from modcache.models.game import Game
from modcache.nexus.client import game_path
from modcache.nexus.fetcher import ConditionalFetcher, Unchanged
from modcache.schemas.nexus import GamePayload
from modcache.services import store
from modcache.utils.timestamps import from_timestamp

logger = logging.getLogger(__name__)


def game_record_from_payload(payload: GamePayload, token: str | None) -> Game:
    return Game(
        domain_name=payload.domain_name,
        id=payload.id,
        name=payload.name,
        genre=payload.genre or "",
        approved_date=from_timestamp(payload.approved_date),
        authors=payload.authors,
        downloads=payload.downloads,
        file_count=payload.file_count,
        file_endorsements=payload.file_endorsements,
        file_views=payload.file_views,
        mod_count=payload.mods,
        forum_url=payload.forum_url or "",
        nexusmods_url=payload.nexusmods_url or "",
        etag=token,
    )


async def get_game(
    fetcher: ConditionalFetcher,
    session: Session,
    domain_name: str,
    *,
    refresh: bool = False,
    force: bool = False,
) -> Game:
    """Return a game's metadata, fetching it when only a stub (or nothing) is cached.

    ``force`` fetches without the stored validator token.
    """
    game = session.get(Game, domain_name)
    if game is not None and not game.is_stub and not (refresh or force):
        return game

    result = await fetcher.fetch(
        game_path(domain_name), game.etag if game else None, force=force
    )
    if isinstance(result, Unchanged):
        logger.debug("Game %s unchanged", domain_name)
        return store.get_game(session, domain_name)

    if not isinstance(result.payload, dict):
        raise FetchError(f"Malformed payload for game {domain_name}")
    try:
        payload = GamePayload.model_validate({**result.payload, "domain_name": domain_name})
    except ValidationError as e:
        raise FetchError(f"Malformed payload for game {domain_name}: {e}") from e

    store.upsert_game(session, game_record_from_payload(payload, result.token), payload.categories)
    logger.info(
        "Cached game %s with %d categories", domain_name, len(payload.categories)
    )
    return store.get_game(session, domain_name)
