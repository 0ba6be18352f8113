from fastapi import APIRouter, Depends
from sqlmodel import Session, col, select

from modcache.config import settings
from modcache.database import get_session
from modcache.models.game import Game
from modcache.routers.deps import open_fetcher
from modcache.schemas.mod import GameOut
from modcache.services import game_service

router = APIRouter(prefix="/games", tags=["games"])


@router.get("/", response_model=list[GameOut])
def list_games(session: Session = Depends(get_session)) -> list[Game]:
    return list(session.exec(select(Game).order_by(col(Game.domain_name))).all())


@router.get("/{domain_name}", response_model=GameOut)
async def get_game(
    domain_name: str, refresh: bool = False, session: Session = Depends(get_session)
) -> Game:
    game = session.get(Game, domain_name)
    if game is not None and not game.is_stub and not refresh:
        return game
    async with open_fetcher() as fetcher:
        return await game_service.get_game(
            fetcher, session, domain_name, refresh=refresh, force=settings.force_refresh
        )
