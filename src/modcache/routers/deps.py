from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import HTTPException
from sqlmodel import Session

from modcache.config import settings
from modcache.models.game import Game
from modcache.nexus.client import NexusClient
from modcache.nexus.fetcher import ConditionalFetcher


def get_game_or_404(domain_name: str, session: Session) -> Game:
    game = session.get(Game, domain_name)
    if not game:
        raise HTTPException(404, f"Game '{domain_name}' not found")
    return game


@asynccontextmanager
async def open_fetcher() -> AsyncIterator[ConditionalFetcher]:
    if not settings.nexus_api_key:
        raise HTTPException(400, "Nexus API key not configured")
    async with NexusClient(settings.nexus_api_key) as client:
        yield ConditionalFetcher(client)


async def get_fetcher() -> AsyncIterator[ConditionalFetcher]:
    async with open_fetcher() as fetcher:
        yield fetcher
