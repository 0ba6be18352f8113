from collections.abc import Generator
from typing import Any

import pytest
import respx
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

import modcache.models  # noqa: F401 (registers all tables)
from modcache.database import get_session, install_pragmas
from modcache.main import app
from modcache.models.game import Game
from modcache.models.mod import Mod
from modcache.models.tracking import Tracked
from modcache.nexus import fetcher as fetcher_mod

GAME = "skyrimspecialedition"


@pytest.fixture(autouse=True)
def _reset_global_respx_routes() -> Generator[None, None, None]:
    # Routes added via ``respx.get``/``respx.route`` under a local
    # ``@respx.mock(...)`` router land on the global router and would leak.
    yield
    respx.mock.clear()


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    install_pragmas(eng)
    SQLModel.metadata.create_all(eng)
    return eng


@pytest.fixture
def session(engine, monkeypatch):
    with Session(engine) as sess:
        monkeypatch.setattr("modcache.database.engine", engine)
        yield sess


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr("modcache.config.settings.nexus_api_key", "test-key")
    return "test-key"


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setattr("modcache.database.engine", engine)

    def _override_session() -> Generator[Session, None, None]:
        with Session(engine) as sess:
            yield sess

    app.dependency_overrides[get_session] = _override_session
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(fetcher_mod, "_BACKOFF_BASE", 0)


@pytest.fixture
def make_game(session):
    def _make(domain_name: str = GAME, name: str = "Skyrim Special Edition", **kwargs) -> Game:
        game = Game(domain_name=domain_name, id=kwargs.pop("id", 1704), name=name, **kwargs)
        session.add(game)
        session.commit()
        session.refresh(game)
        return game

    return _make


@pytest.fixture
def make_mod(session):
    def _make(mod_id: int, domain_name: str = GAME, **kwargs) -> Mod:
        if session.get(Game, domain_name) is None:
            session.add(Game(domain_name=domain_name))
        mod = Mod(domain_name=domain_name, mod_id=mod_id, **kwargs)
        session.add(mod)
        session.commit()
        session.refresh(mod)
        return mod

    return _make


@pytest.fixture
def track(session):
    def _track(*mod_ids: int, domain_name: str = GAME) -> None:
        if session.get(Game, domain_name) is None:
            session.add(Game(domain_name=domain_name))
        for mod_id in mod_ids:
            session.add(Tracked(domain_name=domain_name, mod_id=mod_id))
        session.commit()

    return _track


def _mod_payload(mod_id: int, domain_name: str = GAME, **overrides: Any) -> dict[str, Any]:
    """A mod record shaped like ``/v1/games/{game}/mods/{id}.json``."""
    payload: dict[str, Any] = {
        "name": f"Mod {mod_id}",
        "summary": f"Summary of mod {mod_id}",
        "description": "",
        "picture_url": f"https://staticdelivery.nexusmods.com/{mod_id}.png",
        "mod_downloads": 1200,
        "mod_unique_downloads": 900,
        "uid": 7318624272384 + mod_id,
        "mod_id": mod_id,
        "game_id": 1704,
        "allow_rating": True,
        "domain_name": domain_name,
        "category_id": 42,
        "version": "1.0.0",
        "endorsement_count": 10,
        "created_timestamp": 1683000000,
        "updated_timestamp": 1684000000,
        "author": "Jane Modder",
        "uploaded_by": "janem",
        "uploaded_users_profile_url": "https://www.nexusmods.com/users/555",
        "contains_adult_content": False,
        "status": "published",
        "available": True,
        "user": {"member_id": 555, "member_group_id": 27, "name": "janem"},
        "endorsement": None,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def mod_payload():
    return _mod_payload
