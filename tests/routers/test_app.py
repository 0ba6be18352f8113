import httpx
import pytest
import respx

from modcache.exceptions import ConflictError, NotFoundError, StoreIOError
from modcache.nexus.client import BASE_URL, mod_path

GAME = "skyrimspecialedition"
MOD_URL = f"{BASE_URL}{mod_path(GAME, 92607)}"


class TestRoot:
    def test_root(self, client):
        assert client.get("/").json() == {"status": "ok"}

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


class TestNexusErrorMapping:
    @pytest.mark.parametrize(
        ("upstream", "expected"),
        [(401, 401), (403, 401), (404, 404), (429, 429), (503, 502), (418, 502)],
    )
    def test_status_mapping(self, client, api_key, upstream, expected):
        with respx.mock:
            respx.get(MOD_URL).mock(return_value=httpx.Response(upstream))
            r = client.get(f"/api/v1/mods/{GAME}/92607")
        assert r.status_code == expected
        assert r.json()["detail"]

    @respx.mock
    def test_rate_limit_body(self, client, api_key):
        respx.get(MOD_URL).mock(
            return_value=httpx.Response(
                429, headers={"X-RL-Hourly-Remaining": "0", "X-RL-Daily-Remaining": "12"}
            )
        )
        r = client.get(f"/api/v1/mods/{GAME}/92607")
        assert r.status_code == 429
        assert r.json()["hourly_remaining"] == 0
        assert r.json()["daily_remaining"] == 12


class TestStoreErrorMapping:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (NotFoundError("missing"), 404),
            (ConflictError("UNIQUE constraint failed"), 409),
            (StoreIOError("database is locked"), 500),
        ],
    )
    def test_mapping(self, client, make_game, monkeypatch, error, expected):
        make_game()

        def _raise(*args, **kwargs):
            raise error

        monkeypatch.setattr("modcache.services.queries.trending", _raise)
        r = client.get(f"/api/v1/mods/{GAME}/trending")
        assert r.status_code == expected
        assert r.json() == {"detail": str(error)}
