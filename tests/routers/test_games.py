import httpx
import respx

from modcache.nexus.client import BASE_URL

GAME = "skyrimspecialedition"


class TestListGames:
    def test_empty(self, client):
        r = client.get("/api/v1/games/")
        assert r.status_code == 200
        assert r.json() == []

    def test_lists_cached_and_stub_games(self, client, make_game, make_mod):
        make_game()
        make_mod(1, domain_name="skyrim")
        r = client.get("/api/v1/games/")
        assert [g["domain_name"] for g in r.json()] == ["skyrim", GAME]
        assert r.json()[0]["id"] is None


class TestGetGame:
    def test_cached_needs_no_key(self, client, make_game, monkeypatch):
        monkeypatch.setattr("modcache.config.settings.nexus_api_key", "")
        make_game(mod_count=5)
        r = client.get(f"/api/v1/games/{GAME}")
        assert r.status_code == 200
        assert r.json()["mod_count"] == 5

    def test_uncached_without_key_400(self, client, monkeypatch):
        monkeypatch.setattr("modcache.config.settings.nexus_api_key", "")
        r = client.get(f"/api/v1/games/{GAME}")
        assert r.status_code == 400

    @respx.mock
    def test_fetches_missing_game(self, client, api_key):
        respx.get(f"{BASE_URL}/v1/games/{GAME}.json").mock(
            return_value=httpx.Response(
                200,
                json={
                    "id": 1704,
                    "name": "Skyrim Special Edition",
                    "domain_name": GAME,
                    "mods": 90000,
                    "categories": [{"category_id": 1, "name": "SSE", "parent_category": False}],
                },
            )
        )
        r = client.get(f"/api/v1/games/{GAME}")
        assert r.status_code == 200
        body = r.json()
        assert body["id"] == 1704
        assert body["categories"] == [
            {"category_id": 1, "name": "SSE", "parent_category_id": None}
        ]

    @respx.mock
    def test_unknown_game_404(self, client, api_key):
        respx.get(f"{BASE_URL}/v1/games/nosuchgame.json").mock(return_value=httpx.Response(404))
        r = client.get("/api/v1/games/nosuchgame")
        assert r.status_code == 404
