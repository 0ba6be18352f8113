import httpx
import respx

from modcache.models.tracking import EndorsementStatus
from modcache.nexus.client import BASE_URL, ENDORSEMENTS_PATH
from modcache.services import store

GAME = "skyrimspecialedition"


class TestEndorsements:
    def test_list_filtered(self, client, session):
        store.upsert_endorsement(session, GAME, 1, EndorsementStatus.ENDORSED, "1.0")
        store.upsert_endorsement(session, "skyrim", 2, EndorsementStatus.ABSTAINED)
        r = client.get("/api/v1/endorsements/", params={"game": GAME})
        assert r.status_code == 200
        assert [(e["mod_id"], e["status"]) for e in r.json()] == [(1, "Endorsed")]
        assert len(client.get("/api/v1/endorsements/").json()) == 2

    @respx.mock
    def test_sync(self, client, api_key):
        respx.get(f"{BASE_URL}{ENDORSEMENTS_PATH}").mock(
            return_value=httpx.Response(
                200, json=[{"mod_id": 3, "domain_name": GAME, "status": "Endorsed"}]
            )
        )
        r = client.post("/api/v1/endorsements/sync")
        assert r.status_code == 200
        assert r.json() == {"unchanged": False, "total": 1, "removed": 0}

    @respx.mock
    def test_endorse_and_abstain(self, client, session, api_key):
        respx.post(f"{BASE_URL}/v1/games/{GAME}/mods/3/endorse.json").mock(
            return_value=httpx.Response(200, json={"message": "Updated endorse status"})
        )
        respx.post(f"{BASE_URL}/v1/games/{GAME}/mods/3/abstain.json").mock(
            return_value=httpx.Response(200, json={})
        )
        r = client.post(f"/api/v1/endorsements/{GAME}/3/endorse")
        assert r.json()["status"] == "Endorsed"
        r = client.post(f"/api/v1/endorsements/{GAME}/3/abstain")
        assert r.json()["status"] == "Abstained"
        rows = client.get("/api/v1/endorsements/").json()
        assert [(e["mod_id"], e["status"]) for e in rows] == [(3, "Abstained")]
