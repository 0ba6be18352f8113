from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from modcache.exceptions import ConflictError, NotFoundError, StoreIOError
from modcache.models.game import Category, Game
from modcache.models.mod import Mod, ModCheck
from modcache.models.settings import AppSetting
from modcache.models.tracking import Endorsement, EndorsementStatus, Tracked
from modcache.schemas.nexus import CategoryPayload
from modcache.services import store
from modcache.utils.timestamps import as_utc, from_timestamp, utcnow

GAME = "skyrimspecialedition"


def _record(mod_id: int = 92607, **overrides) -> Mod:
    fields = {
        "domain_name": GAME,
        "mod_id": mod_id,
        "etag": 'W/"abc"',
        "name": "Engine Fixes",
        "version": "6.1.1",
        "summary": "Fixes engine bugs",
        "author": "aers",
        "uploaded_by": "aers",
        "endorsement_count": 100,
        "nexus_updated": from_timestamp(1684000000),
    }
    fields.update(overrides)
    return Mod(**fields)


class TestTransaction:
    def test_commits_on_success(self, session):
        with store.transaction(session):
            session.add(Game(domain_name=GAME))
        session.rollback()
        assert session.get(Game, GAME) is not None

    def test_rolls_back_on_error(self, session):
        with pytest.raises(ValueError), store.transaction(session):
            session.add(Game(domain_name=GAME))
            session.flush()
            raise ValueError("boom")
        assert session.get(Game, GAME) is None

    def test_nested_commits_once(self, session):
        with pytest.raises(ValueError), store.transaction(session):
            with store.transaction(session):
                session.add(Game(domain_name=GAME))
            raise ValueError("outer failed")
        assert session.get(Game, GAME) is None

    def test_duplicate_key_is_conflict(self, session):
        store.ensure_game(session, GAME)
        with pytest.raises(ConflictError), store.transaction(session):
            session.add(Tracked(domain_name=GAME, mod_id=1))
            session.add(Tracked(domain_name=GAME, mod_id=1))
        assert session.exec(select(Tracked)).all() == []

    def test_foreign_key_enforced(self, session):
        with pytest.raises(ConflictError), store.transaction(session):
            session.add(Tracked(domain_name="nosuchgame", mod_id=1))

    def test_io_failure_is_store_io_error(self, session, monkeypatch):
        def _fail():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "commit", _fail)
        with pytest.raises(StoreIOError, match="disk I/O error"), store.transaction(session):
            session.add(Game(domain_name=GAME))


class TestGames:
    def test_ensure_game_inserts_stub(self, session):
        game = store.ensure_game(session, GAME)
        session.commit()
        assert game.is_stub
        assert store.ensure_game(session, GAME) is game
        assert len(session.exec(select(Game)).all()) == 1

    def test_get_game_missing(self, session):
        with pytest.raises(NotFoundError):
            store.get_game(session, "morrowind")

    def test_upsert_game_replaces_stub(self, session):
        store.ensure_game(session, GAME)
        session.commit()
        record = Game(domain_name=GAME, id=1704, name="Skyrim Special Edition", mod_count=90000)
        categories = [
            CategoryPayload(category_id=1, name="Skyrim Special Edition"),
            CategoryPayload(category_id=42, name="Patches", parent_category_id=1),
        ]
        store.upsert_game(session, record, categories)

        game = store.get_game(session, GAME)
        assert not game.is_stub
        assert game.mod_count == 90000
        assert {c.category_id: c.parent_category_id for c in game.categories} == {1: None, 42: 1}

    def test_upsert_game_twice_keeps_categories_unique(self, session):
        categories = [CategoryPayload(category_id=42, name="Patches")]
        store.upsert_game(session, Game(domain_name=GAME, id=1704, name="SSE"), categories)
        renamed = [CategoryPayload(category_id=42, name="Bug Fixes")]
        store.upsert_game(session, Game(domain_name=GAME, id=1704, name="SSE"), renamed)

        rows = session.exec(select(Category)).all()
        assert len(rows) == 1
        assert rows[0].name == "Bug Fixes"

    def test_upsert_game_drops_missing_categories(self, session):
        both = [
            CategoryPayload(category_id=1, name="Skyrim Special Edition"),
            CategoryPayload(category_id=42, name="Patches"),
        ]
        store.upsert_game(session, Game(domain_name=GAME, id=1704, name="SSE"), both)
        store.upsert_game(session, Game(domain_name=GAME, id=1704, name="SSE"), both[:1])
        assert [c.category_id for c in session.exec(select(Category)).all()] == [1]

    def test_upsert_game_without_categories_keeps_them(self, session):
        categories = [CategoryPayload(category_id=42, name="Patches")]
        store.upsert_game(session, Game(domain_name=GAME, id=1704, name="SSE"), categories)
        store.upsert_game(session, Game(domain_name=GAME, id=1704, name="SSE", mod_count=5))
        assert len(session.exec(select(Category)).all()) == 1

    def test_upsert_category_creates_stub_game(self, session):
        store.upsert_category(session, "morrowind", 3, "Armour")
        assert session.get(Game, "morrowind").is_stub


class TestMods:
    def test_round_trip(self, session, make_game):
        make_game()
        inserted = store.upsert_mod(session, _record())
        fetched = store.get_mod(session, GAME, 92607)
        assert fetched.id == inserted.id
        assert fetched.name == "Engine Fixes"
        assert fetched.etag == 'W/"abc"'
        assert as_utc(fetched.nexus_updated) == from_timestamp(1684000000)
        assert fetched.is_active

    def test_get_mod_missing(self, session):
        with pytest.raises(NotFoundError):
            store.get_mod(session, GAME, 1)
        assert store.find_mod(session, GAME, 1) is None

    def test_upsert_mod_self_inserts_game(self, session):
        store.upsert_mod(session, _record())
        assert session.get(Game, GAME).is_stub

    def test_same_ids_in_different_games(self, session):
        store.upsert_mod(session, _record(mod_id=7))
        store.upsert_mod(session, _record(mod_id=7, domain_name="skyrim"))
        assert len(session.exec(select(Mod)).all()) == 2

    def test_identical_payload_is_idempotent(self, session):
        store.upsert_mod(session, _record())
        before = store.get_mod(session, GAME, 92607).model_dump()

        store.upsert_mod(session, _record())
        after = store.get_mod(session, GAME, 92607).model_dump()

        assert after == before
        assert len(session.exec(select(Mod)).all()) == 1

    def test_changed_payload_advances_modified(self, session):
        store.upsert_mod(session, _record())
        first = as_utc(store.get_mod(session, GAME, 92607).modified)

        store.upsert_mod(session, _record(version="6.2.0", etag='W/"def"'))
        mod = store.get_mod(session, GAME, 92607)
        assert mod.version == "6.2.0"
        assert mod.etag == 'W/"def"'
        assert as_utc(mod.modified) >= first

    def test_mark_deleted_inserts_tombstone(self, session):
        mod = store.mark_deleted(session, GAME, 404)
        assert mod.deleted is not None
        assert mod.status == "removed"
        assert not mod.is_active
        assert session.exec(select(ModCheck)).one().mod_id == 404

    def test_mark_deleted_keeps_existing_payload(self, session):
        store.upsert_mod(session, _record())
        store.mark_deleted(session, GAME, 92607)
        mod = store.get_mod(session, GAME, 92607)
        assert mod.name == "Engine Fixes"
        assert not mod.is_active

    def test_changed_fetch_clears_deleted(self, session):
        store.mark_deleted(session, GAME, 92607)
        store.upsert_mod(session, _record())
        assert store.get_mod(session, GAME, 92607).is_active

    def test_upsert_user(self, session):
        store.upsert_user(session, 555, "janem", 27)
        user = store.upsert_user(session, 555, "jane", 27)
        assert user.name == "jane"


class TestTrackedSet:
    def test_replace(self, session):
        diff = store.set_tracked(session, GAME, [10, 20, 30])
        assert diff.added == {10, 20, 30}
        diff = store.set_tracked(session, GAME, [20, 30])
        assert diff.added == set()
        assert diff.removed == {10}
        assert store.tracked_ids(session, GAME) == {20, 30}

    def test_merge(self, session):
        store.set_tracked(session, GAME, [10])
        diff = store.set_tracked(session, GAME, [20], replace=False)
        assert diff.removed == set()
        assert store.tracked_ids(session, GAME) == {10, 20}

    def test_retracking_does_not_duplicate(self, session):
        store.set_tracked(session, GAME, [10], replace=False)
        store.set_tracked(session, GAME, [10], replace=False)
        assert len(session.exec(select(Tracked)).all()) == 1

    def test_remove_tracked(self, session):
        store.set_tracked(session, GAME, [10, 20, 30])
        assert store.remove_tracked(session, GAME, [10, 99]) == 1
        assert store.tracked_ids(session, GAME) == {20, 30}

    def test_games_are_independent(self, session):
        store.set_tracked(session, GAME, [1, 2])
        store.set_tracked(session, "skyrim", [3])
        store.set_tracked(session, GAME, [])
        assert store.tracked_ids(session, "skyrim") == {3}


class TestEndorsements:
    def test_new_status_overwrites(self, session):
        store.upsert_endorsement(session, GAME, 5, EndorsementStatus.ENDORSED, "1.0", utcnow())
        store.upsert_endorsement(session, GAME, 5, EndorsementStatus.ABSTAINED, "1.1", None)
        rows = session.exec(select(Endorsement)).all()
        assert len(rows) == 1
        assert rows[0].status == EndorsementStatus.ABSTAINED
        assert rows[0].version == "1.1"

    def test_remove(self, session):
        store.upsert_endorsement(session, GAME, 5, EndorsementStatus.ENDORSED)
        assert store.remove_endorsements(session, GAME, [5]) == 1
        assert session.exec(select(Endorsement)).all() == []


class TestPendingMods:
    def test_missing_first_in_key_order(self, session, track, make_mod):
        track(30, 10, 20)
        track(5, domain_name="skyrim")
        make_mod(20)
        assert store.pending_mods(session) == [
            ("skyrim", 5),
            (GAME, 10),
            (GAME, 30),
        ]
        assert store.pending_mods(session, GAME) == [(GAME, 10), (GAME, 30)]

    def test_untracked_mods_are_not_pending(self, session, make_mod):
        make_mod(1)
        assert store.pending_mods(session, GAME) == []

    def test_stale_after_missing(self, session, track, make_mod):
        now = utcnow()
        track(1, 2, 3)
        make_mod(1, modified=now - timedelta(days=10))
        make_mod(2, modified=now - timedelta(days=20))
        pending = store.pending_mods(session, GAME, stale_before=now - timedelta(days=7))
        assert pending == [(GAME, 3), (GAME, 2), (GAME, 1)]

    def test_recent_check_is_not_stale(self, session, track, make_mod):
        now = utcnow()
        track(1)
        make_mod(1, modified=now - timedelta(days=10))
        store.record_check(session, GAME, 1)
        assert store.pending_mods(session, GAME, stale_before=now - timedelta(days=7)) == []


class TestChangelogsAndTokens:
    def test_upsert_changelog(self, session):
        store.upsert_changelog(session, GAME, 5, {"1.0": ["Initial release"]}, 'W/"c1"')
        store.upsert_changelog(
            session, GAME, 5, {"1.0": ["Initial release"], "1.1": ["Fix"]}, 'W/"c2"'
        )
        changelog = store.find_changelog(session, GAME, 5)
        assert changelog.versions == {"1.0": ["Initial release"], "1.1": ["Fix"]}
        assert changelog.etag == 'W/"c2"'

    def test_list_tokens(self, session):
        assert store.get_list_token(session, "tracked_mods") is None
        store.set_list_token(session, "tracked_mods", 'W/"t1"')
        store.set_list_token(session, "tracked_mods", 'W/"t2"')
        assert store.get_list_token(session, "tracked_mods") == 'W/"t2"'
        assert len(session.exec(select(AppSetting)).all()) == 1
