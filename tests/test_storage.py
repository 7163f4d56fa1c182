"""Tests for questbot.storage — JsonStorage user documents, transactions, catalog merging."""

import json
from pathlib import Path

import pytest

from questbot.errors import NoSuchUser, PersistenceUnavailable
from questbot.models import SceneRef, UserStats
from questbot.storage import JsonStorage

TEST_DATA_DIR = Path("data-tests")
PRESETS_DIR = Path(__file__).parent.parent / "presets"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class TestUsers:
    async def test_create_and_get(self, storage: JsonStorage) -> None:
        assert await storage.create_user(1, "Ana", "chat-1") is True
        user = await storage.get_user(1)
        assert user.display_name == "Ana"
        assert user.channel_ref == "chat-1"
        assert user.coins == 100
        assert user.position == SceneRef(chapter=1, scene=1)

    async def test_create_at_custom_start(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana", start=SceneRef(chapter=2, scene=3))
        user = await storage.get_user(1)
        assert user.position == SceneRef(chapter=2, scene=3)

    async def test_create_twice_keeps_first(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        await storage.add_coins(1, 50)
        assert await storage.create_user(1, "Someone Else") is False
        user = await storage.get_user(1)
        assert user.display_name == "Ana"
        assert user.coins == 150

    async def test_get_unknown_returns_none(self, storage: JsonStorage) -> None:
        assert await storage.get_user(404) is None

    async def test_mutations_on_unknown_user_raise(self, storage: JsonStorage) -> None:
        with pytest.raises(NoSuchUser):
            await storage.add_coins(404, 1)
        with pytest.raises(NoSuchUser):
            await storage.get_progress(404)

    async def test_state_survives_new_instance(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        await storage.add_experience(1, 130)
        await storage.add_item(1, "key", "Rusty Key")
        await storage.unlock_achievement(1, "explorer")
        await storage.save_progress_record(1, 1, 2, ["left"])

        reopened = JsonStorage(TEST_DATA_DIR, PRESETS_DIR)
        user = await reopened.get_user(1)
        assert user.experience == 130
        assert user.level == 2
        assert [i.item_id for i in user.inventory] == ["key"]
        assert user.achievements == ["explorer"]
        progress = await reopened.get_progress(1)
        assert [(p.chapter, p.scene, p.choices) for p in progress] == [(1, 2, ["left"])]

    async def test_get_user_returns_a_copy(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        user = await storage.get_user(1)
        user.coins = 0
        assert (await storage.get_user(1)).coins == 100

    async def test_update_user(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        await storage.update_user(1, {
            "current_chapter": 2,
            "current_scene": 1,
            "stats": UserStats(decisions_total=4),
        })
        user = await storage.get_user(1)
        assert user.position == SceneRef(chapter=2, scene=1)
        assert user.stats.decisions_total == 4

    async def test_update_user_rejects_unknown_fields(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        with pytest.raises(ValueError):
            await storage.update_user(1, {"achievements": ["legend"]})

    async def test_add_experience_reports_level_up(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        await storage.add_experience(1, 95)
        change = await storage.add_experience(1, 10)
        assert (change.experience, change.level, change.level_up) == (105, 2, True)

    async def test_negative_coins_rejected(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        with pytest.raises(ValueError):
            await storage.add_coins(1, -5)

    async def test_add_item_allows_duplicates(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        await storage.add_item(1, "potion", "Potion")
        await storage.add_item(1, "potion", "Potion")
        assert len((await storage.get_user(1)).inventory) == 2

    async def test_unlock_is_idempotent(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        assert await storage.unlock_achievement(1, "decision_maker") is True
        assert await storage.unlock_achievement(1, "decision_maker") is False
        assert (await storage.get_user(1)).achievements == ["decision_maker"]

    async def test_corrupt_document_is_unavailable(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        (TEST_DATA_DIR / "users" / "1.json").write_text("{broken", encoding="utf-8")
        with pytest.raises(PersistenceUnavailable):
            await storage.get_user(1)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

class TestTransactions:
    async def test_commit_on_success(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        async with storage.transaction(1):
            await storage.add_coins(1, 10)
            await storage.add_experience(1, 10)
        user = await storage.get_user(1)
        assert (user.coins, user.experience) == (110, 10)

    async def test_reads_see_staged_writes(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        async with storage.transaction(1):
            await storage.add_coins(1, 10)
            assert (await storage.get_user(1)).coins == 110
            on_disk = json.loads((TEST_DATA_DIR / "users" / "1.json").read_text(encoding="utf-8"))
            assert on_disk["user"]["coins"] == 100

    async def test_rollback_on_error(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        with pytest.raises(RuntimeError):
            async with storage.transaction(1):
                await storage.add_coins(1, 10)
                await storage.save_progress_record(1, 1, 2, ["left"])
                raise RuntimeError("boom")
        assert (await storage.get_user(1)).coins == 100
        assert await storage.get_progress(1) == []

    async def test_nested_transaction_joins_outer(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        with pytest.raises(RuntimeError):
            async with storage.transaction(1):
                async with storage.transaction(1):
                    await storage.add_coins(1, 10)
                raise RuntimeError("boom")
        assert (await storage.get_user(1)).coins == 100

    async def test_other_users_not_staged(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        await storage.create_user(2, "Bo")
        with pytest.raises(RuntimeError):
            async with storage.transaction(1):
                await storage.add_coins(2, 10)
                raise RuntimeError("boom")
        assert (await storage.get_user(2)).coins == 110

    async def test_transaction_for_unknown_user(self, storage: JsonStorage) -> None:
        with pytest.raises(NoSuchUser):
            async with storage.transaction(404):
                pass


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

async def test_get_ranking_order_and_limit(storage: JsonStorage) -> None:
    for user_id, xp in [(1, 50), (2, 250), (3, 250), (4, 120)]:
        await storage.create_user(user_id, f"user{user_id}")
        await storage.add_experience(user_id, xp)
    ranking = await storage.get_ranking(3)
    assert [u.user_id for u in ranking] == [2, 3, 4]
    assert len(await storage.get_ranking(None)) == 4


# ---------------------------------------------------------------------------
# Achievement catalog
# ---------------------------------------------------------------------------

class TestAchievementCatalog:
    async def test_presets_loaded_and_sorted_by_points(self, storage: JsonStorage) -> None:
        achievements = await storage.get_all_achievements()
        ids = [a.id for a in achievements]
        assert "first_steps" in ids and "legend" in ids
        points = [a.points for a in achievements]
        assert points == sorted(points)

    async def test_stored_entries_override_presets(self, storage: JsonStorage) -> None:
        (TEST_DATA_DIR / "achievements.json").write_text(json.dumps([
            {"id": "legend", "name": "Legend (edited)", "points": 5},
            {"id": "night_owl", "name": "Night Owl", "points": 10},
        ]), encoding="utf-8")
        by_id = {a.id: a for a in await storage.get_all_achievements()}
        assert by_id["legend"].name == "Legend (edited)"
        assert by_id["legend"].points == 5
        assert "night_owl" in by_id
        assert "first_steps" in by_id

    async def test_without_presets(self) -> None:
        assert await JsonStorage(TEST_DATA_DIR).get_all_achievements() == []
