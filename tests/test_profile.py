"""Tests for questbot.profile — profile assembly and day counting."""

from datetime import datetime, timedelta, timezone

import pytest

from questbot.errors import NoSuchUser
from questbot.profile import build_profile, days_active, unknown_achievement
from questbot.ranking import RankCalculator
from questbot.storage import JsonStorage


NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("elapsed,days", [
    (timedelta(0), 1),
    (timedelta(hours=3), 1),
    (timedelta(days=1), 1),
    (timedelta(days=1, seconds=1), 2),
    (timedelta(days=6, hours=12), 7),
])
def test_days_active(elapsed: timedelta, days: int) -> None:
    assert days_active((NOW - elapsed).isoformat(), now=NOW) == days


def test_days_active_naive_timestamp_is_utc() -> None:
    created = (NOW - timedelta(days=2)).replace(tzinfo=None).isoformat()
    assert days_active(created, now=NOW) == 2


def test_unknown_achievement_placeholder() -> None:
    placeholder = unknown_achievement("ghost")
    assert placeholder.id == "ghost"
    assert placeholder.name == "Unknown Achievement"
    assert placeholder.icon == "❓"


class TestBuildProfile:
    async def test_profile(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        await storage.create_user(2, "Bo")
        await storage.add_experience(2, 30)
        await storage.add_experience(1, 145)
        await storage.unlock_achievement(1, "first_steps")
        await storage.unlock_achievement(1, "legend")

        profile = await build_profile(storage, RankCalculator(storage), 1)
        assert profile.user.display_name == "Ana"
        assert profile.rank == 1
        assert profile.badge == "crown"
        assert profile.days_active == 1
        assert profile.points == 50 + 1000
        assert profile.experience_to_next_level == 55
        assert [a.id for a in profile.achievements] == ["first_steps", "legend"]

    async def test_unknown_held_achievement_gets_placeholder(self, storage: JsonStorage) -> None:
        await storage.create_user(1, "Ana")
        await storage.unlock_achievement(1, "retired_badge")
        profile = await build_profile(storage, RankCalculator(storage), 1)
        assert profile.achievements[0].name == "Unknown Achievement"
        assert profile.points == 0

    async def test_unknown_user(self, storage: JsonStorage) -> None:
        with pytest.raises(NoSuchUser):
            await build_profile(storage, RankCalculator(storage), 404)
