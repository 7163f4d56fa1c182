"""Player profile: state, held achievements, points, rank, days active."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from questbot.errors import NoSuchUser
from questbot.models import Achievement, Profile
from questbot.progression import experience_to_next_level
from questbot.ranking import RankCalculator, rank_badge

if TYPE_CHECKING:
    from questbot.storage import Persistence


def days_active(created_at: str, now: datetime | None = None) -> int:
    """Whole days since creation, rounded up; a brand-new user counts as 1."""
    now = now or datetime.now(timezone.utc)
    created = datetime.fromisoformat(created_at)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    elapsed = abs((now - created).total_seconds())
    return max(1, math.ceil(elapsed / 86400))


def unknown_achievement(achievement_id: str) -> Achievement:
    return Achievement(
        id=achievement_id,
        name="Unknown Achievement",
        description="Description not available",
        icon="❓",
    )


async def build_profile(storage: Persistence, ranks: RankCalculator, user_id: int) -> Profile:
    user = await storage.get_user(user_id)
    if user is None:
        raise NoSuchUser(user_id)

    catalog = {a.id: a for a in await storage.get_all_achievements()}
    held = [catalog.get(a_id) or unknown_achievement(a_id) for a_id in user.achievements]
    rank = await ranks.rank(user_id)

    return Profile(
        user=user,
        rank=rank,
        badge=rank_badge(rank),
        days_active=days_active(user.created_at),
        points=sum(a.points for a in held),
        experience_to_next_level=experience_to_next_level(user.experience),
        achievements=held,
    )
