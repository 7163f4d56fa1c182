"""Global ranking of users by level, then experience.

Ties are broken by ascending user id so that two calls over unchanged data
always produce the same order and no rank flaps between requests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from questbot.errors import NoSuchUser
from questbot.models import UserState

if TYPE_CHECKING:
    from questbot.storage import Persistence

# (upper rank bound inclusive, badge)
RANK_BADGES = [
    (1, "crown"),
    (3, "podium"),
    (10, "star"),
    (50, "rising-star"),
]
DEFAULT_BADGE = "sparkle"


def ranking_key(user: UserState) -> tuple[int, int, int]:
    return (-user.level, -user.experience, user.user_id)


def rank_badge(rank: int) -> str:
    for bound, badge in RANK_BADGES:
        if rank <= bound:
            return badge
    return DEFAULT_BADGE


class RankCalculator:
    def __init__(self, storage: Persistence) -> None:
        self._storage = storage

    async def top_n(self, n: int | None = 10) -> list[UserState]:
        """The first n users in ranking order; n=None returns everyone."""
        if n is not None and n < 0:
            raise ValueError(f"n must be >= 0, got {n}")
        users = sorted(await self._storage.get_ranking(None), key=ranking_key)
        return users if n is None else users[:n]

    async def rank(self, user_id: int) -> int:
        """1-based position of user_id in top_n(None)."""
        for position, user in enumerate(await self.top_n(None), start=1):
            if user.user_id == user_id:
                return position
        raise NoSuchUser(user_id)
