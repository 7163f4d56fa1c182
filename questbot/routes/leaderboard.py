"""Ranking and achievement catalog endpoints."""

from fastapi import APIRouter, Depends, Query

from questbot.models import Achievement
from questbot.ranking import RankCalculator
from questbot.storage import Persistence

from .dependencies import get_ranks, get_storage
from .models import RankingEntry

router = APIRouter()


@router.get("/ranking")
async def ranking(
    limit: int = Query(default=10, ge=1, le=1000),
    ranks: RankCalculator = Depends(get_ranks),
) -> list[RankingEntry]:
    """Top players by level, then experience."""
    return [
        RankingEntry(
            position=position,
            user_id=user.user_id,
            display_name=user.display_name,
            level=user.level,
            experience=user.experience,
            coins=user.coins,
        )
        for position, user in enumerate(await ranks.top_n(limit), start=1)
    ]


@router.get("/achievements")
async def achievements(storage: Persistence = Depends(get_storage)) -> list[Achievement]:
    """The full achievement catalog, cheapest first."""
    return await storage.get_all_achievements()
