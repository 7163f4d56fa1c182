"""FastAPI API endpoints under /api.

Endpoint groups: system (health, story summary), players (onboarding,
current scene, choices, free text, profile, inventory, achievements) and
leaderboard (ranking, achievement catalog). Player resources are nested
under /api/players/{user_id}/.

Engine errors are not caught here; create_app() registers one handler that
maps each QuestBotError subclass to a status code.
"""

from fastapi import APIRouter

from .leaderboard import router as leaderboard_router
from .players import router as players_router
from .system import router as system_router

router = APIRouter()
router.include_router(system_router)
router.include_router(players_router)
router.include_router(leaderboard_router)
