"""Player endpoints: onboarding, current scene, choices, free text, profile."""

import logging
import random

from fastapi import APIRouter, Depends

from questbot.engine import ChoiceProcessor
from questbot.errors import NoSuchUser
from questbot.models import Achievement, Profile
from questbot.profile import build_profile, unknown_achievement
from questbot.ranking import RankCalculator
from questbot.storage import Persistence
from questbot.transport import Transport, TransportError

from .dependencies import get_engine, get_ranks, get_storage, get_transport
from .models import (
    ChoiceBody,
    Inventory,
    MessageBody,
    MessageReply,
    OutcomeView,
    SceneView,
    StartBody,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Replies to free text; the story only moves through choices.
NUDGES = [
    "Interesting... but you need to decide using the story's buttons.",
    "Your adventure continues... pick an option from the current scene.",
    "Words have power, but actions define your destiny. Choose!",
    "I have heard your words, adventurer. Now decide your next step.",
    "Destiny is listening... use the buttons to continue your story.",
]


async def _current_view(engine: ChoiceProcessor, storage: Persistence, user_id: int) -> SceneView:
    scene = await engine.current_scene(user_id)
    user = await storage.get_user(user_id)
    if user is None:
        raise NoSuchUser(user_id)
    return SceneView.build(user.position, scene)


@router.post("/players")
async def start_player(
    body: StartBody,
    engine: ChoiceProcessor = Depends(get_engine),
    storage: Persistence = Depends(get_storage),
) -> SceneView:
    """Onboard a player (idempotent) and return the scene they are in."""
    await engine.start(body.user_id, body.display_name, body.channel_ref)
    return await _current_view(engine, storage, body.user_id)


@router.get("/players/{user_id}/scene")
async def current_scene(
    user_id: int,
    engine: ChoiceProcessor = Depends(get_engine),
    storage: Persistence = Depends(get_storage),
) -> SceneView:
    """The player's current scene."""
    return await _current_view(engine, storage, user_id)


@router.post("/players/{user_id}/choices")
async def apply_choice(
    user_id: int,
    body: ChoiceBody,
    engine: ChoiceProcessor = Depends(get_engine),
    storage: Persistence = Depends(get_storage),
    transport: Transport = Depends(get_transport),
) -> OutcomeView:
    """Apply a choice from the player's current scene."""
    view = OutcomeView.build(await engine.apply_choice(user_id, body.token))

    user = await storage.get_user(user_id)
    if user is not None and user.channel_ref:
        try:
            await transport.deliver(user.channel_ref, view.model_dump(mode="json"))
        except TransportError as e:
            logger.warning("outcome for user %s not delivered: %s", user_id, e)
    return view


@router.post("/players/{user_id}/messages")
async def free_text(
    user_id: int,
    body: MessageBody,
    engine: ChoiceProcessor = Depends(get_engine),
    storage: Persistence = Depends(get_storage),
) -> MessageReply:
    """Answer free text with a nudge and re-show the current scene."""
    scene = await _current_view(engine, storage, user_id)
    return MessageReply(reply=random.choice(NUDGES), scene=scene)


@router.get("/players/{user_id}/profile")
async def profile(
    user_id: int,
    storage: Persistence = Depends(get_storage),
    ranks: RankCalculator = Depends(get_ranks),
) -> Profile:
    """Level, stats, rank and held achievements."""
    return await build_profile(storage, ranks, user_id)


@router.get("/players/{user_id}/inventory")
async def inventory(user_id: int, storage: Persistence = Depends(get_storage)) -> Inventory:
    user = await storage.get_user(user_id)
    if user is None:
        raise NoSuchUser(user_id)
    return Inventory(items=user.inventory)


@router.get("/players/{user_id}/achievements")
async def player_achievements(
    user_id: int, storage: Persistence = Depends(get_storage)
) -> list[Achievement]:
    """Held achievements, in unlock order."""
    user = await storage.get_user(user_id)
    if user is None:
        raise NoSuchUser(user_id)
    catalog = {a.id: a for a in await storage.get_all_achievements()}
    return [catalog.get(a_id) or unknown_achievement(a_id) for a_id in user.achievements]
