"""Choice processor — applies one user choice end-to-end.

Choice flow (per user, one at a time):
  1. Resolve the user's current scene.
  2. Find the choice whose token matches; anything else is InvalidChoice.
  3. Apply the choice's effects in declaration order:
       experience  → add_experience (level-up visible to later effects)
       coins       → add_coins
       item        → add_item, counts as a treasure found
       achievement → idempotent unlock
  4. Gate: the target scene's requirements must hold for the post-effect
     state, otherwise RequirementUnmet and the choice is rolled back.
  5. First entry into the target scene grants its rewards.
  6. Update stats, then run the achievement rules on the refreshed state.
  7. Advance the (chapter, scene) pointer and append a progress record.

Steps 3-7 run inside one storage transaction, so a failure (or timeout) at
any point leaves the user exactly as they were before the choice. A keyed
lock around steps 1-7 serialises concurrent choices from the same user: the
second of two double-tapped choices sees the new scene and is rejected.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from questbot.achievements import AchievementEvaluator
from questbot.catalog import StoryCatalog
from questbot.errors import InvalidChoice, NoSuchUser, PersistenceUnavailable, RequirementUnmet
from questbot.locks import KeyedLock
from questbot.models import (
    AchievementEffect,
    CoinsEffect,
    ExperienceEffect,
    ItemEffect,
    Outcome,
    Scene,
    SceneRef,
    UserState,
)
from questbot.resolver import SceneResolver, unmet_requirements

if TYPE_CHECKING:
    from questbot.storage import Persistence

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Tally:
    """What effect application produced, collected for the Outcome."""

    level_up: bool = False
    treasures: int = 0
    newly_unlocked: list[str] = field(default_factory=list)


class ChoiceProcessor:
    """The engine. Collaborators are injected; nothing here is global.

    Args:
        catalog:   Loaded, validated story content.
        storage:   Persistence backend.
        evaluator: Achievement rules evaluator bound to the same storage.
        resolver:  Scene resolver; built from catalog + storage if omitted.
        timeout:   Upper bound in seconds for one engine call against
                   storage. None disables it. Expiry rolls the call back and
                   raises PersistenceUnavailable.
    """

    def __init__(
        self,
        catalog: StoryCatalog,
        storage: Persistence,
        evaluator: AchievementEvaluator,
        *,
        resolver: SceneResolver | None = None,
        timeout: float | None = None,
    ) -> None:
        self._catalog = catalog
        self._storage = storage
        self._evaluator = evaluator
        self._resolver = resolver or SceneResolver(catalog, storage)
        self._timeout = timeout
        self._locks = KeyedLock()

    @property
    def catalog(self) -> StoryCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(self, user_id: int, display_name: str, channel_ref: str = "") -> Scene:
        """Onboard a user (idempotent) and return the scene they are in."""
        async with self._locks(user_id):
            created = await self._bounded(self._onboard(user_id, display_name, channel_ref))
        if created:
            logger.info("user %s started at %s", user_id, self._catalog.start)
        return await self.current_scene(user_id)

    async def current_scene(self, user_id: int) -> Scene:
        """The user's current scene, redirecting them if they may not be there."""
        try:
            return await self._bounded(self._resolver.current_scene(user_id))
        except RequirementUnmet:
            async with self._locks(user_id):
                return await self._bounded(self._redirect(user_id))

    async def apply_choice(self, user_id: int, token: str) -> Outcome:
        async with self._locks(user_id):
            return await self._bounded(self._apply_choice(user_id, token))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _bounded(self, call: Awaitable[T]) -> T:
        if not self._timeout:
            return await call
        try:
            return await asyncio.wait_for(call, self._timeout)
        except asyncio.TimeoutError as e:
            raise PersistenceUnavailable(f"storage did not answer within {self._timeout}s") from e

    async def _require_user(self, user_id: int) -> UserState:
        user = await self._storage.get_user(user_id)
        if user is None:
            raise NoSuchUser(user_id)
        return user

    async def _onboard(self, user_id: int, display_name: str, channel_ref: str) -> bool:
        start = self._catalog.start
        await self._storage.create_user(user_id, display_name, channel_ref, start=start)
        async with self._storage.transaction(user_id):
            # An empty history means the start scene was never entered.
            if await self._storage.get_progress(user_id):
                return False
            tally = _Tally()
            for reward in self._catalog.scene_for(start).rewards:
                await self._apply_effect(user_id, reward, tally)
            if tally.treasures:
                await self._update_stats(user_id, treasures=tally.treasures)
            await self._storage.save_progress_record(user_id, start.chapter, start.scene, [])
        return True

    async def _apply_choice(self, user_id: int, token: str) -> Outcome:
        # 1. Current scene
        user = await self._require_user(user_id)
        scene = self._resolver.scene_for_user(user)

        # 2. Choice lookup
        choice = scene.choice(token)
        if choice is None:
            logger.info("user %s: choice %r not in scene %s", user_id, token, user.position)
            raise InvalidChoice(user_id, token)
        target = self._catalog.scene_for(choice.target)
        visited = {record.position for record in await self._storage.get_progress(user_id)}

        tally = _Tally()
        rewards = []
        async with self._storage.transaction(user_id):
            # 3. Effects
            for effect in choice.effects:
                await self._apply_effect(user_id, effect, tally)

            # 4. Gate
            unmet = unmet_requirements(target.requirements, await self._require_user(user_id))
            if unmet:
                logger.info("user %s may not enter %s yet", user_id, choice.target)
                raise RequirementUnmet(user_id, choice.target, unmet)

            # 5. First-entry rewards
            if choice.target not in visited:
                rewards = list(target.rewards)
                for reward in rewards:
                    await self._apply_effect(user_id, reward, tally)

            # 6. Stats, then rule-triggered unlocks
            await self._update_stats(
                user_id,
                decisions=1,
                chapters=int(choice.target.chapter != user.current_chapter),
                treasures=tally.treasures,
            )
            refreshed = await self._require_user(user_id)
            tally.newly_unlocked.extend(await self._evaluator.evaluate(refreshed))

            # 7. Advance and record
            await self._storage.update_user(user_id, {
                "current_chapter": choice.target.chapter,
                "current_scene": choice.target.scene,
            })
            await self._storage.save_progress_record(
                user_id, choice.target.chapter, choice.target.scene, [token]
            )

        final = await self._require_user(user_id)
        logger.info(
            "user %s: %s --%s--> %s (level %d%s)",
            user_id, user.position, token, choice.target, final.level,
            ", level up" if tally.level_up else "",
        )
        return Outcome(
            choice_token=token,
            effects=list(choice.effects),
            rewards=rewards,
            next_scene=target,
            position=choice.target,
            level_up=tally.level_up,
            new_level=final.level,
            newly_unlocked=tally.newly_unlocked,
        )

    async def _apply_effect(self, user_id: int, effect, tally: _Tally) -> None:
        if isinstance(effect, ExperienceEffect):
            change = await self._storage.add_experience(user_id, effect.amount)
            tally.level_up = tally.level_up or change.level_up
        elif isinstance(effect, CoinsEffect):
            await self._storage.add_coins(user_id, effect.amount)
        elif isinstance(effect, ItemEffect):
            await self._storage.add_item(
                user_id, effect.item_id, self._catalog.item_name(effect.item_id)
            )
            tally.treasures += 1
        elif isinstance(effect, AchievementEffect):
            if await self._storage.unlock_achievement(user_id, effect.achievement_id):
                tally.newly_unlocked.append(effect.achievement_id)
        else:
            raise TypeError(f"unknown effect: {effect!r}")

    async def _update_stats(
        self, user_id: int, *, decisions: int = 0, chapters: int = 0, treasures: int = 0
    ) -> None:
        stats = (await self._require_user(user_id)).stats
        await self._storage.update_user(user_id, {"stats": stats.model_copy(update={
            "decisions_total": stats.decisions_total + decisions,
            "chapters_completed": stats.chapters_completed + chapters,
            "treasures_found": stats.treasures_found + treasures,
        })})

    async def _redirect(self, user_id: int) -> Scene:
        # Re-check under the lock: a choice may have moved the user meanwhile.
        user = await self._require_user(user_id)
        scene = self._catalog.scene_for(user.position)
        if not unmet_requirements(scene.requirements, user):
            return scene

        ref: SceneRef = await self._resolver.fallback_position(user_id)
        async with self._storage.transaction(user_id):
            await self._storage.update_user(user_id, {
                "current_chapter": ref.chapter,
                "current_scene": ref.scene,
            })
            await self._storage.save_progress_record(user_id, ref.chapter, ref.scene, [])
        logger.warning("redirected user %s from %s to %s", user_id, user.position, ref)
        return self._catalog.scene_for(ref)
