"""Scene resolution: which scene is a user in, and may they be there?

A user's (chapter, scene) pointer is only ever written by the choice
processor, and only to scenes whose requirements the user meets. Finding a
pointer that misses the catalog, or that points at a gated scene the user
does not satisfy, therefore means the data is inconsistent (a story edit
removed or re-gated a scene, or a record was edited by hand). Both cases are
raised as typed errors, never treated as a normal miss.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from questbot.catalog import StoryCatalog
from questbot.errors import NoSuchUser, NotFound, RequirementUnmet
from questbot.models import (
    HasAchievement,
    HasItem,
    MinimumLevel,
    Requirement,
    Scene,
    SceneRef,
    UserState,
)

if TYPE_CHECKING:
    from questbot.storage import Persistence

logger = logging.getLogger(__name__)


def requirement_met(requirement: Requirement, user: UserState) -> bool:
    if isinstance(requirement, MinimumLevel):
        return user.level >= requirement.level
    if isinstance(requirement, HasItem):
        return user.has_item(requirement.item_id)
    if isinstance(requirement, HasAchievement):
        return requirement.achievement_id in user.achievements
    raise TypeError(f"unknown requirement: {requirement!r}")


def unmet_requirements(requirements: Iterable[Requirement], user: UserState) -> list[Requirement]:
    return [r for r in requirements if not requirement_met(r, user)]


class SceneResolver:
    def __init__(self, catalog: StoryCatalog, storage: Persistence) -> None:
        self._catalog = catalog
        self._storage = storage

    async def current_scene(self, user_id: int) -> Scene:
        user = await self._storage.get_user(user_id)
        if user is None:
            raise NoSuchUser(user_id)
        return self.scene_for_user(user)

    def scene_for_user(self, user: UserState) -> Scene:
        try:
            scene = self._catalog.scene_at(user.current_chapter, user.current_scene)
        except NotFound:
            logger.critical(
                "user %s points at missing scene %s", user.user_id, user.position
            )
            raise

        unmet = unmet_requirements(scene.requirements, user)
        if unmet:
            logger.warning(
                "user %s is in scene %s without meeting %s",
                user.user_id, user.position, [r.type for r in unmet],
            )
            raise RequirementUnmet(user.user_id, user.position, unmet)
        return scene

    async def fallback_position(self, user_id: int) -> SceneRef:
        """Latest scene in the user's history that exists and that they satisfy.

        Falls back to the story start when no recorded scene qualifies.
        """
        user = await self._storage.get_user(user_id)
        if user is None:
            raise NoSuchUser(user_id)
        for record in reversed(await self._storage.get_progress(user_id)):
            ref = record.position
            if ref == user.position or not self._catalog.has_scene(ref):
                continue
            if not unmet_requirements(self._catalog.scene_for(ref).requirements, user):
                return ref
        return self._catalog.start
