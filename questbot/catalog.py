"""Story catalog — immutable authored content, loaded once at startup.

The story file (presets/story.json) is validated with pydantic and then
checked for referential integrity: every choice target and the start pointer
must name an existing scene. Any problem aborts the load with a CatalogError
listing all of them, so a broken story stops the process before it serves a
single request instead of stranding users on a dead end.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

from pydantic import ValidationError

from questbot.errors import CatalogError, NotFound
from questbot.models import Chapter, Scene, SceneRef, Story

logger = logging.getLogger(__name__)

UNKNOWN_ITEM_NAME = "Mysterious Object"


class StoryCatalog:
    def __init__(self, story: Story) -> None:
        self._story = story
        self._chapters: dict[int, Chapter] = {c.id: c for c in story.chapters}
        self._scenes: dict[tuple[int, int], Scene] = {
            (c.id, s.id): s for c in story.chapters for s in c.scenes
        }
        problems = self._integrity_problems()
        if problems:
            raise CatalogError(problems)

    @classmethod
    def load(cls, path: Path) -> StoryCatalog:
        try:
            story = Story.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise CatalogError([f"cannot read {path}: {e}"]) from e
        except ValidationError as e:
            raise CatalogError([f"{path}: {err['loc']}: {err['msg']}" for err in e.errors()]) from e
        catalog = cls(story)
        logger.info(
            "Loaded story %s: %d chapters, %d scenes",
            path, catalog.chapter_count(), len(catalog._scenes),
        )
        return catalog

    def _integrity_problems(self) -> list[str]:
        problems = []
        if not self.has_scene(self._story.start):
            problems.append(f"start scene {self._story.start} does not exist")
        elif self.scene_for(self._story.start).requirements:
            # New users and redirected users land here unconditionally.
            problems.append(f"start scene {self._story.start} must not have requirements")
        for chapter in self._story.chapters:
            for scene in chapter.scenes:
                for choice in scene.choices:
                    if not self.has_scene(choice.target):
                        problems.append(
                            f"choice {choice.token!r} in scene {chapter.id}:{scene.id} "
                            f"targets missing scene {choice.target}"
                        )
        return problems

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def start(self) -> SceneRef:
        return self._story.start

    def has_scene(self, ref: SceneRef) -> bool:
        return (ref.chapter, ref.scene) in self._scenes

    def scene_at(self, chapter: int, scene: int) -> Scene:
        found = self._scenes.get((chapter, scene))
        if found is None:
            raise NotFound(chapter, scene)
        return found

    def scene_for(self, ref: SceneRef) -> Scene:
        return self.scene_at(ref.chapter, ref.scene)

    def chapters(self) -> Iterator[Chapter]:
        return iter(self._story.chapters)

    def chapter_count(self) -> int:
        return len(self._chapters)

    def scene_count(self, chapter_id: int) -> int:
        chapter = self._chapters.get(chapter_id)
        return len(chapter.scenes) if chapter else 0

    def item_name(self, item_id: str) -> str:
        return self._story.items.get(item_id, UNKNOWN_ITEM_NAME)
