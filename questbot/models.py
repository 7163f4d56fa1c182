"""Core domain models.

Story content, user state and engine results are all pydantic models so that
validation and serialisation happen at every data boundary: the story file
on load, user documents on disk, and engine results on their way out to a
transport.

Story content is frozen once loaded. UserState is the only mutable model and
is owned by the persistence layer; the engine changes it exclusively through
the persistence interface.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SceneRef(BaseModel):
    """A (chapter, scene) pointer into the story catalog."""

    model_config = ConfigDict(frozen=True)

    chapter: int = Field(ge=1)
    scene: int = Field(ge=1)

    def __str__(self) -> str:
        return f"{self.chapter}:{self.scene}"


# ---------------------------------------------------------------------------
# Effects and rewards
# ---------------------------------------------------------------------------

class ExperienceEffect(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["experience"] = "experience"
    amount: PositiveInt


class CoinsEffect(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["coins"] = "coins"
    amount: PositiveInt


class ItemEffect(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["item"] = "item"
    item_id: str = Field(min_length=1)


class AchievementEffect(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["achievement"] = "achievement"
    achievement_id: str = Field(min_length=1)


Effect = Annotated[
    Union[ExperienceEffect, CoinsEffect, ItemEffect, AchievementEffect],
    Field(discriminator="type"),
]

# Rewards are granted on a user's first entry to a scene; achievements are
# never handed out that way.
Reward = Annotated[
    Union[ExperienceEffect, CoinsEffect, ItemEffect],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Requirements
# ---------------------------------------------------------------------------

class MinimumLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["level"] = "level"
    level: int = Field(ge=1)


class HasItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["item"] = "item"
    item_id: str = Field(min_length=1)


class HasAchievement(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["achievement"] = "achievement"
    achievement_id: str = Field(min_length=1)


Requirement = Annotated[
    Union[MinimumLevel, HasItem, HasAchievement],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Story content
# ---------------------------------------------------------------------------

class Choice(BaseModel):
    """A selectable option within a scene."""

    model_config = ConfigDict(frozen=True)

    token: str = Field(min_length=1)
    text: str
    target: SceneRef
    effects: tuple[Effect, ...] = ()


class Scene(BaseModel):
    """A single narrative beat presenting choices to the user."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1)
    title: str
    description: str
    image: str | None = None
    choices: tuple[Choice, ...] = Field(min_length=1)
    rewards: tuple[Reward, ...] = ()
    requirements: tuple[Requirement, ...] = ()

    @model_validator(mode="after")
    def _unique_tokens(self) -> Scene:
        tokens = [c.token for c in self.choices]
        if len(tokens) != len(set(tokens)):
            raise ValueError(f"scene {self.id} has duplicate choice tokens: {tokens}")
        return self

    def choice(self, token: str) -> Choice | None:
        for c in self.choices:
            if c.token == token:
                return c
        return None


class Chapter(BaseModel):
    """An ordered collection of scenes forming one story arc."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1)
    title: str = ""
    scenes: tuple[Scene, ...] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_scene_ids(self) -> Chapter:
        ids = [s.id for s in self.scenes]
        if len(ids) != len(set(ids)):
            raise ValueError(f"chapter {self.id} has duplicate scene ids: {ids}")
        return self


class Story(BaseModel):
    """The authored story file as loaded from disk."""

    model_config = ConfigDict(frozen=True)

    start: SceneRef = SceneRef(chapter=1, scene=1)
    items: dict[str, str] = Field(default_factory=dict)  # item_id -> display name
    chapters: tuple[Chapter, ...] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_chapter_ids(self) -> Story:
        ids = [c.id for c in self.chapters]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate chapter ids: {ids}")
        return self


# ---------------------------------------------------------------------------
# User state (owned by the persistence layer)
# ---------------------------------------------------------------------------

class InventoryItem(BaseModel):
    item_id: str
    name: str
    obtained_at: str = Field(default_factory=now_iso)


class UserStats(BaseModel):
    decisions_total: int = Field(default=0, ge=0)
    chapters_completed: int = Field(default=0, ge=0)
    treasures_found: int = Field(default=0, ge=0)


class UserState(BaseModel):
    """A user's persistent progression state."""

    user_id: int
    display_name: str
    channel_ref: str = ""
    level: int = Field(default=1, ge=1)
    experience: int = Field(default=0, ge=0)
    coins: int = Field(default=100, ge=0)
    current_chapter: int = Field(default=1, ge=1)
    current_scene: int = Field(default=1, ge=1)
    created_at: str = Field(default_factory=now_iso)
    last_active: str = Field(default_factory=now_iso)
    inventory: list[InventoryItem] = Field(default_factory=list)
    achievements: list[str] = Field(default_factory=list)  # unlock order
    stats: UserStats = Field(default_factory=UserStats)

    @field_validator("achievements")
    @classmethod
    def _no_duplicate_achievements(cls, value: list[str]) -> list[str]:
        if len(value) != len(set(value)):
            raise ValueError("an achievement can only be unlocked once")
        return value

    @property
    def position(self) -> SceneRef:
        return SceneRef(chapter=self.current_chapter, scene=self.current_scene)

    def has_item(self, item_id: str) -> bool:
        return any(item.item_id == item_id for item in self.inventory)


class ProgressRecord(BaseModel):
    """One entry in a user's append-only progress history."""

    chapter: int
    scene: int
    choices: list[str] = Field(default_factory=list)
    completed_at: str = Field(default_factory=now_iso)

    @property
    def position(self) -> SceneRef:
        return SceneRef(chapter=self.chapter, scene=self.scene)


# ---------------------------------------------------------------------------
# Achievements catalog
# ---------------------------------------------------------------------------

Rarity = Literal["common", "uncommon", "rare", "epic", "legendary"]

Metric = Literal[
    "level",
    "experience",
    "coins",
    "decisions_total",
    "chapters_completed",
    "treasures_found",
    "items",
    "achievements",
]


class UnlockRule(BaseModel):
    """Unlock once the given metric of a user reaches a threshold."""

    model_config = ConfigDict(frozen=True)

    metric: Metric
    at_least: int = Field(ge=0)


class Achievement(BaseModel):
    """Static catalog entry for a named milestone."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    icon: str = "⭐"
    points: int = Field(default=0, ge=0)
    rarity: Rarity = "common"
    unlock_when: UnlockRule | None = None


# ---------------------------------------------------------------------------
# Engine results
# ---------------------------------------------------------------------------

class LevelChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    experience: int
    level: int
    level_up: bool


class Outcome(BaseModel):
    """Everything a transport needs to report a processed choice."""

    choice_token: str
    effects: list[Effect]
    rewards: list[Reward] = Field(default_factory=list)
    next_scene: Scene
    position: SceneRef
    level_up: bool
    new_level: int
    newly_unlocked: list[str] = Field(default_factory=list)


class Profile(BaseModel):
    user: UserState
    rank: int
    badge: str
    days_active: int
    points: int
    experience_to_next_level: int
    achievements: list[Achievement] = Field(default_factory=list)
