"""Pydantic request/response models for API endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from questbot.models import Effect, InventoryItem, Outcome, Reward, Scene, SceneRef


class StartBody(BaseModel):
    user_id: int
    display_name: str
    channel_ref: str = ""


class ChoiceBody(BaseModel):
    token: str


class MessageBody(BaseModel):
    text: str = ""


class ChoiceButton(BaseModel):
    token: str
    text: str


class SceneView(BaseModel):
    """What a transport needs to show a scene: text plus selectable buttons."""

    position: SceneRef
    title: str
    description: str
    image: str | None = None
    choices: list[ChoiceButton]

    @classmethod
    def build(cls, position: SceneRef, scene: Scene) -> SceneView:
        return cls(
            position=position,
            title=scene.title,
            description=scene.description,
            image=scene.image,
            choices=[ChoiceButton(token=c.token, text=c.text) for c in scene.choices],
        )


class OutcomeView(BaseModel):
    effects: list[Effect]
    rewards: list[Reward]
    level_up: bool
    new_level: int
    newly_unlocked: list[str]
    next_scene: SceneView

    @classmethod
    def build(cls, outcome: Outcome) -> OutcomeView:
        return cls(
            effects=outcome.effects,
            rewards=outcome.rewards,
            level_up=outcome.level_up,
            new_level=outcome.new_level,
            newly_unlocked=outcome.newly_unlocked,
            next_scene=SceneView.build(outcome.position, outcome.next_scene),
        )


class MessageReply(BaseModel):
    reply: str
    scene: SceneView


class RankingEntry(BaseModel):
    position: int
    user_id: int
    display_name: str
    level: int
    experience: int
    coins: int


class ChapterSummary(BaseModel):
    id: int
    title: str
    scenes: int


class StorySummary(BaseModel):
    chapters: list[ChapterSummary] = Field(default_factory=list)


class Inventory(BaseModel):
    items: list[InventoryItem]
