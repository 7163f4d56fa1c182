"""Typed failures raised by the engine and its persistence layer.

Every failure mode has its own class so that callers can tell a benign
rejection (InvalidChoice) from a content bug (NotFound) or a retryable
infrastructure problem (PersistenceUnavailable). The HTTP layer maps each
class to a status code; nothing in the engine signals failure by returning
None.
"""

from __future__ import annotations

from typing import Any

from questbot.models import SceneRef


class QuestBotError(Exception):
    """Base class for all engine errors."""

    retryable = False


class NoSuchUser(QuestBotError):
    """The user id is unknown; the caller must onboard the user first."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"No such user: {user_id}")
        self.user_id = user_id


class NotFound(QuestBotError):
    """A catalog lookup missed. Always a content or data-integrity bug."""

    def __init__(self, chapter: int, scene: int) -> None:
        super().__init__(f"Scene {chapter}:{scene} not found in the story catalog")
        self.chapter = chapter
        self.scene = scene


class InvalidChoice(QuestBotError):
    """The token does not belong to the user's current scene."""

    def __init__(self, user_id: int, token: str) -> None:
        super().__init__(f"Choice {token!r} is not available to user {user_id}")
        self.user_id = user_id
        self.token = token


class RequirementUnmet(QuestBotError):
    """A user is (or would be) in a scene whose requirements they do not meet."""

    def __init__(self, user_id: int, position: SceneRef, unmet: list[Any]) -> None:
        kinds = ", ".join(r.type for r in unmet)
        super().__init__(
            f"User {user_id} does not meet requirements of scene {position} ({kinds})"
        )
        self.user_id = user_id
        self.position = position
        self.unmet = unmet


class PersistenceUnavailable(QuestBotError):
    """The persistence collaborator failed or timed out. Safe to retry."""

    retryable = True

    def __init__(self, detail: str) -> None:
        super().__init__(f"Persistence unavailable: {detail}")
        self.detail = detail


class CatalogError(QuestBotError):
    """The story content failed validation at load time."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("Story catalog is invalid:\n  " + "\n  ".join(problems))
        self.problems = problems
