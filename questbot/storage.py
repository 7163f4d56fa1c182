"""Persistence interface and JSON file storage.

The engine only talks to storage through the async Persistence protocol, so
any backend with read-your-writes consistency per user can be dropped in.
JsonStorage is the bundled implementation: flat JSON files under a base
directory, no database or ORM.

Directory layout:

    {data}/
      users/
        {user_id}.json      ← {"user": UserState, "progress": [ProgressRecord]}
      achievements.json     ← catalog overrides, merged over the presets
    {presets}/
      achievements.json     ← built-in achievement catalog (read-only)

A user document holds both the state and its progress history, and is always
replaced whole (temp file + rename). That makes one document write the unit
of atomicity: inside transaction() every write is staged in memory and the
document is written once on success, or dropped on error.

Preset merging: get_all_achievements() merges preset + stored entries at read
time; stored entries win on id collision.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError

from questbot.errors import NoSuchUser, PersistenceUnavailable
from questbot.models import (
    Achievement,
    InventoryItem,
    LevelChange,
    ProgressRecord,
    SceneRef,
    UserState,
    now_iso,
)
from questbot.progression import apply_experience
from questbot.ranking import ranking_key

logger = logging.getLogger(__name__)

# Fields update_user() may touch. Achievements only change through
# unlock_achievement(), which is what keeps unlocking idempotent.
MUTABLE_FIELDS = frozenset({
    "display_name",
    "channel_ref",
    "level",
    "experience",
    "coins",
    "current_chapter",
    "current_scene",
    "inventory",
    "stats",
})


# ---------------------------------------------------------------------------
# Persistence protocol: what the engine needs from a backend
# ---------------------------------------------------------------------------

class Persistence(Protocol):
    async def get_user(self, user_id: int) -> UserState | None: ...

    async def create_user(
        self, user_id: int, display_name: str, channel_ref: str = "",
        start: SceneRef | None = None,
    ) -> bool: ...

    async def update_user(self, user_id: int, fields: dict[str, Any]) -> None: ...

    async def add_experience(self, user_id: int, amount: int) -> LevelChange: ...

    async def add_coins(self, user_id: int, amount: int) -> None: ...

    async def add_item(self, user_id: int, item_id: str, name: str) -> InventoryItem: ...

    async def unlock_achievement(self, user_id: int, achievement_id: str) -> bool: ...

    async def save_progress_record(
        self, user_id: int, chapter_id: int, scene_id: int, choice_tokens: list[str]
    ) -> None: ...

    async def get_progress(self, user_id: int) -> list[ProgressRecord]: ...

    async def get_ranking(self, limit: int | None = 10) -> list[UserState]: ...

    async def get_all_achievements(self) -> list[Achievement]: ...

    def transaction(self, user_id: int) -> AbstractAsyncContextManager[None]: ...


# ---------------------------------------------------------------------------
# JsonStorage
# ---------------------------------------------------------------------------

class UserRecord(BaseModel):
    """On-disk document for one user."""

    user: UserState
    progress: list[ProgressRecord] = Field(default_factory=list)


# Staged user documents for the transaction(s) open in the current task,
# keyed by document path. Other tasks never see them.
_staged: ContextVar[dict[Path, UserRecord] | None] = ContextVar(
    "questbot_staged_users", default=None
)


class JsonStorage:
    def __init__(self, base_path: Path, presets_path: Path | None = None) -> None:
        self._base = base_path
        self._users_root = base_path / "users"
        self._users_root.mkdir(parents=True, exist_ok=True)
        self._presets = presets_path

    # ------------------------------------------------------------------
    # Internal path and document helpers
    # ------------------------------------------------------------------

    def _user_file(self, user_id: int) -> Path:
        return self._users_root / f"{user_id}.json"

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise PersistenceUnavailable(f"cannot read {path.name}: {e}") from e
        except json.JSONDecodeError as e:
            raise PersistenceUnavailable(f"corrupt JSON in {path.name}: {e}") from e

    def _read_record(self, user_id: int) -> UserRecord | None:
        path = self._user_file(user_id)
        staged = _staged.get()
        if staged is not None and path in staged:
            return staged[path]
        if not path.is_file():
            return None
        try:
            return UserRecord.model_validate(self._read_json(path))
        except ValidationError as e:
            raise PersistenceUnavailable(f"corrupt user record {path.name}") from e

    def _require(self, user_id: int) -> UserRecord:
        record = self._read_record(user_id)
        if record is None:
            raise NoSuchUser(user_id)
        return record

    def _write_record(self, record: UserRecord) -> None:
        path = self._user_file(record.user.user_id)
        staged = _staged.get()
        if staged is not None and path in staged:
            staged[path] = record
            return
        self._commit(path, record)

    def _commit(self, path: Path, record: UserRecord) -> None:
        tmp = path.with_name(path.name + ".tmp")
        try:
            tmp.write_text(record.model_dump_json(indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise PersistenceUnavailable(f"cannot write {path.name}: {e}") from e
        logger.debug("wrote %s", path.name)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self, user_id: int) -> AsyncIterator[None]:
        """Stage every write to user_id and commit them as one document.

        Reads in the same task see the staged writes. Any exception inside
        the block (cancellation included) discards them. Nested transactions
        for the same user join the outer one.
        """
        path = self._user_file(user_id)
        outer = _staged.get()
        if outer is not None and path in outer:
            yield
            return

        record = self._require(user_id)
        staged = dict(outer or {})
        staged[path] = record.model_copy(deep=True)
        token = _staged.set(staged)
        try:
            yield
        except BaseException:
            logger.info("transaction for user %s rolled back", user_id)
            raise
        else:
            self._commit(path, staged[path])
        finally:
            _staged.reset(token)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: int) -> UserState | None:
        record = self._read_record(user_id)
        return record.user.model_copy(deep=True) if record else None

    async def create_user(
        self, user_id: int, display_name: str, channel_ref: str = "",
        start: SceneRef | None = None,
    ) -> bool:
        """Create a user at the start scene. Returns False if already present."""
        if self._read_record(user_id) is not None:
            return False
        start = start or SceneRef(chapter=1, scene=1)
        user = UserState(
            user_id=user_id,
            display_name=display_name,
            channel_ref=channel_ref,
            current_chapter=start.chapter,
            current_scene=start.scene,
        )
        self._write_record(UserRecord(user=user))
        logger.info("created user %s (%s)", user_id, display_name)
        return True

    async def update_user(self, user_id: int, fields: dict[str, Any]) -> None:
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update user fields: {sorted(unknown)}")
        record = self._require(user_id)
        data = record.user.model_dump()
        for key, value in fields.items():
            if isinstance(value, BaseModel):
                value = value.model_dump()
            elif isinstance(value, list):
                value = [v.model_dump() if isinstance(v, BaseModel) else v for v in value]
            data[key] = value
        data["last_active"] = now_iso()
        record.user = UserState.model_validate(data)
        self._write_record(record)

    async def add_experience(self, user_id: int, amount: int) -> LevelChange:
        record = self._require(user_id)
        change = apply_experience(record.user.experience, record.user.level, amount)
        record.user.experience = change.experience
        record.user.level = change.level
        self._write_record(record)
        return change

    async def add_coins(self, user_id: int, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"coin amount must be >= 0, got {amount}")
        record = self._require(user_id)
        record.user.coins += amount
        self._write_record(record)

    async def add_item(self, user_id: int, item_id: str, name: str) -> InventoryItem:
        record = self._require(user_id)
        item = InventoryItem(item_id=item_id, name=name)
        record.user.inventory.append(item)
        self._write_record(record)
        return item

    async def unlock_achievement(self, user_id: int, achievement_id: str) -> bool:
        """Idempotent: returns True only when the id was not held before."""
        record = self._require(user_id)
        if achievement_id in record.user.achievements:
            return False
        record.user.achievements.append(achievement_id)
        self._write_record(record)
        logger.info("user %s unlocked %s", user_id, achievement_id)
        return True

    async def get_ranking(self, limit: int | None = 10) -> list[UserState]:
        users = []
        for path in self._users_root.glob("*.json"):
            record = self._read_record(int(path.stem))
            if record is not None:
                users.append(record.user)
        users.sort(key=ranking_key)
        return users if limit is None else users[:limit]

    # ------------------------------------------------------------------
    # Progress history (append-only)
    # ------------------------------------------------------------------

    async def save_progress_record(
        self, user_id: int, chapter_id: int, scene_id: int, choice_tokens: list[str]
    ) -> None:
        record = self._require(user_id)
        record.progress.append(
            ProgressRecord(chapter=chapter_id, scene=scene_id, choices=list(choice_tokens))
        )
        self._write_record(record)

    async def get_progress(self, user_id: int) -> list[ProgressRecord]:
        return list(self._require(user_id).progress)

    # ------------------------------------------------------------------
    # Achievement catalog
    # ------------------------------------------------------------------

    def _achievement_entries(self, path: Path) -> list[dict]:
        if not path.is_file():
            return []
        return self._read_json(path)

    async def get_all_achievements(self) -> list[Achievement]:
        merged: dict[str, dict] = {}
        if self._presets is not None:
            for entry in self._achievement_entries(self._presets / "achievements.json"):
                merged[entry["id"]] = entry
        for entry in self._achievement_entries(self._base / "achievements.json"):
            merged[entry["id"]] = entry
        try:
            achievements = [Achievement.model_validate(e) for e in merged.values()]
        except ValidationError as e:
            raise PersistenceUnavailable(f"invalid achievement catalog: {e}") from e
        return sorted(achievements, key=lambda a: a.points)
