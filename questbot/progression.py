"""Experience → level arithmetic. Pure functions, no storage access."""

from __future__ import annotations

from questbot.models import LevelChange

XP_PER_LEVEL = 100


def level_for(experience: int) -> int:
    return experience // XP_PER_LEVEL + 1


def apply_experience(current_experience: int, current_level: int, delta: int) -> LevelChange:
    """Add delta experience and derive the new level.

    Experience only ever grows, so a negative delta is a caller bug.
    level_up is True iff the derived level exceeds current_level.
    """
    if delta < 0:
        raise ValueError(f"experience delta must be >= 0, got {delta}")
    experience = current_experience + delta
    level = level_for(experience)
    return LevelChange(experience=experience, level=level, level_up=level > current_level)


def progress_in_level(experience: int) -> int:
    """Experience earned inside the current level (0–99)."""
    return experience % XP_PER_LEVEL


def experience_to_next_level(experience: int) -> int:
    return XP_PER_LEVEL - progress_in_level(experience)
