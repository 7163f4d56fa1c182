"""Rule-triggered achievement unlocks.

Rules live in the achievement catalog itself: an entry with an
``unlock_when`` block (metric + threshold) is awarded automatically once a
user's metric reaches the threshold. Entries without one are only ever
unlocked by an authored achievement effect. New rules are new catalog
entries — nothing here or in the engine needs to change.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from questbot.models import Achievement, Metric, UnlockRule, UserState

if TYPE_CHECKING:
    from questbot.storage import Persistence

logger = logging.getLogger(__name__)

Rules = dict[str, UnlockRule]

METRICS: dict[Metric, Callable[[UserState], int]] = {
    "level": lambda u: u.level,
    "experience": lambda u: u.experience,
    "coins": lambda u: u.coins,
    "decisions_total": lambda u: u.stats.decisions_total,
    "chapters_completed": lambda u: u.stats.chapters_completed,
    "treasures_found": lambda u: u.stats.treasures_found,
    "items": lambda u: len(u.inventory),
    "achievements": lambda u: len(u.achievements),
}


def rules_from_catalog(catalog: list[Achievement]) -> Rules:
    return {a.id: a.unlock_when for a in catalog if a.unlock_when is not None}


def rule_holds(rule: UnlockRule, user: UserState) -> bool:
    return METRICS[rule.metric](user) >= rule.at_least


def qualifying(rules: Rules, user: UserState) -> list[str]:
    """Ids the user qualifies for but does not hold yet, in rule order."""
    held = set(user.achievements)
    return [
        achievement_id
        for achievement_id, rule in rules.items()
        if achievement_id not in held and rule_holds(rule, user)
    ]


class AchievementEvaluator:
    """Applies the rule set to a user through the idempotent unlock call.

    Rules are read from the storage catalog on first use and kept for the
    lifetime of the evaluator, unless given explicitly.
    """

    def __init__(self, storage: Persistence, rules: Rules | None = None) -> None:
        self._storage = storage
        self._rules = rules

    async def rules(self) -> Rules:
        if self._rules is None:
            self._rules = rules_from_catalog(await self._storage.get_all_achievements())
            logger.info("loaded %d achievement rules", len(self._rules))
        return dict(self._rules)

    async def evaluate(self, user: UserState) -> list[str]:
        """Unlock every qualifying achievement; return the newly unlocked ids."""
        unlocked = []
        for achievement_id in qualifying(await self.rules(), user):
            if await self._storage.unlock_achievement(user.user_id, achievement_id):
                unlocked.append(achievement_id)
        if unlocked:
            logger.debug("rule unlocks for user %s: %s", user.user_id, unlocked)
        return unlocked
