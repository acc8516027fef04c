"""
Achievement catalog — fixed, ordered list of (key, title, tier, rule).

Keys are permanent: once shipped, a key is never renamed or reused,
because unlocks are stored by key.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Union

from defer.models.enums import AchievementTier

if TYPE_CHECKING:
    from defer.services.achievement_engine import AchievementProgress

Number = Union[int, float, Decimal]


class RuleKind(str, enum.Enum):
    min_intentional_decisions = "min_intentional_decisions"
    min_urge_logs = "min_urge_logs"
    min_reflections = "min_reflections"
    min_delay_adherence = "min_delay_adherence"
    min_resisted = "min_resisted"
    min_postpones = "min_postpones"
    min_spend_avoided = "min_spend_avoided"
    min_intentional_run = "min_intentional_run"


_METRICS: dict[RuleKind, Callable[["AchievementProgress"], Number]] = {
    RuleKind.min_intentional_decisions: lambda p: p.intentional_count,
    RuleKind.min_urge_logs: lambda p: p.urge_log_count,
    RuleKind.min_reflections: lambda p: p.reflection_count,
    RuleKind.min_delay_adherence: lambda p: p.delay_adherence_rate,
    RuleKind.min_resisted: lambda p: p.resisted_count,
    RuleKind.min_postpones: lambda p: p.postpone_count,
    RuleKind.min_spend_avoided: lambda p: p.estimated_spend_avoided,
    RuleKind.min_intentional_run: lambda p: p.max_intentional_run,
}


@dataclass(frozen=True)
class AchievementRule:
    kind: RuleKind
    target: Number
    # Only used by min_delay_adherence: resolved decisions needed before
    # the rate counts.
    min_samples: int = 0

    def current(self, progress: "AchievementProgress") -> Number:
        return _METRICS[self.kind](progress)

    def is_satisfied(self, progress: "AchievementProgress") -> bool:
        if self.kind == RuleKind.min_delay_adherence:
            if progress.resolved_count < self.min_samples:
                return False
        return self.current(progress) >= self.target

    def progress_pair(self, progress: "AchievementProgress") -> tuple[Number, Number]:
        """(current capped at target, target) for progress displays.

        An adherence rule short of its sample minimum reports
        (resolved decisions, min_samples) instead of the rate.
        """
        if (self.kind == RuleKind.min_delay_adherence
                and progress.resolved_count < self.min_samples):
            return progress.resolved_count, self.min_samples
        return min(self.current(progress), self.target), self.target


@dataclass(frozen=True)
class AchievementDefinition:
    key: str
    title: str
    details: str
    tier: AchievementTier
    rule: AchievementRule


CATALOG: tuple[AchievementDefinition, ...] = (
    AchievementDefinition(
        key="first_intentional_decision",
        title="First Intentional Choice",
        details="Make your first intentional decision at a checkpoint.",
        tier=AchievementTier.bronze,
        rule=AchievementRule(RuleKind.min_intentional_decisions, 1),
    ),
    AchievementDefinition(
        key="intentional_decisions_10",
        title="Deliberate",
        details="Make 10 intentional decisions.",
        tier=AchievementTier.silver,
        rule=AchievementRule(RuleKind.min_intentional_decisions, 10),
    ),
    AchievementDefinition(
        key="intentional_decisions_50",
        title="Decision Architect",
        details="Make 50 intentional decisions.",
        tier=AchievementTier.legend,
        rule=AchievementRule(RuleKind.min_intentional_decisions, 50),
    ),
    AchievementDefinition(
        key="first_urge_logged",
        title="Name It",
        details="Log your first urge while waiting.",
        tier=AchievementTier.bronze,
        rule=AchievementRule(RuleKind.min_urge_logs, 1),
    ),
    AchievementDefinition(
        key="urge_logs_25",
        title="Urge Surfer",
        details="Log 25 urges.",
        tier=AchievementTier.silver,
        rule=AchievementRule(RuleKind.min_urge_logs, 25),
    ),
    AchievementDefinition(
        key="reflections_3",
        title="Looking Back",
        details="Write 3 reflections on resolved decisions.",
        tier=AchievementTier.bronze,
        rule=AchievementRule(RuleKind.min_reflections, 3),
    ),
    AchievementDefinition(
        key="reflections_15",
        title="Reflective Mind",
        details="Write 15 reflections on resolved decisions.",
        tier=AchievementTier.gold,
        rule=AchievementRule(RuleKind.min_reflections, 15),
    ),
    AchievementDefinition(
        key="delay_adherence_80",
        title="Honors the Wait",
        details="Decide at or after the checkpoint 80% of the time (5+ decisions).",
        tier=AchievementTier.gold,
        rule=AchievementRule(RuleKind.min_delay_adherence, 0.8, min_samples=5),
    ),
    AchievementDefinition(
        key="resisted_5",
        title="Held the Line",
        details="Resist 5 impulses.",
        tier=AchievementTier.silver,
        rule=AchievementRule(RuleKind.min_resisted, 5),
    ),
    AchievementDefinition(
        key="first_postpone",
        title="Not Yet",
        details="Postpone a decision instead of rushing it.",
        tier=AchievementTier.bronze,
        rule=AchievementRule(RuleKind.min_postpones, 1),
    ),
    AchievementDefinition(
        key="spend_avoided_100",
        title="Saved a Hundred",
        details="Avoid 100 in estimated spending by resisting.",
        tier=AchievementTier.silver,
        rule=AchievementRule(RuleKind.min_spend_avoided, Decimal("100")),
    ),
    AchievementDefinition(
        key="spend_avoided_1000",
        title="Thousand Saved",
        details="Avoid 1,000 in estimated spending by resisting.",
        tier=AchievementTier.legend,
        rule=AchievementRule(RuleKind.min_spend_avoided, Decimal("1000")),
    ),
    AchievementDefinition(
        key="intentional_run_3",
        title="Momentum Builder",
        details="Make 3 intentional decisions in a row.",
        tier=AchievementTier.gold,
        rule=AchievementRule(RuleKind.min_intentional_run, 3),
    ),
    AchievementDefinition(
        key="intentional_run_7",
        title="Unstoppable",
        details="Make 7 intentional decisions in a row.",
        tier=AchievementTier.legend,
        rule=AchievementRule(RuleKind.min_intentional_run, 7),
    ),
)


def definition_for(key: str) -> AchievementDefinition | None:
    return next((d for d in CATALOG if d.key == key), None)
