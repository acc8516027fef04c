"""Closed enumerations shared by models, services and schemas."""
import enum


class IntentStatus(str, enum.Enum):
    """The four lifecycle states. resolved and canceled are terminal."""
    active_wait = "active_wait"
    checkpoint_due = "checkpoint_due"
    resolved = "resolved"
    canceled = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (IntentStatus.resolved, IntentStatus.canceled)


# Values written by older stores; rewritten once by defer.db.legacy.
LEGACY_STATUS_ALIASES: dict[str, IntentStatus] = {
    "active": IntentStatus.active_wait,
    "paused": IntentStatus.active_wait,
    "completed": IntentStatus.resolved,
    "failed": IntentStatus.resolved,
}


class IntentCategory(str, enum.Enum):
    health = "health"
    spending = "spending"
    nutrition = "nutrition"
    habit = "habit"
    relationship = "relationship"
    productivity = "productivity"
    custom = "custom"


class IntentKind(str, enum.Enum):
    abstinence = "abstinence"
    spending = "spending"
    custom = "custom"


class DecisionOutcome(str, enum.Enum):
    resisted = "resisted"
    intentional_yes = "intentional_yes"
    gave_in = "gave_in"
    postponed = "postponed"
    canceled = "canceled"

    @property
    def is_intentional(self) -> bool:
        return self in (DecisionOutcome.resisted, DecisionOutcome.intentional_yes)

    @property
    def is_resolution(self) -> bool:
        """Outcomes that count as a made decision (not postponed, not canceled)."""
        return self in (
            DecisionOutcome.resisted,
            DecisionOutcome.intentional_yes,
            DecisionOutcome.gave_in,
        )


class DelayProtocolType(str, enum.Enum):
    ten_minutes = "ten_minutes"
    twenty_four_hours = "twenty_four_hours"
    seventy_two_hours = "seventy_two_hours"
    until_payday = "until_payday"
    custom_date = "custom_date"


class AchievementTier(str, enum.Enum):
    bronze = "bronze"
    silver = "silver"
    gold = "gold"
    legend = "legend"
