from .intent import Intent
from .completion_record import CompletionRecord
from .urge_event import UrgeEvent
from .reward_entry import RewardEntry
from .achievement_unlock import AchievementUnlock

__all__ = [
    "Intent",
    "CompletionRecord",
    "UrgeEvent",
    "RewardEntry",
    "AchievementUnlock",
]
