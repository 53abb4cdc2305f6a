from .dispatcher import BirthdayDispatcher
from .email_notifier import EmailNotifier
from .factory import BirthdayComponents, birthday_components
from .outcome_store import OutcomeStore
from .recovery import DailyGate, RecoverySweep
from .scheduler import BirthdayScheduler
from .task_store import DelayedTaskStore, RedisDelayedTaskStore

__all__ = [
    "BirthdayDispatcher",
    "EmailNotifier",
    "BirthdayComponents",
    "birthday_components",
    "OutcomeStore",
    "DailyGate",
    "RecoverySweep",
    "BirthdayScheduler",
    "DelayedTaskStore",
    "RedisDelayedTaskStore",
]
