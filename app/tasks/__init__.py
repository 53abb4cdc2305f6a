from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "birthday_schedule_cycle_task",
    "birthday_dispatch_cycle_task",
    "birthday_recovery_sweep_task",
]
