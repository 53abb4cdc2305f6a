from .birthday_dispatch_cycle import birthday_dispatch_cycle_task
from .birthday_recovery_sweep import birthday_recovery_sweep_task
from .birthday_schedule_cycle import birthday_schedule_cycle_task

__all__ = [
    "birthday_schedule_cycle_task",
    "birthday_dispatch_cycle_task",
    "birthday_recovery_sweep_task",
]
