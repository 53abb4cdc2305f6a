from .settings import settings

# Basic Celery Configuration
broker_url = settings.REDIS_URL
result_backend = settings.REDIS_URL

# Task Discovery
include = ["app.tasks"]

# Timezone Configuration
timezone = "UTC"
enable_utc = True

# Task Result Configuration
result_expires = 3600

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
# A cycle must finish before the next tick of its own timer
task_track_started = True
task_time_limit = 5 * 60  # 5 minutes
task_soft_time_limit = 4 * 60  # 4 minutes

# Worker Configuration
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Task Retry Configuration
# Delivery retries are tracked on the task payload, not by Celery
task_acks_late = True
task_reject_on_worker_lost = True
task_max_retries = 0

# Each component runs on its own timer
beat_schedule = {
    "birthday-schedule-cycle": {
        "task": "app.tasks.cron.birthday_schedule_cycle.birthday_schedule_cycle_task",
        "schedule": settings.SCHEDULE_INTERVAL_SECONDS,
        "args": ("birthday_schedule_cycle",),
        "options": {"expires": settings.SCHEDULE_INTERVAL_SECONDS},
    },
    "birthday-dispatch-cycle": {
        "task": "app.tasks.cron.birthday_dispatch_cycle.birthday_dispatch_cycle_task",
        "schedule": settings.DISPATCH_INTERVAL_SECONDS,
        "args": ("birthday_dispatch_cycle",),
        "options": {"expires": settings.DISPATCH_INTERVAL_SECONDS},
    },
    "birthday-recovery-sweep": {
        "task": "app.tasks.cron.birthday_recovery_sweep.birthday_recovery_sweep_task",
        "schedule": settings.RECOVERY_CHECK_INTERVAL_SECONDS,
        "args": ("birthday_recovery_sweep",),
    },
}

# Default Queue
task_default_queue = "birthdays"

# Beat Scheduler Configuration
beat_schedule_filename = "celerybeat-schedule"
