"""State transition of a notification task after a dispatch attempt.

Kept free of storage access so the retry policy can be tested on its own:
the dispatcher applies the returned transition to the task store.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from app.schemas.birthday_schemas import NotificationTask
from app.utils.datetime_utils import to_epoch_millis

MAX_RETRY_ATTEMPTS = 3


class DeliveryOutcome(enum.Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    STALE = "stale"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class Removed:
    """The task leaves the live store with no further action"""

    task: NotificationTask
    outcome: DeliveryOutcome


@dataclass(frozen=True)
class Requeued:
    """The task goes back to the live store with one more attempt counted"""

    previous: NotificationTask
    task: NotificationTask


@dataclass(frozen=True)
class Failed:
    """Retries are exhausted, the task moves to the failed sets"""

    previous: NotificationTask
    task: NotificationTask


TaskTransition = Union[Removed, Requeued, Failed]


def advance_task(
    task: NotificationTask,
    outcome: DeliveryOutcome,
    now: datetime,
    max_attempts: int = MAX_RETRY_ATTEMPTS,
) -> TaskTransition:
    """
    Decide what happens to a task after a dispatch attempt.

    A failed delivery is requeued with its attempt counter incremented and its
    due time refreshed to now while retry_attempts + 1 < max_attempts,
    otherwise it is marked failed. Every other outcome removes the task.
    """
    if outcome is not DeliveryOutcome.FAILED:
        return Removed(task=task, outcome=outcome)

    attempts = task.retry_attempts + 1
    if attempts < max_attempts:
        return Requeued(
            previous=task,
            task=task.model_copy(
                update={
                    "retry_attempts": attempts,
                    "due_at_epoch_millis": to_epoch_millis(now),
                }
            ),
        )
    return Failed(
        previous=task, task=task.model_copy(update={"retry_attempts": attempts})
    )
