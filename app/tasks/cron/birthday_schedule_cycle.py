import asyncio

from app.celery import celery
from app.db.session import get_sync_session
from app.services.birthday.factory import birthday_components
from app.utils.context import request_id_scope
from app.utils.logging import get_logger


@celery.task(bind=True)
def birthday_schedule_cycle_task(self, request_id: str):
    """
    Periodic task that enqueues today's birthday notifications.

    Finds users whose birthday is today in their own timezone, marks them
    scheduled and inserts one task per user due at local 9:00 AM.

    Args:
        request_id: Request ID for tracking purposes
    """
    return asyncio.run(_async_birthday_schedule_cycle(request_id))


async def _async_birthday_schedule_cycle(request_id: str):
    logger = get_logger().bind(request_id=request_id)

    with request_id_scope(request_id):
        for db_session in get_sync_session():
            try:
                async with birthday_components(db_session) as components:
                    report = await components.scheduler.run_schedule_cycle()

                return {
                    "success": report.failed == 0,
                    **report.model_dump(),
                    "request_id": request_id,
                }

            except Exception as e:
                logger.error(f"Birthday schedule cycle exception: {e}")
                return {"success": False, "error": str(e), "request_id": request_id}
