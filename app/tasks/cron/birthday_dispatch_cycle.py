import asyncio

from app.celery import celery
from app.db.session import get_sync_session
from app.services.birthday.factory import birthday_components
from app.utils.context import request_id_scope
from app.utils.logging import get_logger


@celery.task(bind=True)
def birthday_dispatch_cycle_task(self, request_id: str):
    """
    Periodic task that sends due birthday notifications.

    Each due task is sent at most once per tick; failed sends are requeued
    until the retry ceiling and then moved to the failed sets.

    Args:
        request_id: Request ID for tracking purposes
    """
    return asyncio.run(_async_birthday_dispatch_cycle(request_id))


async def _async_birthday_dispatch_cycle(request_id: str):
    logger = get_logger().bind(request_id=request_id)

    with request_id_scope(request_id):
        for db_session in get_sync_session():
            try:
                async with birthday_components(db_session) as components:
                    report = await components.dispatcher.run_dispatch_cycle()

                return {
                    "success": report.errored == 0,
                    **report.model_dump(),
                    "request_id": request_id,
                }

            except Exception as e:
                logger.error(f"Birthday dispatch cycle exception: {e}")
                return {"success": False, "error": str(e), "request_id": request_id}
