import asyncio

from celery.signals import worker_ready

from app.celery import celery
from app.db.session import get_sync_session, init_db
from app.services.birthday.factory import birthday_components
from app.services.birthday.recovery import DailyGate
from app.utils.context import request_id_scope
from app.utils.logging import get_logger

logger = get_logger()

# Per worker process; a restart runs the sweep again on its first check
recovery_gate = DailyGate()


@celery.task(bind=True)
def birthday_recovery_sweep_task(self, request_id: str):
    """
    Retry messages that exhausted their delivery attempts.

    Checked every few minutes by beat and once at worker startup, but the
    sweep itself runs at most once per UTC day in this worker.

    Args:
        request_id: Request ID for tracking purposes
    """
    return asyncio.run(_async_birthday_recovery_sweep(request_id))


async def _async_birthday_recovery_sweep(request_id: str):
    logger_ctx = logger.bind(request_id=request_id)

    with request_id_scope(request_id):
        for db_session in get_sync_session():
            try:
                async with birthday_components(db_session, gate=recovery_gate) as components:
                    report = await components.recovery.run_if_due()

                if not report.executed:
                    logger_ctx.debug(
                        f"Recovery sweep already ran on {report.swept_day}, skipping"
                    )

                return {
                    "success": report.errored == 0,
                    **report.model_dump(mode="json"),
                    "request_id": request_id,
                }

            except Exception as e:
                logger_ctx.error(f"Birthday recovery sweep exception: {e}")
                return {"success": False, "error": str(e), "request_id": request_id}


@worker_ready.connect
def run_startup_recovery(sender=None, **kwargs):
    """Create tables and queue the first recovery sweep when a worker comes up"""
    init_db()
    logger.info("Worker ready, queueing startup recovery sweep")
    birthday_recovery_sweep_task.delay("birthday_recovery_sweep_startup")
