"""
Startup script for the Birthday Greeter services.

Runs the API, the Celery worker and Celery beat as child processes and stops
all of them as soon as one dies.
"""

import multiprocessing
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import List, Tuple

# Add the parent directory to Python path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.utils.logging import get_logger

logger = get_logger()

PROJECT_ROOT = Path(__file__).parent.parent

SERVICES: List[Tuple[str, List[str]]] = [
    (
        "FastAPI",
        ["-m", "uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", "8000"],
    ),
    # The solo pool keeps one recovery gate per worker process
    (
        "CeleryWorker",
        ["-m", "celery", "-A", "app.celery", "worker", "--loglevel=info", "--pool=solo"],
    ),
    (
        "CeleryBeat",
        ["-m", "celery", "-A", "app.celery", "beat", "--loglevel=info"],
    ),
]


def setup_signal_handlers():
    """Setup signal handlers for graceful shutdown"""

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def run_service(name: str, args: List[str]):
    """Run one service in the foreground of this child process"""
    try:
        logger.info(f"Starting {name} process")
        subprocess.run([sys.executable, *args], check=True, cwd=str(PROJECT_ROOT))
    except subprocess.CalledProcessError as e:
        logger.error(f"{name} process failed with return code {e.returncode}: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info(f"{name} process interrupted by user")


def check_redis_connection() -> bool:
    """Check that the Redis broker and task store is reachable"""
    try:
        import redis
        from app.config.settings import settings

        redis.Redis.from_url(settings.REDIS_URL, socket_connect_timeout=5).ping()
        logger.info("Redis connection successful")
        return True
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        return False


def terminate_processes(processes: List[multiprocessing.Process]):
    """Gracefully terminate all processes"""
    for process in processes:
        if process.is_alive():
            logger.info(f"Terminating {process.name} process")
            process.terminate()

    for process in processes:
        process.join(timeout=10)
        if process.is_alive():
            logger.warning(f"{process.name} did not terminate gracefully, force killing")
            process.kill()
            process.join()


def main():
    multiprocessing.freeze_support()
    setup_signal_handlers()

    logger.info("Starting Birthday Greeter services (API + Celery worker + beat)")

    if not check_redis_connection():
        logger.error("Cannot start services without Redis connection")
        sys.exit(1)

    processes: List[multiprocessing.Process] = []
    try:
        for name, args in SERVICES:
            process = multiprocessing.Process(
                target=run_service, args=(name, args), name=name, daemon=False
            )
            process.start()
            processes.append(process)

        logger.info("API documentation: http://localhost:8000/docs")

        while all(process.is_alive() for process in processes):
            time.sleep(1)

        dead = [p for p in processes if not p.is_alive()]
        for process in dead:
            logger.error(f"{process.name} exited unexpectedly with code {process.exitcode}")

    except KeyboardInterrupt:
        logger.info("Shutdown signal received")
    finally:
        terminate_processes(processes)
        logger.info("All services stopped")


if __name__ == "__main__":
    main()
