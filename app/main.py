from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config.settings import settings
from app.db.session import init_db
from app.middlewares import RequestIDMiddleware
from app.routers import main_router
from app.utils.errors import setup_error_handlers
from app.utils.logging import get_logger

logger = get_logger()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    logger.info(f"{settings.NAME} {settings.VERSION} API started ({settings.ENVIRONMENT})")
    yield
    logger.info(f"{settings.NAME} API shutting down")


def create_application() -> FastAPI:
    """User management API; birthday delivery itself runs in the Celery worker."""
    application = FastAPI(
        title=settings.NAME, version=settings.VERSION, lifespan=lifespan
    )

    setup_error_handlers(application)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    # Added last so it wraps CORS and sees every request first
    application.add_middleware(RequestIDMiddleware)

    application.include_router(main_router, prefix=settings.API_PREFIX)

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, log_config=None)
