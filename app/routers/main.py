from fastapi import APIRouter

from app.routers.health import health_router
from app.routers.users import users_router

main_router = APIRouter()

main_router.include_router(users_router, prefix="/users", tags=["Users"])
main_router.include_router(health_router, prefix="/health", tags=["Health"])
