"""Master API router: includes all sub-routers."""

from fastapi import APIRouter

from .routes.auth import router as auth_router
from .routes.feeds import router as feeds_router
from .routes.indicators import router as indicators_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth_router)
api_router.include_router(feeds_router)
api_router.include_router(indicators_router)
