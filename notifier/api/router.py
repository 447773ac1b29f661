from fastapi import APIRouter

from notifier.api.notifications import router as notifications_router
from notifier.api.session import router as session_router
from notifier.api.sweeper import router as sweeper_router

api_router = APIRouter()

# API routes at /api/*
api_router.include_router(notifications_router, prefix="/api", tags=["notifications"])
api_router.include_router(session_router, prefix="/api", tags=["session"])
api_router.include_router(sweeper_router, prefix="/api", tags=["sweeper"])
