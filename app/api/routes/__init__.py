"""API routes package."""

from fastapi import APIRouter

from app.api.routes import (
    audio,
    health,
    users,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["Health"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(audio.router, prefix="/audio", tags=["Audio"])
