"""Central API router aggregating all domain routers."""

from fastapi import APIRouter

from chatsync.auth.router import router as auth_router
from chatsync.chat.router import router as chat_router
from chatsync.health.router import router as health_router
from chatsync.invitation.router import router as invitation_router
from chatsync.profile.router import router as profile_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(auth_router)
api_router.include_router(profile_router)
api_router.include_router(chat_router)
api_router.include_router(invitation_router)
