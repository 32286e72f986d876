from fastapi import APIRouter

from sessionsplit.api.v1.endpoints import auth, player, sessions

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(player.router, prefix="/player", tags=["player"])
