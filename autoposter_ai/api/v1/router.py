from fastapi import APIRouter

from autoposter_ai.api.v1.ai import router as ai_router
from autoposter_ai.api.v1.video_proxy import router as video_proxy_router

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(ai_router)
api_v1_router.include_router(video_proxy_router)
