from fastapi import APIRouter
from app.modules.media.router import router as media_router
from app.modules.webhooks.router import router as webhooks_router

api_router = APIRouter()
api_router.include_router(media_router, prefix="/media", tags=["media"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
