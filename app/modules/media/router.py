from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import Settings, get_settings
from app.core.db import get_session
from app.core.security import get_principal, require_scopes, Principal
from app.modules.media.schemas import MediaAssetOut, UploadUrlRequest
from app.modules.media.service import MediaService
from app.modules.webhooks.dispatcher import DispatchOutcome, EventDispatcher
from app.modules.webhooks.router import get_dispatcher
from app.platform.ports.object_storage import ObjectStoragePort
from app.platform.provider_registry import get_object_storage

router = APIRouter()

def svc(
    session: AsyncSession = Depends(get_session),
    storage: ObjectStoragePort = Depends(get_object_storage),
    settings: Settings = Depends(get_settings),
) -> MediaService:
    return MediaService(session, storage, settings)

@router.post("/request-upload-url", dependencies=[Depends(require_scopes("media:write"))])
async def request_upload_url(
    payload: UploadUrlRequest,
    principal: Principal = Depends(get_principal),
    service: MediaService = Depends(svc),
):
    return await service.request_upload(principal, payload)

@router.put("/upload-local/{asset_id}", dependencies=[Depends(require_scopes("media:write"))])
async def upload_local(
    asset_id: str,
    request: Request,
    principal: Principal = Depends(get_principal),
    service: MediaService = Depends(svc),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    # raw body: the asset record already knows the content type
    event = await service.accept_local_upload(principal, asset_id, await request.body())
    outcome = await dispatcher.dispatch(event)
    return Response(status_code=204 if outcome is DispatchOutcome.processed else 200)

@router.get("/assets/{asset_id}", response_model=MediaAssetOut, dependencies=[Depends(require_scopes("media:read"))])
async def get_asset(asset_id: str, service: MediaService = Depends(svc)):
    return await service.get_asset(asset_id)
