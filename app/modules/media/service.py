import asyncio
import logging
import os
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.base import new_id
from app.core.config import Settings
from app.core.errors import ConflictError, InvalidPayloadError, NotFoundError
from app.core.repository import DataRepository
from app.core.security import Principal
from app.modules.media.linkage import OWNER_LINKS
from app.modules.media.models import MediaAsset, MediaAssetPurpose, MediaAssetStatus
from app.modules.media.repository import MediaAssetRepository
from app.modules.media.schemas import UploadUrlRequest
from app.modules.webhooks.events import StorageAction, StorageEvent
from app.platform.ports.object_storage import ObjectStoragePort

log = logging.getLogger(__name__)

def upload_policy(purpose: MediaAssetPurpose, settings: Settings) -> tuple[list[str], int]:
    """(allowed MIME types, max size in bytes) for a purpose."""
    prefix = {
        MediaAssetPurpose.user_profile_photo: "MEDIA_USER_PROFILE_PHOTO",
        MediaAssetPurpose.headline_image: "MEDIA_HEADLINE_IMAGE",
        MediaAssetPurpose.topic_image: "MEDIA_TOPIC_IMAGE",
        MediaAssetPurpose.source_image: "MEDIA_SOURCE_IMAGE",
    }[purpose]
    return getattr(settings, f"{prefix}_MIME_TYPES"), getattr(settings, f"{prefix}_MAX_BYTES")

class MediaService:
    def __init__(self, session: AsyncSession, storage: ObjectStoragePort, settings: Settings):
        self.session = session
        self.assets = MediaAssetRepository(session)
        self.storage = storage
        self.settings = settings

    async def request_upload(self, principal: Principal, payload: UploadUrlRequest) -> dict:
        """Creates a pendingUpload asset, marks the owner as awaiting it and returns the signed upload."""
        allowed, max_bytes = upload_policy(payload.purpose, self.settings)
        if payload.content_type not in allowed:
            log.warning(
                f'User {principal.user_id} tried content type "{payload.content_type}" '
                f'for purpose "{payload.purpose.value}"; allowed: {", ".join(allowed)}'
            )
            raise InvalidPayloadError(f"Invalid file type. Only {', '.join(allowed)} are allowed for this upload.")

        link = OWNER_LINKS[payload.purpose]
        if payload.purpose is MediaAssetPurpose.user_profile_photo:
            owner_id = principal.user_id
        elif payload.entity_id:
            owner_id = payload.entity_id
        else:
            raise InvalidPayloadError(f"entityId is required for purpose {payload.purpose.value}")
        owners = DataRepository(self.session, link.model)
        owner = await owners.read(owner_id)

        ext = os.path.splitext(payload.file_name)[1].lower()
        storage_path = f"user-media/{principal.user_id}/{new_id()}{ext}"
        asset = await self.assets.create(MediaAsset(
            user_id=principal.user_id,
            purpose=payload.purpose.value,
            status=MediaAssetStatus.pending_upload.value,
            storage_path=storage_path,
            content_type=payload.content_type,
        ))
        await owners.update(owner.id, media_asset_id=asset.id)
        log.info(f"User {principal.user_id} requested upload {asset.id} at {storage_path} for {link.entity_type.value} {owner.id}")

        upload = self.storage.presign_upload(
            storage_path, payload.content_type, max_bytes,
            expires_seconds=self.settings.MEDIA_UPLOAD_URL_TTL_SECONDS,
        )
        if upload.get("strategy") == "direct-api":
            upload["url"] = f"{self.settings.API_PREFIX}/media/upload-local/{asset.id}"
        await self.session.commit()
        return {**upload, "mediaAssetId": asset.id, "storagePath": storage_path}

    async def get_asset(self, asset_id: str) -> MediaAsset:
        return await self.assets.read(asset_id)

    async def accept_local_upload(self, principal: Principal, asset_id: str, data: bytes) -> StorageEvent:
        """Stores bytes sent straight to the API and returns the finalize event for them.

        Only used with local storage, where there is no bucket to notify us.
        """
        if self.settings.OBJECT_STORAGE_PROVIDER != "local":
            raise InvalidPayloadError("Direct uploads are only accepted when media is stored locally.")
        asset = await self.assets.read(asset_id)
        if asset.user_id != principal.user_id:
            raise NotFoundError("MediaAsset", asset_id)
        if asset.status != MediaAssetStatus.pending_upload.value:
            raise ConflictError(f"Media asset {asset_id} is not awaiting an upload")
        if not data:
            raise InvalidPayloadError("Upload body is empty")
        _, max_bytes = upload_policy(MediaAssetPurpose(asset.purpose), self.settings)
        if len(data) > max_bytes:
            raise HTTPException(status_code=413, detail=f"File too large (>{max_bytes} bytes)")

        storage_path, content_type = asset.storage_path, asset.content_type
        # end the read transaction before the dispatcher writes from its own session
        await self.session.rollback()
        await asyncio.to_thread(self.storage.put_bytes, storage_path, data, content_type)
        log.info(f"User {principal.user_id} uploaded {len(data)} bytes for asset {asset_id} to {storage_path}")
        return StorageEvent(StorageAction.finalize, storage_path, f"local-upload:{asset_id}", "local")
