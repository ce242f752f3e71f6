import logging
from datetime import datetime
from typing import Sequence
from sqlalchemy import select, and_, or_
from app.core.repository import DataRepository
from sqlalchemy.ext.asyncio import AsyncSession
from app.modules.media.linkage import OWNER_LINKS
from app.modules.media.models import MediaAsset, MediaAssetStatus

log = logging.getLogger("media.repository")

class MediaAssetRepository(DataRepository[MediaAsset]):
    model = MediaAsset

    async def find_by_storage_path(self, storage_path: str) -> MediaAsset | None:
        return await self.read_first({"storage_path": storage_path})

    async def find_by_public_url(self, public_url: str) -> MediaAsset | None:
        return await self.read_first({"public_url": public_url})

    async def list_stale(self, status: MediaAssetStatus, created_before: datetime, *, limit: int | None = 100) -> Sequence[MediaAsset]:
        q = (
            select(MediaAsset)
            .where(and_(MediaAsset.status == status.value, MediaAsset.created_at < created_before))
            .order_by(MediaAsset.created_at.asc())
            .limit(limit)
        )
        res = await self.session.execute(q)
        return res.scalars().all()


async def is_referenced(session: AsyncSession, asset: MediaAsset) -> bool:
    """True if any owner entity still shows this asset's URL or awaits the asset."""
    seen = set()
    for link in OWNER_LINKS.values():
        if link.model in seen:
            continue
        seen.add(link.model)
        conditions = [link.model.media_asset_id == asset.id]
        if asset.public_url:
            conditions.append(getattr(link.model, link.url_field) == asset.public_url)
        q = select(link.model.id).where(or_(*conditions)).limit(1)
        res = await session.execute(q)
        if res.first() is not None:
            return True
    return False


async def release_awaiting(session: AsyncSession, asset: MediaAsset) -> None:
    """Clears ``media_asset_id`` on every owner still awaiting this asset."""
    for link in {l.model: l for l in OWNER_LINKS.values()}.values():
        owners = DataRepository(session, link.model)
        for owner in await owners.read_all({"media_asset_id": asset.id}):
            await owners.update(owner.id, media_asset_id=None)
            log.info("%s %s no longer awaits asset %s", link.entity_type.value, owner.id, asset.id)
