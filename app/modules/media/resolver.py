from sqlalchemy.ext.asyncio import AsyncSession
from app.core.errors import AssetNotFoundError
from app.modules.media.models import MediaAsset
from app.modules.media.repository import MediaAssetRepository

class AssetResolver:
    def __init__(self, session: AsyncSession):
        self.assets = MediaAssetRepository(session)

    async def resolve(self, storage_path: str) -> MediaAsset:
        asset = await self.assets.find_by_storage_path(storage_path)
        if asset is None:
            raise AssetNotFoundError(storage_path)
        return asset
