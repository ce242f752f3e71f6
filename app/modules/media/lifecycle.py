"""Media asset state machine driven by storage events.

    pendingUpload --finalize--> completed --delete--> (record removed)

Finalize links the asset to the entity awaiting it (``media_asset_id ==
asset.id``): the owner's URL field takes the new public URL, its
``media_asset_id`` is cleared, and a previous, different URL becomes a
``CleanupJob``. Delete removes the record and clears the owner's URL only if
it still points at this asset; for shared headline images every headline
showing the URL is cleared.

The reconciler only flushes; committing (together with the idempotency
record) and submitting cleanup jobs are the caller's job.
"""
import logging
from dataclasses import dataclass, field
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import Settings
from app.core.errors import NotFoundError, OwnerNotFoundError
from app.core.repository import DataRepository
from app.modules.media.linkage import link_for_entity_type, link_for_purpose
from app.modules.media.models import MediaAsset, MediaAssetStatus
from app.modules.media.repository import MediaAssetRepository, release_awaiting
from app.modules.media.urls import public_url
from app.modules.webhooks.events import StorageAction, StorageEvent

log = logging.getLogger("media.lifecycle")

@dataclass(frozen=True)
class CleanupJob:
    """A superseded file to dispose of: resolved by public URL, else storage path."""
    public_url: str | None
    storage_path: str | None = None
    reason: str = "superseded"

@dataclass
class ReconcileResult:
    changed: bool
    cleanup: list[CleanupJob] = field(default_factory=list)

class LifecycleReconciler:
    def __init__(self, session: AsyncSession, settings: Settings):
        self.session = session
        self.settings = settings
        self.assets = MediaAssetRepository(session)

    async def apply(self, event: StorageEvent, asset: MediaAsset) -> ReconcileResult:
        if event.action is StorageAction.finalize:
            url = public_url(event.storage_path, event.provider, self.settings)
            return await self.finalize(asset, url)
        return await self.delete(asset)

    async def finalize(self, asset: MediaAsset, url: str) -> ReconcileResult:
        if asset.is_completed:
            log.info("Asset %s already completed; finalize is a replay", asset.id)
            return ReconcileResult(changed=False)

        cleanup: dict[str, CleanupJob] = {}
        fields = {"status": MediaAssetStatus.completed.value, "public_url": url}

        link = link_for_purpose(asset.purpose)
        if link is None:
            log.warning("Asset %s has unknown purpose %r; finalizing without owner linkage", asset.id, asset.purpose)
        else:
            owners = DataRepository(self.session, link.model)
            try:
                awaiting = await self._awaiting_owners(owners, link, asset)
            except OwnerNotFoundError as e:
                log.warning("%s", e)
                awaiting = []
            if not link.multi_reference:
                awaiting = awaiting[:1]
            for owner in awaiting:
                previous = getattr(owner, link.url_field)
                log.info("Linking asset %s to %s %s (%s)", asset.id, link.entity_type.value, owner.id, link.url_field)
                await owners.update(owner.id, **{link.url_field: url, "media_asset_id": None})
                if previous and previous != url:
                    cleanup.setdefault(previous, CleanupJob(public_url=previous))
            if awaiting:
                fields["associated_entity_id"] = awaiting[0].id
                fields["associated_entity_type"] = link.entity_type.value

        await self.assets.update(asset.id, **fields)
        log.info("Finalized media asset %s as completed", asset.id)
        return ReconcileResult(changed=True, cleanup=list(cleanup.values()))

    async def delete(self, asset: MediaAsset) -> ReconcileResult:
        if asset.associated_entity_id and asset.associated_entity_type:
            try:
                await self._detach_owner(asset)
            except OwnerNotFoundError as e:
                log.warning("%s", e)
        await self._clear_shared_references(asset)
        await release_awaiting(self.session, asset)
        await self.assets.delete(asset.id)
        log.info("Deleted media asset record %s", asset.id)
        return ReconcileResult(changed=True)

    async def _detach_owner(self, asset: MediaAsset) -> None:
        link = link_for_entity_type(asset.associated_entity_type)
        if link is None:
            log.warning("Asset %s has unknown entity type %r", asset.id, asset.associated_entity_type)
            return
        owners = DataRepository(self.session, link.model)
        try:
            owner = await owners.read(asset.associated_entity_id)
        except NotFoundError as e:
            raise OwnerNotFoundError(
                f"{link.entity_type.value} {asset.associated_entity_id} linked to asset {asset.id} no longer exists"
            ) from e
        current = getattr(owner, link.url_field)
        if asset.public_url and current == asset.public_url:
            await owners.update(owner.id, **{link.url_field: None})
            log.info("Cleared %s on %s %s", link.url_field, link.entity_type.value, owner.id)
        else:
            log.info("%s %s has moved on from asset %s; left untouched", link.entity_type.value, owner.id, asset.id)

    async def _awaiting_owners(self, owners: DataRepository, link, asset: MediaAsset) -> list:
        awaiting = list(await owners.read_all({"media_asset_id": asset.id}))
        if not awaiting:
            raise OwnerNotFoundError(f"No {link.entity_type.value} awaits asset {asset.id}")
        return awaiting

    async def _clear_shared_references(self, asset: MediaAsset) -> None:
        # A shared image is shown by every owner that awaited it, not just the stamped one.
        link = link_for_purpose(asset.purpose)
        if link is None or not link.multi_reference or not asset.public_url:
            return
        owners = DataRepository(self.session, link.model)
        for owner in await owners.read_all({link.url_field: asset.public_url}):
            await owners.update(owner.id, **{link.url_field: None})
            log.info("Cleared %s on %s %s", link.url_field, link.entity_type.value, owner.id)
