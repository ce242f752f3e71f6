# tests/test_dispatcher.py
"""Reconciliation through EventDispatcher: one event, one transaction."""
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.core.errors import PersistenceError
from app.modules.content.models import Headline, User
from app.modules.idempotency.ledger import IdempotencyLedger
from app.modules.idempotency.models import IdempotencyRecord
from app.modules.media.models import MediaAsset
from app.modules.webhooks.dispatcher import DispatchOutcome, EventDispatcher
from app.modules.webhooks.events import StorageAction, StorageEvent

GCS_BASE = "https://storage.googleapis.com/media-bucket"


class RecordingCleanup:
    def __init__(self):
        self.jobs = []

    def submit(self, job):
        self.jobs.append(job)
        return True


@pytest.fixture()
def cleanup():
    return RecordingCleanup()


@pytest.fixture()
def dispatcher(session_factory, settings, cleanup):
    return EventDispatcher(session_factory, settings, cleanup)


async def _seed(session_factory, *objs):
    async with session_factory() as session:
        session.add_all(objs)
        await session.commit()


async def _get(session_factory, model, item_id):
    async with session_factory() as session:
        return await session.get(model, item_id)


async def _ledger_size(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(IdempotencyRecord))


def _pending(asset_id, path, purpose="userProfilePhoto"):
    return MediaAsset(
        id=asset_id, user_id="user-1", purpose=purpose, status="pendingUpload",
        storage_path=path, content_type="image/jpeg",
    )


def _completed(asset_id, path, entity_id=None, entity_type=None, purpose="userProfilePhoto"):
    return MediaAsset(
        id=asset_id, user_id="user-1", purpose=purpose, status="completed",
        storage_path=path, content_type="image/jpeg", public_url=f"{GCS_BASE}/{path}",
        associated_entity_id=entity_id, associated_entity_type=entity_type,
    )


def _finalize(path, raw_id="msg-1"):
    return StorageEvent(StorageAction.finalize, path, raw_id, "gcs")


def _delete(path, raw_id="msg-del"):
    return StorageEvent(StorageAction.delete, path, raw_id, "gcs")


@pytest.mark.anyio
async def test_finalize_links_awaiting_owner(session_factory, dispatcher, cleanup):
    await _seed(session_factory, User(id="user-1", media_asset_id="asset-1"), _pending("asset-1", "uploads/u1/avatar.jpg"))

    outcome = await dispatcher.dispatch(_finalize("uploads/u1/avatar.jpg"))

    assert outcome is DispatchOutcome.processed
    user = await _get(session_factory, User, "user-1")
    assert user.photo_url == f"{GCS_BASE}/uploads/u1/avatar.jpg"
    assert user.media_asset_id is None
    asset = await _get(session_factory, MediaAsset, "asset-1")
    assert asset.status == "completed"
    assert asset.public_url == user.photo_url
    assert (asset.associated_entity_id, asset.associated_entity_type) == ("user-1", "user")
    assert cleanup.jobs == []
    async with session_factory() as session:
        assert await IdempotencyLedger(session).is_processed("msg-1", "gcs")


@pytest.mark.anyio
async def test_finalize_queues_previous_url_for_cleanup(session_factory, dispatcher, cleanup):
    await _seed(
        session_factory,
        User(id="user-1", media_asset_id="asset-1", photo_url=f"{GCS_BASE}/old/path.jpg"),
        _completed("asset-old", "old/path.jpg", "user-1", "user"),
        _pending("asset-1", "uploads/u1/avatar.jpg"),
    )

    await dispatcher.dispatch(_finalize("uploads/u1/avatar.jpg"))

    assert [job.public_url for job in cleanup.jobs] == [f"{GCS_BASE}/old/path.jpg"]


@pytest.mark.anyio
async def test_replayed_event_is_duplicate(session_factory, dispatcher, cleanup):
    await _seed(
        session_factory,
        User(id="user-1", media_asset_id="asset-1", photo_url=f"{GCS_BASE}/old/path.jpg"),
        _pending("asset-1", "uploads/u1/avatar.jpg"),
    )

    first = await dispatcher.dispatch(_finalize("uploads/u1/avatar.jpg"))
    second = await dispatcher.dispatch(_finalize("uploads/u1/avatar.jpg"))

    assert (first, second) == (DispatchOutcome.processed, DispatchOutcome.duplicate)
    assert await _ledger_size(session_factory) == 1
    assert len(cleanup.jobs) == 1


@pytest.mark.anyio
async def test_concurrent_duplicate_loses_on_ledger_insert(session_factory, dispatcher, cleanup, monkeypatch):
    await _seed(session_factory, User(id="user-1", media_asset_id="asset-1"), _pending("asset-1", "uploads/u1/avatar.jpg"))
    await dispatcher.dispatch(_finalize("uploads/u1/avatar.jpg"))

    # A second delivery that raced past the fast path before the first committed.
    async def not_processed(self, raw_event_id, scope=None):
        return False
    monkeypatch.setattr(IdempotencyLedger, "is_processed", not_processed)

    outcome = await dispatcher.dispatch(_finalize("uploads/u1/avatar.jpg"))

    assert outcome is DispatchOutcome.duplicate
    assert await _ledger_size(session_factory) == 1


@pytest.mark.anyio
async def test_finalize_of_completed_asset_under_new_id_is_no_op(session_factory, dispatcher, cleanup):
    await _seed(
        session_factory,
        User(id="user-1", photo_url=f"{GCS_BASE}/uploads/u1/avatar.jpg"),
        _completed("asset-1", "uploads/u1/avatar.jpg", "user-1", "user"),
    )

    outcome = await dispatcher.dispatch(_finalize("uploads/u1/avatar.jpg", raw_id="msg-redelivered"))

    assert outcome is DispatchOutcome.no_op
    assert await _ledger_size(session_factory) == 1
    assert cleanup.jobs == []


@pytest.mark.anyio
async def test_unknown_asset_is_acknowledged_without_ledger_entry(session_factory, dispatcher):
    outcome = await dispatcher.dispatch(_finalize("uploads/nobody/unknown.jpg"))

    assert outcome is DispatchOutcome.no_op
    assert await _ledger_size(session_factory) == 0


@pytest.mark.anyio
async def test_finalize_without_awaiting_owner_still_completes_asset(session_factory, dispatcher):
    await _seed(session_factory, _pending("asset-1", "uploads/u1/avatar.jpg"))

    outcome = await dispatcher.dispatch(_finalize("uploads/u1/avatar.jpg"))

    assert outcome is DispatchOutcome.processed
    asset = await _get(session_factory, MediaAsset, "asset-1")
    assert asset.status == "completed"
    assert asset.associated_entity_id is None


@pytest.mark.anyio
async def test_shared_headline_image_links_every_awaiting_headline(session_factory, dispatcher, cleanup):
    await _seed(
        session_factory,
        Headline(id="h-1", title="One", media_asset_id="asset-h", image_url=f"{GCS_BASE}/old/h1.jpg"),
        Headline(id="h-2", title="Two", media_asset_id="asset-h"),
        Headline(id="h-3", title="Three"),
        _pending("asset-h", "uploads/u1/headline.jpg", purpose="headlineImage"),
    )

    await dispatcher.dispatch(_finalize("uploads/u1/headline.jpg"))

    url = f"{GCS_BASE}/uploads/u1/headline.jpg"
    assert (await _get(session_factory, Headline, "h-1")).image_url == url
    assert (await _get(session_factory, Headline, "h-2")).image_url == url
    assert (await _get(session_factory, Headline, "h-3")).image_url is None
    asset = await _get(session_factory, MediaAsset, "asset-h")
    assert asset.associated_entity_type == "headline"
    assert asset.associated_entity_id in {"h-1", "h-2"}
    assert [job.public_url for job in cleanup.jobs] == [f"{GCS_BASE}/old/h1.jpg"]


@pytest.mark.anyio
async def test_deleting_shared_headline_image_clears_every_headline_showing_it(session_factory, dispatcher):
    url = f"{GCS_BASE}/uploads/u1/headline.jpg"
    await _seed(
        session_factory,
        Headline(id="h-1", title="One", media_asset_id="asset-h"),
        Headline(id="h-2", title="Two", media_asset_id="asset-h"),
        Headline(id="h-3", title="Three", image_url=f"{GCS_BASE}/uploads/u1/other.jpg"),
        _pending("asset-h", "uploads/u1/headline.jpg", purpose="headlineImage"),
    )
    await dispatcher.dispatch(_finalize("uploads/u1/headline.jpg"))
    assert (await _get(session_factory, Headline, "h-2")).image_url == url

    outcome = await dispatcher.dispatch(_delete("uploads/u1/headline.jpg"))

    assert outcome is DispatchOutcome.processed
    assert (await _get(session_factory, Headline, "h-1")).image_url is None
    assert (await _get(session_factory, Headline, "h-2")).image_url is None
    assert (await _get(session_factory, Headline, "h-3")).image_url == f"{GCS_BASE}/uploads/u1/other.jpg"
    assert await _get(session_factory, MediaAsset, "asset-h") is None


@pytest.mark.anyio
async def test_delete_clears_matching_owner_url(session_factory, dispatcher):
    await _seed(
        session_factory,
        User(id="user-1", photo_url=f"{GCS_BASE}/uploads/u1/avatar.jpg"),
        _completed("asset-1", "uploads/u1/avatar.jpg", "user-1", "user"),
    )

    outcome = await dispatcher.dispatch(_delete("uploads/u1/avatar.jpg"))

    assert outcome is DispatchOutcome.processed
    assert (await _get(session_factory, User, "user-1")).photo_url is None
    assert await _get(session_factory, MediaAsset, "asset-1") is None


@pytest.mark.anyio
async def test_delete_leaves_owner_that_moved_on_untouched(session_factory, dispatcher):
    current = f"{GCS_BASE}/uploads/u1/newer.jpg"
    await _seed(
        session_factory,
        User(id="user-1", photo_url=current),
        _completed("asset-1", "uploads/u1/avatar.jpg", "user-1", "user"),
    )

    await dispatcher.dispatch(_delete("uploads/u1/avatar.jpg"))

    assert (await _get(session_factory, User, "user-1")).photo_url == current
    assert await _get(session_factory, MediaAsset, "asset-1") is None


@pytest.mark.anyio
async def test_delete_with_missing_owner_still_removes_record(session_factory, dispatcher):
    await _seed(session_factory, _completed("asset-1", "uploads/u1/avatar.jpg", "ghost", "user"))

    outcome = await dispatcher.dispatch(_delete("uploads/u1/avatar.jpg"))

    assert outcome is DispatchOutcome.processed
    assert await _get(session_factory, MediaAsset, "asset-1") is None


@pytest.mark.anyio
async def test_delete_before_finalize_releases_awaiting_owner(session_factory, dispatcher):
    await _seed(session_factory, User(id="user-1", media_asset_id="asset-1"), _pending("asset-1", "uploads/u1/avatar.jpg"))

    await dispatcher.dispatch(_delete("uploads/u1/avatar.jpg"))

    assert (await _get(session_factory, User, "user-1")).media_asset_id is None
    assert await _get(session_factory, MediaAsset, "asset-1") is None


@pytest.mark.anyio
async def test_persistence_failure_rolls_back_and_skips_ledger(session_factory, dispatcher, cleanup, monkeypatch):
    await _seed(
        session_factory,
        User(id="user-1", media_asset_id="asset-1", photo_url=f"{GCS_BASE}/old/path.jpg"),
        _pending("asset-1", "uploads/u1/avatar.jpg"),
    )

    async def failing_record(self, raw_event_id, scope=None):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))
    monkeypatch.setattr(IdempotencyLedger, "record", failing_record)

    with pytest.raises(PersistenceError):
        await dispatcher.dispatch(_finalize("uploads/u1/avatar.jpg"))

    user = await _get(session_factory, User, "user-1")
    assert user.photo_url == f"{GCS_BASE}/old/path.jpg"
    assert user.media_asset_id == "asset-1"
    assert (await _get(session_factory, MediaAsset, "asset-1")).status == "pendingUpload"
    assert await _ledger_size(session_factory) == 0
    assert cleanup.jobs == []
