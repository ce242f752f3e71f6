import json
import logging
import httpx
from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, get_settings
from app.core.db import get_session_factory
from app.core.errors import InvalidPayloadError, PersistenceError, UnsupportedEventError
from app.modules.webhooks.dispatcher import DispatchOutcome, EventDispatcher
from app.modules.webhooks.normalizer import (
    iter_s3_events, normalize_gcs, parse_gcs_body, parse_s3_body, unwrap_envelope,
)
from app.modules.webhooks.sns_schema import SnsEnvelope, SubscriptionConfirmation
from app.modules.webhooks.verification import (
    JwksCache, PubSubTokenVerifier, SnsSubscriptionConfirmer, verify_shared_secret,
)

router = APIRouter()
logger = logging.getLogger(__name__)

_pubsub_verifier: PubSubTokenVerifier | None = None

def get_pubsub_verifier(settings: Settings = Depends(get_settings)) -> PubSubTokenVerifier:
    global _pubsub_verifier
    if _pubsub_verifier is None:
        _pubsub_verifier = PubSubTokenVerifier(
            JwksCache(settings.GCS_CERTS_URL, ttl_seconds=settings.GCS_CERTS_TTL_SECONDS),
            issuers=settings.GCS_PUBSUB_ISSUERS,
            audience=settings.GCS_PUBSUB_AUDIENCE,
        )
    return _pubsub_verifier

def get_sns_confirmer(settings: Settings = Depends(get_settings)) -> SnsSubscriptionConfirmer:
    return SnsSubscriptionConfirmer(settings.SNS_CONFIRM_HOST_SUFFIX, timeout=settings.SNS_CONFIRM_TIMEOUT_SECONDS)

def get_dispatcher(
    request: Request,
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> EventDispatcher:
    return EventDispatcher(session_factory, settings, request.app.state.cleanup_queue)

async def _json_body(request: Request) -> dict:
    # SNS posts JSON with Content-Type text/plain, so parse the raw body ourselves.
    raw = await request.body()
    try:
        body = json.loads(raw)
    except ValueError as e:
        raise InvalidPayloadError("Request body is not valid JSON") from e
    if not isinstance(body, dict):
        raise InvalidPayloadError("Request body must be a JSON object")
    return body

def _ack(outcome_processed: bool) -> Response:
    return Response(status_code=204 if outcome_processed else 200)


@router.post("/storage/gcs-notifications")
async def gcs_notifications(
    request: Request,
    verifier: PubSubTokenVerifier = Depends(get_pubsub_verifier),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    """
    Cloud Storage notification delivered by a Pub/Sub push subscription.
    204 when state changed, 200 for duplicates and ignored events, 5xx to make Pub/Sub retry.
    """
    await verifier.verify(request.headers.get("authorization"), request.url.hostname or "")
    envelope = parse_gcs_body(await _json_body(request))
    try:
        event = normalize_gcs(envelope)
    except UnsupportedEventError as e:
        logger.info(f"Ignoring storage event {envelope.message.message_id}: {e}")
        return _ack(False)

    outcome = await dispatcher.dispatch(event)
    return _ack(outcome is DispatchOutcome.processed)


@router.post("/storage/s3-notifications")
async def s3_notifications(
    request: Request,
    secret: str | None = Query(None),
    settings: Settings = Depends(get_settings),
    confirmer: SnsSubscriptionConfirmer = Depends(get_sns_confirmer),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    """
    S3 event notification, either posted directly or wrapped by SNS.
    Every record is dispatched on its own; a failed record fails the delivery (500)
    after its siblings have been applied, and the redelivery skips those via the ledger.
    """
    verify_shared_secret(secret, settings.S3_WEBHOOK_SECRET)
    parsed = parse_s3_body(await _json_body(request))

    if isinstance(parsed, SubscriptionConfirmation):
        try:
            await confirmer.confirm(parsed)
        except httpx.HTTPError as e:
            logger.error(f"SNS subscription confirmation failed: {e}")
            return Response(status_code=502)
        return _ack(False)

    batch = unwrap_envelope(parsed) if isinstance(parsed, SnsEnvelope) else parsed
    if not batch.records:
        logger.info("No Records in S3 notification; ignoring")
        return _ack(False)

    processed = failed = 0
    for event in iter_s3_events(batch):
        try:
            outcome = await dispatcher.dispatch(event)
        except PersistenceError:
            logger.error(f"S3 record {event.raw_event_id} failed", exc_info=True)
            failed += 1
            continue
        if outcome is DispatchOutcome.processed:
            processed += 1

    if failed:
        raise PersistenceError(f"{failed} of {len(batch.records)} S3 record(s) failed")
    return _ack(processed > 0)
