"""Turns provider payloads into ``StorageEvent`` values.

Nothing here touches the database; unknown event types raise
``UnsupportedEventError`` and malformed bodies raise ``InvalidPayloadError``.
"""
import json
import logging
from typing import Iterator
from urllib.parse import unquote_plus
from pydantic import ValidationError
from app.core.errors import InvalidPayloadError, UnsupportedEventError
from app.modules.webhooks.events import StorageAction, StorageEvent
from app.modules.webhooks.gcs_schema import PubSubPushEnvelope
from app.modules.webhooks.sns_schema import (
    DirectBatch, S3EventRecord, S3NotificationBody, SnsEnvelope, SubscriptionConfirmation,
)

log = logging.getLogger("webhooks.normalizer")

GCS_SCOPE = "gcs"
S3_SCOPE = "s3"

_GCS_ACTIONS = {
    "OBJECT_FINALIZE": StorageAction.finalize,
    "OBJECT_DELETE": StorageAction.delete,
}

_S3_PREFIXES = (
    ("ObjectCreated:", StorageAction.finalize),
    ("ObjectRemoved:", StorageAction.delete),
)

# ---- Provider A: Cloud Storage via Pub/Sub push ----

def parse_gcs_body(body: dict) -> PubSubPushEnvelope:
    try:
        return PubSubPushEnvelope.model_validate(body)
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid Pub/Sub push body: {e.error_count()} error(s)") from e

def normalize_gcs(envelope: PubSubPushEnvelope) -> StorageEvent:
    attrs = envelope.message.attributes
    action = _GCS_ACTIONS.get(attrs.event_type)
    if action is None:
        raise UnsupportedEventError(attrs.event_type)
    return StorageEvent(
        action=action,
        storage_path=attrs.object_id,
        raw_event_id=envelope.message.message_id,
        provider=GCS_SCOPE,
    )

# ---- Provider B: S3 event notifications, direct or via SNS ----

def parse_s3_body(body: dict) -> S3NotificationBody:
    kind = body.get("Type")
    try:
        if kind == "SubscriptionConfirmation":
            return SubscriptionConfirmation.model_validate(body)
        if kind == "Notification":
            return SnsEnvelope.model_validate(body)
        if kind is not None:
            # UnsubscribeConfirmation and anything newer carry no records
            return DirectBatch(records=[])
        return DirectBatch.model_validate(body)
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid S3 notification body: {e.error_count()} error(s)") from e

def unwrap_envelope(envelope: SnsEnvelope) -> DirectBatch:
    try:
        inner = json.loads(envelope.message)
    except ValueError:
        log.warning("SNS message %s is not JSON; ignoring", envelope.message_id)
        return DirectBatch(records=[], message_id=envelope.message_id)
    if not isinstance(inner, dict):
        return DirectBatch(records=[], message_id=envelope.message_id)
    records = inner.get("Records")
    if not isinstance(records, list):
        # e.g. the s3:TestEvent sent when a notification configuration is saved
        log.info("SNS message %s carries no Records (event=%s)", envelope.message_id, inner.get("Event"))
        records = []
    return DirectBatch(records=records, message_id=envelope.message_id)

def s3_action(event_name: str) -> StorageAction:
    for prefix, action in _S3_PREFIXES:
        if event_name.startswith(prefix):
            return action
    raise UnsupportedEventError(event_name)

def s3_raw_event_id(record: S3EventRecord, storage_path: str) -> str:
    # No per-record message id exists; event name + key identifies the change,
    # the sequencer distinguishes successive changes to the same key.
    raw = f"{record.event_name}_{storage_path}"
    if record.s3.object.sequencer:
        raw = f"{raw}#{record.s3.object.sequencer}"
    return raw

def normalize_s3_record(record: dict) -> StorageEvent:
    try:
        parsed = S3EventRecord.model_validate(record)
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid S3 event record: {e.error_count()} error(s)") from e
    action = s3_action(parsed.event_name)
    storage_path = unquote_plus(parsed.s3.object.key)
    return StorageEvent(
        action=action,
        storage_path=storage_path,
        raw_event_id=s3_raw_event_id(parsed, storage_path),
        provider=S3_SCOPE,
    )

def iter_s3_events(batch: DirectBatch) -> Iterator[StorageEvent]:
    """One event per usable record; unsupported or malformed records are logged and skipped."""
    for index, record in enumerate(batch.records):
        try:
            yield normalize_s3_record(record)
        except UnsupportedEventError as e:
            log.debug("Ignoring S3 record %d: %s", index, e)
        except InvalidPayloadError as e:
            log.warning("Skipping S3 record %d: %s", index, e)
