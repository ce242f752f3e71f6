"""Error taxonomy for webhook ingestion and media lifecycle handling.

Only some of these ever reach an HTTP caller. Adapters map them as follows:

- ``AuthenticationError`` -> 401, raised before any payload is trusted.
- ``WebhookConfigurationError`` -> 500, the deployment is missing a secret.
- ``InvalidPayloadError`` -> 400, the body is not a shape we understand.
- ``ConflictError`` -> 409, the asset is not in a state that allows the request.
- ``UnsupportedEventError`` -> acknowledged with 200, nothing mutated.
- ``AssetNotFoundError`` / ``OwnerNotFoundError`` -> logged, acknowledged.
- ``CleanupError`` -> logged inside the cleanup worker, never propagated.
- ``PersistenceError`` -> 500 so the provider re-delivers the event.
"""


class MediaLifecycleError(Exception):
    """Base class for errors raised by the media lifecycle core."""


class NotFoundError(MediaLifecycleError):
    def __init__(self, model: str, item_id: str):
        super().__init__(f"{model} '{item_id}' not found")
        self.model = model
        self.item_id = item_id


class AuthenticationError(MediaLifecycleError):
    pass


class WebhookConfigurationError(MediaLifecycleError):
    pass


class InvalidPayloadError(MediaLifecycleError):
    pass


class ConflictError(MediaLifecycleError):
    pass


class UnsupportedEventError(MediaLifecycleError):
    def __init__(self, event_type: str | None):
        super().__init__(f"Unsupported storage event type: {event_type!r}")
        self.event_type = event_type


class AssetNotFoundError(MediaLifecycleError):
    def __init__(self, storage_path: str):
        super().__init__(f"No media asset tracked for storage path '{storage_path}'")
        self.storage_path = storage_path


class OwnerNotFoundError(MediaLifecycleError):
    pass


class DuplicateEventError(MediaLifecycleError):
    def __init__(self, key: str):
        super().__init__(f"Event with idempotency key '{key}' already recorded")
        self.key = key


class CleanupError(MediaLifecycleError):
    pass


class PersistenceError(MediaLifecycleError):
    pass
