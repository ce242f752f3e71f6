from dataclasses import dataclass
from enum import Enum

class StorageAction(str, Enum):
    finalize = "finalize"
    delete = "delete"

@dataclass(frozen=True)
class StorageEvent:
    """Provider-independent form of one storage notification."""
    action: StorageAction
    storage_path: str
    raw_event_id: str
    provider: str  # "gcs" | "s3" | "local"; also the idempotency scope

    @property
    def scope(self) -> str:
        return self.provider
