"""Engine components: source adapters → dedup writes → audit."""

from .adapters import (
    EpochMillisSource,
    NativeTimestampSource,
    RawLeadRecord,
    SourceAdapter,
    build_adapter,
)
from .audit import AuditLogger
from .dedup import DedupWriter, WriteOutcome, central_id
from .errors import (
    AuditPersistError,
    CentralStoreError,
    LeadSyncError,
    SourceError,
    SourceQueryError,
    SourceUnavailable,
)
from .results import SourceOutcome, SyncRunResult

__all__ = [
    "AuditLogger",
    "AuditPersistError",
    "CentralStoreError",
    "DedupWriter",
    "EpochMillisSource",
    "LeadSyncError",
    "NativeTimestampSource",
    "RawLeadRecord",
    "SourceAdapter",
    "SourceError",
    "SourceOutcome",
    "SourceQueryError",
    "SourceUnavailable",
    "SyncRunResult",
    "WriteOutcome",
    "build_adapter",
    "central_id",
]
