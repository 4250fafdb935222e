"""Create-only writes of synced leads into the central store."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from .adapters import RawLeadRecord
from .errors import CentralStoreError


class WriteOutcome(str, Enum):
    CREATED = "created"
    SKIPPED = "skipped"


def central_id(source_tag: str, original_id: str) -> str:
    """Deterministic central identifier for a source record."""

    return f"{source_tag}_{original_id}"


def build_central_record(
    source_tag: str, record: RawLeadRecord, synced_at: datetime
) -> dict[str, Any]:
    document = dict(record.fields)
    document.update(
        {
            "_id": central_id(source_tag, record.original_id),
            "original_id": record.original_id,
            "original_collection": record.original_collection,
            "source_database": source_tag,
            "synced_at": synced_at,
        }
    )
    return document


class DedupWriter:
    """Write each (source tag, original id) pair to the central store at most once.

    The insert is keyed by the deterministic central id, so the unique ``_id``
    index acts as an atomic create-if-absent: a concurrent or repeated write of
    the same record is rejected by the server and reported as ``SKIPPED``.
    Existing documents are never modified, so edits made by CRM staff survive
    later sync passes.
    """

    def __init__(
        self,
        collection: Collection,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.collection = collection
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def exists(self, source_tag: str, original_id: str) -> bool:
        identifier = central_id(source_tag, original_id)
        try:
            return self.collection.find_one({"_id": identifier}, projection={"_id": 1}) is not None
        except PyMongoError as exc:
            raise CentralStoreError(str(exc), source_tag=source_tag, central_id=identifier) from exc

    def write_if_absent(self, source_tag: str, record: RawLeadRecord) -> WriteOutcome:
        document = build_central_record(source_tag, record, self._clock())
        try:
            self.collection.insert_one(document)
        except DuplicateKeyError as exc:
            if self._is_id_conflict(exc, document["_id"]):
                return WriteOutcome.SKIPPED
            raise CentralStoreError(
                str(exc), source_tag=source_tag, central_id=document["_id"]
            ) from exc
        except PyMongoError as exc:
            raise CentralStoreError(
                str(exc), source_tag=source_tag, central_id=document["_id"]
            ) from exc
        return WriteOutcome.CREATED

    def _is_id_conflict(self, exc: DuplicateKeyError, identifier: str) -> bool:
        """Whether the rejected insert collided on ``_id`` and not another unique index."""

        key_pattern = (exc.details or {}).get("keyPattern")
        if key_pattern is not None:
            return key_pattern == {"_id": 1}
        # Servers that omit keyPattern: the record is present iff it was an _id clash
        try:
            return self.collection.find_one({"_id": identifier}, projection={"_id": 1}) is not None
        except PyMongoError as lookup_exc:
            raise CentralStoreError(str(lookup_exc), central_id=identifier) from lookup_exc


__all__ = ["DedupWriter", "WriteOutcome", "build_central_record", "central_id"]
