"""Source adapters: query one source datastore for records created since a cutoff.

Sources disagree on how they store creation time. Two variants cover the
deployments we know of:

* ``EpochMillisSource`` - an integer count of milliseconds since the Unix epoch.
* ``NativeTimestampSource`` - a BSON datetime.

Both translate the cutoff into their representation and issue a single range
query. Results are returned as a lazy iterator backed by a server cursor, so
large result sets are paged by the driver in ``batch_size`` chunks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Iterator, Mapping

import structlog
from bson.errors import BSONError
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, ExecutionTimeout, PyMongoError

from ..config.models import SourceDescriptor, TimestampKind
from .errors import SourceError, SourceQueryError, SourceUnavailable

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLISECOND = timedelta(milliseconds=1)


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_millis(value: datetime) -> int:
    return (to_utc(value) - _EPOCH) // _ONE_MILLISECOND


@dataclass(frozen=True)
class RawLeadRecord:
    """One document read from a source, with its identity pulled out."""

    original_id: str
    original_collection: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))


class SourceAdapter(ABC):
    """Uniform read contract over one heterogeneous source collection."""

    kind: TimestampKind

    def __init__(
        self,
        descriptor: SourceDescriptor,
        database: Database,
        batch_size: int = 500,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.database = database
        self.batch_size = batch_size
        self.logger = logger or structlog.get_logger("lead_sync").bind(source=descriptor.source_tag)

    @property
    def source_tag(self) -> str:
        return self.descriptor.source_tag

    @abstractmethod
    def cutoff_value(self, cutoff: datetime) -> Any:
        """Translate ``cutoff`` into the representation stored in the timestamp field."""

    def build_query(self, cutoff: datetime) -> dict[str, Any]:
        return {self.descriptor.timestamp_field: {"$gte": self.cutoff_value(cutoff)}}

    def fetch_since(self, cutoff: datetime) -> Iterator[RawLeadRecord]:
        """Yield records whose timestamp field is on or after ``cutoff``."""

        return self._iterate(self.build_query(cutoff))

    def fetch_all(self) -> Iterator[RawLeadRecord]:
        """Yield every record in the collection (used for backfills)."""

        return self._iterate({})

    def probe(self, limit: int = 10) -> int:
        """Return how many documents (at most ``limit``) the collection answers with."""

        collection = self.database[self.descriptor.collection_name]
        try:
            return len(list(collection.find({}, limit=limit)))
        except (PyMongoError, BSONError) as exc:
            raise self._wrap(exc) from exc

    def _iterate(self, query: dict[str, Any]) -> Iterator[RawLeadRecord]:
        collection = self.database[self.descriptor.collection_name]
        fetched = 0
        try:
            cursor = collection.find(query, batch_size=self.batch_size)
            for document in cursor:
                record = self._to_record(document)
                if record is not None:
                    fetched += 1
                    yield record
        except (PyMongoError, BSONError) as exc:
            raise self._wrap(exc) from exc
        self.logger.info(
            "source_fetched",
            collection=self.descriptor.collection_name,
            query=repr(query),
            fetched=fetched,
        )

    def _to_record(self, document: Mapping[str, Any]) -> RawLeadRecord | None:
        payload = dict(document)
        # The central store assigns its own _id
        source_id = payload.pop("_id", None)
        if self.descriptor.id_field != "_id":
            source_id = payload.get(self.descriptor.id_field)
        if source_id is None or source_id == "":
            self.logger.warning(
                "record_without_identifier",
                collection=self.descriptor.collection_name,
                id_field=self.descriptor.id_field,
            )
            return None
        return RawLeadRecord(
            original_id=str(source_id),
            original_collection=self.descriptor.collection_name,
            fields=payload,
        )

    def _wrap(self, exc: Exception) -> SourceError:
        if isinstance(exc, (ConnectionFailure, ExecutionTimeout)):
            return SourceUnavailable(self.source_tag, str(exc))
        return SourceQueryError(self.source_tag, str(exc))


class EpochMillisSource(SourceAdapter):
    """Source whose timestamp field holds integer epoch milliseconds."""

    kind = TimestampKind.EPOCH_MILLIS

    def cutoff_value(self, cutoff: datetime) -> int:
        return to_epoch_millis(cutoff)


class NativeTimestampSource(SourceAdapter):
    """Source whose timestamp field holds a BSON datetime."""

    kind = TimestampKind.NATIVE_TIMESTAMP

    def cutoff_value(self, cutoff: datetime) -> datetime:
        # BSON datetimes carry millisecond precision; the driver reads naive values as UTC
        value = to_utc(cutoff).replace(tzinfo=None)
        return value.replace(microsecond=value.microsecond // 1000 * 1000)


ADAPTERS: dict[TimestampKind, type[SourceAdapter]] = {
    TimestampKind.EPOCH_MILLIS: EpochMillisSource,
    TimestampKind.NATIVE_TIMESTAMP: NativeTimestampSource,
}


def build_adapter(
    descriptor: SourceDescriptor,
    database: Database,
    batch_size: int = 500,
    logger: structlog.BoundLogger | None = None,
) -> SourceAdapter:
    try:
        adapter_cls = ADAPTERS[descriptor.timestamp_kind]
    except KeyError:  # pragma: no cover - guarded by the enum
        raise ValueError(f"Unsupported timestamp kind: {descriptor.timestamp_kind}") from None
    return adapter_cls(descriptor, database, batch_size=batch_size, logger=logger)


__all__ = [
    "ADAPTERS",
    "EpochMillisSource",
    "NativeTimestampSource",
    "RawLeadRecord",
    "SourceAdapter",
    "build_adapter",
    "to_epoch_millis",
    "to_utc",
]
