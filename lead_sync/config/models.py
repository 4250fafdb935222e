"""Pydantic models describing the lead sync deployment."""

from __future__ import annotations

import os
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
# Audit results keep per-source counts and the error list in one mapping
RESERVED_TAGS = frozenset({"errors"})


class TimestampKind(str, Enum):
    """How a source represents the creation time of its records."""

    EPOCH_MILLIS = "epoch_millis"
    NATIVE_TIMESTAMP = "native_timestamp"


class ScheduleType(str, Enum):
    """Scheduler modes supported by the sync job."""

    CRON = "cron"
    INTERVAL = "interval"


class StoreConnection(BaseModel):
    """Connection details for one document database."""

    model_config = ConfigDict(frozen=True)

    uri: str = "mongodb://localhost:27017"
    database: str

    @field_validator("database")
    @classmethod
    def _database_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("database cannot be empty")
        return value

    def resolved_uri(self) -> str:
        """Return the URI with ``${VAR}`` references expanded from the environment."""

        # Expanded lazily so secrets never end up in saved config files
        return os.path.expandvars(self.uri)


class SourceDescriptor(BaseModel):
    """Static description of one source datastore and how to query it."""

    model_config = ConfigDict(frozen=True)

    source_tag: str
    connection: StoreConnection
    collection_name: str
    timestamp_field: str
    timestamp_kind: TimestampKind
    id_field: str = "_id"

    @field_validator("source_tag")
    @classmethod
    def _validate_tag(cls, value: str) -> str:
        if not _TAG_PATTERN.match(value):
            raise ValueError("source_tag may only contain letters, digits, '_' and '-'")
        if value in RESERVED_TAGS:
            raise ValueError(f"source_tag `{value}` is reserved")
        return value

    @field_validator("collection_name", "timestamp_field", "id_field")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("value cannot be empty")
        return value

    @property
    def label(self) -> str:
        """Human readable name used in error entries, e.g. ``ama form``."""

        return f"{self.source_tag} {self.collection_name}"


class CentralStoreConfig(BaseModel):
    """Where merged leads and run audits are written."""

    connection: StoreConnection = Field(
        default_factory=lambda: StoreConnection(database="crm")
    )
    leads_collection: str = "crm_leads"
    audit_collection: str = "sync_logs"


class ScheduleConfig(BaseModel):
    """When the sync job runs."""

    type: ScheduleType = Field(default=ScheduleType.INTERVAL)
    value: Any = Field(
        default_factory=lambda: {"minutes": 15},
        description="Interval minutes or IntervalTrigger kwargs dict, or a crontab expression.",
    )
    timezone: str = "Asia/Kolkata"
    description: str = "every 15 minutes"

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL and not isinstance(self.value, (int, float, dict)):
            raise ValueError("Interval schedule requires minutes (int/float) or kwargs dict")
        return self


def _default_sources() -> list[SourceDescriptor]:
    return [
        SourceDescriptor(
            source_tag="credsettlee",
            connection=StoreConnection(uri="${CREDSETTLEE_MONGO_URI}", database="credsettlee"),
            collection_name="Form",
            timestamp_field="created",
            timestamp_kind=TimestampKind.EPOCH_MILLIS,
        ),
        SourceDescriptor(
            source_tag="settleloans",
            connection=StoreConnection(uri="${SETTLELOANS_MONGO_URI}", database="settleloans"),
            collection_name="ContactPageForm",
            timestamp_field="created",
            timestamp_kind=TimestampKind.EPOCH_MILLIS,
        ),
        SourceDescriptor(
            source_tag="ama",
            connection=StoreConnection(uri="${AMA_MONGO_URI}", database="amalegalsolutionss"),
            collection_name="form",
            timestamp_field="timestamp",
            timestamp_kind=TimestampKind.NATIVE_TIMESTAMP,
        ),
    ]


class SyncConfig(BaseModel):
    """Top level configuration of a lead sync deployment."""

    central: CentralStoreConfig = Field(default_factory=CentralStoreConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    sources: list[SourceDescriptor] = Field(default_factory=_default_sources)
    timeout_ms: int = 30000
    batch_size: int = 500
    max_workers: int = 1

    @model_validator(mode="after")
    def _validate_runtime(self) -> "SyncConfig":
        tags = [source.source_tag for source in self.sources]
        duplicates = sorted({tag for tag in tags if tags.count(tag) > 1})
        if duplicates:
            raise ValueError(f"Duplicate source_tag values: {', '.join(duplicates)}")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        return self

    def get_source(self, source_tag: str) -> SourceDescriptor:
        for source in self.sources:
            if source.source_tag == source_tag:
                return source
        raise KeyError(source_tag)


__all__ = [
    "CentralStoreConfig",
    "ScheduleConfig",
    "ScheduleType",
    "SourceDescriptor",
    "StoreConnection",
    "SyncConfig",
    "TimestampKind",
]
