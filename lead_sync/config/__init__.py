"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    CentralStoreConfig,
    ScheduleConfig,
    ScheduleType,
    SourceDescriptor,
    StoreConnection,
    SyncConfig,
    TimestampKind,
)

__all__ = [
    "CentralStoreConfig",
    "ConfigLocator",
    "ConfigRepository",
    "ScheduleConfig",
    "ScheduleType",
    "SourceDescriptor",
    "StoreConnection",
    "SyncConfig",
    "TimestampKind",
]
