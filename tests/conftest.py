"""Shared fixtures: in-memory document stores and sync configuration builders."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable

import mongomock
import pytest

from lead_sync.config import (
    CentralStoreConfig,
    ConfigLocator,
    ConfigRepository,
    ScheduleConfig,
    SourceDescriptor,
    StoreConnection,
    SyncConfig,
    TimestampKind,
)
from lead_sync.infra import MongoManager

TEST_URI = "mongodb://lead-sync.test:27017"


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEAD_SYNC_HOME", str(tmp_path))


@pytest.fixture
def mongo_client() -> mongomock.MongoClient:
    return mongomock.MongoClient()


@pytest.fixture
def mongo_manager(mongo_client: mongomock.MongoClient) -> MongoManager:
    return MongoManager(timeout_ms=1000, client_factory=lambda *args, **kwargs: mongo_client)


@pytest.fixture
def make_descriptor() -> Callable[..., SourceDescriptor]:
    def _builder(**overrides: Any) -> SourceDescriptor:
        base: dict[str, Any] = {
            "source_tag": "credsettlee",
            "connection": StoreConnection(uri=TEST_URI, database="credsettlee"),
            "collection_name": "Form",
            "timestamp_field": "created",
            "timestamp_kind": TimestampKind.EPOCH_MILLIS,
        }
        base.update(overrides)
        return SourceDescriptor(**base)

    return _builder


@pytest.fixture
def reference_sources(make_descriptor: Callable[..., SourceDescriptor]) -> list[SourceDescriptor]:
    """The three sources of the reference deployment, all on the mock server."""

    return [
        make_descriptor(),
        make_descriptor(
            source_tag="settleloans",
            connection=StoreConnection(uri=TEST_URI, database="settleloans"),
            collection_name="ContactPageForm",
        ),
        make_descriptor(
            source_tag="ama",
            connection=StoreConnection(uri=TEST_URI, database="amalegalsolutionss"),
            collection_name="form",
            timestamp_field="timestamp",
            timestamp_kind=TimestampKind.NATIVE_TIMESTAMP,
        ),
    ]


@pytest.fixture
def make_sync_config(reference_sources: list[SourceDescriptor]) -> Callable[..., SyncConfig]:
    def _builder(**overrides: Any) -> SyncConfig:
        base: dict[str, Any] = {
            "central": CentralStoreConfig(connection=StoreConnection(uri=TEST_URI, database="crm")),
            "schedule": ScheduleConfig(),
            "sources": reference_sources,
            "timeout_ms": 1000,
            "batch_size": 2,
        }
        base.update(overrides)
        return SyncConfig(**base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> Iterable[ConfigRepository]:
    locator = ConfigLocator(project_root=tmp_path)
    yield ConfigRepository(locator)
