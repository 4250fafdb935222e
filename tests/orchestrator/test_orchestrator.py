from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from lead_sync.config import StoreConnection
from lead_sync.engine import AuditPersistError, CentralStoreError
from lead_sync.infra import MongoManager
from lead_sync.orchestrator import SyncOrchestrator, compute_cutoff

NOW = datetime(2024, 5, 20, 9, 15, tzinfo=timezone.utc)
CUTOFF_MS = 1716163200000
DOWN_URI = "mongodb://down.test:27017"


@pytest.fixture
def unreachable_client() -> MagicMock:
    client = MagicMock()
    collection = client.__getitem__.return_value.__getitem__.return_value
    collection.find.side_effect = ServerSelectionTimeoutError("no servers reachable")
    return client


@pytest.fixture
def manager(mongo_client, unreachable_client) -> MongoManager:
    def _factory(uri, **kwargs):  # noqa: ANN001
        return unreachable_client if uri == DOWN_URI else mongo_client

    return MongoManager(timeout_ms=1000, client_factory=_factory)


@pytest.fixture
def build_orchestrator(manager, make_sync_config):
    def _builder(**overrides) -> SyncOrchestrator:
        return SyncOrchestrator(make_sync_config(**overrides), manager, clock=lambda: NOW)

    return _builder


def _down(descriptor):
    return descriptor.model_copy(
        update={"connection": StoreConnection(uri=DOWN_URI, database=descriptor.connection.database)}
    )


def _seed(mongo_client) -> None:
    mongo_client["credsettlee"]["Form"].insert_many(
        [
            {"_id": "c1", "created": CUTOFF_MS, "name": "A"},
            {"_id": "c2", "created": CUTOFF_MS + 60_000, "name": "B"},
            {"_id": "c3", "created": CUTOFF_MS + 120_000, "name": "C"},
            {"_id": "c-old", "created": CUTOFF_MS - 1, "name": "old"},
        ]
    )
    mongo_client["settleloans"]["ContactPageForm"].insert_many(
        [
            {"_id": "s1", "created": CUTOFF_MS + 5, "email": "s1@example.com"},
        ]
    )
    mongo_client["amalegalsolutionss"]["form"].insert_many(
        [
            {"_id": "a1", "timestamp": datetime(2024, 5, 20), "city": "Pune"},
            {"_id": "a2", "timestamp": datetime(2024, 5, 20, 8, 30), "city": "Delhi"},
            {"_id": "a-old", "timestamp": datetime(2024, 5, 19, 23, 59, 59, 999000)},
        ]
    )


def _audits(mongo_client) -> list[dict]:
    return list(mongo_client["crm"]["sync_logs"].find())


def test_compute_cutoff_is_utc_midnight() -> None:
    assert compute_cutoff(NOW) == datetime(2024, 5, 20, tzinfo=timezone.utc)
    assert compute_cutoff(datetime(2024, 5, 20, 23, 59, 59)) == datetime(2024, 5, 20, tzinfo=timezone.utc)
    # 02:00 in Kolkata on the 21st is still the 20th in UTC
    ist = timezone(timedelta(hours=5, minutes=30))
    assert compute_cutoff(datetime(2024, 5, 21, 2, 0, tzinfo=ist)) == datetime(
        2024, 5, 20, tzinfo=timezone.utc
    )


def test_run_creates_todays_records(build_orchestrator, mongo_client) -> None:
    _seed(mongo_client)
    orchestrator = build_orchestrator()

    result = orchestrator.run_once()

    assert dict(result.counts) == {"credsettlee": 3, "settleloans": 1, "ama": 2}
    assert result.errors == ()
    assert result.cutoff == datetime(2024, 5, 20, tzinfo=timezone.utc)
    assert result.schedule == "every 15 minutes"
    ids = sorted(doc["_id"] for doc in mongo_client["crm"]["crm_leads"].find())
    assert ids == [
        "ama_a1",
        "ama_a2",
        "credsettlee_c1",
        "credsettlee_c2",
        "credsettlee_c3",
        "settleloans_s1",
    ]
    lead = mongo_client["crm"]["crm_leads"].find_one({"_id": "ama_a1"})
    assert lead["source_database"] == "ama"
    assert lead["original_collection"] == "form"
    assert lead["original_id"] == "a1"
    assert lead["city"] == "Pune"


def test_rerun_is_idempotent(build_orchestrator, mongo_client) -> None:
    _seed(mongo_client)
    orchestrator = build_orchestrator()
    orchestrator.run_once()

    second = orchestrator.run_once()

    assert dict(second.counts) == {"credsettlee": 0, "settleloans": 0, "ama": 0}
    assert dict(second.skipped) == {"credsettlee": 3, "settleloans": 1, "ama": 2}
    assert mongo_client["crm"]["crm_leads"].count_documents({}) == 6
    assert len(_audits(mongo_client)) == 2


def test_failing_source_is_isolated(build_orchestrator, mongo_client, reference_sources) -> None:
    _seed(mongo_client)
    credsettlee, settleloans, ama = reference_sources
    orchestrator = build_orchestrator(sources=[credsettlee, _down(settleloans), ama])

    result = orchestrator.run_once()

    assert dict(result.counts) == {"credsettlee": 3, "settleloans": 0, "ama": 2}
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Error syncing from settleloans ContactPageForm: ")
    assert "no servers reachable" in result.errors[0]
    [audit] = _audits(mongo_client)
    assert audit["results"]["errors"] == list(result.errors)
    assert audit["results"]["credsettlee"] == 3


def test_every_source_failing_is_still_audited(build_orchestrator, mongo_client, reference_sources) -> None:
    orchestrator = build_orchestrator(sources=[_down(source) for source in reference_sources])

    result = orchestrator.run_once()

    assert dict(result.counts) == {"credsettlee": 0, "settleloans": 0, "ama": 0}
    assert [error.split(":")[0] for error in result.errors] == [
        "Error syncing from credsettlee Form",
        "Error syncing from settleloans ContactPageForm",
        "Error syncing from ama form",
    ]
    [audit] = _audits(mongo_client)
    assert audit["results"]["ama"] == 0
    assert len(audit["results"]["errors"]) == 3
    assert audit["schedule"] == "every 15 minutes"


def test_empty_sources_write_zero_audit(build_orchestrator, mongo_client) -> None:
    result = build_orchestrator().run_once()

    assert dict(result.counts) == {"credsettlee": 0, "settleloans": 0, "ama": 0}
    [audit] = _audits(mongo_client)
    assert audit["results"] == {"credsettlee": 0, "settleloans": 0, "ama": 0, "errors": []}


def test_write_failure_aborts_only_that_source(build_orchestrator, mongo_client) -> None:
    _seed(mongo_client)
    orchestrator = build_orchestrator()
    real_write = orchestrator.writer.write_if_absent

    def _flaky_write(source_tag, record):  # noqa: ANN001
        if source_tag == "ama":
            raise CentralStoreError("write rejected", source_tag=source_tag)
        return real_write(source_tag, record)

    orchestrator.writer.write_if_absent = _flaky_write  # type: ignore[method-assign]

    result = orchestrator.run_once()

    assert dict(result.counts) == {"credsettlee": 3, "settleloans": 1, "ama": 0}
    assert result.errors == ("Error syncing from ama form: write rejected",)


def test_audit_failure_does_not_raise(build_orchestrator, mongo_client) -> None:
    _seed(mongo_client)
    orchestrator = build_orchestrator()
    orchestrator.audit = MagicMock()
    orchestrator.audit.persist.side_effect = AuditPersistError("audit store down")

    result = orchestrator.run_once()

    assert result.total_created == 6
    orchestrator.audit.persist.assert_called_once_with(result)
    assert mongo_client["crm"]["crm_leads"].count_documents({}) == 6


@pytest.mark.parametrize("max_workers", [1, 3])
def test_unwritable_source_log_does_not_stop_run(
    build_orchestrator, mongo_client, tmp_path, max_workers
) -> None:
    _seed(mongo_client)
    # A directory where the per-source log file should be
    (tmp_path / "logs" / "sources" / "settleloans.log").mkdir(parents=True)
    orchestrator = build_orchestrator(max_workers=max_workers)

    result = orchestrator.run_once()

    assert dict(result.counts) == {"credsettlee": 3, "settleloans": 1, "ama": 2}
    assert result.errors == ()
    assert len(_audits(mongo_client)) == 1


@pytest.mark.parametrize("max_workers", [1, 3])
def test_unexpected_source_crash_is_recorded_and_audited(
    build_orchestrator, mongo_client, max_workers
) -> None:
    _seed(mongo_client)
    orchestrator = build_orchestrator(max_workers=max_workers)
    real_sync = orchestrator._sync_source

    def _crashing_sync(descriptor, cutoff):  # noqa: ANN001
        if descriptor.source_tag == "settleloans":
            raise RuntimeError("boom")
        return real_sync(descriptor, cutoff)

    orchestrator._sync_source = _crashing_sync  # type: ignore[method-assign]

    result = orchestrator.run_once()

    assert dict(result.counts) == {"credsettlee": 3, "settleloans": 0, "ama": 2}
    assert result.errors == ("Error syncing from settleloans ContactPageForm: boom",)
    [audit] = _audits(mongo_client)
    assert audit["results"]["errors"] == list(result.errors)


def test_concurrent_run_keeps_configuration_order(
    build_orchestrator, mongo_client, reference_sources
) -> None:
    _seed(mongo_client)
    credsettlee, settleloans, ama = reference_sources
    orchestrator = build_orchestrator(
        sources=[_down(credsettlee), settleloans, _down(ama)], max_workers=3
    )

    result = orchestrator.run_once()

    assert list(result.counts) == ["credsettlee", "settleloans", "ama"]
    assert dict(result.counts) == {"credsettlee": 0, "settleloans": 1, "ama": 0}
    assert [error.split(":")[0] for error in result.errors] == [
        "Error syncing from credsettlee Form",
        "Error syncing from ama form",
    ]


def test_explicit_now_and_source_subset(build_orchestrator, mongo_client, reference_sources) -> None:
    _seed(mongo_client)
    orchestrator = build_orchestrator()

    result = orchestrator.run_once([reference_sources[2]], now=datetime(2024, 5, 21, 1, 0))

    assert dict(result.counts) == {"ama": 0}
    assert result.cutoff == datetime(2024, 5, 21, tzinfo=timezone.utc)


def test_full_run_backfills_everything(build_orchestrator, mongo_client) -> None:
    _seed(mongo_client)

    result = build_orchestrator().run_once(full=True)

    assert result.cutoff is None
    assert dict(result.counts) == {"credsettlee": 4, "settleloans": 1, "ama": 3}
    assert _audits(mongo_client)[0]["cutoff"] is None


def test_probe_sources_reports_counts_and_errors(
    build_orchestrator, mongo_client, reference_sources
) -> None:
    _seed(mongo_client)
    credsettlee, settleloans, ama = reference_sources
    unreachable = build_orchestrator(sources=[credsettlee, settleloans, _down(ama)])

    report = unreachable.probe_sources(limit=10)

    assert report["credsettlee"] == 4
    assert report["settleloans"] == 1
    assert report["ama"] == "Error: no servers reachable"


def test_register_schedule_uses_scheduler(manager, make_sync_config) -> None:
    scheduler = MagicMock()
    orchestrator = SyncOrchestrator(make_sync_config(), manager, scheduler=scheduler)

    orchestrator.register_schedule()

    scheduler.schedule_sync.assert_called_once_with(
        orchestrator.config.schedule, orchestrator.run_scheduled
    )
    scheduler.start.assert_called_once()


def test_run_scheduled_delegates_to_run_once(build_orchestrator, mongo_client) -> None:
    _seed(mongo_client)
    orchestrator = build_orchestrator()
    orchestrator.run_scheduled()
    assert len(_audits(mongo_client)) == 1
    assert mongo_client["crm"]["crm_leads"].count_documents({}) == 6
