"""Sync orchestrator wiring source adapters, dedup writes and the audit log."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, time, timezone
from typing import Callable, Sequence

import structlog

from .config import SourceDescriptor, SyncConfig
from .engine import (
    AuditLogger,
    DedupWriter,
    SourceAdapter,
    SourceError,
    SourceOutcome,
    SyncRunResult,
    WriteOutcome,
    build_adapter,
)
from .engine.adapters import to_epoch_millis, to_utc
from .infra import MongoManager
from .logging_conf import configure_logging, source_logger


def compute_cutoff(now: datetime) -> datetime:
    """Start of ``now``'s calendar day in UTC.

    Every run re-scans the whole current day rather than the interval since the
    previous run, so a source that failed earlier today is picked up again by
    the next run. Re-delivered records are skipped by the dedup writer.
    """

    current = to_utc(now)
    return datetime.combine(current.date(), time.min, tzinfo=timezone.utc)


class SyncOrchestrator:
    """Run synchronization passes over all configured sources."""

    def __init__(
        self,
        config: SyncConfig,
        storage: MongoManager,
        scheduler=None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.scheduler = scheduler
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        central_db = storage.database(config.central.connection)
        self.writer = DedupWriter(central_db[config.central.leads_collection], clock=self._clock)
        self.audit = AuditLogger(central_db[config.central.audit_collection])
        self.logger = configure_logging().bind(component="orchestrator")

    # ------------------------------------------------------------------
    def register_schedule(self) -> None:
        self.scheduler.schedule_sync(self.config.schedule, self.run_scheduled)
        self.scheduler.start()

    def run_scheduled(self) -> None:
        self.run_once()

    def run_once(
        self,
        sources: Sequence[SourceDescriptor] | None = None,
        now: datetime | None = None,
        *,
        full: bool = False,
    ) -> SyncRunResult:
        """Run one pass over ``sources`` and persist its audit record.

        Never raises: source and central-store failures are folded into the
        returned result, and a failing audit write is only logged.
        """

        descriptors = list(self.config.sources if sources is None else sources)
        started_at = to_utc(now) if now is not None else self._clock()
        cutoff = None if full else compute_cutoff(started_at)
        self.logger.info(
            "sync_run_started",
            cutoff=cutoff.isoformat() if cutoff else None,
            cutoff_ms=to_epoch_millis(cutoff) if cutoff else None,
            full=full,
            sources=[source.source_tag for source in descriptors],
        )

        if self.config.max_workers > 1 and len(descriptors) > 1:
            workers = min(self.config.max_workers, len(descriptors))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lead-sync") as executor:
                futures = [
                    executor.submit(self._run_source, descriptor, cutoff)
                    for descriptor in descriptors
                ]
                # Keep outcomes in configuration order
                outcomes = [future.result() for future in futures]
        else:
            outcomes = [self._run_source(descriptor, cutoff) for descriptor in descriptors]

        result = SyncRunResult.from_outcomes(
            outcomes,
            started_at=started_at,
            finished_at=self._clock(),
            cutoff=cutoff,
            schedule=self.config.schedule.description,
        )
        self.logger.info(
            "sync_run_completed",
            results=result.results_payload(),
            skipped=dict(result.skipped),
            total_created=result.total_created,
        )
        self._persist_audit(result)
        return result

    def probe_sources(
        self, sources: Sequence[SourceDescriptor] | None = None, limit: int = 10
    ) -> dict[str, int | str]:
        """Check that each source answers a small read; returns count or error text."""

        report: dict[str, int | str] = {}
        for descriptor in self.config.sources if sources is None else sources:
            try:
                report[descriptor.source_tag] = self.adapter_for(descriptor).probe(limit)
            except Exception as exc:  # noqa: BLE001
                message = exc.message if isinstance(exc, SourceError) else str(exc)
                self.logger.error("source_probe_failed", source=descriptor.source_tag, error=message)
                report[descriptor.source_tag] = f"Error: {message}"
        return report

    def adapter_for(
        self, descriptor: SourceDescriptor, logger: structlog.BoundLogger | None = None
    ) -> SourceAdapter:
        return build_adapter(
            descriptor,
            self.storage.database(descriptor.connection),
            batch_size=self.config.batch_size,
            logger=logger or self._source_log(descriptor),
        )

    # ------------------------------------------------------------------
    def _source_log(self, descriptor: SourceDescriptor) -> structlog.BoundLogger:
        try:
            return source_logger(descriptor.source_tag)
        except OSError as exc:
            # Fall back to the run logger
            self.logger.warning(
                "source_log_unavailable", source=descriptor.source_tag, error=str(exc)
            )
            return self.logger.bind(source=descriptor.source_tag)

    def _run_source(self, descriptor: SourceDescriptor, cutoff: datetime | None) -> SourceOutcome:
        try:
            return self._sync_source(descriptor, cutoff)
        except Exception as exc:  # noqa: BLE001
            return self._failed(descriptor, exc, self.logger.bind(source=descriptor.source_tag))

    def _failed(
        self,
        descriptor: SourceDescriptor,
        exc: Exception,
        log: structlog.BoundLogger,
        created: int = 0,
        skipped: int = 0,
    ) -> SourceOutcome:
        message = getattr(exc, "message", None) or str(exc)
        log.error(
            "source_sync_failed",
            collection=descriptor.collection_name,
            error_type=type(exc).__name__,
            error=message,
            created_before_failure=created,
        )
        return SourceOutcome(
            descriptor.source_tag,
            created=0,
            skipped=skipped,
            error=f"Error syncing from {descriptor.label}: {message}",
        )

    def _sync_source(self, descriptor: SourceDescriptor, cutoff: datetime | None) -> SourceOutcome:
        log = self._source_log(descriptor)
        created = 0
        skipped = 0
        try:
            adapter = self.adapter_for(descriptor, log)
            records = adapter.fetch_all() if cutoff is None else adapter.fetch_since(cutoff)
            for record in records:
                outcome = self.writer.write_if_absent(descriptor.source_tag, record)
                if outcome is WriteOutcome.CREATED:
                    created += 1
                else:
                    skipped += 1
        except Exception as exc:  # noqa: BLE001
            return self._failed(descriptor, exc, log, created=created, skipped=skipped)
        log.info(
            "source_synced",
            collection=descriptor.collection_name,
            fetched=created + skipped,
            created=created,
            skipped=skipped,
        )
        return SourceOutcome(descriptor.source_tag, created=created, skipped=skipped)

    def _persist_audit(self, result: SyncRunResult) -> None:
        try:
            audit_id = self.audit.persist(result)
        except Exception as exc:  # noqa: BLE001
            self.logger.error(
                "audit_persist_failed",
                error_type=type(exc).__name__,
                error=str(exc),
                results=result.results_payload(),
            )
            return
        self.logger.debug("audit_persisted", audit_id=str(audit_id))


__all__ = ["SyncOrchestrator", "compute_cutoff"]
