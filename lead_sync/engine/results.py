"""Result types produced by a sync run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class SourceOutcome:
    """What happened to one source during a run."""

    source_tag: str
    created: int = 0
    skipped: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SyncRunResult:
    """Aggregate of one orchestrator invocation; immutable once built."""

    started_at: datetime
    finished_at: datetime
    cutoff: datetime | None
    schedule: str
    counts: Mapping[str, int] = field(default_factory=dict)
    skipped: Mapping[str, int] = field(default_factory=dict)
    errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "counts", MappingProxyType(dict(self.counts)))
        object.__setattr__(self, "skipped", MappingProxyType(dict(self.skipped)))
        object.__setattr__(self, "errors", tuple(self.errors))

    @classmethod
    def from_outcomes(
        cls,
        outcomes: list[SourceOutcome],
        *,
        started_at: datetime,
        finished_at: datetime,
        cutoff: datetime | None,
        schedule: str,
    ) -> "SyncRunResult":
        return cls(
            started_at=started_at,
            finished_at=finished_at,
            cutoff=cutoff,
            schedule=schedule,
            counts={outcome.source_tag: outcome.created for outcome in outcomes},
            skipped={outcome.source_tag: outcome.skipped for outcome in outcomes},
            errors=tuple(outcome.error for outcome in outcomes if outcome.error),
        )

    @property
    def total_created(self) -> int:
        return sum(self.counts.values())

    def results_payload(self) -> dict[str, Any]:
        """Per-source counts with the error list, as stored in the audit log."""

        payload: dict[str, Any] = dict(self.counts)
        payload["errors"] = list(self.errors)
        return payload

    def to_audit_document(self) -> dict[str, Any]:
        return {
            "timestamp": self.started_at,
            "results": self.results_payload(),
            "schedule": self.schedule,
            "cutoff": self.cutoff,
            "finished_at": self.finished_at,
        }


__all__ = ["SourceOutcome", "SyncRunResult"]
