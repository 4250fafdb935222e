"""Error taxonomy for the sync engine."""

from __future__ import annotations


class LeadSyncError(Exception):
    """Base class for every error raised by the sync engine."""


class SourceError(LeadSyncError):
    """A source datastore could not be read."""

    def __init__(self, source_tag: str, message: str) -> None:
        super().__init__(message)
        self.source_tag = source_tag
        self.message = message


class SourceUnavailable(SourceError):
    """The source could not be reached (network, timeout, server selection)."""


class SourceQueryError(SourceError):
    """The source answered but the query failed (auth, malformed query, cursor error)."""


class CentralStoreError(LeadSyncError):
    """A read or write against the central store failed."""

    def __init__(self, message: str, source_tag: str | None = None, central_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.source_tag = source_tag
        self.central_id = central_id


class AuditPersistError(CentralStoreError):
    """The run audit document could not be written."""


__all__ = [
    "AuditPersistError",
    "CentralStoreError",
    "LeadSyncError",
    "SourceError",
    "SourceQueryError",
    "SourceUnavailable",
]
