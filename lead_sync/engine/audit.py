"""Persist one immutable audit document per sync run."""

from __future__ import annotations

from typing import Any

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .errors import AuditPersistError
from .results import SyncRunResult


class AuditLogger:
    """Append run summaries to the central store's audit collection."""

    def __init__(self, collection: Collection) -> None:
        self.collection = collection

    def persist(self, result: SyncRunResult) -> Any:
        try:
            inserted = self.collection.insert_one(result.to_audit_document())
        except PyMongoError as exc:
            raise AuditPersistError(str(exc)) from exc
        return inserted.inserted_id


__all__ = ["AuditLogger"]
