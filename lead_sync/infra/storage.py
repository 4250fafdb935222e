"""Connection management for the source and central document stores."""

from __future__ import annotations

from threading import Lock
from typing import Callable, Dict

from pymongo import MongoClient
from pymongo.database import Database

from ..config.models import StoreConnection

ClientFactory = Callable[..., MongoClient]


class MongoManager:
    """Create MongoDB clients once per URI and hand out database handles."""

    def __init__(self, timeout_ms: int = 30000, client_factory: ClientFactory | None = None) -> None:
        self.timeout_ms = timeout_ms
        self._client_factory = client_factory or MongoClient
        self._clients: Dict[str, MongoClient] = {}
        self._lock = Lock()

    def client(self, connection: StoreConnection) -> MongoClient:
        uri = connection.resolved_uri()
        with self._lock:
            if uri not in self._clients:
                # Every round-trip is bounded; a timeout surfaces as a PyMongoError
                self._clients[uri] = self._client_factory(
                    uri,
                    serverSelectionTimeoutMS=self.timeout_ms,
                    connectTimeoutMS=self.timeout_ms,
                    socketTimeoutMS=self.timeout_ms,
                    tz_aware=True,
                )
            return self._clients[uri]

    def database(self, connection: StoreConnection) -> Database:
        return self.client(connection)[connection.database]

    def close_all(self) -> None:
        with self._lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()


__all__ = ["ClientFactory", "MongoManager"]
