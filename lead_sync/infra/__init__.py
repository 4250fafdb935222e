"""Infra layer utilities (store connections)."""

from .storage import MongoManager

__all__ = ["MongoManager"]
