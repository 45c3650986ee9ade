"""Persistent deduplication ledger."""

from infobot.storage.dedup_store import DedupStore

__all__ = ["DedupStore"]
