"""Durable job store layer."""

from jobengine.storage.backend import JobStore, JobStoreType, create_store, parse_store_url
from jobengine.storage.memory_store import InMemoryJobStore

__all__ = [
    "InMemoryJobStore",
    "JobStore",
    "JobStoreType",
    "create_store",
    "parse_store_url",
]
