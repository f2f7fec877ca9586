"""
Persistence for DistrictRecon.

Classes:
    SQLiteReconciliationStore: Durable job/timeline/config storage
    ReconciliationCache: TTL read cache in front of the store

Protocols:
    ReconciliationStore, JobCache
"""

from storage.store import ReconciliationStore, SQLiteReconciliationStore
from storage.cache import ReconciliationCache, JobCache

__all__ = [
    'ReconciliationStore',
    'SQLiteReconciliationStore',
    'ReconciliationCache',
    'JobCache',
]
