"""
Adapters layer - Datastore integrations.
"""

from .memory_store import SAMPLE_DATA_FILE, InMemoryBookingStore, UnitOfWork

__all__ = ["InMemoryBookingStore", "SAMPLE_DATA_FILE", "UnitOfWork"]
