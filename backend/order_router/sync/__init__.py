"""Vector index synchronization components."""

from .fingerprints import InMemoryFingerprintStore, SQLiteFingerprintStore, content_hash
from .tracker import ChangeTracker
from .synchronizer import VectorSynchronizer

__all__ = [
    "InMemoryFingerprintStore",
    "SQLiteFingerprintStore",
    "content_hash",
    "ChangeTracker",
    "VectorSynchronizer",
]
