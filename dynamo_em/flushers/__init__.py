"""
Flush strategies for the entity manager.

- ParallelFlusher: independent concurrent writes, best effort
- TransactionalFlusher: bounded atomic transactions with fallback/chunking
"""

from .base import Flusher
from .operations import build_operation
from .parallel import ParallelFlusher
from .transactional import TransactionalFlusher

__all__ = [
    "Flusher",
    "ParallelFlusher",
    "TransactionalFlusher",
    "build_operation",
]
