"""Local collaborators: in-memory repository, work queue and screenshot storage."""

from queuay.storage.fixtures import Suite, load_suite
from queuay.storage.memory import (
    InMemoryRepository,
    InMemoryWorkQueue,
    LocalScreenshotStore,
)

__all__ = [
    "Suite",
    "load_suite",
    "InMemoryRepository",
    "InMemoryWorkQueue",
    "LocalScreenshotStore",
]
