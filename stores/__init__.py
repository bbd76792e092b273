"""Content stores package."""

from .providers import StoreFactory
from .http_store import HttpContentStore
from .memory_store import InMemoryContentStore
from .base_store import ContentStore, RebuttalSink

__all__ = [
    "StoreFactory",
    "HttpContentStore",
    "InMemoryContentStore",
    "ContentStore",
    "RebuttalSink",
]
