from pathlib import Path
from typing import TYPE_CHECKING

from .base_store import ContentStore
from .http_store import HttpContentStore
from .memory_store import InMemoryContentStore

if TYPE_CHECKING:
    from config.settings import StoreConfig


class StoreFactory:
    """Factory for creating content stores."""

    _stores = {
        "http": HttpContentStore,
        "memory": InMemoryContentStore,
    }

    @classmethod
    def create_store(cls, store_config: "StoreConfig") -> ContentStore:
        """Create a store instance from its configuration."""
        if store_config.provider not in cls._stores:
            raise ValueError(
                f"Unknown store: {store_config.provider}. Available: {list(cls._stores.keys())}"
            )

        if store_config.provider == "memory":
            if not store_config.seed_file:
                return InMemoryContentStore()
            return InMemoryContentStore.from_yaml(Path(store_config.seed_file))

        return HttpContentStore(store_config)
