from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .allocation import RangeAllocator
from .config import Settings
from .registry import Registry
from .store import MemoryRegistryStore, RegistryStore, SqliteRegistryStore
from .tagging import MetadataWriter

logger = logging.getLogger(__name__)


@dataclass
class IsrcApp:
    settings: Settings
    store: RegistryStore
    allocator: RangeAllocator
    registry: Registry
    writer: MetadataWriter

    @classmethod
    def create(cls, settings: Settings, *, store: Optional[RegistryStore] = None) -> "IsrcApp":
        identity = settings.identity
        if store is None:
            store = SqliteRegistryStore(settings.registry.store_path)
        allocator = RangeAllocator(identity.salt, bucket_count=identity.bucket_count)
        registry = Registry(
            store,
            allocator,
            territory=identity.territory,
            registrant=identity.registrant,
            key=settings.registry.key,
        )
        return cls(
            settings=settings,
            store=store,
            allocator=allocator,
            registry=registry,
            writer=MetadataWriter(),
        )

    @classmethod
    def in_memory(cls, settings: Optional[Settings] = None) -> "IsrcApp":
        return cls.create(settings or Settings(), store=MemoryRegistryStore())

    async def open_registry(self) -> Registry:
        if not self.registry.ready:
            state = await self.registry.load_or_init(self.settings.identity.owner_key)
            logger.debug(
                "Registry ready: year %s, block %d-%d, %d code(s)",
                state.year,
                state.range.start,
                state.range.end,
                len(state.codes),
            )
        return self.registry

    def close(self) -> None:
        self.store.close()
