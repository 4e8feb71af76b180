from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Callable, Dict, Iterator, Mapping, Optional, Tuple

from .allocation import RangeAllocator
from .identifier import format_code, sanitize_text
from .models import (
    PersistenceError,
    RangeExhausted,
    RegistryEntry,
    RegistryState,
    RegistrySummary,
    utcnow,
)
from .store import RegistryStore

logger = logging.getLogger(__name__)

DEFAULT_KEY = "isrc_registry"


class Registry:
    """Sequential code issuer over one owner's designation block.

    The registry is single-writer: ``generate`` reads and bumps the counter
    without awaiting in between, so tasks sharing one instance cannot hand out
    the same designation. Two instances backed by the same store can, since the
    last snapshot written wins. Pass ``lock`` to serialise ``generate`` when
    callers hold the registry across awaits of their own.

    Saves are fire-and-forget: ``generate`` returns before the snapshot is
    durable. Use ``generate_and_flush`` or ``flush`` when durability matters.
    """

    def __init__(
        self,
        store: RegistryStore,
        allocator: RangeAllocator,
        *,
        territory: str = "ZA",
        registrant: str = "80G",
        key: str = DEFAULT_KEY,
        clock: Callable[[], datetime] = utcnow,
        lock: Optional[asyncio.Lock] = None,
    ) -> None:
        self.store = store
        self.allocator = allocator
        self.territory = territory.upper()
        self.registrant = registrant.upper()
        self.key = key
        self.state: Optional[RegistryState] = None
        self.owner_key: Optional[str] = None
        self._clock = clock
        self._lock = lock
        self._save_lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()
        self._save_errors: list[BaseException] = []

    @property
    def ready(self) -> bool:
        return self.state is not None

    def current_year(self) -> str:
        return f"{self._clock().year % 100:02d}"

    async def load_or_init(self, owner_key: Optional[str]) -> RegistryState:
        allocation = self.allocator.range_for(owner_key)
        year = self.current_year()
        state = await self._load_state()
        if state is None:
            state = RegistryState.fresh(year, allocation)
            logger.info(
                "Initialised registry for %s-%s (%d-%d)",
                self.territory,
                self.registrant,
                allocation.start,
                allocation.end,
            )
            changed = True
        elif state.year != year or state.range != allocation:
            logger.info(
                "Resetting designation counter (year %s -> %s, range %d-%d -> %d-%d)",
                state.year,
                year,
                state.range.start,
                state.range.end,
                allocation.start,
                allocation.end,
            )
            state.reset(year, allocation)
            changed = True
        else:
            changed = False
            if state.last_designation < allocation.start - 1:
                state.last_designation = allocation.start - 1
                changed = True
        self.state = state
        self.owner_key = owner_key
        if changed:
            self._schedule_save()
        return state

    async def generate(self, title: str = "", owner: str = "") -> str:
        state = self._require_state()
        async with self._lock or contextlib.nullcontext():
            self._roll_year(state)
            designation = state.last_designation + 1
            while True:
                if designation > state.range.end:
                    raise RangeExhausted(
                        f"ISRC limit reached. Maximum {state.range.size} codes per year."
                    )
                code = format_code(self.territory, self.registrant, state.year, designation)
                # A counter reset after an owner change can land on codes issued earlier.
                if code not in state.codes:
                    break
                designation += 1
            state.codes[code] = RegistryEntry(
                track_title=sanitize_text(title),
                owner_name=sanitize_text(owner),
                generated_at=self._clock(),
            )
            state.last_designation = designation
            self._schedule_save()
        logger.info("Generated %s for %r", code, sanitize_text(title)[:20])
        return code

    async def generate_and_flush(self, title: str = "", owner: str = "") -> str:
        code = await self.generate(title, owner)
        await self.flush()
        return code

    async def code_for_track(self, title: str = "", owner: str = "") -> str:
        existing = self.find_unused_for(title, owner)
        if existing:
            logger.debug("Reusing unused code %s", existing)
            return existing
        return await self.generate(title, owner)

    async def mark_used(self, code: str, context: Optional[Mapping[str, object]] = None) -> bool:
        if self.state is None or not isinstance(code, str):
            return False
        entry = self.state.codes.get(code.strip().upper())
        if entry is None:
            logger.debug("mark_used: %s is not in the registry", code)
            return False
        entry.used = True
        entry.used_at = self._clock()
        if context is not None:
            entry.context = {str(k): str(v) for k, v in context.items()}
        else:
            entry.context = None
        self._schedule_save()
        return True

    def find_unused_for(self, title: str = "", owner: str = "") -> Optional[str]:
        if self.state is None:
            return None
        wanted_title = sanitize_text(title)
        wanted_owner = sanitize_text(owner)
        for code, entry in self.state.codes.items():
            if entry.used:
                continue
            if entry.track_title == wanted_title and entry.owner_name == wanted_owner:
                return code
        return None

    def summary(self) -> RegistrySummary:
        if self.state is None:
            return RegistrySummary(
                total=0, used=0, available=0, year=self.current_year(), last_designation=0
            )
        used = sum(1 for entry in self.state.codes.values() if entry.used)
        total = len(self.state.codes)
        return RegistrySummary(
            total=total,
            used=used,
            available=total - used,
            year=self.state.year,
            last_designation=self.state.last_designation,
        )

    def entries(self) -> Iterator[Tuple[str, RegistryEntry]]:
        if self.state is None:
            return iter(())
        return iter(list(self.state.codes.items()))

    async def flush(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if not self._save_errors:
            return
        errors, self._save_errors = self._save_errors, []
        first = errors[0]
        if isinstance(first, PersistenceError):
            raise first
        raise PersistenceError(f"Failed to persist registry {self.key}: {first}") from first

    def _require_state(self) -> RegistryState:
        if self.state is None:
            raise RuntimeError("Registry not loaded; call load_or_init() first")
        return self.state

    def _roll_year(self, state: RegistryState) -> None:
        year = self.current_year()
        if state.year == year:
            return
        logger.info("Year changed (%s -> %s); restarting designations", state.year, year)
        state.reset(year, state.range)

    async def _load_state(self) -> Optional[RegistryState]:
        try:
            record = await self.store.load(self.key)
        except Exception as exc:
            logger.warning("Registry load failed, starting from an empty registry: %s", exc)
            return None
        if not record:
            return None
        try:
            return RegistryState.from_record(record)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Stored registry %s is unreadable (%s); starting over", self.key, exc)
            return None

    def _schedule_save(self) -> None:
        record = self._require_state().to_record()
        task = asyncio.get_running_loop().create_task(self._save(record))
        self._pending.add(task)
        task.add_done_callback(self._save_done)

    async def _save(self, record: Dict[str, object]) -> None:
        # FIFO lock keeps snapshots landing in the order they were taken.
        async with self._save_lock:
            await self.store.save(self.key, record)

    def _save_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Registry save failed: %s", exc)
            self._save_errors.append(exc)
