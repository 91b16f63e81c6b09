"""
Process-local state for version recording.

PreviousStateCache holds the last draft state the version recorder saw for each
entity; it is the baseline every new change is diffed against.

UndoRedoMarks flags entities whose next draft write comes from an undo/redo,
so the recorder refreshes its baseline instead of recording a new version.

Both are keyed by (entity_type, entity_id) and assume a single active editor
session per entity. Neither is persisted: losing the cache only means the next
change to an entity is treated as its first observation.
"""
import asyncio
import copy
import logging
from collections import OrderedDict
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)

EntityKey = tuple[str, UUID]

# Default auto-clear delay for undo/redo marks
UNDO_REDO_MARK_TIMEOUT_SECONDS = 10.0


def _key(entity_type: str, entity_id: UUID) -> EntityKey:
    return (str(entity_type), entity_id)


class PreviousStateCache:
    """
    Bounded LRU map of entity key -> last observed draft state.

    Values are deep-copied on the way in and out so callers can never mutate a
    cached baseline.
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self.max_entries = max_entries
        self._entries: OrderedDict[EntityKey, Any] = OrderedDict()

    def get(self, entity_type: str, entity_id: UUID) -> Any | None:
        """Return a copy of the cached state, or None when the entity was never observed."""
        key = _key(entity_type, entity_id)
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return copy.deepcopy(self._entries[key])

    def has(self, entity_type: str, entity_id: UUID) -> bool:
        """Whether a baseline exists for the entity."""
        return _key(entity_type, entity_id) in self._entries

    def set(self, entity_type: str, entity_id: UUID, state: Any) -> None:
        """Store (or replace) the baseline for an entity."""
        key = _key(entity_type, entity_id)
        self._entries[key] = copy.deepcopy(state)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted previous state for %s %s", evicted[0], evicted[1])

    def discard(self, entity_type: str, entity_id: UUID) -> None:
        """Forget the baseline for an entity (its next change seeds a new one)."""
        self._entries.pop(_key(entity_type, entity_id), None)

    def clear(self) -> None:
        """Forget every baseline."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class UndoRedoMarks:
    """
    Registry of entities currently being written by an undo/redo.

    Every mark owns a cancellable timer. Clearing the mark cancels the timer;
    if nothing clears it (e.g. the draft save raised), the timer removes the
    mark after ``timeout_seconds`` so recording is never suppressed forever.

    Must be used from within a running event loop.
    """

    def __init__(self, timeout_seconds: float = UNDO_REDO_MARK_TIMEOUT_SECONDS) -> None:
        self.timeout_seconds = timeout_seconds
        self._timers: dict[EntityKey, asyncio.TimerHandle] = {}

    def mark(self, entity_type: str, entity_id: UUID) -> None:
        """Flag an entity, restarting its timeout if it was already flagged."""
        key = _key(entity_type, entity_id)
        existing = self._timers.pop(key, None)
        if existing is not None:
            existing.cancel()
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self.timeout_seconds, self._expire, key)

    def is_marked(self, entity_type: str, entity_id: UUID) -> bool:
        """Whether the entity is flagged."""
        return _key(entity_type, entity_id) in self._timers

    def clear(self, entity_type: str, entity_id: UUID) -> bool:
        """
        Remove the flag and cancel its timer.

        Returns:
            True if the entity was flagged.
        """
        handle = self._timers.pop(_key(entity_type, entity_id), None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def clear_all(self) -> None:
        """Remove every flag (used on shutdown)."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def active_keys(self) -> list[EntityKey]:
        """Keys of all flagged entities."""
        return list(self._timers)

    def _expire(self, key: EntityKey) -> None:
        if self._timers.pop(key, None) is not None:
            logger.warning(
                "Undo/redo mark for %s %s expired after %.1fs without being cleared",
                key[0],
                key[1],
                self.timeout_seconds,
            )
