import logging
import threading
import time

from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from nexus_agent.config import MEMORIES_PATH
from nexus_agent.memory.database import RealtimeDatabase
from nexus_agent.models import MemoryItem


logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class ObservedStore:
    """
    Base for stores backed by one database node.

    start() attaches a listener that keeps the latest parsed snapshot.
    Once the first snapshot has arrived, reads are served from it; before
    that (or without start()) they go to the database. Writes always go
    to the database and come back through the listener.
    """

    _PATH = ""

    def __init__(self, database: RealtimeDatabase):

        self._db = database
        self._listener = None
        self._loaded = threading.Event()
        self._snapshot: Any = None
        self._snapshot_lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._loaded.is_set()

    def _parse(self, data: Any):
        return data

    def _current(self):
        """Latest parsed contents of the node."""

        if self._loaded.is_set():
            with self._snapshot_lock:
                return self._snapshot

        return self._parse(self._db.get(self._PATH))

    def watch(self, callback: Callable[[Any], None]):
        """Call callback with the parsed node contents now and after every change."""
        return self._db.listen(self._PATH, lambda data: callback(self._parse(data)))

    def start(self):

        if self._listener is not None:
            return

        self._listener = self._db.listen(self._PATH, self._on_data)

    def stop(self):

        if self._listener is not None:
            self._listener.close()
            self._listener = None

        self._loaded.clear()

        with self._snapshot_lock:
            self._snapshot = None

    def _on_data(self, data: Any):
        self._on_snapshot(self._parse(data))

    def _on_snapshot(self, parsed: Any):

        with self._snapshot_lock:
            self._snapshot = parsed

        self._loaded.set()

        logger.debug(
            "Snapshot received",
            extra={"path": self._PATH},
        )


class MemoryStore(ObservedStore):

    _PATH = MEMORIES_PATH

    def _parse(self, data: Any) -> List[MemoryItem]:

        if not data:
            return []

        memories = []

        for memory_id, record in data.items():

            try:
                memories.append(MemoryItem(**record))
            except (TypeError, ValidationError) as e:
                logger.warning(
                    "Skipping malformed memory record",
                    extra={"memory_id": memory_id, "error": str(e)},
                )

        memories.sort(key=lambda m: m.timestamp, reverse=True)

        return memories

    def list_memories(self) -> List[MemoryItem]:
        """All memories, newest first."""
        return list(self._current())

    def get_memory(self, memory_id: str) -> Optional[MemoryItem]:

        if self.loaded:
            return next((m for m in self._current() if m.id == memory_id), None)

        record = self._db.get(f"{self._PATH}/{memory_id}")

        if not record:
            return None

        return MemoryItem(**record)

    def add_memory(self, memory: MemoryItem) -> MemoryItem:

        self._db.set(f"{self._PATH}/{memory.id}", memory.dict())

        logger.info(
            "Memory stored",
            extra={"memory_id": memory.id, "memory_type": memory.type},
        )

        return memory

    def remove_memory(self, memory_id: str) -> bool:

        if self._db.get(f"{self._PATH}/{memory_id}") is None:

            logger.warning(
                "Delete requested for unknown memory",
                extra={"memory_id": memory_id},
            )

            return False

        self._db.delete(f"{self._PATH}/{memory_id}")

        logger.info("Memory deleted", extra={"memory_id": memory_id})

        return True
