# nexus_agent/memory/database.py

"""
Realtime database adapter.

Architecture contract:
store (memories / settings / keys) → RealtimeDatabase → backend

Backends:
- FirebaseDatabase: hosted Firebase Realtime Database (source of truth)
- InMemoryDatabase: process-local tree for development and tests

Both expose the same path semantics: "a/b/c" addresses a node, writing
None deletes it, and empty nodes do not exist.
"""

import copy
import json
import logging
import os
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, db

from nexus_agent.config import (
    DATABASE_BACKEND,
    FIREBASE_CREDENTIALS,
    FIREBASE_DATABASE_URL,
)


logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Any], None]


def _split_path(path: str) -> List[str]:
    return [part for part in path.strip("/").split("/") if part]


class RealtimeDatabase:
    """Minimal realtime-database surface used by the stores."""

    backend_name = "base"

    def get(self, path: str) -> Any:
        raise NotImplementedError

    def set(self, path: str, value: Any) -> None:
        raise NotImplementedError

    def update(self, path: str, values: Dict[str, Any]) -> None:
        raise NotImplementedError

    def push(self, path: str, value: Any) -> str:
        """Append a child under a generated, time-ordered key and return the key."""
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def listen(self, path: str, callback: SnapshotCallback):
        """
        Observe a node.

        callback receives the full snapshot of the node once immediately
        and again after every change. Returns a handle with close().
        """
        raise NotImplementedError


# ============================================================
# FIREBASE BACKEND
# ============================================================

def _load_credentials(source: Optional[str]):

    if not source:
        return credentials.ApplicationDefault()

    if os.path.exists(source):
        return credentials.Certificate(source)

    # Inline service-account JSON
    return credentials.Certificate(json.loads(source))


def apply_event(snapshot: Any, event_type: str, path: str, data: Any) -> Any:
    """
    Fold one streaming event into a local copy of the watched node.

    "put" replaces the value at path, "patch" merges data's children into it.
    Returns the new snapshot (None when the node is gone).
    """

    parts = _split_path(path)

    if event_type == "patch":

        for key, value in (data or {}).items():
            snapshot = apply_event(snapshot, "put", "/".join(parts + [key]), value)

        return snapshot

    if not parts:
        return copy.deepcopy(data)

    root = snapshot if isinstance(snapshot, dict) else {}
    node = root

    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child

    if data is None:
        node.pop(parts[-1], None)
    else:
        node[parts[-1]] = copy.deepcopy(data)

    return root or None


class FirebaseDatabase(RealtimeDatabase):

    backend_name = "firebase"

    def __init__(
        self,
        database_url: Optional[str] = FIREBASE_DATABASE_URL,
        credentials_source: Optional[str] = FIREBASE_CREDENTIALS,
    ):

        if not database_url:
            raise ValueError(
                "FIREBASE_DATABASE_URL environment variable not set. "
                "Set it or use DATABASE_BACKEND=memory."
            )

        try:
            self._app = firebase_admin.get_app()
        except ValueError:
            self._app = firebase_admin.initialize_app(
                _load_credentials(credentials_source),
                {"databaseURL": database_url},
            )

        logger.info(
            "Firebase database initialized",
            extra={"database_url": database_url},
        )

    def _ref(self, path: str):
        return db.reference(path or "/", app=self._app)

    def get(self, path: str) -> Any:
        return self._ref(path).get()

    def set(self, path: str, value: Any) -> None:
        self._ref(path).set(value)

    def update(self, path: str, values: Dict[str, Any]) -> None:
        self._ref(path).update(values)

    def push(self, path: str, value: Any) -> str:
        return self._ref(path).push(value).key

    def delete(self, path: str) -> None:
        self._ref(path).delete()

    def listen(self, path: str, callback: SnapshotCallback):

        ref = self._ref(path)
        state = {"snapshot": None}

        # First event is a put of the whole node; later ones are diffs against it
        def _on_event(event):

            try:
                state["snapshot"] = apply_event(
                    state["snapshot"], event.event_type, event.path, event.data
                )
                callback(copy.deepcopy(state["snapshot"]))
            except Exception as e:
                logger.error(
                    "Database listener failed",
                    extra={"path": path, "error": str(e)},
                    exc_info=True,
                )

        return ref.listen(_on_event)


# ============================================================
# IN-MEMORY BACKEND
# ============================================================

class _MemoryListener:

    def __init__(self, database: "InMemoryDatabase", path: str, callback: SnapshotCallback):
        self._database = database
        self.path = path
        self.callback = callback

    def close(self):
        self._database._remove_listener(self)


class InMemoryDatabase(RealtimeDatabase):

    backend_name = "memory"

    def __init__(self):

        self._root: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._listeners: List[_MemoryListener] = []
        self._last_push_ms = 0
        self._push_seq = 0

    # ---------- tree helpers ----------

    def _read(self, parts: List[str]) -> Any:

        node: Any = self._root

        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]

        return node

    def _write(self, parts: List[str], value: Any) -> None:

        if not parts:
            self._root = value if isinstance(value, dict) else {}
            return

        if value is None or value == {}:
            self._remove(parts)
            return

        node = self._root

        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child

        node[parts[-1]] = value

    def _remove(self, parts: List[str]) -> None:

        if not parts:
            self._root = {}
            return

        trail = [self._root]
        node = self._root

        for part in parts[:-1]:
            node = node.get(part) if isinstance(node, dict) else None
            if not isinstance(node, dict):
                return
            trail.append(node)

        if parts[-1] not in node:
            return

        del node[parts[-1]]

        # Prune parents left empty
        for depth in range(len(parts) - 1, 0, -1):
            if trail[depth]:
                break
            del trail[depth - 1][parts[depth - 1]]

    def _next_push_key(self) -> str:

        now_ms = int(time.time() * 1000)

        if now_ms == self._last_push_ms:
            self._push_seq += 1
        else:
            self._last_push_ms = now_ms
            self._push_seq = 0

        return f"-{now_ms:013d}{self._push_seq:04d}{uuid.uuid4().hex[:6]}"

    # ---------- public API ----------

    def get(self, path: str) -> Any:

        with self._lock:
            return copy.deepcopy(self._read(_split_path(path)))

    def set(self, path: str, value: Any) -> None:

        with self._lock:
            self._write(_split_path(path), copy.deepcopy(value))

        self._notify(path)

    def update(self, path: str, values: Dict[str, Any]) -> None:

        base = _split_path(path)

        with self._lock:
            for key, value in values.items():
                self._write(base + _split_path(key), copy.deepcopy(value))

        self._notify(path)

    def push(self, path: str, value: Any) -> str:

        with self._lock:
            key = self._next_push_key()
            self._write(_split_path(path) + [key], copy.deepcopy(value))

        self._notify(path)

        return key

    def delete(self, path: str) -> None:

        with self._lock:
            self._remove(_split_path(path))

        self._notify(path)

    def listen(self, path: str, callback: SnapshotCallback):

        listener = _MemoryListener(self, path, callback)

        with self._lock:
            self._listeners.append(listener)
            callback(self.get(path))

        return listener

    def _remove_listener(self, listener: _MemoryListener) -> None:

        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, changed_path: str) -> None:

        changed = _split_path(changed_path)

        # Held across read and callback so snapshots arrive in write order
        with self._lock:

            for listener in list(self._listeners):

                watched = _split_path(listener.path)
                shared = min(len(watched), len(changed))

                # Fire when one path is an ancestor of (or equal to) the other
                if watched[:shared] != changed[:shared]:
                    continue

                listener.callback(self.get(listener.path))


# ============================================================
# FACTORY
# ============================================================

def create_database(backend: str = DATABASE_BACKEND) -> RealtimeDatabase:

    if backend == "firebase":
        return FirebaseDatabase()

    if backend == "memory":
        logger.warning(
            "Using in-memory database; data is lost on restart",
        )
        return InMemoryDatabase()

    raise ValueError(f"Unknown database backend: {backend}")
