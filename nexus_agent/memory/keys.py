import logging

from typing import Any, List

from nexus_agent.config import API_KEYS_PATH
from nexus_agent.memory.store import ObservedStore, now_ms
from nexus_agent.models import ApiKeyEntry, ApiKeyInfo


logger = logging.getLogger(__name__)


def mask_key(key: str) -> str:
    """Short preview of a secret: first and last four characters."""

    if len(key) <= 8:
        return "*" * len(key)

    return f"{key[:4]}...{key[-4:]}"


def to_key_info(entry: ApiKeyEntry) -> ApiKeyInfo:

    return ApiKeyInfo(
        id=entry.id,
        label=entry.label,
        preview=mask_key(entry.key),
        created_at=entry.created_at,
    )


class KeyStore(ObservedStore):
    """Labeled Gemini API keys. Records are independent and unordered."""

    _PATH = API_KEYS_PATH

    def _parse(self, data: Any) -> List[ApiKeyEntry]:

        if not data:
            return []

        entries = []

        for key_id, record in data.items():

            if not isinstance(record, dict) or not record.get("key"):

                logger.warning(
                    "Skipping malformed key record",
                    extra={"key_id": key_id},
                )

                continue

            entries.append(
                ApiKeyEntry(
                    id=key_id,
                    label=record.get("label") or "",
                    key=record["key"],
                    created_at=record.get("createdAt") or 0,
                )
            )

        return entries

    def list_keys(self) -> List[ApiKeyEntry]:
        return list(self._current())

    def add_key(self, label: str, key: str) -> ApiKeyEntry:

        label = (label or "").strip()
        key = (key or "").strip()

        if not label or not key:
            raise ValueError("Both a label and a key are required")

        created_at = now_ms()

        key_id = self._db.push(
            self._PATH,
            {"label": label, "key": key, "createdAt": created_at},
        )

        logger.info("API key added", extra={"key_id": key_id, "label": label})

        return ApiKeyEntry(id=key_id, label=label, key=key, created_at=created_at)

    def remove_key(self, key_id: str) -> bool:

        if self._db.get(f"{self._PATH}/{key_id}") is None:
            return False

        self._db.delete(f"{self._PATH}/{key_id}")

        logger.info("API key removed", extra={"key_id": key_id})

        return True
