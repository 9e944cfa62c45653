import logging

from typing import Any, Dict

from nexus_agent.config import DEFAULT_AGENT_SETTINGS, SETTINGS_PATH
from nexus_agent.memory.store import ObservedStore
from nexus_agent.models import AgentSettings


logger = logging.getLogger(__name__)


class SettingsStore(ObservedStore):
    """
    Singleton persona configuration. Last write wins.

    The stored record is always complete: an empty node is filled with the
    defaults before anything else is written to it.
    """

    _PATH = SETTINGS_PATH

    def _parse(self, data: Any) -> AgentSettings:

        merged = dict(DEFAULT_AGENT_SETTINGS)

        if data:
            merged.update({k: v for k, v in data.items() if k in merged and v is not None})

        return AgentSettings(**merged)

    def _write_defaults(self):

        logger.info("Settings missing, writing defaults")

        self._db.set(self._PATH, dict(DEFAULT_AGENT_SETTINGS))

    def _on_data(self, data: Any):

        if not data:
            self._write_defaults()

        super()._on_data(data)

    def get_settings(self) -> AgentSettings:

        if self.loaded:
            return self._current()

        data = self._db.get(self._PATH)

        if not data:
            self._write_defaults()

        return self._parse(data)

    def update_settings(self, changes: Dict[str, Any]) -> AgentSettings:
        """Merge the given fields into the stored settings."""

        changes = {
            key: value
            for key, value in changes.items()
            if key in DEFAULT_AGENT_SETTINGS and value is not None
        }

        if not changes:
            return self.get_settings()

        stored = self._db.get(self._PATH)

        if stored:
            self._db.update(self._PATH, changes)
        else:
            self._db.set(self._PATH, {**DEFAULT_AGENT_SETTINGS, **changes})

        logger.info(
            "Settings updated",
            extra={"fields": sorted(changes)},
        )

        return self._parse({**(stored or {}), **changes})
