"""
User-chosen display names for staged mods, kept in mod_aliases.json as a
flat ``{guid: alias}`` object.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from uuid import UUID

_log = logging.getLogger(__name__)

ALIAS_FILENAME = "mod_aliases.json"


class AliasStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.aliases: dict[str, str] = {}

    def load(self):
        self.aliases = {}
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            _log.error("Could not read aliases from %s: %s", self.path, e)
            return
        if not isinstance(data, dict):
            _log.error("Ignoring %s: expected an object", self.path)
            return
        for guid, alias in data.items():
            if isinstance(alias, str) and alias.strip():
                self.aliases[guid.lower()] = alias.strip()
        _log.info("Loaded %d alias(es)", len(self.aliases))

    def save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(self.aliases, indent="\t", ensure_ascii=False), encoding="utf-8"
        )

    def get(self, guid: UUID) -> str | None:
        return self.aliases.get(str(guid))

    def set(self, guid: UUID, alias: str | None):
        """Store ``alias`` for ``guid``; a blank alias removes the entry."""
        alias = (alias or "").strip()
        if not alias:
            self.remove(guid)
            return
        self.aliases[str(guid)] = alias

    def remove(self, guid: UUID):
        self.aliases.pop(str(guid), None)

    def rename(self, old_guid: UUID, new_guid: UUID):
        if old_guid == new_guid:
            return
        alias = self.aliases.pop(str(old_guid), None)
        if alias is not None:
            self.aliases[str(new_guid)] = alias
