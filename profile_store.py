"""
Profile persistence for Helldivers 2 Mod Manager.

profile.json keeps the deployment order and each package's switches:

{
    "version": 1,
    "mods": [
        {"guid": "...", "enabled": true, "enabled_options": [true, false], "selected_options": [-1, 2]}
    ]
}
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from uuid import UUID

from mod_registry import ModRegistry, Package

_log = logging.getLogger(__name__)

PROFILE_FILENAME = "profile.json"
PROFILE_VERSION = 1


@dataclass
class ProfileEntry:
    """Persisted state of one package."""

    guid: str
    enabled: bool = False
    enabled_options: list[bool] = field(default_factory=list)
    selected_options: list[int] = field(default_factory=list)

    @classmethod
    def from_package(cls, package: Package) -> ProfileEntry:
        return cls(
            guid=str(package.guid),
            enabled=package.enabled,
            enabled_options=package.enabled_options,
            selected_options=package.selected_options,
        )


class ProfileStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def _read_entries(self) -> list[ProfileEntry] | None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if data.get("version") != PROFILE_VERSION:
                raise ValueError(f"unsupported profile version {data.get('version')!r}")
            return [ProfileEntry(**rec) for rec in data.get("mods", [])]
        except Exception as e:
            _log.warning("Could not load profile %s: %s", self.path, e)
            return None

    def load(self, registry: ModRegistry) -> list[Package] | None:
        """Apply the stored profile to ``registry``'s packages.

        Returns the packages in profile order, or None when there is no
        usable profile. Entries for packages that are no longer staged are
        dropped; staged packages the profile does not mention are appended
        disabled.
        """
        if not self.exists():
            return None
        entries = self._read_entries()
        if entries is None:
            return None

        ordered: list[Package] = []
        seen: set[UUID] = set()
        for entry in entries:
            try:
                guid = UUID(entry.guid)
            except (TypeError, ValueError):
                _log.warning("Dropping profile entry with invalid GUID %r", entry.guid)
                continue
            package = registry.get(guid)
            if package is None or guid in seen:
                _log.warning("Dropping profile entry for unknown mod %s", guid)
                continue
            package.enabled = bool(entry.enabled)
            package.apply_state(list(entry.enabled_options), list(entry.selected_options))
            ordered.append(package)
            seen.add(guid)

        for package in registry:
            if package.guid not in seen:
                _log.info("Mod %s is not in the profile, adding it disabled", package.name)
                package.enabled = False
                package.reset_options()
                ordered.append(package)

        _log.info("Loaded profile: %d mod(s)", len(ordered))
        return ordered

    def save(self, packages: list[Package]):
        data = {
            "version": PROFILE_VERSION,
            "mods": [asdict(ProfileEntry.from_package(p)) for p in packages],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def default_order(registry: ModRegistry) -> list[Package]:
        packages = list(registry)
        for package in packages:
            package.enabled = False
            package.reset_options()
        return packages
