"""
Install journal for Helldivers 2 Mod Manager.

``installed.txt`` in the storage directory lists, one per line, every file
the last deployment wrote into the game's data directory. A purge deletes
exactly those files, so anything the user put there by hand survives.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from deployment import PATCH_FILE_RE
from manifest_schema import resolve_within

_log = logging.getLogger(__name__)

JOURNAL_FILENAME = "installed.txt"


class InstallJournal:
    def __init__(self, journal_path: str | Path, data_dir: str | Path):
        self.journal_path = Path(journal_path)
        self.data_dir = Path(data_dir)

    def exists(self) -> bool:
        return self.journal_path.is_file()

    def entries(self) -> list[str]:
        if not self.exists():
            return []
        text = self.journal_path.read_text(encoding="utf-8")
        return [line.strip() for line in text.splitlines() if line.strip()]

    def record(self, names: Iterable[str]):
        names = list(names)
        self.journal_path.parent.mkdir(parents=True, exist_ok=True)
        self.journal_path.write_text(
            "".join(f"{name}\n" for name in names), encoding="utf-8"
        )
        _log.info("Journal recorded %d file(s)", len(names))

    def clear(self):
        self.journal_path.unlink(missing_ok=True)

    def purge(self) -> int:
        """Delete every journaled file, then the journal itself.

        A file that is already gone is skipped. If a delete fails the
        journal is left in place so the next purge can finish the job.
        """
        if not self.exists():
            _log.debug("No install journal at %s, nothing to purge", self.journal_path)
            return 0

        removed = 0
        for name in self.entries():
            path = resolve_within(self.data_dir, name)
            if path is None:
                _log.warning("Ignoring journal entry outside the data directory: %s", name)
                continue
            if path.is_file():
                path.unlink()
                removed += 1
                _log.debug("Removed %s", name)
            else:
                _log.debug("Already gone: %s", name)

        self.clear()
        _log.info("Purged %d deployed file(s)", removed)
        return removed

    def hard_purge(self, skip_list: Iterable[str] = ()) -> int:
        """Remove the journal and every patch-named file in the data directory.

        Slot 0 of a skip-listed archive belongs to the game and is kept.
        """
        skip = {name.lower() for name in skip_list}
        removed = 0
        if self.data_dir.is_dir():
            for path in sorted(self.data_dir.glob("*.patch_*")):
                if not path.is_file():
                    continue
                match = PATCH_FILE_RE.match(path.name)
                if match is None:
                    continue
                if match["archive"].lower() in skip and int(match["index"]) == 0:
                    _log.debug("Keeping reserved %s", path.name)
                    continue
                path.unlink()
                removed += 1
                _log.debug("Removed %s", path.name)

        self.clear()
        _log.info("Hard purge removed %d file(s) from %s", removed, self.data_dir)
        return removed
