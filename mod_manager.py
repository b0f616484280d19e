"""
Helldivers 2 Mod Manager - Core Logic

Ties archive ingestion, the package registry, the profile and deployment
together behind one object that a front end drives.
"""

from __future__ import annotations

import logging
import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from alias_store import ALIAS_FILENAME, AliasStore
from app_settings import Settings
from archive_ingest import ingest
from deployment import DeploymentPlan, deploy, plan
from install_journal import JOURNAL_FILENAME, InstallJournal
from mod_registry import ModRegistry, Package
from problems import (
    ArchiveError,
    DeploymentError,
    DuplicateError,
    ModManagerError,
    Problem,
    format_problems,
)
from profile_store import PROFILE_FILENAME, ProfileStore

_log = logging.getLogger(__name__)

LEVEL_PROGRESS = "progress"
LEVEL_INFO = "info"
LEVEL_WARNING = "warning"
LEVEL_ERROR = "error"

_LOG_LEVELS = {
    LEVEL_PROGRESS: logging.DEBUG,
    LEVEL_INFO: logging.INFO,
    LEVEL_WARNING: logging.WARNING,
    LEVEL_ERROR: logging.ERROR,
}


@dataclass
class StatusEvent:
    """One user-facing notification pushed by the manager."""

    level: str
    message: str
    problems: list[Problem] = field(default_factory=list)


@dataclass
class OperationResult:
    success: bool
    message: str
    problems: list[Problem] = field(default_factory=list)
    package: Package | None = None


class ModManager:
    """
    Main mod manager controller.

    Workflow:
        1. initialize() to load staged mods, aliases and the profile
        2. add_archive() / update_archive() / remove() to manage staged mods
        3. set_enabled() / set_option_enabled() / select_sub_option() / move_up()
           / move_down() to edit the profile
        4. deploy() to write the enabled mods into the game, purge() to undo it
    """

    def __init__(
        self,
        settings: Settings,
        event_callback: Optional[Callable[[StatusEvent], None]] = None,
    ):
        self.settings = settings
        self.storage_dir = Path(settings.storage_directory)
        self.registry = ModRegistry(self.storage_dir)
        self.profile = ProfileStore(self.storage_dir / PROFILE_FILENAME)
        self.aliases = AliasStore(self.storage_dir / ALIAS_FILENAME)
        self._event_cb = event_callback
        self._lock = threading.RLock()

    # ── Notifications ─────────────────────────────────────────────────

    def notify(self, level: str, message: str, problems: list[Problem] | None = None):
        problems = list(problems or [])
        _log.log(_LOG_LEVELS.get(level, logging.INFO), message)
        if self._event_cb is not None:
            self._event_cb(StatusEvent(level, message, problems))

    def _report_problems(self, prefix: str, problems: list[Problem]):
        if not problems:
            return
        level = LEVEL_ERROR if any(p.is_error for p in problems) else LEVEL_WARNING
        self.notify(level, format_problems(problems, prefix), problems)

    # ── Loading ───────────────────────────────────────────────────────

    @property
    def mods(self) -> list[Package]:
        return self.registry.packages

    def initialize(self) -> list[Problem]:
        with self._lock:
            self.notify(LEVEL_PROGRESS, "Loading mods...")
            try:
                self.storage_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ModManagerError(f"Storage directory is not writable: {e}") from e

            self.aliases.load()
            _, problems = self.registry.scan(self.storage_dir)
            for package in self.registry:
                package.alias = self.aliases.get(package.guid)

            ordered = self.profile.load(self.registry)
            if ordered is None:
                ordered = ProfileStore.default_order(self.registry)
            self.registry.set_order(ordered)

            self._report_problems("Problems were found while loading mods:", problems)
            self.notify(LEVEL_INFO, f"Loaded {len(self.registry)} mod(s)")
            return problems

    def find(self, guid) -> Package | None:
        return self.registry.get(guid)

    # ── Add / Update / Remove ─────────────────────────────────────────

    def _ingest(self, archive: Path):
        try:
            return ingest(
                archive,
                self.storage_dir,
                temp_dir=self.settings.temp_directory,
                infer_missing=True,
            )
        except ArchiveError as e:
            self.notify(LEVEL_ERROR, str(e))
            raise

    def add_archive(self, archive: str | Path) -> OperationResult:
        archive = Path(archive)
        with self._lock:
            self.notify(LEVEL_PROGRESS, f"Adding {archive.name}...")
            result = self._ingest(archive)
            problems = list(result.problems)

            if result.draft is None:
                self._report_problems(f"Could not add {archive.name}:", problems)
                return OperationResult(False, f"{archive.name} was not added", problems)

            try:
                package = self.registry.insert(result.draft)
            except DuplicateError as e:
                shutil.rmtree(result.draft.directory, ignore_errors=True)
                problems.append(e.to_problem())
                self._report_problems(f"Could not add {archive.name}:", problems)
                return OperationResult(False, str(e), problems)

            package.alias = self.aliases.get(package.guid)
            self._report_problems(f"Added {package.display_name} with warnings:", problems)
            self.notify(LEVEL_INFO, f"Added '{package.display_name}'")
            return OperationResult(True, f"Added '{package.display_name}'", problems, package)

    def update_archive(self, package: Package, archive: str | Path) -> OperationResult:
        archive = Path(archive)
        with self._lock:
            self.notify(LEVEL_PROGRESS, f"Updating '{package.display_name}' from {archive.name}...")
            result = self._ingest(archive)
            problems = list(result.problems)

            if result.draft is None:
                self._report_problems(f"Could not update {package.display_name}:", problems)
                return OperationResult(False, f"'{package.display_name}' was not updated", problems, package)

            try:
                replaced = self.registry.replace(package, result.draft)
            except DuplicateError as e:
                shutil.rmtree(result.draft.directory, ignore_errors=True)
                problems.append(e.to_problem())
                self._report_problems(f"Could not update {package.display_name}:", problems)
                return OperationResult(False, str(e), problems, package)

            self.aliases.rename(package.guid, replaced.package.guid)
            self.aliases.save()
            self.save_profile()

            self._report_problems(f"Updated {replaced.package.display_name} with warnings:", problems)
            self.notify(LEVEL_INFO, replaced.message)
            return OperationResult(True, replaced.message, problems, replaced.package)

    def remove(self, package: Package, confirm: Optional[Callable[[str], bool]] = None) -> bool:
        """Delete a staged mod. Returns False if ``confirm`` declined."""
        question = f"Do you really want to remove '{package.display_name}'?"
        if confirm is not None and not confirm(question):
            _log.info("Removal of %s cancelled", package.display_name)
            return False

        with self._lock:
            self.registry.remove(package)
            self.aliases.remove(package.guid)
            self.aliases.save()
            self.save_profile()
            self.notify(LEVEL_INFO, f"Removed '{package.display_name}'")
            return True

    # ── Profile editing ───────────────────────────────────────────────

    def set_enabled(self, package: Package, enabled: bool):
        with self._lock:
            package.enabled = enabled

    def set_option_enabled(self, package: Package, option_index: int, enabled: bool):
        with self._lock:
            if not 0 <= option_index < len(package.options):
                raise IndexError(f"{package.display_name} has no option #{option_index}")
            package.options[option_index].enabled = enabled

    def select_sub_option(self, package: Package, option_index: int, sub_index: int):
        with self._lock:
            if not 0 <= option_index < len(package.options):
                raise IndexError(f"{package.display_name} has no option #{option_index}")
            option = package.options[option_index]
            if not option.definition.sub_options or not option.is_valid_selection(sub_index):
                raise IndexError(
                    f"Option '{option.definition.name}' has no sub-option #{sub_index}"
                )
            option.selected = sub_index

    def move_up(self, package: Package) -> int:
        with self._lock:
            return self.registry.move(package, -1)

    def move_down(self, package: Package) -> int:
        with self._lock:
            return self.registry.move(package, 1)

    def set_alias(self, package: Package, alias: str | None):
        """Rename a mod for display. Blank, or the mod's own name, clears it."""
        alias = (alias or "").strip()
        if alias == package.name:
            alias = ""
        with self._lock:
            self.aliases.set(package.guid, alias)
            package.alias = alias or None
            self.aliases.save()

    def search(self, text: str) -> list[Package]:
        text = text.strip()
        if not text:
            return list(self.registry)
        if self.settings.case_sensitive_search:
            return [p for p in self.registry if text in p.display_name or text in p.name]
        needle = text.casefold()
        return [
            p for p in self.registry
            if needle in p.display_name.casefold() or needle in p.name.casefold()
        ]

    def save_profile(self):
        with self._lock:
            self.profile.save(self.registry.packages)

    # ── Deployment ────────────────────────────────────────────────────

    def _journal(self, action: str) -> InstallJournal:
        data_dir = self.settings.data_directory
        if data_dir is None:
            raise ModManagerError(f"Unable to {action}: the game directory is not set")
        return InstallJournal(self.storage_dir / JOURNAL_FILENAME, data_dir)

    def plan(self) -> DeploymentPlan:
        with self._lock:
            return plan(self.registry.packages, self.settings.skip_list)

    def deploy(self) -> list[str]:
        with self._lock:
            journal = self._journal("deploy")
            self.notify(LEVEL_PROGRESS, "Deploying...")
            try:
                self.save_profile()
                journal.purge()
                written = deploy(self.plan(), journal.data_dir, journal)
            except OSError as e:
                self.notify(LEVEL_ERROR, f"Deployment failed: {e}")
                raise DeploymentError(f"Deployment failed: {e}") from e
            except ModManagerError as e:
                self.notify(LEVEL_ERROR, str(e))
                raise
            self.notify(LEVEL_INFO, f"Deployment successful ({len(written)} file(s))")
            return written

    def purge(self) -> int:
        with self._lock:
            journal = self._journal("purge")
            self.notify(LEVEL_PROGRESS, "Purging...")
            try:
                removed = journal.purge()
            except OSError as e:
                self.notify(LEVEL_ERROR, f"Purge failed: {e}")
                raise DeploymentError(f"Purge failed: {e}") from e
            self.notify(LEVEL_INFO, f"Purge complete ({removed} file(s) removed)")
            return removed

    def hard_purge(self) -> int:
        with self._lock:
            journal = self._journal("purge")
            self.notify(LEVEL_PROGRESS, "Purging all patch files...")
            try:
                removed = journal.hard_purge(self.settings.skip_list)
            except OSError as e:
                self.notify(LEVEL_ERROR, f"Hard purge failed: {e}")
                raise DeploymentError(f"Hard purge failed: {e}") from e
            self.notify(LEVEL_INFO, f"Hard purge complete ({removed} file(s) removed)")
            return removed
