"""
Helldivers 2 Mod Manager - registry of staged packages.

Every package lives in its own directory under the storage root and is
identified by a GUID that survives reordering. The registry list order is the
deployment order.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator
from uuid import UUID

from archive_ingest import PackageDraft, load_staged
from manifest_schema import ManifestOption, ManifestSubOption, ModManifest
from problems import DuplicateError, Problem

_log = logging.getLogger(__name__)

NO_SELECTION = -1


@dataclass
class PackageOption:
    """A manifest option paired with the user's choices for it."""

    definition: ManifestOption
    enabled: bool = True
    selected: int = NO_SELECTION

    @classmethod
    def default_for(cls, definition: ManifestOption) -> PackageOption:
        return cls(
            definition=definition,
            enabled=True,
            selected=0 if definition.sub_options else NO_SELECTION,
        )

    @property
    def selected_sub_option(self) -> ManifestSubOption | None:
        subs = self.definition.sub_options
        if subs and 0 <= self.selected < len(subs):
            return subs[self.selected]
        return None

    def is_valid_selection(self, index: int) -> bool:
        subs = self.definition.sub_options
        if not subs:
            return index == NO_SELECTION
        return 0 <= index < len(subs)


@dataclass
class Package:
    guid: UUID
    directory: Path
    manifest: ModManifest
    name: str
    options: list[PackageOption] = field(default_factory=list)
    files: tuple[str, ...] = ()
    enabled: bool = False
    alias: str | None = None
    added_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_draft(cls, draft: PackageDraft) -> Package:
        try:
            added_at = datetime.fromtimestamp(draft.directory.stat().st_mtime)
        except OSError:
            added_at = datetime.now()
        return cls(
            guid=draft.guid,
            directory=draft.directory,
            manifest=draft.manifest,
            name=draft.name,
            options=[PackageOption.default_for(opt) for opt in draft.manifest.options],
            files=draft.files,
            added_at=added_at,
        )

    @property
    def display_name(self) -> str:
        return self.alias or self.name

    @property
    def enabled_options(self) -> list[bool]:
        return [opt.enabled for opt in self.options]

    @property
    def selected_options(self) -> list[int]:
        return [opt.selected for opt in self.options]

    def reset_options(self):
        self.options = [PackageOption.default_for(opt) for opt in self.manifest.options]

    def apply_state(self, enabled_options: list[bool], selected_options: list[int]) -> bool:
        """Apply stored option state; returns False if it had to be repaired.

        Arrays that do not match the manifest's option count are discarded
        and the defaults are used instead. Out-of-range sub-option indices
        fall back to the option's default.
        """
        count = len(self.manifest.options)
        if len(enabled_options) != count or len(selected_options) != count:
            _log.warning(
                "Option state for %s has %d/%d entries but the manifest has %d options; resetting",
                self.name, len(enabled_options), len(selected_options), count,
            )
            self.reset_options()
            return False

        clean = True
        options = []
        for definition, enabled, selected in zip(self.manifest.options, enabled_options, selected_options):
            option = PackageOption.default_for(definition)
            option.enabled = bool(enabled)
            if option.is_valid_selection(selected):
                option.selected = selected
            else:
                clean = False
            options.append(option)
        self.options = options
        return clean


@dataclass
class ReplaceResult:
    package: Package
    previous: Package
    was_enabled: bool
    message: str


class ModRegistry:
    """
    The set of staged packages under one storage root.

    Workflow:
        1. scan() to load every staged directory
        2. insert() / replace() / remove() as the user adds, updates and deletes
        3. move() / set_order() as the user rearranges the deployment order
    """

    def __init__(self, storage_root: str | Path):
        self.storage_root = Path(storage_root)
        self.packages: list[Package] = []

    def __iter__(self) -> Iterator[Package]:
        return iter(self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    def get(self, guid: UUID) -> Package | None:
        for package in self.packages:
            if package.guid == guid:
                return package
        return None

    # ── Loading ───────────────────────────────────────────────────────

    def scan(self, storage_root: str | Path | None = None) -> tuple[list[Package], list[Problem]]:
        if storage_root is not None:
            self.storage_root = Path(storage_root)
        self.packages = []
        problems: list[Problem] = []

        if not self.storage_root.exists():
            _log.info("Storage directory does not exist yet: %s", self.storage_root)
            return self.packages, problems

        for directory in sorted(self.storage_root.iterdir()):
            if not directory.is_dir():
                continue
            result = load_staged(directory, infer_missing=False)
            problems.extend(result.problems)
            if result.draft is None:
                continue
            try:
                package = self.insert(result.draft)
            except DuplicateError as exc:
                _log.error("Skipping %s: %s", directory.name, exc)
                problems.append(exc.to_problem())
                continue
            _log.info("  %s: %s (%d option(s))", directory.name, package.name, len(package.options))

        _log.info("Scan complete: %d mod(s), %d problem(s)", len(self.packages), len(problems))
        return self.packages, problems

    # ── Mutation ──────────────────────────────────────────────────────

    def insert(self, draft: PackageDraft) -> Package:
        if self.get(draft.guid) is not None:
            raise DuplicateError(draft.guid, draft.directory)
        package = Package.from_draft(draft)
        self.packages.append(package)
        return package

    def remove(self, package: Package):
        if package.directory.exists():
            shutil.rmtree(package.directory)
            _log.info("Deleted %s", package.directory)
        if package in self.packages:
            self.packages.remove(package)

    def replace(self, old: Package, draft: PackageDraft) -> ReplaceResult:
        """Swap ``old`` for a freshly staged version of the same mod.

        The alias and the position in the deployment order carry over. The
        new package starts disabled with default options so the user has to
        confirm the new option set before the next deploy.
        """
        index = self.packages.index(old)
        existing = self.get(draft.guid)
        if existing is not None and existing is not old:
            raise DuplicateError(draft.guid, draft.directory)

        package = Package.from_draft(draft)
        package.alias = old.alias
        package.enabled = False
        self.packages[index] = package

        if old.directory != package.directory and old.directory.exists():
            shutil.rmtree(old.directory)

        if old.enabled:
            message = (
                f"Updated '{package.display_name}'. It has been disabled; "
                "review its options and enable it again before deploying."
            )
        else:
            message = f"Updated '{package.display_name}'."
        _log.info("Replaced %s with %s", old.guid, package.guid)
        return ReplaceResult(package=package, previous=old, was_enabled=old.enabled, message=message)

    def move(self, package: Package, offset: int) -> int:
        index = self.packages.index(package)
        target = max(0, min(len(self.packages) - 1, index + offset))
        if target != index:
            self.packages.insert(target, self.packages.pop(index))
        return target

    def set_order(self, packages: list[Package]):
        if sorted(p.guid for p in packages) != sorted(p.guid for p in self.packages):
            raise ValueError("New order must contain exactly the registered packages")
        self.packages = list(packages)
