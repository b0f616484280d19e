"""
Deployment planning for Helldivers 2 Mod Manager.

The game loads patches for an archive in slot order:

    <archive>.patch_0, <archive>.patch_1, ...

each optionally accompanied by ``.gpu_resources`` and ``.stream`` files with
the same stem. Every enabled package contributes its included patch groups in
deployment order, so a package further down the list gets the higher slot and
wins over the ones above it.

    plan(packages, skip_list)  ->  DeploymentPlan   (pure, no I/O)
    deploy(plan, data_dir, journal)                  (copies, then journals)
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Iterable, Iterator
from uuid import UUID

from problems import DeploymentError

if TYPE_CHECKING:
    from install_journal import InstallJournal
    from mod_registry import Package

_log = logging.getLogger(__name__)

PATCH_FILE_RE = re.compile(
    r"^(?P<archive>[0-9a-fA-F]{16})\.patch_(?P<index>\d+)(?P<ext>\.gpu_resources|\.stream)?$"
)

# order within a patch group
_EXT_ORDER = {"": 0, ".gpu_resources": 1, ".stream": 2}


@dataclass(frozen=True)
class PlannedFile:
    source: Path
    target_name: str
    archive: str
    slot: int
    package_guid: UUID


@dataclass
class DeploymentPlan:
    entries: list[PlannedFile] = field(default_factory=list)

    @property
    def target_names(self) -> list[str]:
        return [entry.target_name for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


# ── Planning ──────────────────────────────────────────────────────────


def _normalize_include(include: str) -> str:
    include = include.replace("\\", "/").strip("/")
    if include in ("", "."):
        return ""
    return PurePosixPath(include).as_posix()


def resolve_include(files: Iterable[str], include: str) -> list[str]:
    """Files selected by one include entry.

    An empty include or ``.`` selects the whole tree, a file path selects that
    file, anything else selects every file below it as a directory. Matching
    ignores case, like the filesystem the game runs on.
    """
    include = _normalize_include(include)
    files = list(files)
    if not include:
        return files
    if include in files:
        return [include]
    key = include.casefold()
    exact = [f for f in files if f.casefold() == key]
    if exact:
        return exact
    prefix = key + "/"
    return [f for f in files if f.casefold().startswith(prefix)]


def _contributed_includes(package: Package) -> Iterator[str]:
    for option in package.options:
        if not option.enabled:
            continue
        yield from option.definition.include
        sub = option.selected_sub_option
        if sub is not None:
            yield from sub.include


def _patch_groups(package: Package, include: str) -> list[tuple[str, list[tuple[str, str]]]]:
    """Group the files of one include by (folder, archive, source index)."""
    groups: dict[tuple[str, str, int], list[tuple[str, str]]] = {}
    for relpath in resolve_include(package.files, include):
        path = PurePosixPath(relpath)
        match = PATCH_FILE_RE.match(path.name)
        if match is None:
            _log.debug("%s: %s is not a patch file, ignoring", package.name, relpath)
            continue
        key = (path.parent.as_posix(), match["archive"].lower(), int(match["index"]))
        groups.setdefault(key, []).append((relpath, match["ext"] or ""))

    result = []
    for (_, archive, _), members in sorted(groups.items()):
        members.sort(key=lambda member: _EXT_ORDER[member[1]])
        result.append((archive, members))
    return result


def plan(packages: Iterable[Package], skip_list: Iterable[str] = ()) -> DeploymentPlan:
    """Assign every enabled patch group an output slot.

    Slots are counted per archive identifier and start at 0, or at 1 when
    the identifier is in ``skip_list``.
    """
    skip = {name.lower() for name in skip_list}
    next_slot: dict[str, int] = {}
    entries: list[PlannedFile] = []

    for package in packages:
        if not package.enabled:
            continue
        for include in _contributed_includes(package):
            for archive, members in _patch_groups(package, include):
                slot = next_slot.get(archive, 1 if archive in skip else 0)
                next_slot[archive] = slot + 1
                for relpath, ext in members:
                    entries.append(
                        PlannedFile(
                            source=package.directory / relpath,
                            target_name=f"{archive}.patch_{slot}{ext}",
                            archive=archive,
                            slot=slot,
                            package_guid=package.guid,
                        )
                    )

    _log.debug("Planned %d file(s) for %d archive(s)", len(entries), len(next_slot))
    return DeploymentPlan(entries)


# ── Deployment ────────────────────────────────────────────────────────


def _rollback(written: list[Path]):
    for path in reversed(written):
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            _log.warning("Could not remove %s during rollback: %s", path, exc)


def deploy(deployment_plan: DeploymentPlan, data_dir: str | Path, journal: InstallJournal) -> list[str]:
    """Copy every planned file into ``data_dir`` and journal the result.

    On failure the files written so far are removed, the journal is left
    as it was and ``DeploymentError`` is raised.
    """
    data_dir = Path(data_dir)
    written: list[Path] = []
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        for entry in deployment_plan.entries:
            target = data_dir / entry.target_name
            written.append(target)
            shutil.copy2(entry.source, target)
            _log.debug("Copied %s -> %s", entry.source, entry.target_name)
        journal.record(deployment_plan.target_names)
    except OSError as exc:
        _log.error("Deployment failed after %d file(s): %s", len(written), exc)
        _rollback(written)
        raise DeploymentError(f"Deployment failed: {exc}") from exc

    _log.info("Deployed %d file(s) to %s", len(written), data_dir)
    return deployment_plan.target_names
