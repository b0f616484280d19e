"""
Archive ingestion for Helldivers 2 Mod Manager.

An archive (.zip, .tar[.gz|.bz2|.xz], .7z or .rar) is extracted into a
scratch directory, moved into the storage root under a fresh GUID and then
loaded like any other staged package:

    ingest(archive, storage_root)  ->  IngestResult(draft, problems)

A staged directory without a manifest is either deleted (initial bulk load)
or given an inferred single-option manifest (explicit add), depending on
``infer_missing``.
"""

from __future__ import annotations

import logging
import shutil
import sys
import tarfile
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from uuid import NAMESPACE_URL, UUID, uuid4, uuid5

import py7zr
import rarfile

from manifest_schema import (
    ModManifest,
    find_manifest,
    infer_manifest,
    list_package_files,
    load_manifest,
    resolve_within,
    validate_manifest,
    write_manifest,
)
from problems import (
    ACTION_DELETING,
    ACTION_INFERRING,
    ArchiveError,
    ManifestError,
    ModManagerError,
    Problem,
    ProblemKind,
    has_errors,
)

_log = logging.getLogger(__name__)

# Point rarfile at a bundled UnRAR.exe: _MEIPASS in a frozen build, assets/ otherwise
if getattr(sys, "frozen", False):
    _unrar = Path(sys._MEIPASS) / "UnRAR.exe"
else:
    _unrar = Path(__file__).parent / "assets" / "UnRAR.exe"
if _unrar.exists():
    rarfile.UNRAR_TOOL = str(_unrar)

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tar.xz", ".txz")
SUPPORTED_EXTENSIONS = (".zip", ".7z", ".rar") + TAR_SUFFIXES


# ── Readers ───────────────────────────────────────────────────────────


class ArchiveReader:
    """Read-only view of one archive file."""

    format_name = "archive"

    def __init__(self, filepath: Path):
        self.filepath = filepath

    def names(self) -> list[str]:
        raise NotImplementedError

    def _extract(self, dest: Path):
        raise NotImplementedError

    def extract_all(self, dest: Path):
        for name in self.names():
            if resolve_within(dest, name) is None:
                raise ArchiveError(
                    f"{self.filepath.name} contains a path outside the archive root: {name}"
                )
        self._extract(dest)


class ZipReader(ArchiveReader):
    format_name = "zip"

    def names(self) -> list[str]:
        with zipfile.ZipFile(self.filepath, "r") as zf:
            return [name.replace("\\", "/") for name in zf.namelist()]

    def _extract(self, dest: Path):
        with zipfile.ZipFile(self.filepath, "r") as zf:
            for info in zf.infolist():
                # archives packed on Windows may use backslash separators
                info.filename = info.filename.replace("\\", "/")
                zf.extract(info, dest)


class TarReader(ArchiveReader):
    format_name = "tar"

    def names(self) -> list[str]:
        with tarfile.open(self.filepath, "r:*") as tf:
            return tf.getnames()

    def _extract(self, dest: Path):
        with tarfile.open(self.filepath, "r:*") as tf:
            tf.extractall(dest, filter="data")


class SevenZipReader(ArchiveReader):
    format_name = "7z"

    def names(self) -> list[str]:
        with py7zr.SevenZipFile(self.filepath, "r") as sz:
            return [name.replace("\\", "/") for name in sz.getnames()]

    def _extract(self, dest: Path):
        with py7zr.SevenZipFile(self.filepath, "r") as sz:
            sz.extractall(path=dest)


class RarReader(ArchiveReader):
    format_name = "rar"

    def names(self) -> list[str]:
        with rarfile.RarFile(self.filepath, "r") as rf:
            return [info.filename.replace("\\", "/") for info in rf.infolist()]

    def _extract(self, dest: Path):
        with rarfile.RarFile(self.filepath, "r") as rf:
            rf.extractall(dest)


def _is_tar_name(name: str) -> bool:
    return name.lower().endswith(TAR_SUFFIXES)


def open_archive(filepath: str | Path) -> ArchiveReader:
    """Pick a reader by file signature, falling back to the extension."""
    filepath = Path(filepath)
    if not filepath.is_file():
        raise ArchiveError(f"Archive not found: {filepath}")

    try:
        if zipfile.is_zipfile(filepath):
            return ZipReader(filepath)
        if py7zr.is_7zfile(filepath):
            return SevenZipReader(filepath)
        if rarfile.is_rarfile(filepath):
            return RarReader(filepath)
        if tarfile.is_tarfile(filepath):
            return TarReader(filepath)
    except OSError as exc:
        raise ArchiveError(f"Could not read {filepath.name}: {exc}") from exc

    ext = filepath.suffix.lower()
    if ext == ".zip":
        return ZipReader(filepath)
    if ext == ".7z":
        return SevenZipReader(filepath)
    if ext == ".rar":
        return RarReader(filepath)
    if _is_tar_name(filepath.name):
        return TarReader(filepath)
    raise ArchiveError(f"Unsupported archive format: {filepath.name}")


def archive_display_name(filepath: Path) -> str:
    name = filepath.name
    lowered = name.lower()
    for suffix in sorted(SUPPORTED_EXTENSIONS, key=len, reverse=True):
        if lowered.endswith(suffix):
            return name[: -len(suffix)]
    return filepath.stem


# ── Staged packages ───────────────────────────────────────────────────


@dataclass
class PackageDraft:
    """A staged directory whose manifest passed validation."""

    guid: UUID
    directory: Path
    manifest: ModManifest
    name: str
    files: tuple[str, ...] = ()


@dataclass
class IngestResult:
    draft: PackageDraft | None
    problems: list[Problem] = field(default_factory=list)


def directory_guid(directory: Path) -> UUID:
    """Identity for a package whose manifest does not declare one."""
    try:
        return UUID(directory.name)
    except ValueError:
        return uuid5(NAMESPACE_URL, directory.name)


def load_staged(
    directory: Path,
    *,
    infer_missing: bool,
    name: str | None = None,
) -> IngestResult:
    """Load the manifest of an already-extracted package directory.

    Returns a draft only when no error-level problem was found. When the
    manifest is missing and ``infer_missing`` is false the directory is
    deleted.
    """
    problems: list[Problem] = []
    name = name or directory.name

    if find_manifest(directory) is None:
        if not infer_missing:
            _log.warning("No manifest found in %s, deleting it", directory)
            problems.append(Problem(directory, ProblemKind.NO_MANIFEST_FOUND, ACTION_DELETING))
            shutil.rmtree(directory, ignore_errors=True)
            return IngestResult(None, problems)
        _log.warning("No manifest found in %s, inferring one", directory)
        problems.append(Problem(directory, ProblemKind.NO_MANIFEST_FOUND, ACTION_INFERRING))
        manifest = infer_manifest(directory, name, directory_guid(directory))
        write_manifest(manifest, directory)
    else:
        try:
            manifest = load_manifest(directory)
        except ManifestError as exc:
            _log.error("Rejected manifest in %s: %s", directory, exc)
            problems.append(exc.to_problem(directory))
            return IngestResult(None, problems)
        except OSError as exc:
            _log.error("Could not read manifest in %s: %s", directory, exc)
            problems.append(Problem(directory, ProblemKind.CANT_PARSE_MANIFEST))
            return IngestResult(None, problems)

    problems.extend(validate_manifest(manifest, directory))
    if has_errors(problems):
        return IngestResult(None, problems)

    draft = PackageDraft(
        guid=manifest.guid or directory_guid(directory),
        directory=directory,
        manifest=manifest,
        name=manifest.name or name,
        files=tuple(list_package_files(directory)),
    )
    return IngestResult(draft, problems)


def _unwrap_single_directory(root: Path) -> Path:
    """Descend through lone wrapper folders until the content root."""
    current = root
    while find_manifest(current) is None:
        children = list(current.iterdir())
        if len(children) != 1 or not children[0].is_dir():
            break
        current = children[0]
    return current


def ingest(
    archive: str | Path,
    staging_root: str | Path,
    *,
    temp_dir: str | Path | None = None,
    infer_missing: bool = True,
) -> IngestResult:
    """Extract ``archive`` into ``staging_root/<new guid>/`` and load it.

    Raises ``ArchiveError`` when the archive cannot be read; nothing is left
    behind in that case. Manifest-level issues come back as problems, and a
    rejected package's staged directory is removed.
    """
    archive = Path(archive)
    staging_root = Path(staging_root)
    reader = open_archive(archive)

    try:
        staging_root.mkdir(parents=True, exist_ok=True)
        if temp_dir is not None:
            Path(temp_dir).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ModManagerError(f"Storage directory is not writable: {exc}") from exc

    destination = staging_root / str(uuid4())
    with tempfile.TemporaryDirectory(dir=temp_dir) as tmpdir:
        extract_root = Path(tmpdir) / "extract"
        extract_root.mkdir()
        _log.info("Extracting %s (%s)", archive.name, reader.format_name)
        try:
            reader.extract_all(extract_root)
        except ArchiveError:
            raise
        except Exception as exc:
            raise ArchiveError(f"Extraction of {archive.name} failed: {exc}") from exc

        content_root = _unwrap_single_directory(extract_root)
        try:
            shutil.move(str(content_root), str(destination))
        except OSError as exc:
            shutil.rmtree(destination, ignore_errors=True)
            raise ModManagerError(f"Could not stage {archive.name}: {exc}") from exc

    try:
        result = load_staged(destination, infer_missing=infer_missing, name=archive_display_name(archive))
    except OSError as exc:
        shutil.rmtree(destination, ignore_errors=True)
        raise ModManagerError(f"Could not stage {archive.name}: {exc}") from exc
    if result.draft is None and destination.exists():
        _log.info("Discarding staged directory %s", destination)
        shutil.rmtree(destination, ignore_errors=True)
    return result
