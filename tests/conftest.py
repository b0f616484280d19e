"""
Shared fixtures and helpers for the Helldivers 2 Mod Manager test suite.
"""

import json
import tarfile
import zipfile
from pathlib import Path

import py7zr
import pytest

from app_settings import Settings
from mod_manager import ModManager


def write_tree(root: Path, members: dict):
    """Write ``{relative path: str | bytes}`` below ``root``."""
    for name, data in members.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(data, str):
            data = data.encode("utf-8")
        path.write_bytes(data)


@pytest.fixture
def dirs(tmp_path):
    """Return (storage_dir, game_dir); the game dir already has its data folder."""
    storage = tmp_path / "storage"
    game = tmp_path / "game"
    storage.mkdir()
    (game / "data").mkdir(parents=True)
    return storage, game


@pytest.fixture
def settings(tmp_path, dirs):
    storage, game = dirs
    return Settings(
        game_directory=game,
        storage_directory=storage,
        temp_directory=tmp_path / "tmp",
    )


@pytest.fixture
def events():
    return []


@pytest.fixture
def manager(settings, events):
    m = ModManager(settings, event_callback=events.append)
    m.initialize()
    return m


@pytest.fixture
def make_manifest():
    """Build a manifest dict in the on-disk PascalCase layout."""

    def build(name, options, guid=None, version=1, **extra):
        data = {"Version": version, "Name": name, "Description": "", "Options": options}
        if guid is not None:
            data["Guid"] = str(guid)
        data.update(extra)
        return data

    return build


@pytest.fixture
def make_archive(tmp_path):
    """Return a builder writing ``members`` into a .zip, .tar.gz or .7z archive."""
    out_dir = tmp_path / "archives"
    out_dir.mkdir()
    src_root = tmp_path / "archive_src"

    def build(name, members, fmt="zip"):
        path = out_dir / f"{name}.{fmt}"
        if fmt == "zip":
            with zipfile.ZipFile(path, "w") as zf:
                for member, data in members.items():
                    zf.writestr(member, data)
            return path

        src = src_root / name
        write_tree(src, members)
        files = sorted(f for f in src.rglob("*") if f.is_file())
        if fmt == "tar.gz":
            with tarfile.open(path, "w:gz") as tf:
                for f in files:
                    tf.add(f, arcname=f.relative_to(src).as_posix())
        elif fmt == "7z":
            with py7zr.SevenZipFile(path, "w") as sz:
                for f in files:
                    sz.write(f, arcname=f.relative_to(src).as_posix())
        else:
            raise ValueError(fmt)
        return path

    return build


@pytest.fixture
def stage(dirs):
    """Create a staged package directory directly in the storage root."""
    storage, _ = dirs

    def build(dir_name, members, manifest=None):
        directory = storage / dir_name
        directory.mkdir(parents=True, exist_ok=True)
        write_tree(directory, members)
        if manifest is not None:
            (directory / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")
        return directory

    return build
