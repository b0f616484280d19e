"""
Manifest schema for Helldivers 2 Mod Manager.

Every staged mod carries a ``manifest.json`` at its root describing the
options a user can toggle. Options are positional: the profile stores one
enabled flag and one sub-option index per option, in manifest order.

Schema version 1
----------------
Staged layout example:

    <storage>/<guid>/
    ├── manifest.json
    ├── preview.png
    ├── base/
    │   ├── 9ba626afa44a3aa3.patch_0
    │   └── 9ba626afa44a3aa3.patch_0.gpu_resources
    └── colors/
        ├── red/...
        └── blue/...

Manifest:

{
    "Version": 1,
    "Guid": "5d2e7c4e-3f0b-4b53-9a8e-1c7a0f1f3b11",
    "Name": "Armor Recolor",
    "Description": "Recolors the default armor.",
    "IconPath": "preview.png",
    "Options": [
        {
            "Name": "Base",
            "Description": "Always needed.",
            "Include": ["base"]
        },
        {
            "Name": "Color",
            "Description": "Pick one.",
            "Include": [],
            "SubOptions": [
                {"Name": "Red", "Description": "", "Include": ["colors/red"]},
                {"Name": "Blue", "Description": "", "Include": ["colors/blue"]}
            ]
        }
    ]
}

Keys are read in the PascalCase shown above; the snake_case field names are
accepted as well.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from problems import ManifestError, Problem, ProblemKind

MANIFEST_FILENAME = "manifest.json"
MANIFEST_VERSION = 1  # newest schema version understood by this build
APP_VERSION = "1.3.0"

_log = logging.getLogger(__name__)


class ManifestSubOption(BaseModel):
    """One mutually exclusive choice inside an option.

    ``include`` lists paths relative to the package root. A directory
    includes every file beneath it.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="Name")
    description: str = Field(default="", alias="Description")
    image: str | None = Field(default=None, alias="Image")
    include: list[str] = Field(default_factory=list, alias="Include")

    @field_validator("description", mode="before")
    @classmethod
    def _none_is_empty(cls, v):
        return "" if v is None else v

    @field_validator("include", mode="before")
    @classmethod
    def _none_is_no_includes(cls, v):
        return [] if v is None else v

    @field_validator("include")
    @classmethod
    def _normalize(cls, v: list[str]) -> list[str]:
        return [item.replace("\\", "/").rstrip("/") for item in v]


class ManifestOption(ManifestSubOption):
    """A user-toggleable option. At most one of ``sub_options`` is active."""

    sub_options: list[ManifestSubOption] | None = Field(default=None, alias="SubOptions")


class ModManifest(BaseModel):
    """Parsed contents of a manifest.json file."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = Field(alias="Version")
    guid: UUID | None = Field(default=None, alias="Guid")
    name: str | None = Field(default=None, alias="Name")
    description: str = Field(default="", alias="Description")
    icon_path: str | None = Field(default=None, alias="IconPath")
    options: list[ManifestOption] = Field(default_factory=list, alias="Options")

    @field_validator("description", mode="before")
    @classmethod
    def _none_is_empty(cls, v):
        return "" if v is None else v

    @field_validator("options", mode="before")
    @classmethod
    def _none_is_no_options(cls, v):
        return [] if v is None else v


# ── Parsing ───────────────────────────────────────────────────────────


def _declared_version(raw: dict) -> object:
    if "Version" in raw:
        return raw["Version"]
    return raw.get("version")


def parse_manifest(data: bytes) -> ModManifest:
    """Parse raw JSON bytes into a ModManifest.

    Raises ``ManifestError`` whose ``kind`` is ``CANT_PARSE_MANIFEST``,
    ``UNKNOWN_MANIFEST_VERSION`` or ``OUT_OF_SUPPORT_MANIFEST``.
    """
    try:
        raw = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ManifestError(ProblemKind.CANT_PARSE_MANIFEST, f"Invalid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ManifestError(ProblemKind.CANT_PARSE_MANIFEST, "Manifest root must be an object")

    version = _declared_version(raw)
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ManifestError(
            ProblemKind.UNKNOWN_MANIFEST_VERSION,
            f"Unknown manifest version {version!r}",
        )
    if version > MANIFEST_VERSION:
        raise ManifestError(
            ProblemKind.OUT_OF_SUPPORT_MANIFEST,
            f"Manifest version {version} requires a newer mod manager "
            f"(this build supports up to version {MANIFEST_VERSION})",
            extra_data=APP_VERSION,
        )

    try:
        return ModManifest.model_validate(raw)
    except ValidationError as exc:
        raise ManifestError(ProblemKind.CANT_PARSE_MANIFEST, str(exc)) from exc


def find_manifest(directory: Path) -> Path | None:
    path = directory / MANIFEST_FILENAME
    return path if path.is_file() else None


def load_manifest(directory: Path) -> ModManifest:
    return parse_manifest((directory / MANIFEST_FILENAME).read_bytes())


def write_manifest(manifest: ModManifest, directory: Path) -> Path:
    path = directory / MANIFEST_FILENAME
    path.write_text(
        json.dumps(
            manifest.model_dump(mode="json", by_alias=True, exclude_none=True),
            indent=2,
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )
    return path


def list_package_files(directory: Path) -> list[str]:
    """Every file under ``directory`` as sorted POSIX-relative paths."""
    return sorted(
        path.relative_to(directory).as_posix()
        for path in directory.rglob("*")
        if path.is_file()
    )


def infer_manifest(directory: Path, name: str, guid: UUID | None = None) -> ModManifest:
    """Build a single-option manifest that includes every file in ``directory``."""
    files = [f for f in list_package_files(directory) if f != MANIFEST_FILENAME]
    return ModManifest(
        version=MANIFEST_VERSION,
        guid=guid,
        name=name,
        description="",
        options=[ManifestOption(name=name, description="", include=files)],
    )


# ── Validation ────────────────────────────────────────────────────────


def resolve_within(root: Path, relpath: str) -> Path | None:
    """Resolve ``relpath`` under ``root``; None if it would escape it."""
    if Path(relpath).is_absolute():
        return None
    root = root.resolve()
    candidate = (root / relpath).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    return candidate


class _Validator:
    def __init__(self, directory: Path):
        self.directory = directory
        self.problems: list[Problem] = []

    def add(self, kind: ProblemKind, extra_data: str | None = None):
        self.problems.append(Problem(directory=self.directory, kind=kind, extra_data=extra_data))

    def check_image(self, image: str | None):
        if image is None:
            return
        if not image.strip():
            self.add(ProblemKind.EMPTY_IMAGE_PATH)
            return
        resolved = resolve_within(self.directory, image)
        if resolved is None or not resolved.is_file():
            _log.warning("Image %r not found in %s", image, self.directory)
            self.add(ProblemKind.INVALID_IMAGE_PATH, image)

    def check_includes(self, includes: list[str]):
        for include in includes:
            resolved = resolve_within(self.directory, include)
            if resolved is None or not resolved.exists():
                self.add(ProblemKind.INVALID_PATH, include)


def validate_manifest(manifest: ModManifest, directory: Path) -> list[Problem]:
    """Check a parsed manifest against the staged files in ``directory``.

    Only ``INVALID_PATH`` is an error here; everything else is a warning.
    """
    v = _Validator(directory)
    v.check_image(manifest.icon_path)
    if not manifest.options:
        v.add(ProblemKind.EMPTY_OPTIONS)

    for option in manifest.options:
        v.check_image(option.image)
        v.check_includes(option.include)
        if option.sub_options is not None and not option.sub_options:
            v.add(ProblemKind.EMPTY_SUB_OPTIONS)
        if not option.include and not option.sub_options:
            v.add(ProblemKind.EMPTY_INCLUDES)
        for sub in option.sub_options or []:
            v.check_image(sub.image)
            v.check_includes(sub.include)
            if not sub.include:
                v.add(ProblemKind.EMPTY_INCLUDES)

    return v.problems
