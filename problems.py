"""
Problem reporting for Helldivers 2 Mod Manager.

Scanning, ingesting and validating packages never stops at the first issue.
Each finding is recorded as a ``Problem`` and the whole batch is handed back
to the caller, which decides how to show it. Whether a problem blocks the
package is a property of its kind, not of the code that found it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable


class ProblemKind(Enum):
    # errors: the package is not accepted
    CANT_PARSE_MANIFEST = "CantParseManifest"
    UNKNOWN_MANIFEST_VERSION = "UnknownManifestVersion"
    OUT_OF_SUPPORT_MANIFEST = "OutOfSupportManifest"
    DUPLICATE = "Duplicate"
    INVALID_PATH = "InvalidPath"

    # warnings: the package is still accepted
    NO_MANIFEST_FOUND = "NoManifestFound"
    EMPTY_OPTIONS = "EmptyOptions"
    EMPTY_SUB_OPTIONS = "EmptySubOptions"
    EMPTY_INCLUDES = "EmptyIncludes"
    INVALID_IMAGE_PATH = "InvalidImagePath"
    EMPTY_IMAGE_PATH = "EmptyImagePath"

    @property
    def is_error(self) -> bool:
        return self in _ERROR_KINDS


_ERROR_KINDS = frozenset(
    {
        ProblemKind.CANT_PARSE_MANIFEST,
        ProblemKind.UNKNOWN_MANIFEST_VERSION,
        ProblemKind.OUT_OF_SUPPORT_MANIFEST,
        ProblemKind.DUPLICATE,
        ProblemKind.INVALID_PATH,
    }
)

# extra_data values for NoManifestFound
ACTION_DELETING = "Deleting"
ACTION_INFERRING = "Inferring"


@dataclass(frozen=True)
class Problem:
    directory: Path
    kind: ProblemKind
    extra_data: str | None = None

    @property
    def is_error(self) -> bool:
        return self.kind.is_error


def has_errors(problems: Iterable[Problem]) -> bool:
    return any(problem.is_error for problem in problems)


# ── Presentation ──────────────────────────────────────────────────────

_DESCRIPTIONS = {
    ProblemKind.CANT_PARSE_MANIFEST: "The manifest could not be parsed.",
    ProblemKind.UNKNOWN_MANIFEST_VERSION: "The manifest has an unknown version.",
    ProblemKind.DUPLICATE: "A mod with the same GUID is already installed.",
    ProblemKind.EMPTY_OPTIONS: "The manifest declares no options.",
    ProblemKind.EMPTY_SUB_OPTIONS: "An option declares an empty list of sub-options.",
    ProblemKind.EMPTY_INCLUDES: "An option does not include any files.",
    ProblemKind.EMPTY_IMAGE_PATH: "An image path is blank.",
}


def describe_problem(problem: Problem) -> str:
    """Return a one-line, human-readable description of ``problem``."""
    kind = problem.kind
    extra = problem.extra_data
    if kind is ProblemKind.OUT_OF_SUPPORT_MANIFEST:
        return (
            "The manifest requires a newer mod manager "
            f"(this is version {extra or 'unknown'})."
        )
    if kind is ProblemKind.INVALID_PATH:
        if extra is not None:
            return f"The included path \"{extra}\" is invalid or does not exist."
        return "An included path is invalid or does not exist."
    if kind is ProblemKind.INVALID_IMAGE_PATH:
        if extra is not None:
            return f"The image \"{extra}\" does not exist."
        return "An image path does not exist."
    if kind is ProblemKind.NO_MANIFEST_FOUND:
        if extra == ACTION_DELETING:
            return "No manifest was found. The mod was deleted."
        return "No manifest was found. One was inferred from the archive contents."
    return _DESCRIPTIONS[kind]


def format_problems(problems: Iterable[Problem], prefix: str) -> str:
    """Render a problem batch grouped into errors and warnings."""
    problems = list(problems)
    lines = [prefix]
    errors = [p for p in problems if p.is_error]
    warnings = [p for p in problems if not p.is_error]
    for title, group in (("Errors:", errors), ("Warnings:", warnings)):
        if not group:
            continue
        lines.append(title)
        for problem in group:
            lines.append(f"\t - \"{problem.directory}\"")
            lines.append(f"\t\t{describe_problem(problem)}")
    return "\n".join(lines)


# ── Exceptions ────────────────────────────────────────────────────────


class ModManagerError(Exception):
    """Base class for failures that abort a single operation."""


class ArchiveError(ModManagerError):
    """The archive could not be read or extracted."""


class ManifestError(ModManagerError):
    """A manifest was rejected; ``kind`` says why."""

    def __init__(self, kind: ProblemKind, message: str, extra_data: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.extra_data = extra_data

    def to_problem(self, directory: Path) -> Problem:
        return Problem(directory=directory, kind=self.kind, extra_data=self.extra_data)


class DuplicateError(ModManagerError):
    """A package with the same GUID is already registered."""

    def __init__(self, guid, directory: Path):
        super().__init__(f"A mod with GUID {guid} is already registered")
        self.guid = guid
        self.directory = directory

    def to_problem(self) -> Problem:
        return Problem(directory=self.directory, kind=ProblemKind.DUPLICATE, extra_data=str(self.guid))


class DeploymentError(ModManagerError):
    """Writing the deployment plan into the game directory failed."""
