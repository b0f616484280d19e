"""
Tests for problem classification and formatting.
"""

from pathlib import Path

from problems import (
    ACTION_INFERRING,
    DuplicateError,
    ManifestError,
    Problem,
    ProblemKind,
    describe_problem,
    format_problems,
    has_errors,
)


def test_error_and_warning_kinds():
    errors = {k for k in ProblemKind if k.is_error}
    assert errors == {
        ProblemKind.CANT_PARSE_MANIFEST,
        ProblemKind.UNKNOWN_MANIFEST_VERSION,
        ProblemKind.OUT_OF_SUPPORT_MANIFEST,
        ProblemKind.DUPLICATE,
        ProblemKind.INVALID_PATH,
    }


def test_has_errors():
    warning = Problem(Path("a"), ProblemKind.EMPTY_OPTIONS)
    error = Problem(Path("b"), ProblemKind.INVALID_PATH, "x")
    assert not has_errors([warning])
    assert has_errors([warning, error])


def test_every_kind_has_a_description():
    for kind in ProblemKind:
        assert describe_problem(Problem(Path("mod"), kind))


def test_describe_uses_payload():
    assert "textures/red" in describe_problem(Problem(Path("m"), ProblemKind.INVALID_PATH, "textures/red"))
    assert "1.3.0" in describe_problem(Problem(Path("m"), ProblemKind.OUT_OF_SUPPORT_MANIFEST, "1.3.0"))
    inferred = describe_problem(Problem(Path("m"), ProblemKind.NO_MANIFEST_FOUND, ACTION_INFERRING))
    assert "inferred" in inferred


def test_format_groups_errors_before_warnings():
    text = format_problems(
        [
            Problem(Path("warned"), ProblemKind.EMPTY_IMAGE_PATH),
            Problem(Path("broken"), ProblemKind.CANT_PARSE_MANIFEST),
        ],
        "Problems:",
    )
    lines = text.splitlines()
    assert lines[0] == "Problems:"
    assert lines[1] == "Errors:"
    assert lines[2] == '\t - "broken"'
    assert lines[4] == "Warnings:"
    assert lines[5] == '\t - "warned"'


def test_format_skips_empty_groups():
    text = format_problems([Problem(Path("w"), ProblemKind.EMPTY_OPTIONS)], "Heads up:")
    assert "Errors:" not in text
    assert "Warnings:" in text


def test_exceptions_convert_to_problems():
    problem = ManifestError(ProblemKind.UNKNOWN_MANIFEST_VERSION, "bad").to_problem(Path("m"))
    assert problem == Problem(Path("m"), ProblemKind.UNKNOWN_MANIFEST_VERSION)

    dup = DuplicateError("1234", Path("d")).to_problem()
    assert dup.kind is ProblemKind.DUPLICATE
    assert dup.is_error
