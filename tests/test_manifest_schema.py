"""
Tests for manifest parsing and validation.
"""

import json
from uuid import UUID

import pytest

from manifest_schema import (
    APP_VERSION,
    MANIFEST_FILENAME,
    ModManifest,
    infer_manifest,
    load_manifest,
    parse_manifest,
    resolve_within,
    validate_manifest,
    write_manifest,
)
from problems import ManifestError, ProblemKind

GUID = "5d2e7c4e-3f0b-4b53-9a8e-1c7a0f1f3b11"
PATCH = "9ba626afa44a3aa3.patch_0"


def _bytes(data) -> bytes:
    return json.dumps(data).encode("utf-8")


def _kinds(problems):
    return [p.kind for p in problems]


# ── parsing ──────────────────────────────────────────────────────────────────

def test_parse_full_manifest():
    manifest = parse_manifest(_bytes({
        "Version": 1,
        "Guid": GUID,
        "Name": "Armor Recolor",
        "Description": "Recolors the default armor.",
        "IconPath": "preview.png",
        "Options": [
            {"Name": "Base", "Description": "", "Include": ["base"]},
            {
                "Name": "Color",
                "Include": [],
                "SubOptions": [
                    {"Name": "Red", "Include": ["colors/red"]},
                    {"Name": "Blue", "Include": ["colors/blue"]},
                ],
            },
        ],
    }))

    assert manifest.version == 1
    assert manifest.guid == UUID(GUID)
    assert manifest.name == "Armor Recolor"
    assert manifest.icon_path == "preview.png"
    assert [o.name for o in manifest.options] == ["Base", "Color"]
    assert manifest.options[0].sub_options is None
    assert [s.name for s in manifest.options[1].sub_options] == ["Red", "Blue"]


def test_parse_accepts_snake_case_keys():
    manifest = parse_manifest(_bytes({
        "version": 1,
        "name": "Plain",
        "options": [{"name": "All", "include": ["."]}],
    }))
    assert manifest.name == "Plain"
    assert manifest.options[0].include == ["."]


def test_parse_normalizes_include_separators():
    manifest = parse_manifest(_bytes({
        "Version": 1,
        "Options": [{"Name": "Base", "Include": ["base\\textures\\", "other/"]}],
    }))
    assert manifest.options[0].include == ["base/textures", "other"]


def test_parse_null_description_and_include():
    manifest = parse_manifest(_bytes({
        "Version": 1,
        "Description": None,
        "Options": [{"Name": "Base", "Description": None, "Include": None}],
    }))
    assert manifest.description == ""
    assert manifest.options[0].description == ""
    assert manifest.options[0].include == []


def test_parse_invalid_json():
    with pytest.raises(ManifestError) as exc_info:
        parse_manifest(b"{ not json")
    assert exc_info.value.kind is ProblemKind.CANT_PARSE_MANIFEST


def test_parse_non_object_root():
    with pytest.raises(ManifestError) as exc_info:
        parse_manifest(b"[1, 2, 3]")
    assert exc_info.value.kind is ProblemKind.CANT_PARSE_MANIFEST


@pytest.mark.parametrize("version", [None, 0, -1, "1", True])
def test_parse_unknown_version(version):
    data = {"Name": "x", "Options": []}
    if version is not None:
        data["Version"] = version
    with pytest.raises(ManifestError) as exc_info:
        parse_manifest(_bytes(data))
    assert exc_info.value.kind is ProblemKind.UNKNOWN_MANIFEST_VERSION


def test_parse_newer_version_is_out_of_support():
    with pytest.raises(ManifestError) as exc_info:
        parse_manifest(_bytes({"Version": 2, "Name": "Future", "Options": []}))
    assert exc_info.value.kind is ProblemKind.OUT_OF_SUPPORT_MANIFEST
    assert exc_info.value.extra_data == APP_VERSION


def test_parse_wrong_field_type():
    with pytest.raises(ManifestError) as exc_info:
        parse_manifest(_bytes({"Version": 1, "Options": [{"Include": ["x"]}]}))
    assert exc_info.value.kind is ProblemKind.CANT_PARSE_MANIFEST


def test_parse_bad_guid():
    with pytest.raises(ManifestError) as exc_info:
        parse_manifest(_bytes({"Version": 1, "Guid": "not-a-guid", "Options": []}))
    assert exc_info.value.kind is ProblemKind.CANT_PARSE_MANIFEST


# ── validation ───────────────────────────────────────────────────────────────

def _manifest(**fields) -> ModManifest:
    return ModManifest.model_validate({"Version": 1, **fields})


def test_validate_clean_manifest(tmp_path):
    (tmp_path / "base").mkdir()
    (tmp_path / "base" / PATCH).write_bytes(b"x")
    (tmp_path / "preview.png").write_bytes(b"png")
    manifest = _manifest(IconPath="preview.png", Options=[{"Name": "Base", "Include": ["base"]}])
    assert validate_manifest(manifest, tmp_path) == []


def test_validate_missing_include_is_error(tmp_path):
    manifest = _manifest(Options=[{"Name": "Base", "Include": ["missing"]}])
    problems = validate_manifest(manifest, tmp_path)
    assert _kinds(problems) == [ProblemKind.INVALID_PATH]
    assert problems[0].is_error
    assert problems[0].extra_data == "missing"


def test_validate_include_escaping_package_is_error(tmp_path):
    manifest = _manifest(Options=[{"Name": "Base", "Include": ["../outside.txt"]}])
    assert _kinds(validate_manifest(manifest, tmp_path)) == [ProblemKind.INVALID_PATH]


def test_validate_warnings(tmp_path):
    (tmp_path / "a").mkdir()
    manifest = _manifest(
        IconPath="",
        Options=[
            {"Name": "Nothing", "Include": []},
            {"Name": "No choices", "Include": ["a"], "SubOptions": []},
            {"Name": "Choices", "SubOptions": [{"Name": "Empty", "Include": []}]},
            {"Name": "Pictured", "Include": ["a"], "Image": "nope.png"},
        ],
    )
    problems = validate_manifest(manifest, tmp_path)
    assert not any(p.is_error for p in problems)
    assert _kinds(problems) == [
        ProblemKind.EMPTY_IMAGE_PATH,
        ProblemKind.EMPTY_INCLUDES,
        ProblemKind.EMPTY_SUB_OPTIONS,
        ProblemKind.EMPTY_INCLUDES,
        ProblemKind.INVALID_IMAGE_PATH,
    ]


def test_validate_no_options(tmp_path):
    assert _kinds(validate_manifest(_manifest(Options=[]), tmp_path)) == [ProblemKind.EMPTY_OPTIONS]


def test_validate_sub_option_include(tmp_path):
    manifest = _manifest(Options=[
        {"Name": "Color", "SubOptions": [{"Name": "Red", "Include": ["colors/red"]}]},
    ])
    problems = validate_manifest(manifest, tmp_path)
    assert _kinds(problems) == [ProblemKind.INVALID_PATH]
    assert problems[0].extra_data == "colors/red"


# ── helpers ──────────────────────────────────────────────────────────────────

def test_infer_manifest_covers_every_file(tmp_path):
    (tmp_path / "sub").mkdir()
    (tmp_path / PATCH).write_bytes(b"a")
    (tmp_path / "sub" / "readme.txt").write_text("b")
    (tmp_path / MANIFEST_FILENAME).write_text("{}")

    manifest = infer_manifest(tmp_path, "Cool Mod")

    assert manifest.version == 1
    assert manifest.name == "Cool Mod"
    assert len(manifest.options) == 1
    assert manifest.options[0].name == "Cool Mod"
    assert manifest.options[0].include == [PATCH, "sub/readme.txt"]


def test_write_manifest_uses_pascal_case(tmp_path):
    manifest = _manifest(Guid=GUID, Name="Mod", Options=[{"Name": "A", "Include": ["x"]}])
    write_manifest(manifest, tmp_path)

    raw = json.loads((tmp_path / MANIFEST_FILENAME).read_text(encoding="utf-8"))
    assert raw["Version"] == 1
    assert raw["Guid"] == GUID
    assert raw["Options"][0]["Include"] == ["x"]
    assert "SubOptions" not in raw["Options"][0]
    assert load_manifest(tmp_path) == manifest


def test_resolve_within(tmp_path):
    assert resolve_within(tmp_path, "a/b") == (tmp_path / "a" / "b").resolve()
    assert resolve_within(tmp_path, ".") == tmp_path.resolve()
    assert resolve_within(tmp_path, "../x") is None
    assert resolve_within(tmp_path, "a/../../x") is None
    assert resolve_within(tmp_path, str(tmp_path / "abs")) is None
