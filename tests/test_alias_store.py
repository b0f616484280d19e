"""
Tests for mod_aliases.json handling.
"""

import json
from uuid import UUID

from alias_store import AliasStore

GUID = UUID("11111111-1111-4111-8111-111111111111")
OTHER = UUID("22222222-2222-4222-8222-222222222222")


def test_set_save_load(tmp_path):
    store = AliasStore(tmp_path / "mod_aliases.json")
    store.set(GUID, "  Shiny Armor  ")
    store.save()

    reloaded = AliasStore(tmp_path / "mod_aliases.json")
    reloaded.load()

    assert reloaded.get(GUID) == "Shiny Armor"
    assert json.loads((tmp_path / "mod_aliases.json").read_text(encoding="utf-8")) == {str(GUID): "Shiny Armor"}


def test_blank_alias_removes(tmp_path):
    store = AliasStore(tmp_path / "mod_aliases.json")
    store.set(GUID, "Name")
    store.set(GUID, "   ")
    assert store.get(GUID) is None


def test_rename(tmp_path):
    store = AliasStore(tmp_path / "mod_aliases.json")
    store.set(GUID, "Name")
    store.rename(GUID, OTHER)
    assert store.get(GUID) is None
    assert store.get(OTHER) == "Name"


def test_load_accepts_upper_case_guids(tmp_path):
    path = tmp_path / "mod_aliases.json"
    path.write_text(json.dumps({str(GUID).upper(): "Loud"}), encoding="utf-8")
    store = AliasStore(path)
    store.load()
    assert store.get(GUID) == "Loud"


def test_corrupt_file_loads_empty(tmp_path):
    path = tmp_path / "mod_aliases.json"
    path.write_text("{ not json", encoding="utf-8")
    store = AliasStore(path)
    store.load()
    assert store.aliases == {}
