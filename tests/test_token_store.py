"""Tests for token stores."""

import json

from portfolio_uploader.token_store import JsonFileStore, MemoryTokenStore


class TestMemoryTokenStore:

    def test_get_set_remove(self):
        store = MemoryTokenStore({"adminToken": "abc"})
        assert store.get("adminToken") == "abc"
        store.set("adminToken", "def")
        assert store.get("adminToken") == "def"
        store.remove("adminToken")
        assert store.get("adminToken") is None
        store.remove("adminToken")


class TestJsonFileStore:
    """Tests for the on-disk store."""

    def test_default_path(self, config_home):
        assert JsonFileStore().path == config_home / "session.json"

    def test_persists_across_instances(self, config_home):
        JsonFileStore().set("adminToken", "secret")
        assert JsonFileStore().get("adminToken") == "secret"
        envelope = json.loads((config_home / "session.json").read_text(encoding="utf-8"))
        assert envelope == {"version": 1, "values": {"adminToken": "secret"}}

    def test_remove_persists(self, config_home):
        store = JsonFileStore()
        store.set("adminToken", "secret")
        store.remove("adminToken")
        assert JsonFileStore().get("adminToken") is None

    def test_corrupt_file_starts_fresh(self, config_home):
        (config_home / "session.json").write_text("][", encoding="utf-8")
        assert JsonFileStore().get("adminToken") is None

    def test_wrong_version_starts_fresh(self, config_home):
        (config_home / "session.json").write_text(
            json.dumps({"version": 99, "values": {"adminToken": "old"}}), encoding="utf-8",
        )
        assert JsonFileStore().get("adminToken") is None

    def test_non_string_values_dropped(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"version": 1, "values": {"adminToken": "t", "count": 3}}), encoding="utf-8")
        store = JsonFileStore(path)
        assert store.get("adminToken") == "t"
        assert store.get("count") is None
