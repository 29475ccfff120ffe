"""Tests for the content-addressed dependency cache."""

import json
import os

import pytest

from cache.store import CacheStore, canonical_dependency_set, derive_cache_key
from constants import Constants
from errors import CacheIntegrityError, InstallError


def _fake_installer(calls):
    def install(cwd):
        calls.append(cwd)
        os.makedirs(os.path.join(cwd, "node_modules", "semver"))
    return install


class TestCacheKey:
    def test_deterministic(self):
        a = derive_cache_key({"semver": "^7"}, {}, "node-20.11")
        b = derive_cache_key({"semver": "^7"}, {}, "node-20.11")
        assert a == b
        assert len(a.digest) == Constants.CACHE_KEY_LENGTH

    def test_order_independent(self):
        a = derive_cache_key({"a": "1", "b": "2"}, {}, "node-20.11")
        b = derive_cache_key({"b": "2", "a": "1"}, {}, "node-20.11")
        assert a.digest == b.digest

    def test_runtime_changes_digest(self):
        a = derive_cache_key({"a": "1"}, {}, "node-20.11")
        b = derive_cache_key({"a": "1"}, {}, "node-18")
        assert a.digest != b.digest

    def test_range_changes_digest(self):
        a = derive_cache_key({"a": "1"}, {}, "node-20.11")
        b = derive_cache_key({"a": "2"}, {}, "node-20.11")
        assert a.digest != b.digest

    def test_dev_dependencies_change_digest(self):
        a = derive_cache_key({"a": "1"}, {}, "node-20.11")
        b = derive_cache_key({"a": "1"}, {"t": "5"}, "node-20.11")
        assert a.digest != b.digest

    def test_canonical_set_sorted(self):
        canonical = canonical_dependency_set({"b": "1", "a": "2"}, {}, "r")
        assert list(canonical["dependencies"]) == ["a", "b"]


class TestCacheStore:
    def test_miss_then_hit(self, tmp_path):
        store = CacheStore(str(tmp_path))
        calls = []
        first = store.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer(calls))
        second = store.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer(calls))

        assert len(calls) == 1
        assert first.path == second.path
        assert first.is_complete()
        assert os.path.isdir(os.path.join(first.modules_dir, "semver"))

    def test_entry_layout(self, tmp_path):
        store = CacheStore(str(tmp_path))
        entry = store.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer([]), name="demo.mjs")

        assert entry.path == os.path.join(str(tmp_path), "node-20.11", entry.key.digest)
        with open(os.path.join(entry.path, Constants.PACKAGE_JSON_FILE), encoding="utf-8") as fh:
            pkg = json.load(fh)
        assert pkg["dependencies"] == {"semver": "^7"}
        assert pkg["name"] == "demo.mjs"
        assert entry.metadata["dependencies"] == {"semver": "^7"}
        assert entry.metadata["runtime"] == "node-20.11"

    def test_installer_runs_in_staging(self, tmp_path):
        store = CacheStore(str(tmp_path))
        calls = []
        entry = store.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer(calls))
        assert calls[0] != entry.path
        assert ".staging-" in os.path.basename(calls[0])
        assert not os.path.exists(calls[0])

    def test_install_failure_leaves_no_entry(self, tmp_path):
        store = CacheStore(str(tmp_path))

        def failing(cwd):
            raise InstallError("npm install failed")

        with pytest.raises(InstallError):
            store.ensure({"semver": "^7"}, {}, "node-20.11", failing)

        key = derive_cache_key({"semver": "^7"}, {}, "node-20.11")
        assert store.lookup(key) is None
        assert os.listdir(os.path.join(str(tmp_path), "node-20.11")) == []

    def test_entry_without_marker_is_not_trusted(self, tmp_path):
        store = CacheStore(str(tmp_path))
        key = derive_cache_key({"semver": "^7"}, {}, "node-20.11")
        os.makedirs(store.entry_for(key).path)
        assert store.lookup(key) is None

    def test_incomplete_entry_is_replaced(self, tmp_path):
        store = CacheStore(str(tmp_path))
        key = derive_cache_key({"semver": "^7"}, {}, "node-20.11")
        leftover = store.entry_for(key).path
        os.makedirs(os.path.join(leftover, "node_modules", "half"))

        calls = []
        entry = store.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer(calls))
        assert len(calls) == 1
        assert entry.is_complete()
        assert not os.path.exists(os.path.join(entry.modules_dir, "half"))

    def test_metadata_mismatch_raises(self, tmp_path):
        store = CacheStore(str(tmp_path))
        entry = store.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer([]))
        meta_path = os.path.join(entry.path, Constants.CACHE_METADATA_FILE)
        with open(meta_path, encoding="utf-8") as fh:
            meta = json.load(fh)
        meta["dependencies"] = {"lodash": "4"}
        with open(meta_path, "w", encoding="utf-8") as fh:
            json.dump(meta, fh)

        with pytest.raises(CacheIntegrityError):
            store.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer([]))

    def test_different_runtimes_do_not_share(self, tmp_path):
        store = CacheStore(str(tmp_path))
        calls = []
        a = store.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer(calls))
        b = store.ensure({"semver": "^7"}, {}, "node-18", _fake_installer(calls))
        assert len(calls) == 2
        assert a.path != b.path

    def test_shims_dir_under_root(self, tmp_path):
        assert CacheStore(str(tmp_path)).shims_dir == os.path.join(str(tmp_path), "shims")

    def test_lost_race_adopts_winner(self, tmp_path):
        root = str(tmp_path)
        store = CacheStore(root)
        rival = CacheStore(root)
        rival_calls = []

        def install_while_rival_finishes(cwd):
            # Another process completes the same key while this install runs.
            rival.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer(rival_calls))
            os.makedirs(os.path.join(cwd, "node_modules", "semver"))

        entry = store.ensure({"semver": "^7"}, {}, "node-20.11", install_while_rival_finishes)

        assert len(rival_calls) == 1
        remaining = os.listdir(os.path.join(root, "node-20.11"))
        assert remaining == [entry.key.digest]
        assert entry.is_complete()

    def test_winner_during_stale_replacement(self, tmp_path, monkeypatch):
        root = str(tmp_path)
        store = CacheStore(root)
        rival = CacheStore(root)
        key = derive_cache_key({"semver": "^7"}, {}, "node-20.11")
        os.makedirs(os.path.join(store.entry_for(key).path, "node_modules", "half"))

        real_rename = os.rename
        state = {"rival_ran": False}

        def rename(src, dst):
            real_rename(src, dst)
            if ".stale-" in dst and not state["rival_ran"]:
                # The rival fills the freed path before our staging copy moves in.
                state["rival_ran"] = True
                rival.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer([]))

        monkeypatch.setattr("cache.store.os.rename", rename)
        entry = store.ensure({"semver": "^7"}, {}, "node-20.11", _fake_installer([]))

        assert state["rival_ran"]
        assert entry.is_complete()
        assert os.listdir(os.path.join(root, "node-20.11")) == [key.digest]
