"""Tests for configuration loading and the composition root."""

import asyncio
import json

import pytest

import app
from backends.memory import MemoryRemote
from core.errors import ConfigError

from conftest import PRODUCT_ROWS


def write_config(tmp_path, cfg):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(cfg), encoding="utf-8")
    return str(path)


MEMORY_CFG = {
    "backend": "memory",
    "user_id": "alice",
    "seed": {
        "products": PRODUCT_ROWS,
        "wishlist": [{"user_id": "alice", "product_id": "p1"}],
    },
    "search": {"query": "apple", "filters": {"max_price": 5}},
}


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            app.load_config(str(tmp_path / "nope.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{nope", encoding="utf-8")
        with pytest.raises(ConfigError):
            app.load_config(str(path))

    @pytest.mark.parametrize(
        "cfg",
        [
            [],
            {"backend": "sqlite"},
            {"backend": "memory", "seed": {"products": {}}},
            {"backend": "memory", "search": {"filters": {}}},
            {"backend": "memory", "search": {"query": "x", "filters": {"sort_by": "cheap"}}},
            {"backend": "memory", "search": {"query": "x", "filters": {"colour": "red"}}},
        ],
    )
    def test_invalid_shapes(self, tmp_path, cfg):
        with pytest.raises(ConfigError):
            app.load_config(write_config(tmp_path, cfg))

    def test_valid(self, tmp_path):
        assert app.load_config(write_config(tmp_path, MEMORY_CFG)) == json.loads(json.dumps(MEMORY_CFG))


class TestBuildApp:
    def test_stores_share_remote_and_notifier(self):
        built = app.build_app(MEMORY_CFG)
        assert isinstance(built.remote.backend, MemoryRemote)
        assert built.wishlist.remote is built.remote
        assert built.search.remote is built.remote
        assert built.wishlist.notifier is built.notifier

    def test_rest_config_errors_are_config_errors(self):
        with pytest.raises(ConfigError):
            app.build_app({"backend": "rest", "rest": {"base_url": "https://x", "bogus": 1}})

    def test_history_db_from_config(self, tmp_path, monkeypatch):
        db = str(tmp_path / "state.sqlite3")
        monkeypatch.setattr(app.storage, "DB_PATH", db)
        built = app.build_app(dict(MEMORY_CFG, persist_history=True))
        assert built.search.history_db == db


class TestRunOnce:
    def test_syncs_wishlist_and_searches(self):
        built = app.build_app(MEMORY_CFG)
        assert asyncio.run(app.run_once(built, MEMORY_CFG)) == 0
        assert built.wishlist.is_in_wishlist("p1")
        assert built.wishlist.state.favorite_count == 1
        assert [p.id for p in built.search.results] == ["p1", "p3"]
        assert built.remote.backend.tables["search_analytics"][0]["search_query"] == "apple"

    def test_failures_give_nonzero_status(self):
        cfg = dict(MEMORY_CFG, seed={"wishlist": [{"user_id": "alice"}]})
        built = app.build_app(cfg)
        assert asyncio.run(app.run_once(built, cfg)) == 1

    def test_nothing_configured(self):
        cfg = {"backend": "memory"}
        assert asyncio.run(app.run_once(app.build_app(cfg), cfg)) == 0


def test_main_reports_config_errors(tmp_path, monkeypatch):
    monkeypatch.setattr(app, "CONFIG_PATH", str(tmp_path / "missing.json"))
    assert app.main() == 1


def test_daemon_needs_user():
    cfg = {"backend": "memory"}
    with pytest.raises(ConfigError):
        asyncio.run(app.run_daemon(app.build_app(cfg), cfg))
