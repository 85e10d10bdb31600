from pathlib import Path
from unittest import mock

from agent.tool_cache import ToolCache


def test_store_and_retrieve(tmp_path: Path):
    cache = ToolCache(str(tmp_path / "cache" / "tools.db"))

    cache.store("weather:oslo", {"temp_c": 12, "hourly": [1, 2, 3]})

    assert cache.retrieve("weather:oslo") == {"temp_c": 12, "hourly": [1, 2, 3]}
    assert cache.retrieve("weather:bergen") is None
    assert (tmp_path / "cache" / "tools.db").exists()


def test_store_replaces_existing(tmp_path: Path):
    cache = ToolCache(str(tmp_path / "tools.db"))
    cache.store("k", "old")
    cache.store("k", "new")
    assert cache.retrieve("k") == "new"


def test_entries_expire(tmp_path: Path):
    cache = ToolCache(str(tmp_path / "tools.db"))

    with mock.patch("agent.tool_cache.time.time", return_value=1000.0):
        cache.store("short", "value", ttl_seconds=60)
        cache.store("forever", "value", ttl_seconds=0)

    with mock.patch("agent.tool_cache.time.time", return_value=1059.0):
        assert cache.retrieve("short") == "value"

    with mock.patch("agent.tool_cache.time.time", return_value=1060.0):
        assert cache.retrieve("short") is None
        assert cache.retrieve("forever") == "value"


def test_purge_expired_and_delete(tmp_path: Path):
    cache = ToolCache(str(tmp_path / "tools.db"))

    with mock.patch("agent.tool_cache.time.time", return_value=1000.0):
        cache.store("a", 1, ttl_seconds=10)
        cache.store("b", 2, ttl_seconds=10)
        cache.store("c", 3)

    with mock.patch("agent.tool_cache.time.time", return_value=2000.0):
        assert cache.purge_expired() == 2

    assert cache.delete("c") is True
    assert cache.delete("c") is False
    assert cache.retrieve("c") is None


def test_cache_persists_across_instances(tmp_path: Path):
    path = str(tmp_path / "tools.db")
    ToolCache(path).store("k", ["v"])
    assert ToolCache(path).retrieve("k") == ["v"]
