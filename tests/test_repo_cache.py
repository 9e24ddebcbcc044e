import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import logging
from pathlib import Path

import repo_cache
from repo_cache import cache_file_path, read_cache, write_cache


def test_cache_file_path_default(tmp_path):
    assert cache_file_path(tmp_path) == tmp_path / "cached-repos"


def test_cache_file_path_suffixes(tmp_path):
    assert cache_file_path(tmp_path, show_topics=True) == tmp_path / "cached-repos-topics"
    path = cache_file_path(
        tmp_path, show_topics=True, show_status=False, exclude_archived=True, exclude_fork=True
    )
    assert path.name == "cached-repos-topics-no-status-no-archived-no-fork"


def test_state_dir_override(monkeypatch, tmp_path):
    monkeypatch.setenv("GH_LOR_STATE_DIR", str(tmp_path / "state"))
    assert repo_cache.state_dir() == tmp_path / "state"
    monkeypatch.delenv("GH_LOR_STATE_DIR")
    assert repo_cache.state_dir() == Path.home() / ".local" / "share" / "gh-lor"


def test_read_cache_strips_and_skips_blank_lines(tmp_path):
    path = tmp_path / "cached-repos"
    path.write_text("  acme/widgets \n\n\tacme/gadgets\n   \n")
    assert list(read_cache(path)) == ["acme/widgets", "acme/gadgets"]


def test_read_cache_missing_file_warns(tmp_path, caplog):
    with caplog.at_level(logging.WARNING, logger="repo_cache"):
        assert list(read_cache(tmp_path / "nope")) == []
    assert "Cannot read cache file" in caplog.text


def test_write_cache_overwrites(tmp_path):
    path = tmp_path / "sub" / "cached-repos"
    assert write_cache(path, ["a/1", "a/2", "a/3"])
    assert write_cache(path, ["b/1", "", "b/2"])
    assert path.read_text() == "b/1\nb/2\n"
    assert list(read_cache(path)) == ["b/1", "b/2"]


def test_write_cache_empty_set(tmp_path):
    path = tmp_path / "cached-repos"
    path.write_text("stale/repo\n")
    assert write_cache(path, [])
    assert path.read_text() == ""


def test_write_cache_failure_is_logged(tmp_path, caplog):
    blocker = tmp_path / "file"
    blocker.write_text("")
    with caplog.at_level(logging.ERROR, logger="repo_cache"):
        assert write_cache(blocker / "cached-repos", ["a/1"]) is False
    assert "Error writing cache file" in caplog.text
