"""Line-per-repository cache persisted between runs.

The cache pre-seeds the output stream so a fuzzy finder has something to
show before the API answers, and is rewritten in full after every run.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, Union

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path.home() / ".local" / "share" / "gh-lor"
CACHE_BASENAME = "cached-repos"

PathLike = Union[str, Path]


def state_dir() -> Path:
    """Per-application state directory (`GH_LOR_STATE_DIR` overrides it)."""
    override = os.getenv("GH_LOR_STATE_DIR")
    return Path(override).expanduser() if override else DEFAULT_STATE_DIR


def cache_file_path(
    base_dir: PathLike,
    *,
    show_topics: bool = False,
    show_status: bool = True,
    exclude_archived: bool = False,
    exclude_fork: bool = False,
) -> Path:
    """Cache path for one output shape; differently shaped runs never share a file."""
    name = CACHE_BASENAME
    if show_topics:
        name += "-topics"
    if not show_status:
        name += "-no-status"
    if exclude_archived:
        name += "-no-archived"
    if exclude_fork:
        name += "-no-fork"
    return Path(base_dir) / name


def read_cache(path: PathLike) -> Iterator[str]:
    """Yield the stripped, non-empty lines of the cache file at *path*.

    A missing or unreadable file is logged and yields nothing.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            for raw in fh:
                line = raw.strip()
                if line:
                    yield line
    except OSError as exc:
        logger.warning("Cannot read cache file %s: %s", path, exc)


def write_cache(path: PathLike, lines: Iterable[str]) -> bool:
    """Overwrite the cache at *path* with *lines*, one per line.

    Returns False (after logging) when the file cannot be written.
    """
    entries = [line for line in lines if line]
    content = "\n".join(entries) + "\n" if entries else ""
    p = Path(path)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    except OSError as exc:
        logger.error("Error writing cache file %s: %s", p, exc)
        return False
    logger.info("Saved %d unique repositories to cache file: %s", len(entries), p)
    return True
