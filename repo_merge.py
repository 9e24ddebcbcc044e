"""Fan-in of repository sources into one deduplicated stream.

Each source runs as its own task and pushes `(key, line)` candidates onto a
shared queue after a first-seen check against a `SeenSet`. Fetch sources also
send keys that were already seen, so a fresher line can replace a cached one
in what gets persisted. The cache source and the "API fetch" group are the
top-level tasks; the group runs the user fetch and every organization fetch
side by side and only finishes once all of them have. A closer thread waits
for the top-level tasks and then enqueues a single end-of-stream marker, so
the consumer never sees the queue closed while a producer can still send.
"""
from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

Candidate = Tuple[str, str]  # (dedup key, display line)

_END_OF_STREAM = object()


class SeenSet:
    """Thread-safe set of dedup keys with an atomic test-and-set."""

    def __init__(self) -> None:
        self._mu = threading.Lock()
        self._keys: set[str] = set()

    def add(self, key: str) -> bool:
        """Insert *key*; return True only if it was not present before."""
        with self._mu:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def __contains__(self, key: object) -> bool:
        with self._mu:
            return key in self._keys

    def __len__(self) -> int:
        with self._mu:
            return len(self._keys)


@dataclass
class Source:
    name: str
    produce: Callable[[], Iterable[Candidate]]


@dataclass
class MergeResult:
    lines: List[str] = field(default_factory=list)
    failures: Dict[str, Exception] = field(default_factory=dict)
    latest: Dict[str, str] = field(default_factory=dict)

    @property
    def cache_lines(self) -> List[str]:
        """Freshest line per key, keys in first-arrival order."""
        return list(self.latest.values())


def iter_merged(
    cache_source: Optional[Source],
    fetch_sources: Sequence[Source],
    *,
    seen: Optional[SeenSet] = None,
    failures: Optional[Dict[str, Exception]] = None,
    latest: Optional[Dict[str, str]] = None,
) -> Iterator[str]:
    """Yield each unique line as soon as it is forwarded by any source.

    A source that raises is logged and recorded in *failures*; it does not
    stop its siblings. *latest* is filled with the line to persist per key:
    a line from a fetch source replaces one that came from the cache, even
    when the cached line was the one yielded.
    """
    seen = seen if seen is not None else SeenSet()
    failures = failures if failures is not None else {}
    latest = latest if latest is not None else {}
    failures_mu = threading.Lock()
    handoff: "queue.Queue[object]" = queue.Queue()

    def run_source(source: Source, fresh: bool) -> None:
        forwarded = 0
        try:
            for key, line in source.produce():
                if not key:
                    continue
                first = seen.add(key)
                if first or fresh:
                    handoff.put((key, line, first, fresh))
                forwarded += first
        except Exception as exc:
            logger.error("Skipping source %s: %s", source.name, exc)
            with failures_mu:
                failures[source.name] = exc
            return
        logger.debug("Source %s forwarded %d new repositories", source.name, forwarded)

    def run_fetch_group() -> None:
        with ThreadPoolExecutor(max_workers=len(fetch_sources), thread_name_prefix="fetch") as group:
            for fut in [group.submit(run_source, s, True) for s in fetch_sources]:
                fut.result()

    pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="source")
    tasks = []
    if cache_source is not None:
        tasks.append(pool.submit(run_source, cache_source, False))
    if fetch_sources:
        tasks.append(pool.submit(run_fetch_group))

    def close_when_done() -> None:
        wait(tasks)
        handoff.put(_END_OF_STREAM)

    closer = threading.Thread(target=close_when_done, name="closer", daemon=True)
    closer.start()
    # keys whose persisted line already came from a fetch source
    refreshed: set = set()
    try:
        while True:
            item = handoff.get()
            if item is _END_OF_STREAM:
                break
            key, line, first, fresh = item  # type: ignore[misc]
            if fresh:
                latest[key] = line
                refreshed.add(key)
            elif key not in refreshed:
                latest.setdefault(key, line)
            if first:
                yield line
    finally:
        pool.shutdown(wait=False)


def merge_sources(
    cache_source: Optional[Source],
    fetch_sources: Sequence[Source],
    *,
    seen: Optional[SeenSet] = None,
    on_line: Optional[Callable[[str], None]] = None,
) -> MergeResult:
    """Drain every source and return the unique lines in arrival order."""
    result = MergeResult()
    merged = iter_merged(
        cache_source, fetch_sources, seen=seen, failures=result.failures, latest=result.latest
    )
    for line in merged:
        if on_line is not None:
            on_line(line)
        result.lines.append(line)
    return result
