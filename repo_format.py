"""Display lines for repositories, as consumed by fuzzy finders."""
from __future__ import annotations

from typing import List

from github_repos import Repository

MAX_LINE_WIDTH = 150
ANNOTATION_SEPARATOR = " | "


def align_strings(left: str, right: str, max_width: int) -> str:
    """Pad between *left* and *right* so the result is *max_width* long.

    If the two strings together already exceed *max_width* they are simply
    concatenated; nothing is truncated.
    """
    total_len = len(left) + len(right)
    if total_len > max_width:
        return left + right
    return left + " " * (max_width - total_len) + right


def annotations(repo: Repository, show_topics: bool = False, *, show_status: bool = True) -> List[str]:
    right: List[str] = []
    if show_status:
        if repo.is_archived:
            right.append("archived")
        if repo.is_fork:
            right.append("fork")
    if show_topics and repo.topics:
        right.append("[" + ",".join(sorted(repo.topics)) + "]")
    return right


def format_repo_line(
    repo: Repository,
    show_topics: bool = False,
    *,
    show_status: bool = True,
    width: int = MAX_LINE_WIDTH,
) -> str:
    """Return `nameWithOwner`, right-aligning any annotations within *width*.

    Annotations, in order: "archived", "fork" (both governed by
    *show_status*) and the sorted topic list (governed by *show_topics*).
    """
    right = annotations(repo, show_topics, show_status=show_status)
    if not right:
        return repo.name_with_owner
    return align_strings(repo.name_with_owner, ANNOTATION_SEPARATOR.join(right), width)


def key_from_line(line: str) -> str:
    """Dedup key of a display line: the `nameWithOwner` it starts with."""
    parts = line.split(None, 1)
    return parts[0] if parts else ""
