"""github_repos.py

Repository listing for a GitHub user or organization via GraphQL v4.

`fetch_repositories` pages through `user.repositories` or
`organization.repositories` until `hasNextPage` is false and returns every
repository record. Archived/fork filters are pushed into the query when the
owner's connection accepts them and applied client-side otherwise.
"""
from __future__ import annotations

import logging
import os
import textwrap
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from api_calls_estimator import page_requests

GRAPHQL_ENDPOINT = os.getenv("GITHUB_GRAPHQL_URL", "https://api.github.com/graphql")

REQUEST_TIMEOUT = (5, 30)  # (connect_timeout, read_timeout) in seconds

GRAPHQL_PAGE_SIZE = int(os.getenv("GITHUB_GRAPHQL_PAGE_SIZE", "100"))
MAX_TOPICS = 5

USER = "user"
ORGANIZATION = "organization"

# Filter arguments each owner's `repositories` connection is queried with.
SERVER_SIDE_FILTERS: Dict[str, frozenset] = {
    USER: frozenset({"isArchived"}),
    ORGANIZATION: frozenset({"isArchived", "isFork"}),
}

logger = logging.getLogger(__name__)

API_CALL_COUNT = 0
_api_call_lock = threading.Lock()


class GitHubQueryError(RuntimeError):
    """Raised when a GraphQL request fails or returns errors."""


@dataclass(frozen=True)
class Repository:
    name_with_owner: str
    is_fork: bool = False
    is_archived: bool = False
    topics: Tuple[str, ...] = ()

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "Repository":
        topic_nodes = (node.get("repositoryTopics") or {}).get("nodes") or []
        topics = tuple(
            t["topic"]["name"] for t in topic_nodes if (t.get("topic") or {}).get("name")
        )
        return cls(
            name_with_owner=node["nameWithOwner"],
            is_fork=bool(node.get("isFork")),
            is_archived=bool(node.get("isArchived")),
            topics=topics,
        )


@dataclass(frozen=True)
class Page:
    nodes: Tuple[Repository, ...]
    end_cursor: Optional[str]
    has_next_page: bool
    total_count: int

    @classmethod
    def from_connection(cls, conn: Dict[str, Any]) -> "Page":
        page_info = conn.get("pageInfo") or {}
        return cls(
            nodes=tuple(Repository.from_node(n) for n in conn.get("nodes") or []),
            end_cursor=page_info.get("endCursor"),
            has_next_page=bool(page_info.get("hasNextPage", False)),
            total_count=int(conn.get("totalCount") or 0),
        )


# --- GraphQL Helper Functions --- #

def _github_graphql(query: str, variables: dict, headers: dict, *, timeout: tuple = REQUEST_TIMEOUT) -> dict:
    """Execute a single GraphQL query and return its `data` object."""
    global API_CALL_COUNT
    with _api_call_lock:
        API_CALL_COUNT += 1
    start = time.perf_counter()
    try:
        resp = requests.post(
            GRAPHQL_ENDPOINT,
            json={"query": query, "variables": variables},
            headers=headers,
            timeout=timeout,
        )
        resp.raise_for_status()
    except requests.HTTPError as exc:
        duration = time.perf_counter() - start
        logger.warning("GraphQL request failed after %.3fs: %s", duration, exc)
        raise GitHubQueryError(
            f"GitHub GraphQL error {exc.response.status_code}: {exc.response.text}"
        ) from exc
    except (requests.Timeout, requests.ConnectionError) as exc:
        duration = time.perf_counter() - start
        logger.warning("GraphQL connection error after %.3fs: %s", duration, exc)
        raise GitHubQueryError(f"GitHub connection error: {exc}") from exc
    logger.debug("GraphQL request completed in %.3fs", time.perf_counter() - start)
    payload = resp.json()
    if payload.get("errors"):
        raise GitHubQueryError(f"GitHub GraphQL errors: {payload['errors']}")
    return payload.get("data") or {}


def graphql_headers(token: Optional[str]) -> Dict[str, str]:
    headers = {
        "Accept": "application/vnd.github+json",
        "Content-Type": "application/json",
    }
    if token:
        headers["Authorization"] = f"bearer {token}"
    return headers


def _fetch_paginated_gql_data(
    build_query_and_vars_func: Callable[[Optional[str]], Tuple[str, Dict[str, Any]]],
    extract_page_func: Callable[[Dict[str, Any]], Page],
    headers: Dict[str, str],
    on_page: Optional[Callable[[int, Page, int], None]] = None,
    label: Optional[str] = None,
) -> List[Repository]:
    """
    Fetches all repositories for a paginated GraphQL query.

    Args:
        build_query_and_vars_func: A function that takes an 'after' cursor (or None)
                                   and returns a tuple of (query_string, variables).
        extract_page_func: A function that takes the GraphQL response data
                           and returns the `Page` it holds.
        headers: The HTTP headers for the GraphQL request.
        on_page: Optional callback receiving (page_number, page, cumulative_total).
        label: Owner login used to log each page request before it is sent.

    Returns:
        A list containing all fetched repositories, in page order.
    """
    all_nodes: List[Repository] = []
    after_cursor: Optional[str] = None
    page_number = 0

    while True:
        page_number += 1
        if label:
            logger.info("[%s]: getting page %d...", label, page_number)
        query, variables = build_query_and_vars_func(after_cursor)
        page = extract_page_func(_github_graphql(query, variables, headers))
        all_nodes.extend(page.nodes)
        if on_page is not None:
            on_page(page_number, page, len(all_nodes))

        if not page.has_next_page:
            break
        after_cursor = page.end_cursor

    return all_nodes


def build_repositories_query(kind: str, filters: Dict[str, bool]) -> str:
    """Return the repositories query for *kind* with *filters* pushed down."""
    if kind not in SERVER_SIDE_FILTERS:
        raise ValueError(f"unknown owner kind: {kind!r}")
    var_defs = "".join(f", ${name}: Boolean" for name in filters)
    filter_args = "".join(f", {name}: ${name}" for name in filters)
    affiliation = "ownerAffiliations: OWNER, " if kind == USER else ""
    return textwrap.dedent(
        f"""
        query($login: String!, $first: Int!, $after: String{var_defs}) {{
          {kind}(login: $login) {{
            repositories({affiliation}first: $first, after: $after{filter_args}) {{
              totalCount
              pageInfo {{ hasNextPage endCursor }}
              nodes {{
                nameWithOwner
                isFork
                isArchived
                repositoryTopics(first: {MAX_TOPICS}) {{ nodes {{ topic {{ name }} }} }}
              }}
            }}
          }}
        }}
        """
    )


def fetch_repositories(
    login: str,
    kind: str,
    token: Optional[str],
    *,
    exclude_archived: bool = False,
    exclude_fork: bool = False,
    page_size: int = GRAPHQL_PAGE_SIZE,
) -> List[Repository]:
    """Return every repository owned by *login* matching the filters.

    Raises GitHubQueryError on any transport or query failure, or when the
    owner does not exist.
    """
    requested = {}
    if exclude_archived:
        requested["isArchived"] = False
    if exclude_fork:
        requested["isFork"] = False
    supported = SERVER_SIDE_FILTERS.get(kind, frozenset())
    server_filters = {k: v for k, v in requested.items() if k in supported}
    client_filters = {k: v for k, v in requested.items() if k not in supported}

    query = build_repositories_query(kind, server_filters)
    headers = graphql_headers(token)
    logger.info("[%s]: getting %s repositories...", login, kind)

    def build_repo_query_and_vars(after_cursor: Optional[str]) -> Tuple[str, Dict[str, Any]]:
        variables: Dict[str, Any] = {"login": login, "first": page_size, "after": after_cursor}
        variables.update(server_filters)
        return query, variables

    def extract_page(data: Dict[str, Any]) -> Page:
        root_obj = data.get(kind)
        if root_obj is None:
            raise GitHubQueryError(f"{kind} {login!r} not found")
        return Page.from_connection(root_obj.get("repositories") or {})

    def log_page(page_number: int, page: Page, cumulative: int) -> None:
        if page_number == 1:
            logger.info(
                "[%s]: this %s has %d repos (%d pages)",
                login, kind, page.total_count, page_requests(page.total_count, page_size),
            )
        logger.info("[%s]: got page %d, %d repos so far", login, page_number, cumulative)

    repos = _fetch_paginated_gql_data(build_repo_query_and_vars, extract_page, headers, on_page=log_page, label=login)

    if client_filters:
        repos = [r for r in repos if _matches(r, client_filters)]
        logger.debug("[%s]: %d repos left after client-side filters %s", login, len(repos), sorted(client_filters))
    return repos


def _matches(repo: Repository, filters: Dict[str, bool]) -> bool:
    if "isArchived" in filters and repo.is_archived != filters["isArchived"]:
        return False
    if "isFork" in filters and repo.is_fork != filters["isFork"]:
        return False
    return True


def fetch_user_repositories(username: str, token: Optional[str], **kwargs: Any) -> List[Repository]:
    return fetch_repositories(username, USER, token, **kwargs)


def fetch_org_repositories(org: str, token: Optional[str], **kwargs: Any) -> List[Repository]:
    return fetch_repositories(org, ORGANIZATION, token, **kwargs)
