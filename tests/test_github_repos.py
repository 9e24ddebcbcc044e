import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import logging

import pytest
import requests
from unittest.mock import MagicMock, patch

import github_repos
from github_repos import GitHubQueryError, Repository


def make_node(name, is_fork=False, is_archived=False, topics=()):
    return {
        "nameWithOwner": name,
        "isFork": is_fork,
        "isArchived": is_archived,
        "repositoryTopics": {"nodes": [{"topic": {"name": t}} for t in topics]},
    }


def make_page(root_field, nodes, has_next, cursor=None, total=None):
    return {
        root_field: {
            "repositories": {
                "totalCount": len(nodes) if total is None else total,
                "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                "nodes": nodes,
            }
        }
    }


def test_repository_from_node():
    repo = Repository.from_node(make_node("acme/widgets", is_fork=True, topics=("cli", "golang")))
    assert repo == Repository("acme/widgets", is_fork=True, is_archived=False, topics=("cli", "golang"))


def test_repository_from_node_without_topics():
    repo = Repository.from_node({"nameWithOwner": "acme/bare", "repositoryTopics": None})
    assert repo.topics == ()
    assert not repo.is_fork and not repo.is_archived


@patch('github_repos._github_graphql')
def test_fetch_repositories_paginates_until_exhausted(mock_gql):
    """250 repositories with a page size of 100 take exactly 3 requests."""
    names = [f"octocat/repo{i}" for i in range(250)]
    pages = {
        None: make_page("user", [make_node(n) for n in names[:100]], True, "c1", total=250),
        "c1": make_page("user", [make_node(n) for n in names[100:200]], True, "c2", total=250),
        "c2": make_page("user", [make_node(n) for n in names[200:]], False, "c3", total=250),
    }
    calls = []

    def dispatch(query, variables, headers):
        calls.append(variables.copy())
        return pages[variables["after"]]

    mock_gql.side_effect = dispatch
    repos = github_repos.fetch_repositories("octocat", github_repos.USER, "tok", page_size=100)

    assert len(calls) == 3
    assert [c["after"] for c in calls] == [None, "c1", "c2"]
    assert all(c["first"] == 100 and c["login"] == "octocat" for c in calls)
    assert [r.name_with_owner for r in repos] == names


@patch('github_repos._github_graphql')
def test_fetch_org_pushes_both_filters_into_query(mock_gql):
    mock_gql.return_value = make_page("organization", [make_node("acme/widgets")], False)

    repos = github_repos.fetch_org_repositories("acme", "tok", exclude_archived=True, exclude_fork=True)

    query, variables, headers = mock_gql.call_args[0]
    assert "organization(login: $login)" in query
    assert "isArchived: $isArchived" in query and "isFork: $isFork" in query
    assert variables["isArchived"] is False and variables["isFork"] is False
    assert headers["Authorization"] == "bearer tok"
    assert [r.name_with_owner for r in repos] == ["acme/widgets"]


@patch('github_repos._github_graphql')
def test_fetch_user_filters_forks_client_side(mock_gql):
    mock_gql.return_value = make_page(
        "user",
        [make_node("octocat/own"), make_node("octocat/forked", is_fork=True)],
        False,
    )

    repos = github_repos.fetch_user_repositories("octocat", "tok", exclude_archived=True, exclude_fork=True)

    query, variables, _ = mock_gql.call_args[0]
    assert "ownerAffiliations: OWNER" in query
    assert "isFork: $isFork" not in query
    assert "isFork" not in variables
    assert variables["isArchived"] is False
    assert [r.name_with_owner for r in repos] == ["octocat/own"]


@patch('github_repos._github_graphql')
def test_fetch_without_filters_keeps_everything(mock_gql):
    mock_gql.return_value = make_page(
        "user",
        [make_node("octocat/old", is_archived=True), make_node("octocat/forked", is_fork=True)],
        False,
    )
    repos = github_repos.fetch_user_repositories("octocat", None)
    query, variables, headers = mock_gql.call_args[0]
    assert "isArchived" not in variables
    assert "Authorization" not in headers
    assert len(repos) == 2


@patch('github_repos._github_graphql')
def test_fetch_unknown_owner_raises(mock_gql):
    mock_gql.return_value = {"organization": None}
    with pytest.raises(GitHubQueryError, match="not found"):
        github_repos.fetch_org_repositories("ghost-org", "tok")


@patch('github_repos._github_graphql')
def test_fetch_propagates_query_errors(mock_gql):
    mock_gql.side_effect = GitHubQueryError("boom")
    with pytest.raises(GitHubQueryError):
        github_repos.fetch_user_repositories("octocat", "tok")


def test_build_repositories_query_rejects_unknown_kind():
    with pytest.raises(ValueError):
        github_repos.build_repositories_query("enterprise", {})


def _response(status=200, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = payload or {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


def test_github_graphql_returns_data(monkeypatch):
    posted = []

    def fake_post(url, json, headers, timeout):
        posted.append((url, json))
        return _response(payload={"data": {"user": {"login": "octocat"}}})

    monkeypatch.setattr(github_repos.requests, "post", fake_post)
    before = github_repos.API_CALL_COUNT
    data = github_repos._github_graphql("query { viewer { login } }", {"a": 1}, {})
    assert data == {"user": {"login": "octocat"}}
    assert posted[0][1] == {"query": "query { viewer { login } }", "variables": {"a": 1}}
    assert github_repos.API_CALL_COUNT == before + 1


def test_github_graphql_errors_payload_raises(monkeypatch):
    monkeypatch.setattr(
        github_repos.requests, "post",
        lambda *a, **k: _response(payload={"errors": [{"message": "Could not resolve"}]}),
    )
    with pytest.raises(GitHubQueryError, match="Could not resolve"):
        github_repos._github_graphql("q", {}, {})


def test_github_graphql_http_error_raises(monkeypatch):
    monkeypatch.setattr(
        github_repos.requests, "post",
        lambda *a, **k: _response(status=401, text="Bad credentials"),
    )
    with pytest.raises(GitHubQueryError, match="401"):
        github_repos._github_graphql("q", {}, {})


def test_github_graphql_connection_error_raises(monkeypatch):
    def refuse(*a, **k):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(github_repos.requests, "post", refuse)
    with pytest.raises(GitHubQueryError, match="connection error"):
        github_repos._github_graphql("q", {}, {})


@patch('github_repos._github_graphql')
def test_fetch_logs_each_page_request(mock_gql, caplog):
    pages = {
        None: make_page("organization", [make_node("acme/a")], True, "c1", total=2),
        "c1": make_page("organization", [make_node("acme/b")], False, None, total=2),
    }
    mock_gql.side_effect = lambda query, variables, headers: pages[variables["after"]]

    with caplog.at_level(logging.INFO, logger="github_repos"):
        github_repos.fetch_org_repositories("acme", "tok", page_size=1)

    messages = [r.getMessage() for r in caplog.records]
    assert "[acme]: getting page 1..." in messages
    assert "[acme]: getting page 2..." in messages
    assert messages.index("[acme]: getting page 2...") > messages.index("[acme]: got page 1, 1 repos so far")
    assert "[acme]: got page 2, 2 repos so far" in messages
