#!/usr/bin/env python3
"""api_calls_estimator.py

Estimate the number of GitHub GraphQL requests *gh_lor.py* issues to list
the repositories of a user and a set of organisations.

Every owner is paged through independently, `PAGE_SIZE` repositories per
request, so the cost of a run is the sum of one ceiling division per owner.
An owner with no repositories still costs one request (the empty first page).

Adjust the constants at the top of the file to explore other account sizes.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional

USER_REPOS: int = 250  # repositories owned by the user
ORG_REPOS: Dict[str, int] = {"acme": 1200, "acme-labs": 40}

PAGE_SIZE = 100  # default `first:` used by github_repos.py


@dataclass
class Estimate:
    owner: str
    repos: int
    calls: int

    def __str__(self) -> str:  # pretty print
        return f"{self.owner:26} | {self.repos:8,} repos | {self.calls:6,} calls"


def ceildiv(a: int, b: int) -> int:
    return (a + b - 1) // b


def page_requests(total_count: int, page_size: int = PAGE_SIZE) -> int:
    """Number of page requests needed to drain *total_count* repositories."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return max(1, ceildiv(total_count, page_size))


def estimate_run(user_repos: Optional[int], org_repos: Dict[str, int], page_size: int = PAGE_SIZE) -> list[Estimate]:
    """Return one estimate per owner (the user first, then each org)."""
    estimates: list[Estimate] = []
    if user_repos is not None:
        estimates.append(Estimate("user", user_repos, page_requests(user_repos, page_size)))
    for org, count in org_repos.items():
        estimates.append(Estimate(f"org:{org}", count, page_requests(count, page_size)))
    return estimates


if __name__ == "__main__":
    scenarios = estimate_run(USER_REPOS, ORG_REPOS)

    print("GRAPHQL REQUEST ESTIMATES (page size", PAGE_SIZE, ")")
    print("Owner                      |    Repos |  Calls")
    print("-" * 50)
    for est in scenarios:
        print(est)
    print("-" * 50)
    print(f"{'total':26} | {sum(e.repos for e in scenarios):8,} repos | {sum(e.calls for e in scenarios):6,} calls")

    print("\nAssumptions:")
    print(" • Org fetches run concurrently, so wall time tracks the largest owner.")
    print(f" • Sequential pages per owner: at most {max((e.calls for e in scenarios), default=0)}.")
    print(f" • Sanity check: {math.ceil(250 / PAGE_SIZE)} requests for 250 repositories.")
