#!/usr/bin/env python3
"""gh_lor.py

List the repositories of a GitHub user and/or organizations, one per line,
for piping into a fuzzy finder such as fzf.

Usage:
  python gh_lor.py --username octocat
  python gh_lor.py --orgs acme,acme-labs --no-archived
  python gh_lor.py --username octocat --orgs acme --show-topics | fzf

Names from the previous run's cache are printed first, then every new
repository as soon as the API returns it. Duplicates are printed once.
The merged result replaces the cache at the end of the run.

The token is read from --token, GITHUB_TOKEN or GH_TOKEN (a `.env` file
next to this script is honoured).
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from dotenv import load_dotenv

# Load .env before importing modules that read GitHub settings at import time.
PROJECT_ROOT = Path(__file__).resolve().parent
load_dotenv(PROJECT_ROOT / ".env", override=True)

import github_repos  # noqa: E402
from github_repos import Repository, fetch_org_repositories, fetch_user_repositories
from repo_cache import cache_file_path, read_cache, state_dir, write_cache
from repo_format import MAX_LINE_WIDTH, format_repo_line, key_from_line
from repo_merge import Candidate, SeenSet, Source, merge_sources

logger = logging.getLogger(__name__)


def setup_logging(log_dir: Path, verbose: bool = False) -> Path:
    """Log everything to a timestamped file; only warnings reach stderr."""
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    log_file = log_dir / f"gh_lor_{timestamp}.log"
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%dT%H:%M:%S%z")
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # stdout carries the repository stream, so the console handler uses stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    return log_file


def parse_orgs(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [org.strip() for org in value.split(",") if org.strip()]


def repo_candidates(
    repos: Iterable[Repository], show_topics: bool, show_status: bool, width: int
) -> List[Candidate]:
    return [
        (repo.name_with_owner, format_repo_line(repo, show_topics, show_status=show_status, width=width))
        for repo in repos
    ]


def cache_candidates(path: Path) -> Iterable[Candidate]:
    for line in read_cache(path):
        yield key_from_line(line), line


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gh-lor",
        description="List GitHub repositories of a user and/or organizations for fuzzy finders.",
    )
    parser.add_argument("--username", default="", help="GitHub username to fetch repositories for")
    parser.add_argument("--orgs", default="", help="Comma-separated list of GitHub organizations to fetch repositories for")
    parser.add_argument("--token", help="GitHub Personal Access Token (or set GITHUB_TOKEN env var)")
    parser.add_argument("--show-topics", action="store_true", help="Append up to 5 repository topics to each line")
    parser.add_argument("--hide-status", action="store_true", help="Do not annotate archived/fork repositories")
    parser.add_argument("--no-archived", action="store_true", help="Skip archived repositories")
    parser.add_argument("--no-fork", action="store_true", help="Skip forked repositories")
    parser.add_argument("--cache-file", help="Cache file path (default: derived from the display options under the state directory)")
    parser.add_argument("--no-cache", action="store_true", help="Neither read nor write the cache file")
    parser.add_argument("--width", type=int, default=MAX_LINE_WIDTH, help="Column annotations are right-aligned to (default: %(default)s)")
    parser.add_argument("--strict", action="store_true", help="Exit with status 1 if any source fails")
    parser.add_argument("--log-dir", help="Directory to save timestamped logs (default: <state dir>/logs)")
    parser.add_argument("--verbose", action="store_true", help="Echo debug logging to stderr")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    username = args.username.strip()
    orgs = parse_orgs(args.orgs)
    if not username and not orgs:
        parser.print_usage(sys.stderr)
        print("\nAt least one of --username or --orgs must be provided.", file=sys.stderr)
        return 1

    token = args.token or os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN")
    if not token:
        parser.error("This tool requires a GitHub token. Please use --token or set GITHUB_TOKEN environment variable.")

    start_time = time.perf_counter()
    app_dir = state_dir()
    log_file = setup_logging(Path(args.log_dir) if args.log_dir else app_dir / "logs", args.verbose)
    logger.info("Logging output to %s", log_file)
    logger.info("Starting gh-lor run: username=%r orgs=%s", username, orgs)

    show_status = not args.hide_status
    cache_path: Optional[Path] = None
    if not args.no_cache:
        cache_path = Path(args.cache_file).expanduser() if args.cache_file else cache_file_path(
            app_dir,
            show_topics=args.show_topics,
            show_status=show_status,
            exclude_archived=args.no_archived,
            exclude_fork=args.no_fork,
        )
        logger.info("Using cache file: %s", cache_path)

    fetch_kwargs = {"exclude_archived": args.no_archived, "exclude_fork": args.no_fork}

    def fetch_source(name: str, fetch, login: str) -> Source:
        return Source(
            name,
            lambda: repo_candidates(fetch(login, token, **fetch_kwargs), args.show_topics, show_status, args.width),
        )

    fetch_sources: List[Source] = []
    if username:
        fetch_sources.append(fetch_source(f"user:{username}", fetch_user_repositories, username))
    for org in orgs:
        fetch_sources.append(fetch_source(f"org:{org}", fetch_org_repositories, org))

    cache_source = None
    if cache_path is not None:
        cache_source = Source("cache", lambda: cache_candidates(cache_path))

    stdout_open = True

    def emit(line: str) -> None:
        nonlocal stdout_open
        if not stdout_open:
            return
        try:
            print(line, flush=True)
        except BrokenPipeError:
            # Reader went away; keep draining so the cache is still complete.
            logger.info("stdout closed by reader, continuing without printing")
            stdout_open = False
            devnull = os.open(os.devnull, os.O_WRONLY)
            os.dup2(devnull, sys.stdout.fileno())

    result = merge_sources(cache_source, fetch_sources, seen=SeenSet(), on_line=emit)

    if result.failures and args.strict:
        for name, exc in result.failures.items():
            print(f"error: {name}: {exc}", file=sys.stderr)
        logger.error("Aborting after %d failed source(s); cache left untouched", len(result.failures))
        return 1

    if cache_path is not None:
        write_cache(cache_path, result.cache_lines)

    logger.info("Listed %d unique repositories", len(result.lines))
    logger.info("Total GitHub API calls: %d", github_repos.API_CALL_COUNT)
    logger.info("Total runtime: %.2f seconds", time.perf_counter() - start_time)
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
