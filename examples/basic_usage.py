#!/usr/bin/env python3
"""Fetch public GitHub data through a repository.

This demonstrates wiring the pieces together:

* load settings from the environment / `.env`
* declare an interface with pydantic-validated JSON endpoints
* dispatch endpoints through the requests-backed session

Usage:
    python examples/basic_usage.py octocat/Hello-World
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Sequence

from pydantic import BaseModel

from api_repository import Repository
from api_repository.config import RepositorySettings
from api_repository.http import HTTPInterface, HTTPRequestSession, JSONEndpoint
from api_repository.logging import configure_logging


class RepoSummary(BaseModel):
    full_name: str
    default_branch: str
    stargazers_count: int


class IssueSummary(BaseModel):
    number: int
    title: str
    state: str


class GitHubAPI(HTTPInterface):
    get_repo = JSONEndpoint("GET", "/repos/{owner}/{repo}", output_type=RepoSummary)
    list_issues = JSONEndpoint(
        "GET", "/repos/{owner}/{repo}/issues", output_type=list[IssueSummary]
    )


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show a GitHub repository and its open issues.")
    parser.add_argument("repo", help='Repository in the form "owner/repo"')
    parser.add_argument("--limit", type=int, default=5, help="Number of issues to show")
    return parser.parse_args(argv)


async def _show(
    repo: Repository[GitHubAPI, HTTPRequestSession], owner: str, name: str, limit: int
) -> None:
    target = {"owner": owner, "repo": name}
    summary_task = repo.run("get_repo", target)
    issues_task = repo.run("list_issues", {**target, "per_page": limit, "state": "open"})

    summary = await summary_task
    print(f"{summary.full_name} ({summary.default_branch}), {summary.stargazers_count} stars")
    for issue in await issues_task:
        print(f"  #{issue.number} [{issue.state}] {issue.title}")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    owner, _, name = args.repo.partition("/")

    settings = RepositorySettings()
    configure_logging(settings.log_level)

    session = HTTPRequestSession.from_settings(settings)
    repo = Repository(GitHubAPI(settings.base_url or "https://api.github.com"), session)
    try:
        asyncio.run(_show(repo, owner, name, args.limit))
    finally:
        repo.close()
        session.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
