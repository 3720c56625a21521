from __future__ import annotations

import logging
from dataclasses import dataclass, field

from github import Github, GithubException

logger = logging.getLogger(__name__)


@dataclass
class PRContext:
    """Everything review synthesis needs to know about one pull request."""

    number: int
    title: str
    body: str
    author: str
    base_ref: str
    head_ref: str
    head_sha: str
    draft: bool = False
    # Raw PyGithub File objects (filename, status, patch).
    changed_files: list = field(default_factory=list)
    diff_text: str = ""


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "open"):
    return repo.get_pulls(state=state)


def get_diff(pr):
    return pr.get_files()


def build_diff_text(files) -> str:
    """Join per-file patches into one unified diff with ``diff --git`` headers."""
    parts = []
    for f in files:
        if not f.patch:
            continue
        parts.append(f"diff --git a/{f.filename} b/{f.filename}\n--- a/{f.filename}\n+++ b/{f.filename}\n{f.patch}")
    return "\n".join(parts)


def get_pr_context(pr) -> PRContext:
    files = sorted(get_diff(pr), key=lambda f: f.filename)
    return PRContext(
        number=pr.number,
        title=pr.title or "",
        body=pr.body or "",
        author=pr.user.login if pr.user else "",
        base_ref=pr.base.ref,
        head_ref=pr.head.ref,
        head_sha=pr.head.sha,
        draft=bool(pr.draft),
        changed_files=files,
        diff_text=build_diff_text(files),
    )


def post_comment(pr, text: str) -> bool:
    """Post one non-inline comment on the pull request conversation."""
    try:
        pr.create_issue_comment(text)
    except GithubException as e:
        logger.error("Could not post comment on PR #%s: %s", pr.number, e)
        return False
    return True
