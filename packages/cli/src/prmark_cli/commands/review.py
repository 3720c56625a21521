"""review command: review a pull request and publish the result."""

from __future__ import annotations

import click
from rich.console import Console

from prmark_core.gh.pull_request import get_pull, get_pull_requests, get_repo
from prmark_core.reviewer import MODE_INLINE, ReviewSummary, run_review
from prmark_store.models import (
    STATUS_DRAFT,
    STATUS_FAILED,
    STATUS_PLACED,
    STATUS_POSTED,
    AnnotationRecord,
    PassRecord,
)

console = Console()


def _summary_to_record(summary: ReviewSummary, pr_title: str, model: str, shadow: bool) -> PassRecord:
    """Map a ReviewSummary returned by run_review() to a PassRecord for the store."""
    failed = {id(annotation): error for annotation, error in summary.failed}
    placed = {id(annotation) for annotation in summary.placed}

    annotations = []
    for finding in summary.findings:
        a = finding.annotation
        error = failed.get(id(a))
        if shadow:
            status = STATUS_DRAFT
        elif error is not None:
            status = STATUS_FAILED
        elif id(a) in placed:
            status = STATUS_PLACED
        elif summary.mode == MODE_INLINE:
            # Never attempted: placement aborted before reaching it.
            status = STATUS_FAILED
        else:
            status = STATUS_POSTED
        annotations.append(
            AnnotationRecord(
                file=a.target.file,
                line=a.target.line,
                side=a.target.side.value,
                status=status,
                body=a.body,
                stage=error.stage if error is not None else "",
                error=error.reason if error is not None else "",
            )
        )

    return PassRecord(
        repo=summary.repo,
        pr_number=summary.pr_number,
        pr_title=pr_title,
        reviewer_model=model,
        head_sha=summary.head_sha,
        reviewed_at=summary.reviewed_at,
        mode="shadow" if shadow else summary.mode,
        verdict=summary.verdict.value,
        published=summary.published,
        annotations=annotations,
    )


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option(
    "--guidelines",
    "guidelines_path",
    default=None,
    help="Path to a Markdown guidelines file. Overrides config file.",
)
@click.option(
    "--mode",
    type=click.Choice(["comment", "inline"]),
    default=None,
    help="Publish as one summary comment, or as inline annotations placed through the browser.",
)
@click.option(
    "--headless/--headed",
    default=None,
    help="Run the browser without a window (inline mode). Use --headed once to log in to GitHub.",
)
@click.option(
    "--on-error",
    type=click.Choice(["skip", "abort"]),
    default=None,
    help="When one inline annotation cannot be placed: skip it, or stop placing.",
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts.")
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print the review without publishing anything.",
)
@click.pass_context
def review_cmd(
    ctx,
    repo: str,
    pr_number: int | None,
    model: str | None,
    guidelines_path: str | None,
    mode: str | None,
    headless: bool | None,
    on_error: str | None,
    yes: bool,
    shadow: bool,
):
    """Review a GitHub pull request with Claude or GPT-4o.

    In comment mode the review is posted as one PR comment. In inline mode
    each finding is placed on its diff line as a pending review comment, and
    the review is submitted once at the end with an overall verdict.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai
    """
    from prmark_cli.auth import resolve_github_token
    from prmark_core.config import load_config

    config_path = (ctx.obj or {}).get("config_path", ".prmark.yml")
    config = load_config(
        config_path,
        cli_overrides={
            "model": model,
            "guidelines": guidelines_path,
            "mode": mode,
            "headless": headless,
            "on_error": on_error,
        },
    )

    token = resolve_github_token()
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    config["github_token"] = token

    if config["model"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if config["model"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")

    this_repo = get_repo(repo, token=token)

    if pr_number is None:
        prs = list(get_pull_requests(this_repo))
        if not prs:
            console.print("[yellow]No open pull requests found.[/yellow]")
            return
        console.print("\nOpen pull requests:")
        for pr in prs:
            console.print(f"  [bold]#{pr.number}[/bold]  {pr.title}")
        pr_number = click.prompt("\nEnter the pull request number", type=int)

    pr_title = get_pull(this_repo, pr_number).title or ""

    try:
        summary = run_review(
            repo=repo,
            pr_number=pr_number,
            config=config,
            auto_confirm=yes,
            shadow=shadow,
            repo_obj=this_repo,
        )
    except ValueError as e:
        raise click.ClickException(str(e))

    if summary is None:
        return

    store = (ctx.obj or {}).get("store")
    if store is not None:
        store.save(_summary_to_record(summary, pr_title, config["model"], shadow))

    if not shadow and not summary.published:
        ctx.exit(1)
