"""Core PR review orchestration: fetch → synthesize → publish."""

from __future__ import annotations

import fnmatch
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from github import GithubException
from rich.console import Console

from prmark_core.annotate.session import PlacementReport, SessionAccumulator, SessionFinalizer, place_all
from prmark_core.config import load_guidelines
from prmark_core.errors import AnnotationError
from prmark_core.gh.pull_request import PRContext, get_pr_context, get_pull, get_repo, post_comment
from prmark_core.models import Annotation, DiffTarget, Session, Side, SubmissionRecord, Verdict
from prmark_core.providers.anthropic import AnthropicReviewer
from prmark_core.providers.openai import OpenAIReviewer
from prmark_core.utils.code import is_code_file
from prmark_core.utils.diff import annotatable_lines

console = Console()
logger = logging.getLogger(__name__)

MODE_COMMENT = "comment"
MODE_INLINE = "inline"

_SEVERITY_RANK = {"critical": 3, "major": 2, "minor": 1, "nitpick": 0}
_GITHUB_SIDE = {"LEFT": Side.ORIGINAL, "RIGHT": Side.REVISED}


@dataclass
class Finding:
    """One reviewer comment that survived validation against the diff."""

    annotation: Annotation
    severity: str
    code: str = ""


@dataclass
class ReviewSummary:
    """Result returned by run_review, carrying enough for the CLI to persist history.

    Decoupled from prmark_store; the CLI converts it to a PassRecord.
    """

    repo: str
    pr_number: int
    head_sha: str
    mode: str
    verdict: Verdict
    summary: str = ""
    reviewed_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    placed: list[Annotation] = field(default_factory=list)
    failed: list[tuple[Annotation, AnnotationError]] = field(default_factory=list)
    published: bool = False
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def annotations(self) -> list[Annotation]:
        return [f.annotation for f in self.findings]


def _get_reviewer(config: dict):
    model = config["model"]
    if model == "anthropic":
        return AnthropicReviewer(api_key=config["anthropic_api_key"], model=config.get("model_name"))
    if model == "openai":
        return OpenAIReviewer(api_key=config["openai_api_key"], model=config.get("model_name"))
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")


def _is_excluded(filename: str, patterns: list[str]) -> bool:
    """Return True if filename matches any exclude pattern.

    Supports full-path globs ("src/generated/*.py"), basename globs ("*.lock")
    and directory prefixes ("migrations/" matches "app/migrations/0001.py").
    """
    for pattern in patterns:
        if fnmatch.fnmatch(filename, pattern):
            return True
        if fnmatch.fnmatch(filename.rsplit("/", 1)[-1], pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if filename.startswith(prefix) or ("/" + prefix) in filename:
            return True
    return False


def determine_verdict(findings: list[Finding]) -> Verdict:
    """Approve when clean, request changes on any critical/major finding."""
    if not findings:
        return Verdict.APPROVE
    if {f.severity for f in findings} & {"critical", "major"}:
        return Verdict.REQUEST_CHANGES
    return Verdict.APPROVE_WITH_SUGGESTIONS


def format_body(severity: str, text: str) -> str:
    return f"**[{severity.upper()}]**\n\n{text}"


def already_commented(
    existing_comments,
    target: DiffTarget,
    comment_text: str,
    queued: set[tuple] | None = None,
) -> bool:
    """Check for an identical comment already on the PR or queued in this run."""
    text = comment_text.strip()
    key = (target.file, target.line, target.side, text)
    if queued is not None and key in queued:
        return True
    for c in existing_comments:
        # c.line is None once the line left the diff (e.g. after a force-push).
        comment_line = c.line if c.line is not None else getattr(c, "original_line", None)
        side = _GITHUB_SIDE.get(getattr(c, "side", None) or "RIGHT", Side.REVISED)
        if c.path == target.file and comment_line == target.line and side is target.side and text in c.body.strip():
            return True
    return False


def process_file(
    reviewer,
    guidelines: str,
    pr_body: str,
    file,
    patch: str,
    file_content: str,
    existing_comments: list,
    queued: set[tuple] | None = None,
) -> list[Finding]:
    """Review one changed file and return findings that land on annotatable lines."""
    if file.filename is None or not patch:
        return []
    if file.status not in ("modified", "added", "renamed"):
        return []

    lines = annotatable_lines(patch)
    raw_findings = reviewer.review(
        description=pr_body,
        file_name=file.filename,
        diff_patch=patch,
        file_content=file_content,
        guidelines=guidelines,
    )

    results = []
    for item in raw_findings:
        line = item.get("line")
        text = item.get("comment", "")
        severity = item.get("severity", "minor")
        if severity not in _SEVERITY_RANK:
            severity = "minor"
        if not line or not text:
            continue
        try:
            target = DiffTarget(file.filename, int(line), item.get("side") or Side.REVISED)
        except (TypeError, ValueError):
            logger.debug("Skipping finding with invalid position: %r", item)
            continue
        if (target.side, target.line) not in lines:
            logger.debug("Skipping finding for %s (not in diff)", target)
            continue
        if already_commented(existing_comments, target, text, queued):
            logger.debug("Skipping duplicate finding for %s", target)
            continue
        results.append(
            Finding(
                annotation=Annotation(target=target, body=format_body(severity, text)),
                severity=severity,
                code=lines[(target.side, target.line)],
            )
        )
        if queued is not None:
            queued.add((target.file, target.line, target.side, text.strip()))

    return results


def build_summary(
    findings: list[Finding],
    verdict: Verdict,
    reviewed: list[str],
    skipped: list[str],
    elapsed: float,
) -> str:
    """Build the top-level review body."""
    severities = ("critical", "major", "minor", "nitpick")
    totals = {s: 0 for s in severities}
    per_file: dict[str, int] = {}
    for f in findings:
        totals[f.severity] += 1
        per_file[f.annotation.target.file] = per_file.get(f.annotation.target.file, 0) + 1

    time_str = f"{int(elapsed)}s" if elapsed < 60 else f"{elapsed / 60:.1f} min"

    if not findings:
        headline = "No issues found. The changes look good."
    else:
        issue_str = ", ".join(f"{totals[s]} {s}" for s in severities if totals[s])
        top = max(per_file, key=per_file.get)
        if verdict is Verdict.REQUEST_CHANGES:
            headline = f"{issue_str} issue(s), changes required. Most flagged: `{top}`."
        else:
            headline = f"{issue_str} suggestion(s). Most flagged: `{top}`."

    lines = ["## Review summary\n", f"> {headline}\n"]
    lines.append(
        f"**{len(reviewed)}** file(s) reviewed"
        + (f", **{len(skipped)}** skipped" if skipped else "")
        + f" · **{len(findings)}** comment(s) · reviewed in {time_str}"
    )
    if per_file:
        lines.append("\n| File | Comments |")
        lines.append("|------|:--------:|")
        for path in sorted(per_file):
            lines.append(f"| `{path}` | {per_file[path]} |")
    return "\n".join(lines)


def render_single_comment(findings: list[Finding], record: SubmissionRecord) -> str:
    """Markdown for posting the whole review as one conversation comment."""
    verdict_label = {
        Verdict.APPROVE: "✅ Approve",
        Verdict.APPROVE_WITH_SUGGESTIONS: "💬 Approve with suggestions",
        Verdict.REQUEST_CHANGES: "❌ Request changes",
    }[record.verdict]
    parts = [f"**Verdict:** {verdict_label}\n", record.summary]
    if findings:
        parts.append("\n### Findings\n")
        for f in findings:
            t = f.annotation.target
            side = "" if t.side is Side.REVISED else " (original)"
            parts.append(f"#### `{t.file}` line {t.line}{side}\n")
            if f.code.strip():
                parts.append(f"```\n{f.code}\n```\n")
            parts.append(f.annotation.body + "\n")
    return "\n".join(parts)


def synthesize(
    context: PRContext,
    reviewer,
    guidelines: str,
    config: dict,
    existing_comments=(),
    file_contents: dict[str, str] | None = None,
):
    """Review every changed code file and derive annotations plus a verdict.

    Returns ``(findings, record, reviewed_files, skipped_files)``.
    """
    max_chars = config.get("max_chars_per_file", 20000)
    exclude_patterns = config.get("exclude", [])
    file_contents = file_contents or {}
    queued: set[tuple] = set()
    findings: list[Finding] = []
    reviewed: list[str] = []
    skipped: list[str] = []
    start = time.monotonic()

    total = len(context.changed_files)
    for i, file in enumerate(context.changed_files, 1):
        if _is_excluded(file.filename, exclude_patterns) or not is_code_file(file.filename):
            console.print(f"  Skipping: {file.filename}")
            skipped.append(file.filename)
            continue

        console.print(f"\n[[{i}/{total}]] Reviewing: {file.filename}")
        patch = file.patch or ""
        if len(patch) > max_chars:
            patch = patch[:max_chars] + "\n... [diff truncated]"
        content = file_contents.get(file.filename, "")
        if len(content) > max_chars:
            content = content[:max_chars] + "\n... [file truncated]"

        new = process_file(reviewer, guidelines, context.body, file, patch, content, list(existing_comments), queued)
        findings.extend(new)
        reviewed.append(file.filename)
        console.print(f"  {len(new)} comment(s) found.")

    verdict = determine_verdict(findings)
    summary = build_summary(findings, verdict, reviewed, skipped, time.monotonic() - start)
    return findings, SubmissionRecord(verdict=verdict, summary=summary), reviewed, skipped


def print_shadow_comments(findings: list[Finding]) -> None:
    """Print annotations to the terminal without publishing anything."""
    _severity_color = {"critical": "red", "major": "yellow", "minor": "blue", "nitpick": "dim"}
    if not findings:
        console.print("[yellow]Shadow mode: no comments generated.[/yellow]")
        return
    console.print(f"\n[bold]Shadow review: {len(findings)} comment(s) (not posted)[/bold]\n")
    for f in findings:
        t = f.annotation.target
        color = _severity_color.get(f.severity, "white")
        console.print(
            f"[bold cyan]{t.file}[/bold cyan]  line [bold]{t.line}[/bold] ({t.side.value})  "
            f"[{color}]{f.severity.upper()}[/{color}]"
        )
        if f.code.strip():
            console.print(f"  [dim]{f.code.strip()}[/dim]")
        console.print(f"  {f.annotation.body}")
        console.print()


def _print_placement(annotation: Annotation, error: AnnotationError | None) -> None:
    t = annotation.target
    if error is None:
        console.print(f"  [green]✓[/green] {t.file}:{t.line} ({t.side.value}) pending")
    else:
        console.print(f"  [red]✗ {error}[/red]")


def place_inline(repo: str, pr_number: int, findings: list[Finding], record: SubmissionRecord, config: dict, page):
    """Place every annotation on the rendered diff, then submit the review.

    Returns ``(report, finalized)``. A finalization failure is reported, not
    raised: the pending comments stay on the page for manual submission.
    """
    from prmark_core.browser.github import GitHubDiffView, GitHubSelectors

    browser_cfg = config.get("browser") or {}
    view = GitHubDiffView(
        page,
        GitHubSelectors.from_config(browser_cfg.get("selectors")),
        base_url=browser_cfg.get("base_url", "https://github.com"),
    )
    try:
        view.open_pull(repo, pr_number)
    except AnnotationError as e:
        console.print(f"[red]{e}[/red]")
        return PlacementReport(failed=[(f.annotation, e.with_target(f.annotation.target)) for f in findings]), False

    timeout = config.get("confirm_timeout", 10.0)
    interval = config.get("poll_interval", 0.25)
    session = Session()
    session.bind(f"{repo}#{pr_number}")

    console.print(f"\nPlacing {len(findings)} inline comment(s)...")
    report: PlacementReport = place_all(
        SessionAccumulator(view, timeout, interval),
        session,
        [f.annotation for f in findings],
        on_error=config.get("on_error", "skip"),
        on_result=_print_placement,
    )

    if not session.is_open:
        console.print("[yellow]No annotation was placed; nothing to submit.[/yellow]")
        return report, False

    try:
        SessionFinalizer(view, timeout, interval).finalize(session, record)
    except AnnotationError as e:
        logger.error("Review submission failed: %s", e)
        console.print(
            f"[red]Could not submit the review: {e}[/red]\n"
            f"[yellow]{session.placed_count} comment(s) are still pending on the PR. "
            "Submit them manually from the 'Files changed' tab.[/yellow]"
        )
        return report, False
    return report, True


def run_review(
    repo: str,
    pr_number: int,
    config: dict,
    auto_confirm: bool = False,
    shadow: bool = False,
    repo_obj=None,
    page_factory=None,
) -> ReviewSummary | None:
    """Run the full pipeline and return a ReviewSummary.

    Returns None on early exits (draft skip, user declined to publish).
    """
    this_repo = repo_obj if repo_obj is not None else get_repo(repo, token=config["github_token"])

    try:
        this_pr = get_pull(this_repo, pr_number)
    except GithubException:
        raise ValueError(f"PR #{pr_number} not found in {repo}.")

    if this_pr.draft and not config.get("review_draft_prs", False):
        console.print("[yellow]Skipping draft PR. Set review_draft_prs: true in .prmark.yml to review drafts.[/yellow]")
        return None

    context = get_pr_context(this_pr)
    mode = config.get("mode", MODE_COMMENT)
    if mode not in (MODE_COMMENT, MODE_INLINE):
        raise ValueError(f"Unknown mode: {mode!r}. Choose 'comment' or 'inline'.")

    file_contents: dict[str, str] = {}
    for f in context.changed_files:
        if f.status == "removed" or not is_code_file(f.filename):
            continue
        try:
            file_contents[f.filename] = this_repo.get_contents(f.filename, ref=context.head_sha).decoded_content.decode(
                "utf-8", errors="replace"
            )
        except GithubException as e:
            logger.warning("Could not fetch %s: %s", f.filename, e)

    existing_comments = list(this_pr.get_review_comments())
    findings, record, reviewed, skipped = synthesize(
        context,
        _get_reviewer(config),
        load_guidelines(config),
        config,
        existing_comments,
        file_contents,
    )

    summary = ReviewSummary(
        repo=repo,
        pr_number=pr_number,
        head_sha=context.head_sha,
        mode=mode,
        verdict=record.verdict,
        summary=record.summary,
        reviewed_files=reviewed,
        skipped_files=skipped,
        findings=findings,
    )

    if shadow:
        print_shadow_comments(findings)
        console.print(f"[bold]Shadow review complete. Verdict would be {record.verdict.value}.[/bold]")
        return summary

    if not auto_confirm:
        where = "inline on the diff" if mode == MODE_INLINE and findings else "as one comment"
        answer = input(f"Publish {len(findings)} comment(s) {where} ({record.verdict.value})? (y/n): ")
        if answer.strip().lower() != "y":
            return None

    if mode == MODE_INLINE and findings:
        if page_factory is None:
            from prmark_core.browser.launcher import open_browser as page_factory

        with page_factory(config.get("browser")) as page:
            report, finalized = place_inline(repo, pr_number, findings, record, config, page)
        summary.placed = report.placed
        summary.failed = report.failed
        summary.published = finalized
        if finalized:
            console.print(
                f"\n[green]Review submitted: {record.verdict.value}. "
                f"{len(report.placed)} inline comment(s), {len(report.failed)} failed.[/green]"
            )
        if report.failed:
            console.print("[yellow]Place these manually:[/yellow]")
            for annotation, error in report.failed:
                console.print(f"  - {error}\n    {annotation.body}")
        return summary

    # A review with nothing to annotate has no pending session to submit,
    # so inline mode falls through to the single comment as well.
    summary.published = post_comment(this_pr, render_single_comment(findings, record))
    if summary.published:
        console.print(f"\n[green]Comment posted: {record.verdict.value}.[/green]")
    else:
        console.print("\n[red]Could not post the review comment.[/red]")
    return summary
