"""history command: display past review passes from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_VERDICT_STYLE = {
    "approve": "green",
    "approve_with_suggestions": "yellow",
    "request_changes": "red",
}


def _print_failed(records) -> None:
    rows = [(r, a) for r in records for a in r.failed]
    if not rows:
        console.print("[green]No annotations are waiting for manual placement.[/green]")
        return

    table = Table(title="Annotations to place manually", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("File")
    table.add_column("Line", justify="right", width=6)
    table.add_column("Side", width=9)
    table.add_column("Stage", width=9)
    table.add_column("Comment", max_width=60)
    for r, a in rows:
        table.add_row(f"#{r.pr_number}", a.file, str(a.line), a.side, a.stage or "—", a.body)
    console.print(table)


@click.command("history")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Filter by PR number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.option("--failed", "only_failed", is_flag=True, help="List annotations that still need manual placement.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int | None, limit: int, only_failed: bool):
    """Show past review passes for a repository.

    Needs a store: add 'store: sqlite' to .prmark.yml.
    """
    from prmark_store.noop import NoOpStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, NoOpStore):
        raise click.UsageError("No store configured. Add 'store: sqlite' to .prmark.yml to keep review history.")

    records = store.list_passes(repo, pr_number=pr_number)
    if not records:
        console.print("[yellow]No review records found.[/yellow]")
        return

    # Most recent first.
    records = list(reversed(records))[:limit]

    if only_failed:
        _print_failed(records)
        return

    table = Table(title=f"Review History — {repo}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("SHA", width=8)
    table.add_column("Mode", width=8)
    table.add_column("Verdict", width=26)
    table.add_column("Placed", justify="right", width=7)
    table.add_column("Failed", justify="right", width=7)
    table.add_column("Reviewed At", width=20)

    for r in records:
        style = _VERDICT_STYLE.get(r.verdict, "white")
        verdict = f"[{style}]{r.verdict}[/{style}]" + ("" if r.published else " [dim](unpublished)[/dim]")
        failed = len(r.failed)
        table.add_row(
            f"#{r.pr_number}",
            r.pr_title[:40] if r.pr_title else "",
            r.head_sha[:7],
            r.mode,
            verdict,
            str(r.placed),
            f"[red]{failed}[/red]" if failed else "0",
            r.reviewed_at[:19].replace("T", " "),
        )

    console.print(table)
