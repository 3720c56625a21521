"""CLI entry point for prmark.

Commands:
  review   Review a pull request and publish as one comment or inline annotations
  history  Show past review passes, including annotations that need manual placement
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prmark_cli.commands.history import history_cmd
from prmark_cli.commands.review import review_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .prmark.yml settings.

      store: sqlite → SQLiteStore (store_path, default .prmark.db)
      (default)     → NoOpStore  (no persistence)
    """
    from prmark_store.noop import NoOpStore

    store_type = config.get("store", "noop")

    if store_type == "sqlite":
        from prmark_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".prmark.db"))

    if store_type not in (None, "noop"):
        console.print(f"[yellow]Unknown store {store_type!r}. Review history will not be saved.[/yellow]")
    return NoOpStore()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("prmark"),
    prog_name="prmark",
)
@click.option(
    "--config",
    "config_path",
    default=".prmark.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRMARK_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """AI pull request reviewer that can annotate the diff inline."""
    from prmark_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)
    store = _build_store(config)
    ctx.obj["config_path"] = config_path
    ctx.obj["store"] = store
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(history_cmd)
