"""
mitl — CLI entrypoint.

Usage:
    python -m mitl.main --help
    python -m mitl.main runtime info
    python -m mitl.main runtime benchmark --include-build
    python -m mitl.main cache exists mitl-capsule:3f2a9c
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from mitl import __version__
from mitl.core.config.settings import ConfigError, load_settings
from mitl.core.observability.logging_config import configure_cli_logging
from mitl.ui.cli.cache import cache
from mitl.ui.cli.runtime import runtime


@click.group()
@click.version_option(version=__version__, prog_name="mitl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to config.yml (default: ~/.mitl/config.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """mitl — fastest container runtime selection and capsule cache."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    # ── Logging setup (once, at process start) ──────────────────
    configure_cli_logging(debug=debug, verbose=verbose, quiet=quiet)

    # Tests may pre-seed settings / runner / profile through obj
    if "settings" not in ctx.obj:
        try:
            ctx.obj["settings"] = load_settings(Path(config_path) if config_path else None)
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(1)


cli.add_command(runtime)
cli.add_command(cache)


if __name__ == "__main__":
    cli()
