"""
CLI commands for the capsule image cache.

Thin wrappers over ``mitl.core.services.capsule_cache``.
"""

from __future__ import annotations

import json
import sys
from datetime import timedelta
from typing import NoReturn

import click

from mitl.adapters.shell.command import SubprocessRunner
from mitl.core.services.capsule_cache import CapsuleManager, CapsuleProbeError
from mitl.core.services.selector import find_build_cli


def _manager(ctx: click.Context) -> CapsuleManager:
    """Capsule manager bound to the build runtime."""
    obj = ctx.find_root().obj
    if "capsules" not in obj:
        settings = obj["settings"]
        runner = obj.get("runner") or SubprocessRunner()
        runtime = find_build_cli(settings, runner, selector=obj.get("selector"))
        obj["capsules"] = CapsuleManager(
            runtime,
            runner,
            prefix=settings.capsule_prefix,
            ttl=settings.capsule_ttl_seconds,
        )
    return obj["capsules"]


def _fail(e: Exception) -> NoReturn:
    click.secho(f"❌ {e}", fg="red", err=True)
    sys.exit(1)


@click.group()
def cache() -> None:
    """Capsule cache — existence checks, digests, cleanup."""


@cache.command("exists")
@click.argument("tag")
@click.pass_context
def exists(ctx: click.Context, tag: str) -> None:
    """Check whether a capsule image exists (exit 1 when missing)."""
    try:
        found = _manager(ctx).get_capsule_cache(tag).exists()
    except CapsuleProbeError as e:
        _fail(e)

    if found:
        click.secho(f"✅ {tag}", fg="green")
    else:
        click.secho(f"❌ {tag} not found", fg="yellow")
        sys.exit(1)


@cache.command("inspect")
@click.argument("tag")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def inspect(ctx: click.Context, tag: str, as_json: bool) -> None:
    """Show metadata of a capsule image."""
    try:
        found, details = _manager(ctx).get_capsule_cache(tag).exists_with_details()
    except CapsuleProbeError as e:
        _fail(e)

    if not found or details is None:
        click.secho(f"❌ {tag} not found", fg="yellow")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(details.model_dump(), indent=2))
        return

    click.secho(f"📦 {tag}", fg="cyan", bold=True)
    click.echo(f"   Created:      {details.created or '?'}")
    click.echo(f"   Size:         {details.size} bytes")
    click.echo(f"   Architecture: {details.architecture or '?'}")
    for digest in details.repo_digests:
        click.echo(f"   Digest:       {digest}")


@cache.command("verify")
@click.argument("tag")
@click.argument("digest")
@click.pass_context
def verify(ctx: click.Context, tag: str, digest: str) -> None:
    """Verify a capsule's content digest (exit 1 on mismatch)."""
    if _manager(ctx).get_capsule_cache(tag).validate_digest(digest):
        click.secho(f"✅ {tag} matches {digest}", fg="green")
        return
    click.secho(f"❌ {tag} does not match {digest}", fg="red")
    sys.exit(1)


@cache.command("list")
@click.pass_context
def list_capsules(ctx: click.Context) -> None:
    """List cached capsule images."""
    try:
        lines = _manager(ctx).list_capsules()
    except CapsuleProbeError as e:
        _fail(e)

    if not lines:
        click.secho("No cached capsules found.", fg="yellow")
        return
    click.secho("Cached capsules:", fg="cyan", bold=True)
    for line in lines:
        click.echo(f"   {line}")


@cache.command("stats")
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show capsule cache statistics."""
    manager = _manager(ctx)
    try:
        count = len(manager.list_capsules())
    except CapsuleProbeError as e:
        _fail(e)

    counters = manager.stats()
    click.echo(f"Cached capsules: {count}")
    click.echo(f"Lookups: {counters.hits} hits, {counters.misses} misses")


@cache.command("clear")
@click.pass_context
def clear(ctx: click.Context) -> None:
    """Remove all capsule images."""
    try:
        removed = _manager(ctx).clear_all()
    except CapsuleProbeError as e:
        _fail(e)
    click.secho(f"🧹 Removed {removed} capsule image(s)", fg="green")


@cache.command("clean")
@click.option("--days", default=7, show_default=True, type=int, help="Minimum age in days.")
@click.pass_context
def clean(ctx: click.Context, days: int) -> None:
    """Remove capsule images older than --days."""
    try:
        removed = _manager(ctx).clear_old(timedelta(days=days))
    except CapsuleProbeError as e:
        _fail(e)
    click.secho(f"🧹 Removed {removed} capsule image(s) older than {days} day(s)", fg="green")
