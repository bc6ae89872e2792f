"""
CLI commands for container runtime selection.

Thin wrappers over ``mitl.core.services.selector``.
"""

from __future__ import annotations

import json

import click

from mitl.core.services.discovery import format_runtime
from mitl.core.services.selector import RuntimeSelector, build_selector


def get_selector(ctx: click.Context) -> RuntimeSelector:
    """The process-wide selector, built on first use."""
    obj = ctx.find_root().obj
    if "selector" not in obj:
        obj["selector"] = build_selector(
            obj["settings"],
            runner=obj.get("runner"),
            profile=obj.get("profile"),
        )
    return obj["selector"]


@click.group()
def runtime() -> None:
    """Container runtimes — info, benchmark, recommendations."""


@runtime.command("info")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def info(ctx: click.Context, as_json: bool) -> None:
    """Show hardware, available runtimes and cached performance scores."""
    result = get_selector(ctx).runtime_info()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(
        f"🖥️  Hardware: {result.hardware} ({result.profile.os}/{result.profile.arch})",
        fg="cyan",
        bold=True,
    )
    click.echo("Available Runtimes:")
    if not result.rows:
        click.secho("   No container runtime found on PATH.", fg="yellow")
    for row in result.rows:
        active = " [ACTIVE]" if row.active else ""
        click.echo(
            f"  ✅ {row.runtime.name:<10} {row.runtime.version:<10}{active} {row.description}"
        )

    click.echo()
    if result.bench_mode is None:
        click.secho("No performance data cached. Run 'mitl runtime benchmark'.", fg="yellow")
    else:
        click.secho("Performance Scores (relative to fastest):", bold=True)
        click.echo(f"Benchmark mode: {result.bench_mode}")
        for name, score in result.scores:
            extra = " (baseline)" if score == 1.0 else f" {score:.1f}x slower"
            click.echo(f"  {name:<10}: {score:.1f}x{extra}")

    if result.hints:
        click.echo()
        click.secho("💡 Optimization Tips:", fg="green")
        for hint in result.hints:
            click.echo(f"  • {hint}")


@runtime.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_runtimes(ctx: click.Context, as_json: bool) -> None:
    """List discovered runtimes in priority order."""
    runtimes = get_selector(ctx).available_runtimes()

    if as_json:
        click.echo(json.dumps([rt.model_dump(mode="json") for rt in runtimes], indent=2))
        return

    if not runtimes:
        click.secho("No container runtime found on PATH.", fg="yellow")
        return
    for rt in runtimes:
        click.echo(f"  {rt.priority:>3}  {format_runtime(rt)}  → {rt.path}")


@runtime.command("select")
@click.pass_context
def select(ctx: click.Context) -> None:
    """Print the executable of the fastest runtime."""
    click.echo(get_selector(ctx).select_optimal())


@runtime.command("benchmark")
@click.option(
    "--include-build", "--build", "-b", "include_build",
    is_flag=True, help="Also time an image build.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def benchmark(ctx: click.Context, include_build: bool, as_json: bool) -> None:
    """Re-run the performance benchmark, ignoring cached results."""
    if not ctx.obj.get("quiet") and not as_json:
        click.echo("⏱️  Running performance test...")
    summary = get_selector(ctx).force_benchmark(include_build=include_build)

    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2))
        return

    for r in summary.results:
        if r.usable:
            click.echo(f"  {r.runtime:<10} {r.score:.2f}x")
        else:
            click.secho(f"  {r.runtime:<10} ❌ {r.error or 'no score'}", fg="red")

    if summary.best:
        click.secho(
            f"Benchmark complete ({summary.mode}). Best: {summary.best} "
            f"({summary.relative_speed:.1f}x faster)",
            fg="green",
        )
    else:
        click.secho(
            "Benchmark complete. No successful results; using priority order.",
            fg="yellow",
        )


@runtime.command("recommend")
@click.pass_context
def recommend(ctx: click.Context) -> None:
    """Show optimization recommendations for this host."""
    for line in get_selector(ctx).recommendations():
        click.echo(f"• {line}")
