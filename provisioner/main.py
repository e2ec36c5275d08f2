"""
Provisioner — CLI entrypoint.

Usage:
    python -m provisioner.main --help
    python -m provisioner.main plan
    python -m provisioner.main build --build-arg DEV=true
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from provisioner.core.observability.logging_config import setup_logging

from provisioner import __version__

_STATUS_COLORS = {"ok": "green", "cached": "cyan", "failed": "red"}


@click.group()
@click.version_option(version=__version__, prog_name="provision")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provision.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provisioner — build layered, least-privilege Python runtimes."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("PROVISION_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("PROVISION_LOG_FILE"),
        log_file_level=os.environ.get("PROVISION_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


def _build_args(pairs: tuple[str, ...], dev: bool) -> dict[str, str]:
    from provisioner.core.config.loader import ConfigError, parse_build_args

    try:
        args = parse_build_args(pairs)
    except ConfigError as e:
        raise click.BadParameter(str(e), param_hint="--build-arg") from e
    if dev:
        args["DEV"] = "true"
    return args


def _print_receipts(ctx: click.Context, receipts: list) -> None:
    for receipt in receipts:
        timing = f" ({receipt.duration_ms}ms)" if receipt.duration_ms else ""
        if receipt.ok:
            click.secho(f"   ✓ {receipt.action_id}", fg="green", nl=False)
            click.echo(timing)
            if ctx.obj.get("verbose") and receipt.output:
                for line in receipt.output.split("\n")[:10]:
                    click.echo(f"     │ {line}")
        elif receipt.failed:
            click.secho(f"   ✗ {receipt.action_id}", fg="red", nl=False)
            click.echo(timing)
            if receipt.error:
                for line in receipt.error.split("\n")[:5]:
                    click.echo(f"     │ {line}")
        else:
            click.secho(f"   ⊘ {receipt.action_id} ", fg="yellow", nl=False)
            click.echo(f"({receipt.output})")


_BUILD_ARG_OPTION = click.option(
    "--build-arg", "build_args", multiple=True, metavar="KEY=VALUE",
    help="Override a recipe argument (e.g. DEV=true).",
)
_DEV_OPTION = click.option("--dev", is_flag=True, help="Shortcut for --build-arg DEV=true.")
_TIMEOUT_OPTION = click.option(
    "--timeout", type=click.IntRange(min=1), default=None,
    help="Per-stage timeout in seconds (default: recipe stage_timeout).",
)


@cli.command()
@_BUILD_ARG_OPTION
@_DEV_OPTION
@_TIMEOUT_OPTION
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(
    ctx: click.Context,
    build_args: tuple[str, ...],
    dev: bool,
    timeout: int | None,
    as_json: bool,
) -> None:
    """Show the stage plan for the recipe without running it."""
    from provisioner.core.use_cases.plan import prepare_plan

    result = prepare_plan(
        config_path=ctx.obj.get("config_path"),
        build_args=_build_args(build_args, dev),
        timeout=timeout,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(2)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        for err in result.validation_errors:
            click.echo(f"   • {err}")
        sys.exit(2)

    recipe, stages = result.recipe, result.plan
    assert recipe is not None and stages is not None

    mode_label = "[dev] " if stages.dev else ""
    click.secho(f"\n📋 {mode_label}{recipe.name} — {recipe.base_image}", fg="cyan", bold=True)
    click.echo(f"   Stages: {stages.total_stages} | Digest: {stages.digest[:12]}")
    click.echo()

    for i, stage in enumerate(stages.stages, 1):
        marker = "#" if stage.needs_root else "$"
        scope = f"  [{stage.scope}]" if stage.scope else ""
        click.echo(f"   {i:>2}. {marker} {stage.id:<18} {stage.label}{scope}")
        if ctx.obj.get("verbose"):
            click.echo(f"         layer {stage.layer_key[:12]}")

    click.echo()


@cli.command()
@_BUILD_ARG_OPTION
@_DEV_OPTION
@_TIMEOUT_OPTION
@click.option("--dry-run", is_flag=True, help="Plan and validate but don't execute.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--cached", is_flag=True, help="Skip if the published artifact has the same plan.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def build(
    ctx: click.Context,
    build_args: tuple[str, ...],
    dev: bool,
    timeout: int | None,
    dry_run: bool,
    mock: bool,
    cached: bool,
    as_json: bool,
) -> None:
    """Provision the environment described by the recipe.

    Examples:

        provision build

        provision build --build-arg DEV=true

        provision build --dry-run
    """
    from provisioner.core.use_cases.build import run_build

    result = run_build(
        config_path=ctx.obj.get("config_path"),
        build_args=_build_args(build_args, dev),
        dry_run=dry_run,
        mock_mode=mock,
        cached=cached,
        timeout=timeout,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    planned = result.planned
    if result.report is None and not result.cached:
        click.secho(f"❌ {result.error}", fg="red")
        if planned is not None:
            for err in planned.validation_errors:
                click.echo(f"   • {err}")
        sys.exit(result.exit_code)

    assert planned is not None and planned.recipe is not None
    if result.cached:
        assert result.artifact is not None
        click.secho(
            f"✅ {planned.recipe.name} is up to date ({result.artifact.operation_id})",
            fg="green",
        )
        return

    report = result.report
    assert report is not None
    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
    dev_label = " (dev)" if report.dev else ""
    click.secho(
        f"\n⚡ {mode_label}build — {planned.recipe.name}{dev_label}",
        fg="cyan",
        bold=True,
    )
    click.echo(f"   Operation: {report.operation_id} | Stages: {report.total}")
    click.echo()

    _print_receipts(ctx, report.receipts)

    click.echo()
    click.secho(
        f"   Result: {report.succeeded}/{report.total} succeeded",
        fg=_STATUS_COLORS.get(report.status, "white"),
        bold=True,
    )
    if report.run_as:
        click.echo(f"   Runs as: {report.run_as}")

    if result.error:
        click.echo()
        click.secho(f"❌ {result.error}", fg="red")
        for violation in result.violations:
            click.echo(f"   • {violation}")
        sys.exit(result.exit_code)

    if result.published_to:
        click.secho(f"   💾 Artifact published to {result.published_to}", fg="cyan")

    click.echo()


@cli.command()
@click.option(
    "--lock", "lock_path", type=click.Path(exists=False), default=None,
    help="Artifact to check (default: provision.lock.json next to the recipe).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def verify(ctx: click.Context, lock_path: str | None, as_json: bool) -> None:
    """Check the published artifact against the recipe."""
    from provisioner.core.use_cases.verify import verify_published

    result = verify_published(
        config_path=ctx.obj.get("config_path"),
        lock_path=Path(lock_path) if lock_path else None,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if result.violations:
        click.secho("❌ Artifact does not match the recipe:", fg="red", bold=True)
        for violation in result.violations:
            click.echo(f"   • {violation}")
        sys.exit(1)

    assert result.artifact is not None
    click.secho("✅ Artifact verified", fg="green", bold=True)
    click.echo(f"   Digest: {result.artifact.digest[:12]}")
    click.echo(f"   Identity: {result.artifact.identity}")
    click.echo()


@cli.group()
def render() -> None:
    """Render the recipe into other formats."""


@render.command("dockerfile")
@click.option(
    "--output", "-o", "output", type=click.Path(exists=False), default=None,
    help="Write to this file instead of stdout.",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file.")
@click.pass_context
def render_dockerfile_cmd(ctx: click.Context, output: str | None, force: bool) -> None:
    """Render the recipe as a Dockerfile."""
    from provisioner.core.config.loader import (
        ConfigError,
        find_recipe_file,
        load_recipe,
        recipe_root,
    )
    from provisioner.core.services.generators.dockerfile import render_dockerfile

    config_path = ctx.obj.get("config_path") or find_recipe_file()
    try:
        recipe = load_recipe(config_path)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(2)

    assert config_path is not None
    dev_file = recipe_root(config_path) / recipe.requirements.dev
    generated = render_dockerfile(recipe, dev_requirements=dev_file.is_file())

    if output is None:
        click.echo(generated.content, nl=False)
        return

    target = Path(output)
    if target.exists() and not force:
        click.secho(f"❌ {target} exists (use --force to overwrite)", fg="red")
        sys.exit(1)
    target.write_text(generated.content, encoding="utf-8")
    click.secho(f"✅ {generated.reason} → {target}", fg="green")


@cli.group()
def config() -> None:
    """Recipe configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate provision.yml and its requirement files."""
    from provisioner.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.recipe is not None and result.manifest is not None
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Recipe: {result.recipe.name}")
        click.echo(f"   Runtime packages: {len(result.manifest.runtime)}")
        click.echo(f"   Build-only packages: {len(result.manifest.build_only)}")
        click.echo(f"   Dev packages: {len(result.manifest.dev)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


@cli.command()
@click.option("--limit", "-n", default=10, type=click.IntRange(min=1), help="Entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent builds, newest first."""
    from provisioner.core.config.loader import find_recipe_file
    from provisioner.core.persistence.audit import AuditWriter

    config_path: Path | None = ctx.obj.get("config_path") or find_recipe_file()
    project_root = config_path.parent.resolve() if config_path else Path.cwd()

    entries = AuditWriter(project_root=project_root).read_recent(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump() for e in entries], indent=2))
        return

    if not entries:
        click.echo("No builds recorded yet.")
        return

    click.echo()
    for entry in entries:
        color = _STATUS_COLORS.get(entry.status, "white")
        click.secho(f"   {entry.status:<7}", fg=color, nl=False)
        flags = " dev" if entry.dev else ""
        flags += " dry-run" if entry.dry_run else ""
        timing = f" ({entry.duration_ms}ms)" if entry.duration_ms else ""
        click.echo(f" {entry.timestamp[:19]}  {entry.operation_id}{flags}{timing}")
        if entry.failed_stage:
            click.echo(f"            failed at {entry.failed_stage}")
        if ctx.obj.get("verbose"):
            for err in entry.errors:
                click.echo(f"            │ {err}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def doctor(ctx: click.Context, as_json: bool) -> None:
    """Check which tools the recipe's adapters need are available."""
    from provisioner.core.config.loader import ConfigError, load_recipe
    from provisioner.core.use_cases.build import default_registry

    try:
        recipe = load_recipe(ctx.obj.get("config_path"))
        manager = recipe.system.manager
    except ConfigError:
        manager = "apk"

    status = default_registry(manager).adapter_status()

    if as_json:
        click.echo(json.dumps(status, indent=2))
        sys.exit(0 if all(s["available"] for s in status.values()) else 1)

    click.echo()
    for name, info in status.items():
        if info["available"]:
            click.secho(f"   ✓ {name}", fg="green", nl=False)
        else:
            click.secho(f"   ✗ {name}", fg="red", nl=False)
        click.echo(f"  ({info['type']})")
    click.echo()

    if not all(s["available"] for s in status.values()):
        sys.exit(1)


if __name__ == "__main__":
    cli()
