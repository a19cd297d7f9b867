"""CLI entry point for group-updater."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click

from group_updater.admission import SEMVER_LEVELS, semver_rules_allow_grouping
from group_updater.config import load_config
from group_updater.error_handler import ErrorHandler
from group_updater.errors import GroupUpdaterError
from group_updater.messages import MessageBuilder
from group_updater.pipeline import (
    load_dependency_files,
    parse_snapshot,
    run_group_updates,
    write_changes,
)
from group_updater.shell import step
from group_updater.versions import GRAMMARS


@click.group()
@click.version_option(package_name="group-updater")
def cli() -> None:
    """Compile grouped dependency updates into one change per group."""


@cli.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default="pyproject.toml",
    show_default=True,
    help="TOML file with a [tool.group-updater] table.",
)
@click.option(
    "--index",
    "index_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON package index (overrides index-path from the config).",
)
@click.option("--group", "only", help="Only compile the group with this name.")
@click.option("--write", is_flag=True, help="Write updated files back to disk.")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write a JSON summary of every change to this file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every decision.")
def run(
    config_path: Path,
    index_path: Path | None,
    only: str | None,
    write: bool,
    output: Path | None,
    verbose: bool,
) -> None:
    """Run the configured group updates against the local checkout."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        job = load_config(config_path)
        if index_path is not None:
            job = job.model_copy(update={"index_path": str(index_path.resolve())})
        root = Path(job.repo_contents_path) if job.repo_contents_path else config_path.parent
        files = load_dependency_files(root, job.directory)
        if not files:
            raise click.ClickException(f"No dependency files found in {job.directory}")
        snapshot = parse_snapshot(job, files)
    except GroupUpdaterError as e:
        raise click.ClickException(str(e)) from e

    if only is not None and only not in [g.name for g in snapshot.groups]:
        raise click.ClickException(f"No group named {only!r} in {config_path}")

    error_handler = ErrorHandler()
    try:
        changes = run_group_updates(job, snapshot, error_handler, only=only)
    except GroupUpdaterError as e:
        raise click.ClickException(str(e)) from e

    for change in changes:
        builder = MessageBuilder(
            dependencies=change.updated_dependencies,
            files=change.updated_dependency_files,
        )
        step(f"{change.dependency_group.name}: {builder.pr_name()}")
        click.echo(builder.pr_message())
        for notice in change.notices:
            click.echo(f"{notice.mode}: {notice.description}")
        if write:
            for path in write_changes(root, change):
                click.echo(f"✓ Wrote {path}")

    if not changes:
        click.echo("No group updates.")

    for error in error_handler.errors:
        click.echo(
            f"✗ {error.dependency_name} ({error.error_type}): {error.detail.get('message', '')}",
            err=True,
        )

    if output is not None:
        summary = {
            "changes": [c.to_summary() for c in changes],
            "errors": [e.model_dump() for e in error_handler.errors],
            "handled": snapshot.handled_dependencies.names(),
        }
        output.write_text(json.dumps(summary, indent=2) + "\n")


@cli.command()
@click.option(
    "--update-types",
    default=",".join(SEMVER_LEVELS),
    show_default=True,
    help="Comma-separated update types the group allows.",
)
@click.option(
    "--grammar",
    type=click.Choice(sorted(GRAMMARS)),
    default="semver",
    show_default=True,
    help="Version grammar to classify versions with.",
)
@click.argument("current")
@click.argument("latest")
def admit(update_types: str, grammar: str, current: str, latest: str) -> None:
    """Check whether a CURRENT → LATEST jump fits a group's update-types."""
    types = [t.strip() for t in update_types.split(",") if t.strip()]
    unknown = [t for t in types if t not in SEMVER_LEVELS]
    if unknown:
        raise click.ClickException(f"Unknown update types: {', '.join(unknown)}")

    allowed = semver_rules_allow_grouping(types, current, latest, GRAMMARS[grammar])
    click.echo("admitted" if allowed else "rejected")
