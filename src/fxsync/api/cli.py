"""fx-sync command line interface.

Usage::

    fx-sync pull calcTax -t function
    fx-sync pull -a
    fx-sync push -f fx-app/main/APL/functions/calcTax.groovy
    fx-sync push -a -t component --json
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import click

from fxsync import __version__
from fxsync.config.logging import configure_logging
from fxsync.config.settings import Settings, load_settings
from fxsync.container import Container, create_container
from fxsync.core.exceptions import ConfigurationError
from fxsync.domain.entities import BatchPushOutcome, PullOutcome, PushOutcome
from fxsync.domain.enums import ArtifactType
from fxsync.domain.rules import default_directory

TYPE_CHOICE = click.Choice([t.value for t in ArtifactType])


def _run(settings: Settings, action: Callable[[Container], Awaitable[Any]]) -> Any:
    async def runner() -> Any:
        container = create_container(settings)
        try:
            return await action(container)
        finally:
            await container.aclose()

    return asyncio.run(runner())


def _require_auth(settings: Settings) -> None:
    try:
        settings.require_auth()
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e


def _emit(result: PushOutcome | BatchPushOutcome | PullOutcome | list[PullOutcome], as_json: bool) -> bool:
    """Print *result* and return whether it counts as success."""
    if isinstance(result, list):
        if as_json:
            click.echo(json.dumps([r.dump() for r in result], ensure_ascii=False, indent=2))
        else:
            for item in result:
                _echo_line(item.success, item.name, item.message)
            click.echo(f"{sum(1 for r in result if r.success)}/{len(result)} pulled")
        return bool(result) and all(r.success for r in result)

    if as_json:
        click.echo(json.dumps(result.dump(), ensure_ascii=False, indent=2))
    elif isinstance(result, BatchPushOutcome):
        for item in result.results:
            _echo_line(item.success, item.name, item.message)
        click.echo(result.message)
    else:
        _echo_line(result.success, result.name, result.message)
    return result.success


def _echo_line(success: bool, name: str, message: str) -> None:
    status = click.style("OK", fg="green") if success else click.style("FAILED", fg="red")
    click.echo(f"[{status}] {name}: {message}")


def _locate_source(root: Path, artifact_type: ArtifactType, name: str) -> Path:
    """Resolve NAME to a file or directory under the default layout."""
    directory = default_directory(root, artifact_type)
    if artifact_type.is_bundle:
        return directory / name
    for candidate in (directory / name, directory / f"{name}.groovy", directory / f"{name}.java"):
        if candidate.is_file():
            return candidate
    return directory / f"{name}.groovy"


@click.group()
@click.version_option(version=__version__, prog_name="fx-sync")
@click.option(
    "--project-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root (defaults to the current directory)",
)
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.pass_context
def cli(ctx: click.Context, project_root: Path | None, log_level: str | None) -> None:
    """Synchronize platform components, plugins, functions and classes."""
    try:
        settings = load_settings(project_root, log_level=log_level)
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e
    configure_logging(settings.log_level, settings.log_json)
    ctx.obj = settings


@cli.command()
@click.argument("name", required=False)
@click.option("--type", "-t", "type_", type=TYPE_CHOICE, default=None, help="Artifact type")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Output directory")
@click.option("--all", "-a", "all_", is_flag=True, help="Pull every artifact (of --type, if given)")
@click.option("--json", "as_json", is_flag=True, help="Print the outcome as JSON")
@click.pass_obj
def pull(
    settings: Settings,
    name: str | None,
    type_: str | None,
    output: Path | None,
    all_: bool,
    as_json: bool,
) -> None:
    """Download artifacts from the platform."""
    if not name and not all_:
        raise click.UsageError("Provide NAME or --all")
    _require_auth(settings)
    artifact_type = ArtifactType(type_) if type_ else None

    if all_ and artifact_type is None:
        result = _run(settings, lambda c: c.puller.pull_everything(settings.project_root))
    elif all_:
        result = _run(settings, lambda c: c.puller.pull_type(artifact_type, output))
    else:
        result = _run(
            settings,
            lambda c: c.puller.pull_by_name(artifact_type or ArtifactType.FUNCTION, name, output),
        )

    if not _emit(result, as_json):
        raise SystemExit(1)


@cli.command()
@click.argument("name", required=False)
@click.option("--type", "-t", "type_", type=TYPE_CHOICE, default=None, help="Artifact type")
@click.option(
    "--file",
    "-f",
    "file_",
    type=click.Path(path_type=Path),
    default=None,
    help="File (function/class) or directory (component/plugin) to push",
)
@click.option("--all", "-a", "all_", is_flag=True, help="Push every artifact (of --type, if given)")
@click.option("--json", "as_json", is_flag=True, help="Print the outcome as JSON")
@click.pass_obj
def push(
    settings: Settings,
    name: str | None,
    type_: str | None,
    file_: Path | None,
    all_: bool,
    as_json: bool,
) -> None:
    """Upload local artifacts to the platform."""
    if not (name or file_ or all_):
        raise click.UsageError("Provide NAME, --file or --all")
    _require_auth(settings)
    artifact_type = ArtifactType(type_) if type_ else None

    if file_ is not None:
        result = _run(settings, lambda c: c.engine.push_file(file_, artifact_type))
    elif all_ and artifact_type is None:
        result = _run(settings, lambda c: c.engine.push_everything(settings.project_root))
    elif all_:
        directory = default_directory(settings.project_root, artifact_type)
        result = _run(settings, lambda c: c.engine.push_directory(directory, artifact_type))
    else:
        resolved_type = artifact_type or ArtifactType.FUNCTION
        path = _locate_source(settings.project_root, resolved_type, name)
        result = _run(settings, lambda c: c.engine.push_file(path, resolved_type))

    if not _emit(result, as_json):
        raise SystemExit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
