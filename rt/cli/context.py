from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import NoReturn

import typer

from rt.core.config import Config, ConfigError, load_config_or_default
from rt.core.context import RunContext
from rt.core.result import Err
from rt.output.console import ConsoleProtocol, RichConsole
from rt.output.errors import exit_code_for, print_failure
from rt.platform.files import atomic_write_text
from rt.release.errors import ReleaseFailure
from rt.release.metadata import ReleaseMetadata
from rt.release.projects import Project, projects_for


@dataclass(frozen=True, slots=True)
class GlobalOptions:
    """Options given before the subcommand; ``rt --dry-run release ...``."""

    dry_run: bool = False
    security: bool = False
    config_path: Path | None = None
    metadata_file: Path | None = None


@dataclass(frozen=True, slots=True)
class CLIContext:
    run: RunContext
    config: Config
    console: ConsoleProtocol
    projects: dict[str, Project]
    metadata: ReleaseMetadata = field(default_factory=ReleaseMetadata)
    metadata_file: Path | None = None


def build_context(options: GlobalOptions | None) -> CLIContext:
    options = options or GlobalOptions()

    env_ctx = RunContext.from_env()
    run = RunContext(
        security_release=options.security or env_ctx.security_release,
        dry_run=options.dry_run or env_ctx.dry_run,
    )
    console = RichConsole(run.tags)

    config_result = load_config_or_default(options.config_path)
    if isinstance(config_result, Err):
        fail(config_result.error, console)

    config = config_result.value
    return CLIContext(
        run=run,
        config=config,
        console=console,
        projects=projects_for(config),
        metadata_file=options.metadata_file,
    )


def fail(error: ReleaseFailure | ConfigError, console: ConsoleProtocol) -> NoReturn:
    print_failure(error, console)
    raise typer.Exit(code=exit_code_for(error))


def write_metadata(cli: CLIContext) -> None:
    """Persist the release records when ``--metadata-file`` was given."""
    if cli.metadata_file is None:
        return
    payload = json.dumps(cli.metadata.as_dict(), indent=2) + "\n"
    try:
        atomic_write_text(cli.metadata_file, payload)
    except OSError as e:
        cli.console.warning("Unable to write release metadata", path=cli.metadata_file, error=str(e))
        return
    cli.console.trace("Release metadata written", path=cli.metadata_file, records=len(cli.metadata))
