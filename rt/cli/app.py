from __future__ import annotations

from pathlib import Path

import typer

from rt import __version__
from rt.cli.commands.auto_deploy_cmd import auto_deploy_app
from rt.cli.commands.release_cmd import release
from rt.cli.context import GlobalOptions

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(release)

# Sub-apps
app.add_typer(auto_deploy_app, name="auto-deploy", help="Auto-deploy version updates and tags.")


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Log pushes, remote commits and tags instead of performing them (env TEST).",
    ),
    security: bool = typer.Option(
        False,
        "--security",
        help="Security release: dev remotes and the dev API instance only (env SECURITY=true).",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        envvar="RT_CONFIG",
        help="TOML config file; defaults apply when absent.",
    ),
    metadata_file: Path | None = typer.Option(
        None,
        "--metadata-file",
        help="Write the release records as JSON to this path.",
    ),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)

    ctx.obj = GlobalOptions(
        dry_run=dry_run,
        security=security,
        config_path=config.expanduser() if config else None,
        metadata_file=metadata_file,
    )


def main() -> None:
    app()
