from __future__ import annotations

from enum import Enum

import typer

from rt.cli.context import GlobalOptions, build_context, fail, write_metadata
from rt.core.errors import ErrorCode
from rt.core.result import Err, Ok
from rt.output.console import ConsoleProtocol, Style
from rt.release.kinds import ReleaseKind, gitaly_release, gitlab_release, helm_release, omnibus_release
from rt.release.projects import Project
from rt.release.state_machine import ReleaseOutcome, ReleaseState, ReleaseStateMachine
from rt.release.version import Version, parse_version


class ReleaseProject(str, Enum):
    GITLAB = "gitlab"
    OMNIBUS = "omnibus"
    GITALY = "gitaly"
    HELM = "helm"


def _release_kind(
    project: ReleaseProject,
    projects: dict[str, Project],
    app_version: Version | None,
) -> ReleaseKind:
    match project:
        case ReleaseProject.GITLAB:
            return gitlab_release(projects["gitlab"])
        case ReleaseProject.OMNIBUS:
            return omnibus_release(projects["omnibus-gitlab"])
        case ReleaseProject.GITALY:
            return gitaly_release(projects["gitaly"])
        case ReleaseProject.HELM:
            return helm_release(app_version, projects["helm-gitlab"])


def _print_outcome(outcome: ReleaseOutcome, console: ConsoleProtocol, *, indent: str = "") -> None:
    if outcome.state is ReleaseState.SKIPPED_TAG_EXISTS:
        console.print(f"{indent}{outcome.name}: {outcome.tag} already exists, nothing to do", Style.WARNING)
    elif outcome.tagged:
        console.print(f"{indent}{outcome.name}: tagged {outcome.tag} ({outcome.sha or '?'})", Style.SUCCESS)
    else:
        console.print(f"{indent}{outcome.name}: {outcome.version} released without a tag", Style.INFO)

    for ref, remotes in outcome.pushes.items():
        failed = [remote for remote, ok in remotes.items() if not ok]
        if failed:
            console.print(f"{indent}  push {ref} failed on: {', '.join(failed)}", Style.WARNING)

    for downstream in outcome.downstream:
        _print_outcome(downstream, console, indent=indent + "  ")


def release(
    ctx: typer.Context,
    version: str = typer.Argument(..., help="Version to release, e.g. 12.1.3 or 12.1.0-rc2"),
    project: ReleaseProject = typer.Option(
        ReleaseProject.GITLAB,
        "--project",
        "-p",
        help="Repository to release",
    ),
    app_version: str | None = typer.Option(
        None,
        "--app-version",
        help="GitLab version shipped by the chart (helm only)",
    ),
) -> None:
    """Bump, tag and push one repository's release."""
    cli = build_context(ctx.obj if isinstance(ctx.obj, GlobalOptions) else None)
    console = cli.console

    parsed = parse_version(version)
    if isinstance(parsed, Err):
        fail(parsed.error, console)

    app: Version | None = None
    if app_version is not None:
        if project is not ReleaseProject.HELM:
            console.error("--app-version only applies to --project helm")
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        parsed_app = parse_version(app_version)
        if isinstance(parsed_app, Err):
            fail(parsed_app.error, console)
        app = parsed_app.value

    machine = ReleaseStateMachine(
        _release_kind(project, cli.projects, app),
        parsed.value,
        ctx=cli.run,
        console=console,
        metadata=cli.metadata,
        workdir=cli.config.workdir,
    )

    match machine.execute():
        case Err(error):
            write_metadata(cli)
            fail(error, console)
        case Ok(outcome):
            console.newline()
            _print_outcome(outcome, console)
            write_metadata(cli)
