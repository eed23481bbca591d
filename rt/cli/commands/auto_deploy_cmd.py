from __future__ import annotations

from dataclasses import replace
from enum import Enum

import typer

from rt.api.client import client_for, ops_client_for
from rt.cli.context import CLIContext, GlobalOptions, build_context, fail, write_metadata
from rt.core.errors import ErrorCode
from rt.core.result import Err
from rt.output.console import Style
from rt.release.autodeploy import (
    CNG_TARGET,
    OMNIBUS_TARGET,
    AutoDeployBranch,
    AutoDeployBranchCreator,
    AutoDeployBuilder,
    AutoDeployTarget,
    DependentRepo,
    Ref,
)
from rt.release.components import ComponentVersionResolver

auto_deploy_app = typer.Typer(add_completion=False, no_args_is_help=True)


class TargetChoice(str, Enum):
    OMNIBUS = "omnibus"
    CNG = "cng"
    ALL = "all"


def _with_catalogue(target: AutoDeployTarget, cli: CLIContext) -> AutoDeployTarget:
    """Apply ``[projects.<name>]`` remote overrides to a target and its dependents."""
    dependents = tuple(
        replace(dep, project=cli.projects.get(dep.project.name, dep.project)) for dep in target.dependents
    )
    return replace(
        target,
        project=cli.projects.get(target.project.name, target.project),
        dependents=dependents,
    )


def _targets(choice: TargetChoice, cli: CLIContext) -> tuple[AutoDeployTarget, ...]:
    match choice:
        case TargetChoice.OMNIBUS:
            selected = (OMNIBUS_TARGET,)
        case TargetChoice.CNG:
            selected = (CNG_TARGET,)
        case TargetChoice.ALL:
            selected = (OMNIBUS_TARGET, CNG_TARGET)
    return tuple(_with_catalogue(t, cli) for t in selected)


def _dependent_label(dep: DependentRepo) -> str:
    return f"{dep.label} (ops)" if dep.ops else dep.label


@auto_deploy_app.command("versions")
def versions(
    ctx: typer.Context,
    commit: str = typer.Argument(..., help="Application commit SHA, branch or auto-deploy tag"),
) -> None:
    """Print the component version map of an application commit."""
    cli = build_context(ctx.obj if isinstance(ctx.obj, GlobalOptions) else None)
    api = client_for(cli.config, cli.run)
    resolver = ComponentVersionResolver(api, ctx=cli.run, console=cli.console)

    source = cli.projects["gitlab"]
    resolved = resolver.resolve(source.api_path(cli.run), Ref(commit).for_project(source))
    if isinstance(resolved, Err):
        fail(resolved.error, cli.console)

    for component, version in resolved.value.items():
        cli.console.print(f"{component}: {version}")


@auto_deploy_app.command("tag")
def tag(
    ctx: typer.Context,
    branch: str = typer.Argument(..., help="Auto-deploy branch, e.g. 12-1-auto-deploy-20190701"),
    commit: str = typer.Argument(..., help="Commit SHA of the application"),
    target: TargetChoice = typer.Option(TargetChoice.ALL, "--target", "-t", help="Repositories to tag"),
) -> None:
    """Write the component versions into packaging repositories and tag them."""
    cli = build_context(ctx.obj if isinstance(ctx.obj, GlobalOptions) else None)
    console = cli.console

    parsed = AutoDeployBranch.parse(branch)
    if isinstance(parsed, Err):
        fail(parsed.error, console)

    builder = AutoDeployBuilder(
        parsed.value,
        commit,
        api=client_for(cli.config, cli.run),
        ops_api=ops_client_for(cli.config),
        ctx=cli.run,
        console=console,
        metadata=cli.metadata,
        targets=_targets(target, cli),
        source=cli.projects["gitlab"],
    )

    result = builder.execute()
    write_metadata(cli)
    if isinstance(result, Err):
        fail(result.error, console)

    outcome = result.value
    console.newline()
    for component, version in outcome.version_map.items():
        console.print(f"{component}: {version}", Style.DIM)

    for tagged in outcome.tags:
        if tagged.tag is None:
            console.print(f"{tagged.target}: nothing to tag", Style.WARNING)
            continue
        verb = "tagged" if tagged.created else "tag present"
        console.print(f"{tagged.target}: {verb} {tagged.tag}", Style.SUCCESS)
        for dep in tagged.dependents:
            status = "failed" if dep.error else ("tagged" if dep.created else "unchanged")
            console.print(f"  {dep.project}: {status}", Style.ERROR if dep.error else Style.DIM)

    failed_dependents = any(dep.error for tagged in outcome.tags for dep in tagged.dependents)
    if outcome.failures:
        first = next(iter(outcome.failures.values()))
        fail(first, console)
    if failed_dependents:
        raise typer.Exit(code=int(ErrorCode.NETWORK_ERROR))


@auto_deploy_app.command("branch")
def branch(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Auto-deploy branch to create, e.g. 12-1-auto-deploy-20190701"),
    ref: str = typer.Option("master", "--ref", help="Ref every repository branches from"),
    gitlab_ref: str | None = typer.Option(None, "--gitlab-ref", help="Application ref or auto-deploy tag"),
    omnibus_ref: str | None = typer.Option(None, "--omnibus-ref", help="Omnibus ref"),
    cng_ref: str | None = typer.Option(None, "--cng-ref", help="CNG ref"),
    helm_ref: str | None = typer.Option(None, "--helm-ref", help="Helm chart ref"),
) -> None:
    """Create the auto-deploy branch in the application and packaging repositories."""
    cli = build_context(ctx.obj if isinstance(ctx.obj, GlobalOptions) else None)
    console = cli.console

    parsed = AutoDeployBranch.parse(name)
    if isinstance(parsed, Err):
        fail(parsed.error, console)

    overrides = {"gitlab": gitlab_ref, "omnibus-gitlab": omnibus_ref, "cng": cng_ref, "helm-gitlab": helm_ref}
    creator = AutoDeployBranchCreator(
        parsed.value,
        {project: Ref(value) for project, value in overrides.items() if value},
        api=client_for(cli.config, cli.run),
        ctx=cli.run,
        console=console,
        default_ref=Ref(ref),
        projects=tuple(cli.projects[p] for p in ("gitlab", "omnibus-gitlab", "cng", "helm-gitlab")),
    )

    outcomes = creator.execute()

    console.newline()
    for outcome in outcomes:
        if outcome.error is not None:
            console.print(f"{outcome.project}: failed ({outcome.error.message})", Style.ERROR)
        elif outcome.created:
            console.print(f"{outcome.project}: created from {outcome.ref}", Style.SUCCESS)
        else:
            console.print(f"{outcome.project}: unchanged", Style.DIM)

    failed = [o.error for o in outcomes if o.error is not None]
    if failed:
        fail(failed[0], console)
