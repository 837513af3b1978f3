"""Command-line entry point for CCManager."""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

import click

from ccmanager.context import AppContext
from ccmanager.exceptions import CCManagerError
from ccmanager.logging import configure_logging
from ccmanager.types.auth import Provider
from ccmanager.types.repos import Repository
from ccmanager.types.sessions import AgentSelector, CommandStatus
from ccmanager.types.usage import TimeRange, UsageMetric

T = TypeVar("T")

_RANGES = {"24h": TimeRange.DAY, "7d": TimeRange.WEEK, "30d": TimeRange.MONTH, "90d": TimeRange.QUARTER}


def _run(app: AppContext, work: Callable[[], Awaitable[T]]) -> T:
    """Run one command's coroutine, then persist state and release clients."""

    async def runner() -> T:
        try:
            return await work()
        except CCManagerError as e:
            raise click.ClickException(e.message) from e
        finally:
            app.save()
            await app.aclose()

    return asyncio.run(runner())


async def _find_repository(app: AppContext, repo_id: str) -> Repository:
    repository = app.catalog.get(repo_id)
    if repository is None:
        await app.connect()
        repository = app.catalog.get(repo_id)
    if repository is None:
        raise click.ClickException(f"Repository {repo_id} not found.")
    return repository


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """ccmanager: drive coding assistants against your repositories."""
    if verbose:
        configure_logging(logging.DEBUG)
    if ctx.obj is None:
        ctx.obj = AppContext.from_env()


@cli.command()
@click.pass_obj
def repos(app: AppContext) -> None:
    """List repositories, refreshing from the hosting account when logged in."""

    async def work() -> list[Repository]:
        await app.connect()
        return app.catalog.repositories

    repositories = _run(app, work)
    if app.catalog.error:
        click.echo(f"Warning: {app.catalog.error}", err=True)
    if not repositories:
        click.echo("No repositories found.")
        return

    click.echo(f"{'ID':>10}  {'Repository':<35}  {'Branch':<12}  {'Local path'}")
    click.echo("-" * 80)
    for repository in repositories:
        click.echo(
            f"{repository.id:>10}  {repository.full_name:<35}  "
            f"{repository.default_branch:<12}  {repository.local_path or '-'}"
        )


@cli.command()
@click.argument("repo_id")
@click.option("-p", "--path", "local_path", default=None, help="Destination directory.")
@click.pass_obj
def clone(app: AppContext, repo_id: str, local_path: str | None) -> None:
    """Clone a repository into a local working copy."""

    async def work() -> Repository:
        repository = await _find_repository(app, repo_id)
        dest = local_path or os.path.join(app.settings.default_local_path, repository.name)
        return await app.catalog.clone_repository(repository, dest)

    cloned = _run(app, work)
    click.echo(f"Cloned {cloned.full_name} into {cloned.local_path}")


@cli.command()
@click.argument("repo_id")
@click.pass_obj
def changes(app: AppContext, repo_id: str) -> None:
    """Show uncommitted changes in a repository's working copy."""

    async def work():
        repository = await _find_repository(app, repo_id)
        return await app.coordinator.refresh_changes(repository)

    file_changes = _run(app, work)
    if not file_changes:
        click.echo("No changes.")
        return
    for change in file_changes:
        click.echo(f"{change.change_type.value:<9} {change.file_path}")


@cli.command()
@click.argument("repo_id")
@click.argument("text")
@click.option(
    "-a",
    "--agent",
    type=click.Choice([a.value for a in AgentSelector]),
    default=AgentSelector.CLAUDE.value,
    show_default=True,
    help="Assistant(s) to send the command to.",
)
@click.option("--stream", is_flag=True, help="Print the response as it arrives.")
@click.pass_obj
def ask(app: AppContext, repo_id: str, text: str, agent: str, stream: bool) -> None:
    """Send a command to an assistant in the context of a repository."""

    async def work() -> bool:
        repository = await _find_repository(app, repo_id)
        app.coordinator.start_session(repository)
        try:
            if stream:
                async with app.coordinator.stream_command(text) as fragments:
                    async for fragment in fragments:
                        click.echo(fragment, nl=False)
                click.echo()
                if fragments.reason:
                    click.echo(f"Stream {fragments.status.value}: {fragments.reason}", err=True)
                return fragments.reason is None

            ok = True
            for command in await app.coordinator.submit_command(text, AgentSelector(agent)):
                if command.status is CommandStatus.COMPLETED:
                    click.echo(f"[{command.provider}]")
                    click.echo(command.output or "")
                else:
                    ok = False
                    click.echo(f"[{command.provider}] failed: {command.error}", err=True)
            return ok
        finally:
            app.coordinator.end_current_session()

    if not _run(app, work):
        click.get_current_context().exit(1)


@cli.command()
@click.option(
    "-r",
    "--range",
    "range_name",
    type=click.Choice(list(_RANGES)),
    default="7d",
    show_default=True,
)
@click.option(
    "-m",
    "--metric",
    type=click.Choice([m.value for m in UsageMetric]),
    default=UsageMetric.TOKENS.value,
    show_default=True,
)
@click.pass_obj
def usage(app: AppContext, range_name: str, metric: str) -> None:
    """Summarize recorded usage per day."""
    usage_metric = UsageMetric(metric)

    async def work() -> list[tuple[datetime, float]]:
        return app.ledger.buckets(_RANGES[range_name], usage_metric)

    buckets = _run(app, work)
    total = sum(value for _, value in buckets)

    for start, value in buckets:
        click.echo(f"{start:%Y-%m-%d}  {_format(usage_metric, value)}")
    click.echo(f"Total       {_format(usage_metric, total)}")


def _format(metric: UsageMetric, value: float) -> str:
    if metric is UsageMetric.COST:
        return f"${value:.4f}"
    return str(int(value))


@cli.command()
@click.argument("provider", type=click.Choice([p.value for p in Provider]))
@click.argument("token")
@click.option("-u", "--username", default=None)
@click.option("-o", "--organization", "organization_id", default=None)
@click.pass_obj
def login(
    app: AppContext,
    provider: str,
    token: str,
    username: str | None,
    organization_id: str | None,
) -> None:
    """Store a provider token."""

    async def work() -> None:
        await app.authenticate(Provider(provider), token, username, organization_id)

    _run(app, work)
    if provider == Provider.GITHUB.value and app.catalog.error:
        click.echo(f"Warning: {app.catalog.error}", err=True)
    click.echo(f"Logged in to {provider}.")


@cli.command()
@click.argument("provider", type=click.Choice([p.value for p in Provider]))
@click.pass_obj
def logout(app: AppContext, provider: str) -> None:
    """Forget a provider token."""

    async def work() -> None:
        app.logout(Provider(provider))

    _run(app, work)
    click.echo(f"Logged out of {provider}.")


def main() -> None:
    cli()
