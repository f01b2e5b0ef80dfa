import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from tagsync.constants import VERSION
from tagsync.keywords import KeywordSyncError, NetworkError, DecodeError
from tagsync.main import Main
from tagsync.models import User
from tagsync.util.config import ConfigurationError, Settings, load_settings
from tagsync.util.logging import configure_logging

app = typer.Typer(
    help="tagsync - keep a user's skill keywords in sync between this device and the keyword service.",
    add_completion=False,
)

# Console for rich output
console = Console()


class LogLevel(str, Enum):
    """Enum for log levels"""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def print_styled(message: str, style: str = "green", bold: bool = False) -> None:
    """Print styled message using Rich"""
    text = Text(message)
    text.stylize(style)
    if bold:
        text.stylize("bold")
    console.print(text)


def print_keywords(keywords, title: str = "Keywords") -> None:
    if not keywords:
        print_styled("No keywords stored.", style="yellow")
        return

    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Keyword", style="cyan")
    for index, keyword in enumerate(keywords, start=1):
        table.add_row(str(index), keyword)
    console.print(table)


def _settings(ctx: typer.Context) -> Settings:
    options = ctx.obj or {}
    try:
        settings = load_settings(options.get("config"))
    except ConfigurationError as e:
        print_styled(f"Configuration error: {e}", style="red", bold=True)
        raise typer.Exit(code=2)

    configure_logging(settings.logging, log_level=options.get("log_level"))
    return settings


def _run(ctx: typer.Context, action: Callable[[Main], Awaitable[Any]]) -> Any:
    """Start the application, run one action against it and shut it down."""
    settings = _settings(ctx)

    async def runner():
        application = Main(settings)
        await application.start()
        try:
            return await action(application)
        finally:
            await application.shutdown()

    try:
        return asyncio.run(runner())
    except KeywordSyncError as e:
        print_styled(f"Error: {e}", style="red", bold=True)
        raise typer.Exit(code=1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to a configuration YAML file"
    ),
    log_level: Optional[LogLevel] = typer.Option(
        None, "--log-level", "-l", help="Override the configured logging level"
    ),
):
    ctx.obj = {
        "config": config,
        "log_level": log_level.value if log_level else None,
    }


@app.command("version")
def version_command():
    """Show the tagsync version."""
    console.print(f"tagsync {VERSION}")


@app.command("list")
def list_command(ctx: typer.Context):
    """List the stored keywords."""

    async def action(application: Main):
        return application.reconciler.keywords

    print_keywords(_run(ctx, action))


@app.command("add")
def add_command(
    ctx: typer.Context,
    keywords: List[str] = typer.Argument(..., help="Keywords to add"),
):
    """Add one or more keywords."""

    async def action(application: Main):
        results = []
        for keyword in keywords:
            results.append((keyword, await application.reconciler.add_keyword(keyword)))
        return results, application.reconciler.keywords

    results, current = _run(ctx, action)
    for keyword, added in results:
        if added:
            print_styled(f"Added '{keyword.strip().lower()}'")
        else:
            print_styled(f"Skipped '{keyword}' (empty or already present)", style="yellow")
    print_keywords(current)


@app.command("remove")
def remove_command(
    ctx: typer.Context,
    keywords: List[str] = typer.Argument(..., help="Keywords to remove"),
):
    """Remove one or more keywords."""

    async def action(application: Main):
        results = []
        for keyword in keywords:
            results.append(
                (keyword, await application.reconciler.remove_keyword(keyword))
            )
        return results, application.reconciler.keywords

    results, current = _run(ctx, action)
    for keyword, removed in results:
        if removed:
            print_styled(f"Removed '{keyword.strip().lower()}'")
        else:
            print_styled(f"'{keyword}' is not stored", style="yellow")
    print_keywords(current)


@app.command("sync")
def sync_command(
    ctx: typer.Context,
    user: str = typer.Argument(..., help="Login of the user to sign in as"),
    name: Optional[str] = typer.Option(None, "--name", help="Display name"),
    avatar_url: Optional[str] = typer.Option(None, "--avatar-url", help="Avatar URL"),
):
    """Sign in as USER and merge the remote keywords into the stored set."""

    async def action(application: Main):
        errors = []
        application.reconciler.subscribe_errors(errors.append)
        before = set(application.reconciler.keywords)

        await application.session.sign_in(User(user, name=name, avatar_url=avatar_url))
        await application.reconciler.wait_idle()

        current = application.reconciler.keywords
        return [k for k in current if k not in before], current, errors

    merged, current, errors = _run(ctx, action)

    fetch_errors = [e for e in errors if isinstance(e, (NetworkError, DecodeError))]
    for error in errors:
        print_styled(f"Warning: {error}", style="yellow")

    print_styled(f"Merged {len(merged)} remote keywords for {user}")
    print_keywords(current)

    if fetch_errors:
        raise typer.Exit(code=1)


@app.command("sign-out")
def sign_out_command(ctx: typer.Context):
    """Apply the configured sign-out policy to the stored keywords."""

    async def action(application: Main):
        await application.session.sign_out()
        await application.reconciler.wait_idle()
        return application.reconciler.keywords

    current = _run(ctx, action)
    print_styled("Signed out")
    print_keywords(current)
