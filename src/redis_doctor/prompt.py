"""Interactive prompts: credentials and the detail-view pause.

All prompts write to stderr so --json output on stdout stays clean.
"""

import asyncio
import sys

import typer

from redis_doctor.adapter import ConnectionTarget, Credentials


def ask_credentials(username: str | None = None) -> Credentials:
    """
    Prompt for credentials. The password is read without echo.

    Args:
        username: Known username; only the password is asked for when set
    """
    if username is None:
        username = typer.prompt("Redis username", default="", show_default=False, err=True)
    password = typer.prompt(
        "Redis password", default="", show_default=False, hide_input=True, err=True
    )
    return Credentials(username=username or None, password=password or None)


async def prompt_credentials() -> Credentials:
    """Async wrapper used by connect_with_retry() after an auth failure."""
    return await asyncio.to_thread(ask_credentials)


def is_interactive() -> bool:
    return sys.stdin.isatty()


def initial_credentials(target: ConnectionTarget, interactive: bool = True) -> Credentials:
    """
    Credentials for the first connection attempt.

    - URL has a password: use the URL as is
    - URL has only a username: ask for the password
    - URL has neither: ask for both

    Non-interactive sessions never prompt.
    """
    url_credentials = target.credentials
    if not interactive or url_credentials.password:
        return Credentials()
    typer.echo(f"Connecting to {target.address}...", err=True)
    return ask_credentials(url_credentials.username)


def wait_for_enter(message: str = "  Press Enter to view detailed report...") -> None:
    typer.prompt(
        message, default="", show_default=False, prompt_suffix="", err=True
    )
