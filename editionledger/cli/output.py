"""Terminal formatting shared by the CLI commands."""

import json
import sys

import click


class Color:
    """
    ANSI color wrapper. Auto-disables when stdout is not a TTY or
    --no-color is passed.
    """
    _on: bool = True

    @classmethod
    def configure(cls, enabled: bool) -> None:
        cls._on = enabled and sys.stdout.isatty()

    @classmethod
    def green(cls, s: str) -> str:
        return f"\033[32m{s}\033[0m" if cls._on else s

    @classmethod
    def red(cls, s: str) -> str:
        return f"\033[31m{s}\033[0m" if cls._on else s

    @classmethod
    def cyan(cls, s: str) -> str:
        return f"\033[36m{s}\033[0m" if cls._on else s

    @classmethod
    def bold(cls, s: str) -> str:
        return f"\033[1m{s}\033[0m" if cls._on else s

    @classmethod
    def dim(cls, s: str) -> str:
        return f"\033[2m{s}\033[0m" if cls._on else s


BAR_HEAVY = "═" * 60
BAR_LIGHT = "─" * 60


def row_ok(label: str, value: str) -> str:
    return f"  {Color.dim(f'{label:<14}')}  {Color.green('OK  ')}  {value}"


def row_fail(label: str, value: str) -> str:
    return f"  {Color.dim(f'{label:<14}')}  {Color.red('FAIL')}  {value}"


def row_info(label: str, value: str) -> str:
    return f"  {Color.dim(f'{label:<14}')}        {value}"


def header(title: str) -> None:
    click.echo()
    click.echo(Color.bold(f"  {BAR_HEAVY}"))
    click.echo(Color.bold(f"  EditionLedger  ·  {title}"))
    click.echo(Color.bold(f"  {BAR_HEAVY}"))
    click.echo()


def emit_error(command: str, msg: str, fmt: str, quiet: bool) -> None:
    """Emit an error in the requested format. Never raises."""
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({command: {"error": msg, "log_valid": False}}))
    else:
        click.echo(Color.red(f"\n  ERROR: {msg}\n"), err=True)
