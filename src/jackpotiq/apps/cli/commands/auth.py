"""Device authentication CLI commands."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from jackpotiq.services.auth import AuthError, AuthStatus
from jackpotiq.services.auth.bootstrap import AuthSession, build_session
from jackpotiq.services.logging import setup_logging
from jackpotiq.services.settings import load_settings

app = typer.Typer(help="Authenticate this device against the JackpotIQ API.")

_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="YAML settings file.")


def _session(config: Optional[Path]) -> AuthSession:
    try:
        settings = load_settings(config)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    setup_logging(settings.log_level)
    try:
        return build_session(settings)
    except AuthError as exc:
        typer.secho(exc.user_message, err=True, fg=typer.colors.RED)
        raise typer.Exit(code=2) from exc


def _redact(value: str | None) -> str:
    if value is None:
        return "-"
    if len(value) <= 8:
        return "*" * len(value)
    return value[:2] + "*" * (len(value) - 6) + value[-4:]


def _present(value: object) -> str:
    return "yes" if value else "no"


@app.command("login")
def cmd_login(config: Optional[Path] = _CONFIG_OPTION):
    """Obtain a session token (refresh, attestation or identifier-only)."""
    session = _session(config)
    state = asyncio.run(session.controller.authenticate())
    typer.echo(f"state: {state}")
    if state.status is not AuthStatus.AUTHENTICATED:
        typer.secho(state.summary, err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command("logout")
def cmd_logout(
    config: Optional[Path] = _CONFIG_OPTION,
    forget_device: bool = typer.Option(False, "--forget-device", help="Also drop the stored device identifier."),
):
    """Remove the stored session token."""
    session = _session(config)
    try:
        session.controller.logout(forget_device=forget_device)
    except AuthError as exc:
        typer.secho(exc.user_message, err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc
    typer.echo("logged out")


@app.command("status")
def cmd_status(config: Optional[Path] = _CONFIG_OPTION):
    """Show what is stored, never the values themselves."""
    session = _session(config)
    try:
        state = session.controller.restore()
        token = session.controller.current_token()
        device_id = session.controller.device_id()
    except AuthError as exc:
        typer.secho(exc.user_message, err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc
    typer.echo(f"backend: {session.settings.store_backend}")
    typer.echo(f"state: {state}")
    typer.echo(f"session token stored: {_present(token)}")
    typer.echo(f"device identifier stored: {_present(device_id)}")


@app.command("token")
def cmd_token(config: Optional[Path] = _CONFIG_OPTION):
    """Print the stored session token, redacted."""
    session = _session(config)
    try:
        token = session.controller.current_token()
    except AuthError as exc:
        typer.secho(exc.user_message, err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc
    if token is None:
        typer.echo("no session token stored")
        raise typer.Exit(code=1)
    typer.echo(_redact(token))
