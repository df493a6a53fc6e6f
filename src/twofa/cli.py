"""CLI entry point for twofa."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from twofa.config import Settings, load_settings_file

console = Console()


class EchoDirectory:
    """Account directory for standalone use: the account id doubles as its name.

    Password login is not available without a host directory.
    """

    def display_name(self, account_id: str) -> str | None:
        return account_id

    def authenticate(self, username: str, password: str) -> str | None:
        return None


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def _store(ctx: click.Context):
    from twofa.store import EnrollmentStore

    return EnrollmentStore(_settings(ctx).store_path)


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="YAML settings file.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """twofa — TOTP two-factor enrollment and verification."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = load_settings_file(config_path) if config_path else Settings()
    except FileNotFoundError as e:
        raise click.ClickException(str(e))


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration."""
    s = _settings(ctx)
    console.print("[bold]twofa Status[/bold]")
    console.print(f"  TOTP enabled: {s.enable_totp}")
    console.print(f"  User enrollment: {s.allow_user_enrollment}")
    console.print(f"  Issuer: {s.totp_issuer}")
    console.print(f"  Parameters: {s.digits} digits / {s.period_seconds}s / ±{s.drift_steps} steps / {s.algorithm}")
    console.print(f"  Store: {s.store_path}")


@main.command()
@click.pass_context
def accounts(ctx: click.Context) -> None:
    """List enrollment records."""
    records = asyncio.run(_store(ctx).get_all())

    table = Table(title="Enrollment records")
    table.add_column("Account")
    table.add_column("State")
    table.add_column("Last verified")
    for account_id, record in sorted(records.items()):
        last = record.last_verified_at.strftime("%Y-%m-%d %H:%M") if record.last_verified_at else "—"
        table.add_row(account_id, record.state.value, last)
    console.print(table)
    console.print(f"  Total: {len(records)} accounts")


@main.command()
@click.argument("account_id")
@click.pass_context
def show(ctx: click.Context, account_id: str) -> None:
    """Show one account's 2FA state."""
    record = asyncio.run(_store(ctx).get(account_id))
    console.print_json(data=record.model_dump(mode="json", exclude={"secret"}) | {"state": record.state.value})


@main.command()
@click.argument("account_id")
@click.pass_context
def disable(ctx: click.Context, account_id: str) -> None:
    """Reset 2FA for an account."""
    from twofa.auth.totp import TotpEngine
    from twofa.service import TwoFactorService

    s = _settings(ctx)
    service = TwoFactorService(_store(ctx), TotpEngine.from_settings(s), s, EchoDirectory())
    asyncio.run(service.disable(account_id))
    console.print(f"[green]2FA disabled for {account_id}[/green]")


@main.command()
@click.argument("secret")
@click.pass_context
def code(ctx: click.Context, secret: str) -> None:
    """Print the current code for a Base32 secret."""
    from twofa.auth.totp import TotpEngine
    from twofa.errors import FormatError

    try:
        console.print(TotpEngine.from_settings(_settings(ctx)).current_code(secret))
    except FormatError as e:
        raise click.ClickException(f"Invalid secret: {e}")


@main.command()
@click.argument("account_name")
@click.argument("secret")
@click.pass_context
def uri(ctx: click.Context, account_name: str, secret: str) -> None:
    """Print the provisioning URI for an account name and secret."""
    from twofa.auth.totp import TotpEngine
    from twofa.errors import InvalidArgument

    try:
        console.print(TotpEngine.from_settings(_settings(ctx)).provisioning_uri(account_name, secret), soft_wrap=True)
    except InvalidArgument as e:
        raise click.ClickException(str(e))


@main.command()
@click.option("--host", default="0.0.0.0")
@click.option("--port", type=int, default=8096)
@click.pass_context
def server(ctx: click.Context, host: str, port: int) -> None:
    """Start the API server."""
    import uvicorn

    from twofa.api.app import create_app
    from twofa.auth.totp import TotpEngine
    from twofa.service import TwoFactorService

    s = _settings(ctx)
    service = TwoFactorService(_store(ctx), TotpEngine.from_settings(s), s, EchoDirectory())
    console.print(f"Starting twofa on http://{host}:{port}")
    uvicorn.run(create_app(service), host=host, port=port, log_level="info")
