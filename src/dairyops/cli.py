"""DairyOps CLI - server and webhook tooling."""

import asyncio
import functools
import json
import sys
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any, ParamSpec, TypeVar

import aiohttp
import click
from rich.console import Console
from rich.table import Table

from dairyops.common.settings import Settings
from dairyops.common.signature import sign_header, verify_signature

console = Console()

P = ParamSpec("P")
R = TypeVar("R")


def async_command(f: Callable[P, Coroutine[Any, Any, R]]) -> Callable[P, R]:
    """Decorator to run async commands."""

    @functools.wraps(f)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return asyncio.run(f(*args, **kwargs))

    return wrapper


def _read_body(path: str) -> bytes:
    """Read a body file verbatim; ``-`` reads stdin."""
    if path == "-":
        return sys.stdin.buffer.read()
    body_path = Path(path).expanduser()
    if not body_path.exists():
        console.print(f"[red]Body file not found: {body_path}[/red]")
        sys.exit(1)
    return body_path.read_bytes()


def _require_secret(secret: str | None) -> str:
    if not secret:
        console.print("[red]Webhook secret required (--secret or DAIRYOPS_WEBHOOK_SECRET)[/red]")
        sys.exit(1)
    return secret


@click.group()
@click.option(
    "--url",
    default=None,
    help="DairyOps API base URL",
)
@click.pass_context
def cli(ctx: click.Context, url: str | None) -> None:
    """DairyOps CLI - run the API and exercise the payment webhook."""
    settings = Settings()
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["url"] = (url or f"http://localhost:{settings.port}").rstrip("/")


@cli.command("serve")
def serve() -> None:
    """Run the API server."""
    from dairyops.server.main import main as run_server

    run_server()


# === Webhook Tooling ===


@cli.command("sign-webhook")
@click.argument("body_file")
@click.option("--secret", envvar="DAIRYOPS_WEBHOOK_SECRET", help="Shared webhook secret")
@click.option("--bare", is_flag=True, help="Print bare hex instead of sha256=<hex>")
def sign_webhook(body_file: str, secret: str | None, bare: bool) -> None:
    """Print the signature header value for BODY_FILE."""
    body = _read_body(body_file)
    click.echo(sign_header(_require_secret(secret), body, prefixed=not bare))


@cli.command("verify-webhook")
@click.argument("body_file")
@click.argument("signature")
@click.option("--secret", envvar="DAIRYOPS_WEBHOOK_SECRET", help="Shared webhook secret")
def verify_webhook(body_file: str, signature: str, secret: str | None) -> None:
    """Check SIGNATURE against BODY_FILE."""
    body = _read_body(body_file)
    if verify_signature(body, signature, _require_secret(secret)):
        console.print("[green]✓ Signature valid[/green]")
    else:
        console.print("[red]✗ Signature invalid[/red]")
        sys.exit(1)


@cli.command("send-webhook")
@click.argument("body_file")
@click.option("--secret", envvar="DAIRYOPS_WEBHOOK_SECRET", help="Shared webhook secret")
@click.option("--bad-signature", is_flag=True, help="Send a corrupted signature")
@click.pass_context
@async_command
async def send_webhook(
    ctx: click.Context,
    body_file: str,
    secret: str | None,
    bad_signature: bool,
) -> None:
    """POST BODY_FILE, signed, to the payment webhook."""
    settings: Settings = ctx.obj["settings"]
    body = _read_body(body_file)
    signature = "bad" if bad_signature else sign_header(_require_secret(secret), body)
    headers = {
        settings.webhook_signature_header: signature,
        "Content-Type": "application/json",
    }

    url = f"{ctx.obj['url']}/api/webhook/payment"
    async with aiohttp.ClientSession() as session:
        try:
            async with session.post(url, data=body, headers=headers) as response:
                status = response.status
                text = await response.text()
        except aiohttp.ClientError as exc:
            console.print(f"[red]Error: {exc}[/red]")
            sys.exit(1)

    colour = "green" if status == 200 else "red"
    console.print(f"[{colour}]HTTP {status}[/{colour}] {text}")
    if status != 200:
        sys.exit(1)


# === Status Commands ===


@cli.command("health")
@click.pass_context
@async_command
async def health(ctx: click.Context) -> None:
    """Show API liveness."""
    url = f"{ctx.obj['url']}/health"
    async with aiohttp.ClientSession() as session:
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    console.print(f"[red]✗ API unhealthy: HTTP {response.status}[/red]")
                    sys.exit(1)
                payload = await response.json()
        except aiohttp.ClientError as exc:
            console.print(f"[red]✗ API unreachable: {exc}[/red]")
            sys.exit(1)

    table = Table(title="DairyOps API")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in payload.items():
        table.add_row(key, json.dumps(value) if not isinstance(value, str) else value)
    console.print(table)


def main() -> None:
    """CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
