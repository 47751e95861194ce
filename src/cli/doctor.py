"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import httpx
import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import build_async_client, error_message
from core.config import AppSettings, get_user_env_file, write_user_env_vars

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()

_PROBES = {
    "XE": "/xe/test",
    "Gift cards": "/giftogram/test",
}


async def _check_api(settings: AppSettings, path: str) -> tuple[bool, str]:
    try:
        async with build_async_client(settings) as client:
            response = await client.get(path, params={"environment": settings.environment})
    except httpx.HTTPError as exc:
        return False, str(exc) or type(exc).__name__
    if response.is_success:
        return True, f"HTTP {response.status_code}"
    return False, f"HTTP {response.status_code}: {error_message(response)}"


async def _check_all(settings: AppSettings) -> dict[str, tuple[bool, str]]:
    names = list(_PROBES)
    results = await asyncio.gather(*(_check_api(settings, _PROBES[name]) for name in names))
    return dict(zip(names, results))


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="BulkPayout Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    table.add_row("API base_url", "OK", settings.api_base_url)
    if settings.api_token:
        table.add_row("API token", "OK", "Bearer token configured")
    else:
        table.add_row("API token", "MISSING", "Run `bulkpayout config set --token ...`")
    env_status = "WARN" if settings.environment == "production" else "OK"
    table.add_row("Environment", env_status, settings.environment)
    table.add_row("User config", "OK" if get_user_env_file().exists() else "NONE", str(get_user_env_file()))

    # Connectivity (best-effort)
    for name, (ok, detail) in asyncio.run(_check_all(settings)).items():
        table.add_row(f"{name} API", "OK" if ok else "FAIL", detail)

    _console.print(table)

    if settings.environment == "production":
        _console.print("\n[yellow]Note:[/yellow] bulk commands will move real money in production.")


@app.command(name="setup")
def setup() -> None:
    """Interactive setup (stores config in the user config .env)."""

    settings = AppSettings()
    base_url = typer.prompt("API base URL", default=settings.api_base_url, show_default=True).strip()
    environment = typer.prompt("Environment", default=settings.environment, show_default=True).strip().lower()
    token = typer.prompt("API token", hide_input=True, confirmation_prompt=False).strip()

    if environment not in ("sandbox", "production"):
        raise typer.BadParameter("environment must be 'sandbox' or 'production'")
    if not base_url:
        raise typer.BadParameter("base URL is required")

    env_path = write_user_env_vars(
        {
            "BULKPAYOUT_API_BASE_URL": base_url,
            "BULKPAYOUT_ENVIRONMENT": environment,
            "BULKPAYOUT_API_TOKEN": token,
        }
    )
    _console.print(f"[green]Saved config to:[/green] {env_path}")
