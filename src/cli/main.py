"""BulkPayout CLI (Typer).

Commands only wire settings, adapters and services together and render the
outcome; every rule lives in `core.services`.
"""

from __future__ import annotations

import asyncio
import dataclasses
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.table import Table

from adapters.http_client import build_async_client
from adapters.json_exporter import export_report_json, export_result_json, load_ids_file
from adapters.rails import GiftCardRailClient, PayoutRailClient, XeRailClient, build_rail
from adapters.row_loader import RowsFile, load_rows_file
from cli import doctor
from cli.ui_components import (
    build_completion_panel,
    build_countdown_table,
    build_progress,
    build_result_table,
    build_totals_panel,
    build_validation_table,
    print_banner,
)
from core.config import AppSettings, write_user_env_vars
from core.domain.models import BulkEntity, BulkOperationResult, OperationError, ProgressEvent
from core.domain.provider import ProviderKind
from core.errors import BulkPayoutError
from core.logging_config import configure_logging
from core.services.bulk_orchestrator import (
    BulkPolicy,
    describe_error,
    map_with_partial_failure,
    run_bulk_create,
    run_bulk_with_policy,
    select_eligible,
    select_not_terminal,
    summarize,
    with_retry,
)
from core.services.expiry_timers import ExpiryTimerManager
from core.services.row_validation import validate_rows
from core.services.submission import submit_rows

app = typer.Typer(no_args_is_help=True, help="Bulk payouts across card, gift-card and FX bank-transfer rails.")
config_app = typer.Typer(no_args_is_help=True, help="Persisted configuration (user .env).")
app.add_typer(doctor.app, name="doctor")
app.add_typer(config_app, name="config")

_console = Console()

_PROVIDER_HELP = "Rail: paypal | xe | giftogram"


def _provider(value: str) -> ProviderKind:
    try:
        return ProviderKind.from_value(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _load(rows_file: Path) -> RowsFile:
    try:
        return load_rows_file(rows_file)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Cannot read rows from {rows_file}: {exc}") from exc


def _collect_ids(ids: Optional[List[str]], ids_file: Optional[Path]) -> list[str]:
    collected = list(ids or [])
    if ids_file is not None:
        try:
            collected.extend(load_ids_file(ids_file))
        except (OSError, ValueError) as exc:
            raise typer.BadParameter(f"Cannot read ids from {ids_file}: {exc}") from exc
    # Keep first occurrence order.
    unique = list(dict.fromkeys(i.strip() for i in collected if i.strip()))
    if not unique:
        raise typer.BadParameter("No ids given (pass them as arguments or with --ids-file)")
    return unique


@app.callback()
def _root(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING..."),
    banner: bool = typer.Option(False, "--banner", help="Show the welcome banner."),
) -> None:
    settings = AppSettings()
    configure_logging(log_level or settings.log_level, console=Console(stderr=True))
    if banner:
        print_banner(_console)


# ============================================================
# validate
# ============================================================


@app.command()
def validate(
    rows_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON rows produced by the sheet parser."),
    provider: str = typer.Option("paypal", "--provider", "-p", help=_PROVIDER_HELP),
    export: Optional[Path] = typer.Option(None, "--export", help="Write the report as JSON."),
) -> None:
    """Validate every row and show adjusted totals per currency."""

    settings = AppSettings()
    kind = _provider(provider)
    loaded = _load(rows_file)
    report = validate_rows(
        loaded.rows,
        kind,
        loaded.field_specs or None,
        denomination=settings.gift_card_denomination,
    )
    if report.errors:
        _console.print(build_validation_table(report))
    _console.print(build_totals_panel(report))
    if export is not None:
        path = export_report_json(report=report, output_path=export)
        _console.print(f"[green]Report written to:[/green] {path}")
    if not report.is_valid:
        raise typer.Exit(code=1)


# ============================================================
# submit
# ============================================================


async def _submit_payout(settings: AppSettings, loaded: RowsFile, skip_invalid: bool) -> bool:
    report = validate_rows(loaded.rows, ProviderKind.PAYOUT, loaded.field_specs or None)
    if report.errors:
        _console.print(build_validation_table(report))
        if not skip_invalid:
            _console.print(f"[red]{report.error_count} row(s) failed validation; nothing was submitted[/red]")
            return False
    if not report.valid_rows:
        _console.print("[red]No valid rows to submit[/red]")
        return False

    async with build_async_client(settings) as client:
        rail = PayoutRailClient(client, settings)
        outcome = await run_bulk_create(
            report.valid_rows,
            lambda rows: rail.create_batch(rows, report.adjusted_amounts),
        )
    if isinstance(outcome, OperationError):
        _console.print(f"[red]Batch creation failed:[/red] {outcome.message}")
        return False
    _console.print(
        f"[green]Created batch[/green] {outcome.id} ({len(outcome.member_ids) or report.valid_count} payment(s), "
        f"status {outcome.status.value}). Approve it with `bulkpayout approve -p paypal {outcome.id}`."
    )
    return True


async def _submit_streamed(
    settings: AppSettings,
    kind: ProviderKind,
    loaded: RowsFile,
    *,
    batch_id: Optional[str],
    skip_invalid: bool,
) -> bool:
    async with build_async_client(settings) as client:
        rail = build_rail(kind, client, settings)

        with build_progress(_console) as progress:
            task = progress.add_task(f"Submitting to {kind.label()}", total=None)

            def on_progress(event: ProgressEvent) -> None:
                progress.update(
                    task,
                    completed=event.processed,
                    total=event.total or None,
                    description=event.message or f"Submitting to {kind.label()}",
                )

            async def create(rows, adjusted, callback):
                if isinstance(rail, XeRailClient):
                    return await rail.stream_create_recipients(rows, adjusted, callback, batch_id=batch_id)
                assert isinstance(rail, GiftCardRailClient)
                target = batch_id or (await rail.create_batch(rows, adjusted)).id
                return await rail.process_stream(target, None, callback)

            outcome = await submit_rows(
                loaded.rows,
                kind,
                create,
                field_specs=loaded.field_specs or None,
                denomination=settings.gift_card_denomination,
                skip_invalid=skip_invalid,
                on_progress=on_progress,
            )

    if outcome.report.errors:
        _console.print(build_validation_table(outcome.report))
    if outcome.error is not None:
        _console.print(f"[red]Submission failed:[/red] {outcome.error.message}")
        return False
    assert outcome.completion is not None
    _console.print(build_completion_panel(outcome.completion))
    return outcome.ok and outcome.completion.failure_count == 0


@app.command()
def submit(
    rows_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON rows produced by the sheet parser."),
    provider: str = typer.Option("xe", "--provider", "-p", help=_PROVIDER_HELP),
    batch_id: Optional[str] = typer.Option(None, "--batch-id", help="Existing batch to attach/process."),
    skip_invalid: bool = typer.Option(False, "--skip-invalid", help="Submit the valid rows even if some are invalid."),
) -> None:
    """Validate, adjust and submit rows in one bulk create (streamed when the rail supports it)."""

    settings = AppSettings()
    kind = _provider(provider)
    loaded = _load(rows_file)
    if kind is ProviderKind.PAYOUT:
        ok = asyncio.run(_submit_payout(settings, loaded, skip_invalid))
    else:
        ok = asyncio.run(_submit_streamed(settings, kind, loaded, batch_id=batch_id, skip_invalid=skip_invalid))
    if not ok:
        raise typer.Exit(code=1)


# ============================================================
# approve / cancel
# ============================================================


async def _select(
    rail,
    kind: ProviderKind,
    ids: list[str],
    action: str,
    policy: BulkPolicy,
) -> tuple[list[str], dict[str, str]]:
    """Fetch authoritative state and keep the ids the action can apply to."""

    fetched = await map_with_partial_failure(
        ids,
        rail.fetch,
        max_concurrency=policy.max_concurrency,
        item_timeout=policy.item_timeout_seconds,
    )
    entities: list[BulkEntity] = list(fetched.ok)
    skipped = {e.item: f"fetch failed: {describe_error(e.error)}" for e in fetched.err}

    if action == "approve" and kind is ProviderKind.BANK_TRANSFER:
        timers = ExpiryTimerManager()
        for entity in entities:
            timers.track_entity(entity)
        selected = select_eligible(entities, timers)
        reason = "not pending or quote expired"
    else:
        selected = select_not_terminal(entities)
        reason = "already in a final state"
    for entity in entities:
        if entity.id not in selected:
            skipped[entity.id] = f"{reason} ({entity.status.value})"
    return selected, skipped


async def _run_bulk_action(
    settings: AppSettings,
    kind: ProviderKind,
    ids: list[str],
    action: str,
    *,
    check: bool,
    retry: int,
    concurrency: Optional[int],
) -> tuple[BulkOperationResult, dict[str, str]]:
    policy = BulkPolicy.from_settings(settings)
    if concurrency:
        policy = dataclasses.replace(policy, max_concurrency=concurrency)

    async with build_async_client(settings) as client:
        rail = build_rail(kind, client, settings)
        selected, skipped = list(ids), {}
        if check:
            selected, skipped = await _select(rail, kind, ids, action, policy)

        operation = rail.approve if action == "approve" else rail.cancel
        if retry:
            operation = with_retry(operation, attempts=retry + 1)

        with build_progress(_console) as progress:
            task = progress.add_task(f"{action.title()} {len(selected)} item(s)", total=len(selected))
            result = await run_bulk_with_policy(
                selected,
                operation,
                policy,
                on_result=lambda _id, _err: progress.advance(task),
            )
    return result, skipped


def _bulk_command(
    action: str,
    provider: str,
    ids: Optional[List[str]],
    ids_file: Optional[Path],
    check: bool,
    retry: int,
    concurrency: Optional[int],
    export: Optional[Path],
) -> None:
    settings = AppSettings()
    kind = _provider(provider)
    targets = _collect_ids(ids, ids_file)

    try:
        result, skipped = asyncio.run(
            _run_bulk_action(settings, kind, targets, action, check=check, retry=retry, concurrency=concurrency)
        )
    except BulkPayoutError as exc:
        _console.print(f"[red]{action.title()} aborted:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    if skipped:
        table = Table(title="Skipped")
        table.add_column("Id", style="cyan", no_wrap=True)
        table.add_column("Reason", style="yellow")
        for entity_id, reason in skipped.items():
            table.add_row(entity_id, reason)
        _console.print(table)
    _console.print(build_result_table(result, title=action.title()))
    _console.print(f"[bold]{summarize(result)}[/bold]")

    if export is not None:
        path = export_result_json(result=result, output_path=export, operation=action)
        _console.print(f"[green]Result written to:[/green] {path} (retry failures with --ids-file)")
    if result.failure_count:
        raise typer.Exit(code=1)


@app.command()
def approve(
    ids: Optional[List[str]] = typer.Argument(None, help="Entity ids (contract numbers or batch ids)."),
    provider: str = typer.Option("xe", "--provider", "-p", help=_PROVIDER_HELP),
    ids_file: Optional[Path] = typer.Option(None, "--ids-file", help="Ids list or an exported result (failed ids)."),
    check: bool = typer.Option(True, "--check/--no-check", help="Fetch state first and skip ineligible ids."),
    retry: int = typer.Option(0, "--retry", min=0, max=5, help="Retries for transient failures (opt-in)."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", min=1, max=50),
    export: Optional[Path] = typer.Option(None, "--export", help="Write the result as JSON."),
) -> None:
    """Approve many entities; failures never stop the remaining ids."""

    _bulk_command("approve", provider, ids, ids_file, check, retry, concurrency, export)


@app.command()
def cancel(
    ids: Optional[List[str]] = typer.Argument(None, help="Entity ids (contract numbers or batch ids)."),
    provider: str = typer.Option("xe", "--provider", "-p", help=_PROVIDER_HELP),
    ids_file: Optional[Path] = typer.Option(None, "--ids-file", help="Ids list or an exported result (failed ids)."),
    check: bool = typer.Option(True, "--check/--no-check", help="Fetch state first and skip final ids."),
    retry: int = typer.Option(0, "--retry", min=0, max=5, help="Retries for transient failures (opt-in)."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", min=1, max=50),
    export: Optional[Path] = typer.Option(None, "--export", help="Write the result as JSON."),
) -> None:
    """Cancel many entities; failures never stop the remaining ids."""

    _bulk_command("cancel", provider, ids, ids_file, check, retry, concurrency, export)


# ============================================================
# watch
# ============================================================


async def _watch(settings: AppSettings, ids: list[str], limit: int, once: bool) -> None:
    async with build_async_client(settings) as client:
        rail = XeRailClient(client, settings)
        if ids:
            fetched = await map_with_partial_failure(ids, rail.fetch, max_concurrency=settings.bulk_max_concurrency)
            for err in fetched.err:
                _console.print(f"[yellow]{err.item}:[/yellow] {describe_error(err.error)}")
            entities = list(fetched.ok)
        else:
            entities = await rail.list_contracts(limit=limit)

    if not entities:
        _console.print("[dim]No contracts to watch.[/dim]")
        return

    timers = ExpiryTimerManager(tick_seconds=settings.timer_tick_seconds)
    for entity in entities:
        timers.track_entity(entity)

    if once:
        _console.print(build_countdown_table(entities, timers))
        return

    with Live(build_countdown_table(entities, timers), console=_console, refresh_per_second=4) as live:
        async with timers:
            while any(timers.seconds_left(e.id) > 0 for e in entities):
                live.update(build_countdown_table(entities, timers))
                await asyncio.sleep(settings.timer_tick_seconds)
            live.update(build_countdown_table(entities, timers))


@app.command()
def watch(
    ids: Optional[List[str]] = typer.Argument(None, help="Contract numbers (default: latest contracts)."),
    limit: int = typer.Option(20, "--limit", min=1, max=100),
    once: bool = typer.Option(False, "--once", help="Print the countdowns once and exit."),
) -> None:
    """Live countdown of FX quote expiries until every tracked quote expires."""

    settings = AppSettings()
    try:
        asyncio.run(_watch(settings, list(ids or []), limit, once))
    except KeyboardInterrupt:
        _console.print("[dim]Stopped.[/dim]")
    except BulkPayoutError as exc:
        _console.print(f"[red]Watch failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc


# ============================================================
# config
# ============================================================


@config_app.command("set")
def config_set(
    token: Optional[str] = typer.Option(None, "--token", help="Bearer token for the backend."),
    base_url: Optional[str] = typer.Option(None, "--base-url"),
    environment: Optional[str] = typer.Option(None, "--environment", help="sandbox | production"),
) -> None:
    """Persist values in the user config .env."""

    values: dict[str, str] = {}
    if token:
        values["BULKPAYOUT_API_TOKEN"] = token.strip()
    if base_url:
        values["BULKPAYOUT_API_BASE_URL"] = base_url.strip()
    if environment:
        environment = environment.strip().lower()
        if environment not in ("sandbox", "production"):
            raise typer.BadParameter("environment must be 'sandbox' or 'production'")
        values["BULKPAYOUT_ENVIRONMENT"] = environment
    if not values:
        raise typer.BadParameter("Nothing to set (use --token, --base-url or --environment)")

    env_path = write_user_env_vars(values)
    _console.print(f"[green]Saved {', '.join(sorted(values))} to:[/green] {env_path}")


@config_app.command("show")
def config_show() -> None:
    """Print the effective configuration (token masked)."""

    settings = AppSettings()
    table = Table(title="Effective configuration")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    for name, value in settings.model_dump().items():
        if name == "api_token":
            value = "set" if value else "not set"
        table.add_row(name, str(value))
    _console.print(table)


def run() -> None:
    app()
