"""CLI UI components (Rich).

Why separate components:
- Avoids mixing command logic with visual details.
- Lets several commands reuse the same tables/panels.
"""

from __future__ import annotations

from collections.abc import Iterable

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from core.domain.models import BulkEntity, BulkOperationResult, CompletionEvent
from core.services.bulk_orchestrator import summarize
from core.services.expiry_timers import ExpiryTimerManager, countdown_urgency, format_countdown
from core.services.row_validation import ValidationReport

_URGENCY_STYLE = {"ok": "green", "warning": "yellow", "expired": "red"}


def print_banner(console: Console) -> None:
    """Print the welcome banner.

    Kept here so main and doctor can share it without importing each other.
    """

    title = Text("BulkPayout", style="bold cyan")
    subtitle = Text("Validate • Submit • Approve before quotes expire", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_validation_table(report: ValidationReport) -> Table:
    table = Table(title=f"Validation ({report.provider.label()})")
    table.add_column("Row", style="cyan", no_wrap=True, justify="right")
    table.add_column("Field", style="white")
    table.add_column("Problem", style="red")
    for error in report.errors:
        for message in error.general_errors:
            table.add_row(str(error.row_number), "-", message)
        for field, message in error.field_errors.items():
            table.add_row(str(error.row_number), field, message)
    return table


def build_totals_panel(report: ValidationReport) -> Panel:
    body = Text()
    body.append(f"{report.valid_count} valid", style="green")
    body.append(" / ")
    body.append(f"{report.error_count} with errors", style="red" if report.error_count else "dim")
    body.append(f" / {report.total_rows} total\n")
    for code, amount in report.totals_by_currency.items():
        body.append(f"\n{code}: ", style="bold")
        body.append(f"{amount:,.2f}")
    if not report.totals_by_currency:
        body.append("\nNo payable amount", style="dim")
    return Panel(body, title="Batch totals (adjusted)", border_style="cyan")


def build_result_table(result: BulkOperationResult, *, title: str = "Bulk result") -> Table:
    table = Table(title=f"{title}: {summarize(result)}")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Error", style="red")
    for entity_id in result.succeeded:
        table.add_row(entity_id, "[green]OK[/green]", "")
    for item in result.failed:
        table.add_row(item.id, "[red]FAILED[/red]", item.error_message)
    return table


def build_completion_panel(event: CompletionEvent) -> Panel:
    body = Text()
    body.append(f"{event.success_count} succeeded", style="green")
    body.append(", ")
    body.append(f"{event.failure_count} failed", style="red" if event.failure_count else "dim")
    if event.synthesized:
        body.append("\nConnection closed before the server reported a result.", style="yellow")
    for item in event.per_item_results:
        if item.error:
            body.append(f"\n- {item.id or '?'}: {item.error}", style="red")
    style = "yellow" if event.synthesized else ("red" if event.failure_count else "green")
    return Panel(body, title="Submission", border_style=style)


def build_countdown_table(entities: Iterable[BulkEntity], timers: ExpiryTimerManager) -> Table:
    table = Table(title="Quote expiry")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Amount", justify="right")
    table.add_column("Expires in", justify="right")
    table.add_column("Approvable", justify="center")
    for entity in entities:
        entity = timers.apply_expiry(entity)
        seconds = timers.seconds_left(entity.id)
        style = _URGENCY_STYLE[countdown_urgency(seconds)]
        table.add_row(
            entity.id,
            entity.status.value,
            f"{entity.amount:,.2f} {entity.currency}",
            f"[{style}]{format_countdown(seconds)}[/{style}]",
            "yes" if timers.is_eligible_for_approval(entity) else "-",
        )
    return table


def build_progress(console: Console | None = None) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=False,
    )
