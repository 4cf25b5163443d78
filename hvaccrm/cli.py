"""HVAC CRM CLI.

Commands:
- init: Initialize database schema
- quotes list: Search latest quotation versions
- quotes show: Show a quotation with its items and version history
- quotes stats: Counts and values by status
- quotes expire: Expire sent/viewed quotations past their validity date
- projects summary: Financial rollup for a project
- web serve: Run the HTTP API
"""

from __future__ import annotations

import asyncio
from datetime import date
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table

from hvaccrm.config import get_config
from hvaccrm.core.logging import configure_logging
from hvaccrm.db.connection import close_db, get_session, init_db
from hvaccrm.models import EmployeeRef, QuotationStatus
from hvaccrm.quotations import repository, service
from hvaccrm.quotations.errors import LifecycleError
from hvaccrm.reporting.financial import fetch_project_financial_summary

app = typer.Typer(
    name="hvaccrm",
    help="HVAC CRM - quotation lifecycle, invoicing and project financials",
    no_args_is_help=True,
)
quotes_cli = typer.Typer(help="Quotation tooling")
app.add_typer(quotes_cli, name="quotes")

projects_cli = typer.Typer(help="Project reporting")
app.add_typer(projects_cli, name="projects")

web_cli = typer.Typer(help="HTTP API")
app.add_typer(web_cli, name="web")

console = Console()


def _money(value) -> str:
    return f"{get_config().quotes.currency} {value:,.2f}"


def _run(coro) -> None:
    """Run a coroutine, disposing the engine afterwards and reporting lifecycle errors."""

    async def _wrapped():
        try:
            await coro
        finally:
            await close_db()

    try:
        asyncio.run(_wrapped())
    except LifecycleError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=1) from exc


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    configure_logging(config.log_level, config.log_format)
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@quotes_cli.command("list")
def quotes_list(
    search: str | None = typer.Option(None, "--search", "-s", help="Match quote number or title"),
    status: QuotationStatus | None = typer.Option(None, "--status", help="Filter by status"),
    project_id: UUID | None = typer.Option(None, "--project", help="Project ID"),
    page: int = typer.Option(1, "--page", min=1),
    limit: int = typer.Option(20, "--limit", min=1, max=100),
):
    """List latest quotation versions, newest first."""

    async def _list():
        async with get_session() as session:
            result = await repository.search_quotations(
                session, search=search, status=status, project_id=project_id, page=page, limit=limit
            )

            if not result.data:
                console.print("[yellow]No quotations found[/yellow]")
                return

            table = Table(title=f"Quotations (page {result.page}/{result.total_pages}, {result.total} total)")
            table.add_column("Number", style="cyan")
            table.add_column("Version")
            table.add_column("Title")
            table.add_column("Status")
            table.add_column("Total", justify="right", style="green")
            table.add_column("Valid until")

            for q in result.data:
                table.add_row(
                    q.quote_number,
                    q.version,
                    q.quote_title,
                    q.status,
                    _money(q.total_amount),
                    q.valid_until.isoformat() if q.valid_until else "-",
                )
            console.print(table)

    _run(_list())


@quotes_cli.command("show")
def quotes_show(quotation_id: UUID = typer.Argument(..., help="Quotation ID")):
    """Show a quotation with items and version history."""

    async def _show():
        async with get_session() as session:
            quotation = await repository.fetch_quotation(session, quotation_id)
            if quotation is None:
                console.print(f"[red]✗[/red] Quotation {quotation_id} not found")
                raise typer.Exit(code=1)

            console.print(
                f"[bold]{quotation.quote_number} {quotation.version}[/bold] "
                f"- {quotation.quote_title} ([cyan]{quotation.status}[/cyan])"
            )

            items = Table(title="Items")
            items.add_column("#", justify="right")
            items.add_column("Description")
            items.add_column("Qty", justify="right")
            items.add_column("Unit")
            items.add_column("Unit price", justify="right")
            items.add_column("Total", justify="right", style="green")
            for index, item in enumerate(quotation.items, start=1):
                items.add_row(
                    str(index),
                    item.description,
                    str(item.quantity),
                    item.unit,
                    _money(item.unit_price),
                    _money(item.total_amount),
                )
            console.print(items)

            console.print(f"  Subtotal: {_money(quotation.subtotal)}")
            console.print(
                f"  Discount ({quotation.discount_percentage}%): -{_money(quotation.discount_amount)}"
            )
            console.print(f"  Tax ({quotation.tax_rate}%): {_money(quotation.tax_amount)}")
            console.print(f"  [bold]Total: {_money(quotation.total_amount)}[/bold]")

            history = await repository.fetch_version_history(session, quotation.quote_number)
            if len(history.versions) > 1:
                console.print("\n[bold]Versions:[/bold]")
                for version in history.versions:
                    marker = " (latest)" if version.is_latest_version else ""
                    console.print(f"  • {version.version}: {version.status}{marker}")

    _run(_show())


@quotes_cli.command("stats")
def quotes_stats(
    project_id: UUID | None = typer.Option(None, "--project", help="Project ID"),
):
    """Show quotation statistics."""

    async def _stats():
        async with get_session() as session:
            stats = await repository.get_quotation_stats(session, project_id=project_id)

            table = Table(title="Quotation Statistics")
            table.add_column("Metric", style="cyan")
            table.add_column("Value", justify="right", style="green")

            table.add_row("Quotations", str(stats.total))
            for status_name, count in sorted(stats.by_status.items()):
                table.add_row(f"  {status_name}", str(count))
            table.add_row("Total value", _money(stats.total_value))
            table.add_row("Approved value", _money(stats.approved_value))
            table.add_row("Conversion rate", f"{stats.conversion_rate}%")

            console.print(table)

    _run(_stats())


@quotes_cli.command("expire")
def quotes_expire(
    actor: UUID = typer.Option(..., "--actor", help="Employee ID recorded as performing the change"),
    as_of: str | None = typer.Option(None, "--as-of", help="Date (YYYY-MM-DD), default today"),
):
    """Expire sent/viewed quotations whose validity date has passed."""
    config = get_config()
    configure_logging(config.log_level, config.log_format)
    today = date.fromisoformat(as_of) if as_of else None

    async def _expire():
        async with get_session() as session:
            expired = await service.expire_quotations(session, EmployeeRef(id=actor), today=today)
        console.print(f"[bold green]✓[/bold green] Expired {len(expired)} quotation(s)")
        for quotation_id in expired:
            console.print(f"  • {quotation_id}", style="dim")

    _run(_expire())


@projects_cli.command("summary")
def projects_summary(project_id: UUID = typer.Argument(..., help="Project ID")):
    """Show the financial rollup for a project."""

    async def _summary():
        async with get_session() as session:
            summary = await fetch_project_financial_summary(session, project_id)

        table = Table(title=f"Project {project_id}")
        table.add_column("Metric", style="cyan")
        table.add_column("Amount", justify="right", style="green")
        table.add_row("Budget", _money(summary.budget))
        table.add_row("Total quoted", _money(summary.total_quoted))
        table.add_row("Total invoiced", _money(summary.total_invoiced))
        table.add_row("Total received", _money(summary.total_received))
        table.add_row("Outstanding quotes", _money(summary.outstanding_quotes))
        table.add_row("Outstanding invoices", _money(summary.outstanding_invoices))
        table.add_row("Profit margin", summary.profit_margin_display)
        console.print(table)

    _run(_summary())


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI quotation service."""
    import uvicorn

    typer.echo(f"Starting HVAC CRM API on http://{host}:{port}")
    uvicorn.run("hvaccrm.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
