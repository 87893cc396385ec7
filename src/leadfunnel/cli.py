"""Command-line interface for the lead funnel."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from leadfunnel.affiliates.service import AffiliateService
from leadfunnel.attribution.engine import CommissionEngine
from leadfunnel.errors import LeadFunnelError
from leadfunnel.logging_config import configure_logging, get_logger
from leadfunnel.settings import settings
from leadfunnel.stats.aggregator import StatsService
from leadfunnel.storage.db import db

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="leadfunnel",
    help="Lead Funnel - lead capture and affiliate attribution",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("affiliate-create")
def create_affiliate(
    name: Annotated[str, typer.Option("--name", "-n", help="Affiliate full name")],
    email: Annotated[str, typer.Option("--email", "-e", help="Affiliate email")],
    phone: Annotated[str | None, typer.Option("--phone", "-p", help="Phone number")] = None,
    commission_rate: Annotated[
        float | None, typer.Option("--rate", "-r", help="Commission per approved lead")
    ] = None,
    payment_method: Annotated[str, typer.Option("--payment-method", help="Payout method")] = "paypal",
) -> None:
    """Register an affiliate and print the issued referral code."""
    try:
        affiliate = AffiliateService().create(
            name=name,
            email=email,
            phone=phone,
            commission_rate=commission_rate,
            payment_method=payment_method,
        )
    except LeadFunnelError as e:
        console.print(f"[bold red]✗[/bold red] Affiliate not created: {e}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓[/bold green] Affiliate created with ID: [bold]{affiliate.id}[/bold]")
    console.print(f"  Code: [bold]{affiliate.affiliate_code}[/bold]")
    console.print(f"  Commission rate: {affiliate.commission_rate:.2f}")


@app.command("affiliate-list")
def list_affiliates(
    status: Annotated[str | None, typer.Option("--status", "-s", help="Filter by status")] = None,
) -> None:
    """List affiliates with their commission counters."""
    affiliates, total = AffiliateService().list(status=status, page_size=100)
    if not affiliates:
        console.print("[yellow]No affiliates found[/yellow]")
        return

    table = Table(title=f"Affiliates ({total})")
    table.add_column("ID", style="cyan")
    table.add_column("Code", style="green")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Referrals", justify="right")
    table.add_column("Approved", justify="right")
    table.add_column("Pending", justify="right")
    table.add_column("Paid", justify="right")

    for affiliate in affiliates:
        table.add_row(
            str(affiliate.id),
            affiliate.affiliate_code,
            affiliate.name[:30],
            affiliate.status,
            str(affiliate.total_referrals),
            str(affiliate.approved_referrals),
            f"{affiliate.pending_commissions:.2f}",
            f"{affiliate.paid_commissions:.2f}",
        )

    console.print(table)


@app.command("reconcile")
def reconcile(
    limit: Annotated[int, typer.Option("--limit", "-l", help="Max events to retry")] = 500,
) -> None:
    """Apply attribution events that failed inline."""
    console.print("[bold blue]Reconciling attribution events...[/bold blue]")
    try:
        report = CommissionEngine().reconcile(limit=limit)
    except LeadFunnelError as e:
        console.print(f"[bold red]✗[/bold red] Reconcile failed: {e}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓[/bold green] Applied {report.applied}/{report.attempted} events")
    if report.remaining:
        console.print(f"[yellow]{report.remaining} events still pending[/yellow]")


@app.command("stats")
def show_stats() -> None:
    """Show lead and affiliate dashboard statistics."""
    service = StatsService(top_n=settings.stats_top_n)
    leads = service.lead_stats()
    affiliates = service.affiliate_stats()

    console.print(f"[bold]Total leads:[/bold] {leads.total_leads}")
    console.print(f"[bold]Qualified:[/bold] {leads.qualified_count}")
    console.print(f"[bold]Referred:[/bold] {leads.referred_leads}")
    console.print(f"[bold]Conversion rate:[/bold] {leads.conversion_rate:.2%}")
    console.print(f"[bold]Avg time to complete:[/bold] {leads.average_time_to_complete}s")

    table = Table(title="Status breakdown")
    table.add_column("Status", style="green")
    table.add_column("Count", justify="right")
    for status, count in leads.status_breakdown.items():
        table.add_row(status, str(count))
    console.print(table)

    if leads.top_states:
        console.print("\n[bold]Top states:[/bold]")
        for entry in leads.top_states:
            console.print(f"  {entry['state']}: {entry['count']}")

    console.print(
        f"\n[bold]Affiliates:[/bold] {affiliates.total_affiliates} "
        f"({affiliates.active_affiliates} active)"
    )
    console.print(
        f"[bold]Commissions:[/bold] total {affiliates.total_commissions:.2f}, "
        f"pending {affiliates.pending_commissions:.2f}, paid {affiliates.paid_commissions:.2f}"
    )


if __name__ == "__main__":
    app()
