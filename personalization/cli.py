"""
Typer CLI for scheduled maintenance.

Commands:
    personalization expire             - Deactivate due recommendations
    personalization analyze            - Mine usage into insights for every user
    personalization seed-achievements  - Insert missing default achievements

Usage:
    personalization --help
    personalization expire --log-level DEBUG
"""
from __future__ import annotations

import typer
from rich import print as rprint

from personalization.core.logging import configure_logging
from personalization.services import jobs

app = typer.Typer(
    help="Personalization engine maintenance jobs",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option("INFO", "--log-level", help="Loguru level for this run"),
):
    configure_logging(log_level)


@app.command("expire")
def expire():
    """Run the recommendation expiry sweep once."""
    result = jobs.run_expiry_sweep()
    rprint("\n[bold cyan]Recommendation expiry sweep[/bold cyan]")
    rprint(f"  Students processed: {result.students_processed}")
    rprint(f"  Past TTL: {result.expired}")
    rprint(f"  Presented, never answered: {result.presented_timeouts}")
    rprint(f"  Ignored: {result.ignored_deactivated}")
    if result.failed_students:
        rprint(f"\n[yellow]⚠[/yellow] {len(result.failed_students)} students failed, check logs")
        raise typer.Exit(code=1)


@app.command("analyze")
def analyze():
    """Mine usage history into insights for every user with events."""
    result = jobs.run_insight_batch()
    rprint("\n[bold cyan]Insight analysis[/bold cyan]")
    rprint(f"  Users processed: {result.users_processed}")
    rprint(f"  Created: {result.insights_created}")
    rprint(f"  Merged: {result.insights_merged}")
    if result.failed_users:
        rprint(f"\n[yellow]⚠[/yellow] {len(result.failed_users)} users failed, check logs")
        raise typer.Exit(code=1)


@app.command("seed-achievements")
def seed_achievements():
    """Insert any missing default achievement definitions."""
    added = jobs.run_seed()
    rprint(f"[green]✓[/green] {added} achievements added")


if __name__ == "__main__":
    app()
