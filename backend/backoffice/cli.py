# Overview: Flask CLI command groups for lottery inspection and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to backoffice (PowerShell: $env:FLASK_APP="backoffice").
# - Use: python -m flask <group> <command> [options]
#
# Lottery inspection:
# - python -m flask lottery status --store-id <uuid>
#   Show the store's current lottery business day and any pending close.
# - python -m flask lottery days --store-id <uuid> --limit 10
#   List recent lottery business days with totals.
#
# Maintenance:
# - python -m flask maintenance cleanup-expired-lottery-closes [--as-of 2026-01-01T00:00Z]
#   Revert expired PENDING_CLOSE lottery days to OPEN. Schedule this (cron,
#   systemd timer) every few minutes.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import LotteryBusinessDay
from .services import lottery_day_close_service, maintenance_service
from .services.lottery_close_validation import DayCloseError
from .time_utils import parse_iso_datetime


@click.group('lottery')
def lottery_group():
    """Lottery business day inspection commands."""


@lottery_group.command('status')
@click.option('--store-id', required=True, help='Store UUID')
@with_appcontext
def lottery_status_cli(store_id):
    """
    Show the current lottery business day of a store.

    Example:
        flask lottery status --store-id 0b6f...
    """
    try:
        status = lottery_day_close_service.get_day_status(store_id)
    except DayCloseError as exc:
        raise click.ClickException(f"{exc.code}: {exc.message}")

    if status is None:
        click.echo("No lottery business day for this store.")
        return

    click.echo(f"Day:      {status['day_id']}")
    click.echo(f"Date:     {status['business_date']}")
    click.echo(f"Status:   {status['status']}")
    if status['pending_close_at']:
        click.echo(f"Pending:  {status['pending_close_at']} (expires {status['pending_close_expires_at']})")


@lottery_group.command('days')
@click.option('--store-id', required=True, help='Store UUID')
@click.option('--status', type=click.Choice(['OPEN', 'PENDING_CLOSE', 'CLOSED']), help='Filter by status')
@click.option('--limit', type=int, default=10, help='Max days to show')
@with_appcontext
def list_days_cli(store_id, status, limit):
    """
    List recent lottery business days.

    Example:
        flask lottery days --store-id 0b6f...
        flask lottery days --store-id 0b6f... --status CLOSED
    """
    query = db.session.query(LotteryBusinessDay).filter_by(store_id=store_id)
    if status:
        query = query.filter_by(status=status)

    days = query.order_by(LotteryBusinessDay.opened_at.desc()).limit(limit).all()

    if not days:
        click.echo("No lottery days found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'Day':<38} {'Date':<12} {'Status':<14} {'Tickets':<8} {'Sales':<12} {'Closed'}")
    click.echo("="*100)

    for day in days:
        d = day.to_dict()
        sales_str = "-"
        if day.total_sales_cents is not None:
            sales_str = f"${day.total_sales_cents / 100:.2f}"
        tickets_str = str(day.total_tickets_sold) if day.total_tickets_sold is not None else "-"
        click.echo(
            f"{day.id:<38} {d['business_date']:<12} {day.status:<14} "
            f"{tickets_str:<8} {sales_str:<12} {d['closed_at'] or '-'}"
        )

    click.echo("="*100 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-expired-lottery-closes')
@click.option('--as-of', 'as_of', default=None, help='ISO-8601 cutoff (default: now)')
@with_appcontext
def cleanup_expired_lottery_closes_cli(as_of):
    """
    Revert expired pending lottery closes to OPEN.
    """
    try:
        cutoff = parse_iso_datetime(as_of)
    except ValueError:
        raise click.BadParameter(f"Not an ISO-8601 datetime: {as_of}", param_hint="--as-of")

    reverted = maintenance_service.cleanup_expired_pending_closes(now=cutoff)
    click.echo(f"Reverted {reverted} expired pending lottery close(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(lottery_group)
    app.cli.add_command(maintenance_group)
