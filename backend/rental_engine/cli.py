# Overview: Flask CLI command groups for schema bootstrap and the lifecycle sweep.

# backend/rental_engine/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Lifecycle:
# - python -m flask sweep run [--now 2025-06-10T08:00:00Z]
#   Send return reminders and overdue alerts, mark overdue orders.
#   Safe to run repeatedly; each notification goes out at most once per day.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import sweep_service
from .validation import ValidationError, coerce_datetime


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Database schema is up to date.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('sweep')
def sweep_group():
    """Scheduled lifecycle jobs."""


@sweep_group.command('run')
@click.option('--now', 'now_raw', default=None, help='ISO-8601 timestamp to run the sweep as of (default: now)')
@with_appcontext
def run_sweep(now_raw):
    """Run the return-reminder and overdue scans once."""
    now = None
    if now_raw:
        try:
            now = coerce_datetime(now_raw, "--now")
        except ValidationError as e:
            raise click.BadParameter(str(e), param_hint="--now")

    result = sweep_service.run_lifecycle_sweep(now=now)

    click.echo(f"Reminders sent:        {result.reminders_sent}")
    click.echo(f"Overdue alerts sent:   {result.overdue_alerts_sent}")
    click.echo(f"Orders marked overdue: {result.orders_marked_overdue}")
    if result.errors:
        click.echo(f"WARN {len(result.errors)} error(s):")
        for error in result.errors:
            click.echo(f"  - {error}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sweep_group)
