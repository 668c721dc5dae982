# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables (if missing) and seed one sequence counter per document kind.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tracked entities:
# - python -m flask entities create --type stock_item --ref ITEM-1 --name "Claw hammer"
#   Register an item, customer, supplier or bank account.
# - python -m flask entities list [--type customer] [--all]
#   List registered entities.
#
# Ledger inspection:
# - python -m flask ledger balance --type stock_item --ref ITEM-1 [--location MAIN]
#   Print the projected balance.
# - python -m flask ledger reconcile [--type stock_item --ref ITEM-1]
#   Offline drift report. Exit code 1 if any projection disagrees with its movements.

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import LedgerError
from .models import ENTITY_TYPES
from .services import entity_service, ledger_service
from .services.document_service import ensure_sequence_counters


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the ledger database.

    Idempotent: safe to run on an existing database.
    """
    click.echo("START Initializing ledger database...")
    db.create_all()
    created = ensure_sequence_counters()
    click.echo(f"PASS Sequence counters seeded: {created} new")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    ensure_sequence_counters()

    click.echo("PASS Database reset complete.")


@click.group('entities')
def entities_group():
    """Tracked entity registry."""


@entities_group.command('create')
@click.option('--type', 'entity_type', type=click.Choice(ENTITY_TYPES), required=True)
@click.option('--ref', required=True, help='Business reference, e.g. ITEM-1')
@click.option('--name', default=None)
@with_appcontext
def create_entity_cli(entity_type, ref, name):
    """
    Register a tracked entity.

    Example:
        flask entities create --type supplier --ref SUP-1 --name "Acme Tools"
    """
    try:
        entity = entity_service.register_entity(entity_type, ref, name=name)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created {entity.entity_type} {entity.ref} (ID: {entity.id})")


@entities_group.command('list')
@click.option('--type', 'entity_type', type=click.Choice(ENTITY_TYPES), default=None)
@click.option('--all', 'show_all', is_flag=True, help='Show inactive entities too')
@with_appcontext
def list_entities_cli(entity_type, show_all):
    entities = entity_service.list_entities(entity_type, include_inactive=show_all)

    if not entities:
        click.echo("No entities found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Type':<14} {'Ref':<20} {'Name':<30} {'Active'}")
    click.echo("="*80)
    for entity in entities:
        click.echo(
            f"{entity.id:<6} {entity.entity_type:<14} {entity.ref:<20} "
            f"{(entity.name or '')[:30]:<30} {'Yes' if entity.is_active else 'No'}"
        )
    click.echo("="*80)
    click.echo(f"Total: {len(entities)} entities\n")


@click.group('ledger')
def ledger_group():
    """Balance ledger inspection."""


@ledger_group.command('balance')
@click.option('--type', 'entity_type', type=click.Choice(ENTITY_TYPES), required=True)
@click.option('--ref', required=True)
@click.option('--location', default=None, help='Stock location (defaults to DEFAULT_LOCATION)')
@with_appcontext
def balance_cli(entity_type, ref, location):
    try:
        balance = ledger_service.get_balance(entity_type, ref, location)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"{entity_type} {ref}{' @ ' + location if location else ''}: {balance}")


@ledger_group.command('reconcile')
@click.option('--type', 'entity_type', type=click.Choice(ENTITY_TYPES), default=None)
@click.option('--ref', default=None)
@click.option('--location', default=None)
@with_appcontext
def reconcile_cli(entity_type, ref, location):
    """
    Compare every projection with the sum of its movements.

    Reports drift, never corrects it. Exits 1 when drift is found.
    """
    if bool(entity_type) != bool(ref):
        raise click.UsageError("--type and --ref must be given together")

    try:
        if entity_type:
            results = ledger_service.reconcile(entity_type, ref, location)
        else:
            results = ledger_service.reconcile_all()
    except LedgerError as e:
        raise click.ClickException(e.message)

    drift = [r for r in results if not r.ok]
    for r in drift:
        click.echo(
            f"FAIL {r.entity_type} {r.ref} @ {r.location or '-'}: "
            f"projection {r.projected}, ledger {r.ledger_sum}, drift {r.drift}"
        )

    if drift:
        click.echo(f"FAIL {len(drift)} of {len(results)} balances drifted")
        sys.exit(1)
    click.echo(f"PASS {len(results)} balances reconciled")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(entities_group)
    app.cli.add_command(ledger_group)
