# Overview: Flask CLI command groups for bootstrap, bulk intake, and consignment maintenance.

# backend/unitledger/cli.py
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
# Bulk intake:
# - python -m flask units import-csv units.csv --origin PURCHASE [--reference INV-1] [--warranty-months 12]
#   Import units from a CSV (or .xlsx) with columns product_code,serial,cost,lot,notes.
#
# Consignment maintenance:
# - python -m flask consignments expire [--as-of 2024-06-30]
#   Mark open consignments whose due date has passed as EXPIRED.
# - python -m flask consignments reconcile [--consignee-id 1]
#   Check balance identities; exits non-zero when any consignee is inconsistent.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Consignee
from .services import balance_service, consignment_service, intake_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Database tables created")


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
    click.echo("BUILD Recreating schema...")
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('units')
def units_group():
    """Serialized unit intake commands."""


@units_group.command('import-csv')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--origin', default='IMPORT', help='Origin tag (PURCHASE, PRODUCTION, IMPORT, ...)')
@click.option('--reference', default=None, help='Batch reference (default IMP-<date>)')
@click.option('--warranty-months', type=int, default=None, help='Warranty months (default from config)')
@click.option('--notes', default=None, help='Batch notes')
@with_appcontext
def import_csv(path, origin, reference, warranty_months, notes):
    """Import units from a CSV or .xlsx spreadsheet."""
    if path.lower().endswith(".xlsx"):
        with open(path, "rb") as fh:
            rows = intake_service.read_xlsx_rows(fh)
    else:
        with open(path, encoding="utf-8-sig", newline="") as fh:
            rows = intake_service.read_csv_rows(fh.read())

    if not rows:
        click.echo("WARN  No rows found")
        return

    try:
        result = intake_service.import_rows(
            rows=rows,
            origin=origin,
            reference=reference,
            warranty_months=warranty_months,
            notes=notes,
        )
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Reference {result.reference}: {result.succeeded} imported, {result.failed} failed")
    for summary in result.products:
        click.echo(
            f"  {summary.product_ref}: +{summary.added} (failed {summary.failed}, stock {summary.stock_after})"
        )
    for detail in result.details:
        if detail.error:
            click.echo(f"  FAIL {detail.serial}: {detail.error}")


@click.group('consignments')
def consignments_group():
    """Consignment maintenance commands."""


@consignments_group.command('expire')
@click.option('--as-of', default=None, help='ISO date/datetime (default: now)')
@with_appcontext
def expire(as_of):
    """Mark overdue open consignments as EXPIRED."""
    try:
        count = consignment_service.mark_expired(as_of)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {count} consignment(s) marked EXPIRED")


@consignments_group.command('reconcile')
@click.option('--consignee-id', type=int, default=None, help='Only check this consignee')
@with_appcontext
def reconcile(consignee_id):
    """Verify consignee and consignment balance identities."""
    if consignee_id is not None:
        ids = [consignee_id]
    else:
        ids = [row[0] for row in db.session.query(Consignee.id).order_by(Consignee.id).all()]

    failures = 0
    for cid in ids:
        try:
            violations = balance_service.reconcile(cid)
        except ValueError as e:
            raise click.ClickException(str(e))
        if violations:
            failures += 1
            click.echo(f"FAIL Consignee {cid}:")
            for violation in violations:
                click.echo(f"  - {violation}")
    if failures:
        raise click.ClickException(f"{failures} consignee(s) out of balance")
    click.echo(f"PASS {len(ids)} consignee(s) reconciled")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(units_group)
    app.cli.add_command(consignments_group)
