# Overview: Flask CLI command groups for bootstrap, inspection, and catalog setup.

# backend/mercantile/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default units (Piece, Box, Pack, Kilogram).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog units
#   List units with the number of products using each.
# - python -m flask catalog add-unit "Dozen"
#   Register a unit name.
#
# Stores:
# - python -m flask stores create --name "Main Store" --code MAIN
#   Create a store.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, ProductUnit, Unit
from .services import store_service, unit_service
from .validation import ConflictError, ValidationError

DEFAULT_UNITS = ("Piece", "Box", "Pack", "Kilogram")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create the schema and seed the default units.

    Safe to run more than once: existing units are left alone.
    """
    click.echo("START Initializing catalog...")
    db.create_all()

    for name in DEFAULT_UNITS:
        existing = db.session.query(Unit).filter(db.func.lower(Unit.name) == name.lower()).first()
        if existing:
            click.echo(f"SKIP Unit exists: {existing.name}")
            continue
        unit = unit_service.create_unit(name)
        click.echo(f"PASS Created unit: {unit.name} (id={unit.id})")

    click.echo("PASS Initialization complete.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('catalog')
def catalog_group():
    """Unit registry commands."""


@catalog_group.command('units')
@with_appcontext
def list_units_cli():
    """List units and how many products reference each."""
    units = unit_service.list_units()
    if not units:
        click.echo("No units. Run 'python -m flask system init' to seed defaults.")
        return

    click.echo(f"{'ID':<6} {'Name':<30} {'Base of':<10} {'Configured in':<14}")
    click.echo("-" * 62)
    for unit in units:
        base_of = db.session.query(Product).filter(Product.base_unit_id == unit.id).count()
        configured = db.session.query(ProductUnit).filter(ProductUnit.unit_id == unit.id).count()
        click.echo(f"{unit.id:<6} {unit.name:<30} {base_of:<10} {configured:<14}")


@catalog_group.command('add-unit')
@click.argument('name')
@with_appcontext
def add_unit_cli(name):
    """Register a new unit name."""
    try:
        unit = unit_service.create_unit(name)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created unit: {unit.name} (id={unit.id})")


@click.group('stores')
def stores_group():
    """Store bootstrap commands."""


@stores_group.command('create')
@click.option('--name', required=True, help='Store name')
@click.option('--code', help='Short store code (optional)')
@with_appcontext
def create_store_cli(name, code):
    """
    Create a store.

    Example:
        flask stores create --name "Main Store" --code MAIN
    """
    try:
        store = store_service.create_store(name=name, code=code)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created store: {store.name}")
    click.echo(f"   Code: {store.code or 'Not specified'}")
    click.echo(f"   Store ID: {store.id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(stores_group)
