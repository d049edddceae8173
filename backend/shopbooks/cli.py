# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/shopbooks/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--shop "Shop Name"] [--shop-code MAIN]
#   Idempotent bootstrap: creates the tables, a default shop, a main branch and an owner user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --shop-id 1 --username clerk --email clerk@shop.local --password "Password123!" --role staff --branch-id 1
#
# Ledger diagnostics:
# - python -m flask ledger verify [--customer-id 12] [--shop-id 1]
#   Replay customer ledgers and report any entry whose stored balance disagrees.
# - python -m flask ledger balance 12
#   Print a customer's current balance.

import click
from flask.cli import with_appcontext

from .errors import ShopbooksError
from .extensions import db
from .models import Branch, Customer, Shop, User
from .services import ledger_service
from .services.auth_service import create_user, USER_ROLES


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--shop', 'shop_name', default='Main Shop', help='Shop name')
@click.option('--shop-code', default='MAIN', help='Shop code')
@with_appcontext
def init_system(shop_name, shop_code):
    """
    Initialize a working system: tables, default shop, main branch, owner user.

    Default credentials: owner / Password123!  (change in production)
    """
    click.echo("START Initializing Shopbooks...")
    db.create_all()

    shop = db.session.query(Shop).first()
    if not shop:
        shop = Shop(name=shop_name, code=shop_code, is_active=True)
        db.session.add(shop)
        db.session.commit()
        click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id}, Code: {shop.code})")
    else:
        click.echo(f"PASS Using existing shop: {shop.name} (ID: {shop.id})")

    branch = db.session.query(Branch).filter_by(shop_id=shop.id).first()
    if not branch:
        branch = Branch(shop_id=shop.id, name="Main Branch")
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    existing = db.session.query(User).filter_by(shop_id=shop.id, username="owner").first()
    if existing:
        click.echo("WARN  User 'owner' already exists, skipping...")
    else:
        try:
            create_user(
                shop_id=shop.id,
                username="owner",
                email="owner@shopbooks.local",
                password="Password123!",
                role="shop_owner",
            )
            click.echo("PASS Created user: owner (owner@shopbooks.local) with role 'shop_owner'")
        except ShopbooksError as e:
            click.echo(f"FAIL Failed to create user 'owner': {e}")

    click.echo("DONE Shopbooks initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--shop-id', type=int, required=True)
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(USER_ROLES), default='staff')
@click.option('--branch-id', type=int, default=None)
@with_appcontext
def create_user_command(shop_id, username, email, password, role, branch_id):
    """Create a user."""
    try:
        user = create_user(
            shop_id=shop_id,
            username=username,
            email=email,
            password=password,
            role=role,
            branch_id=branch_id,
        )
    except ShopbooksError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@click.group('ledger')
def ledger_group():
    """Customer ledger diagnostics."""


@ledger_group.command('verify')
@click.option('--customer-id', type=int, default=None, help='Verify a single customer')
@click.option('--shop-id', type=int, default=None, help='Limit to one shop')
@with_appcontext
def verify_ledgers(customer_id, shop_id):
    """Replay ledgers and report balance snapshot mismatches. Exits 1 on drift."""
    query = db.session.query(Customer.id)
    if customer_id is not None:
        query = query.filter(Customer.id == customer_id)
    if shop_id is not None:
        query = query.filter(Customer.shop_id == shop_id)

    failures = 0
    checked = 0
    for (cid,) in query.order_by(Customer.id).all():
        result = ledger_service.verify_customer_ledger(cid)
        checked += 1
        if result["ok"]:
            click.echo(f"PASS customer {cid}: {result['entry_count']} entries, balance {result['stored_balance']}")
        else:
            failures += 1
            click.echo(
                f"FAIL customer {cid}: stored {result['stored_balance']} vs computed "
                f"{result['computed_balance']}; first mismatch {result['first_mismatch']}"
            )

    click.echo(f"DONE {checked} customer ledger(s) checked, {failures} with drift")
    if failures:
        raise SystemExit(1)


@ledger_group.command('balance')
@click.argument('customer_id', type=int)
@with_appcontext
def show_balance(customer_id):
    """Print a customer's current balance."""
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        click.echo(f"FAIL Customer {customer_id} not found")
        raise SystemExit(1)
    click.echo(f"{customer.name}: {ledger_service.get_current_balance(customer_id)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
