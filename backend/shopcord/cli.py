# Overview: Flask CLI command groups for bootstrap, accounts, catalog and the Discord bot.

# backend/shopcord/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Database:
# - python -m flask shop init-db
#   Create all tables (idempotent).
# - python -m flask shop reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Accounts:
# - python -m flask users create --username alice --discord-id 1234 [--admin] [--staff] [--points 100]
#   Create an account (Discord ID or email required).
# - python -m flask users token alice
#   Issue a new API token (printed once; the old token stops working).
# - python -m flask users list
#   List accounts with roles and balances.
#
# Catalog:
# - python -m flask catalog add-category --name "Games" --emoji 🎮
# - python -m flask catalog add-product --category-id 1 --name "Gift card" --price 1000 --stock 5
# - python -m flask catalog list
#
# Discord bot:
# - python -m flask bot run
#   Connect to the gateway and serve /buy and /order (needs DISCORD_BOT_TOKEN).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import UserAccount
from .errors import ShopError
from .services import account_service, catalog_service


@click.group('shop')
def shop_group():
    """Database bootstrap and repair commands."""


@shop_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables. Existing tables and data are left alone."""
    db.create_all()
    click.echo("PASS Tables created.")


@shop_group.command('reset-db')
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


@click.group('users')
def users_group():
    """Account inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Display name')
@click.option('--discord-id', default=None, help='Discord user ID')
@click.option('--email', default=None, help='Email address')
@click.option('--admin', 'is_admin', is_flag=True, help='Grant admin')
@click.option('--staff', 'is_staff', is_flag=True, help='Grant staff')
@click.option('--points', default=0, type=int, help='Starting points balance')
@click.option('--with-token', is_flag=True, help='Also issue an API token')
@with_appcontext
def create_user_cli(username, discord_id, email, is_admin, is_staff, points, with_token):
    """Create an account. At least one of --discord-id / --email is required."""
    try:
        user = account_service.create_account(
            username=username,
            discord_id=discord_id,
            email=email,
            is_admin=is_admin,
            is_staff=is_staff,
            points=points,
        )
    except ShopError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user {user.username} (ID: {user.id})")
    if with_token:
        click.echo(f"TOKEN {account_service.issue_api_token(user)}")


@users_group.command('token')
@click.argument('identifier')
@with_appcontext
def issue_token_cli(identifier):
    """Issue a new API token for a user (by ID, Discord ID or username)."""
    user = _find_user(identifier)
    if user is None:
        raise click.ClickException(f"User '{identifier}' not found")
    token = account_service.issue_api_token(user)
    click.echo(f"TOKEN {token}")
    click.echo("Store it now; it cannot be shown again.")


def _find_user(identifier: str):
    if identifier.isdigit():
        user = db.session.get(UserAccount, int(identifier))
        if user is not None:
            return user
        user = account_service.find_by_discord_id(identifier)
        if user is not None:
            return user
    return db.session.query(UserAccount).filter_by(username=identifier).first()


@users_group.command('list')
@with_appcontext
def list_users():
    """List all accounts with their roles and point balances."""
    users = db.session.query(UserAccount).order_by(UserAccount.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Discord ID':<22} {'Points':<10} {'Active':<8} {'Roles'}")
    click.echo("=" * 90)

    for user in users:
        roles = []
        if account_service.is_admin(user):
            roles.append("admin")
        if user.is_staff:
            roles.append("staff")
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.discord_id or '-':<22} {user.points:<10} "
            f"{'yes' if user.is_active else 'no':<8} {', '.join(roles) or '-'}"
        )
    click.echo("=" * 90 + "\n")


@click.group('catalog')
def catalog_group():
    """Catalog bootstrap commands."""


@catalog_group.command('add-category')
@click.option('--name', prompt=True)
@click.option('--emoji', default='📦')
@click.option('--description', default='')
@click.option('--display-order', default=0, type=int)
@with_appcontext
def add_category_cli(name, emoji, description, display_order):
    try:
        category = catalog_service.create_category({
            "name": name,
            "emoji": emoji,
            "description": description,
            "display_order": display_order,
        })
    except ShopError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created category {category.full_name} (ID: {category.id})")


@catalog_group.command('add-product')
@click.option('--category-id', type=int, required=True)
@click.option('--name', prompt=True)
@click.option('--price', type=int, prompt=True)
@click.option('--stock', type=int, default=0)
@click.option('--description', default='')
@click.option('--pre-order', is_flag=True, help='List as pre-order')
@with_appcontext
def add_product_cli(category_id, name, price, stock, description, pre_order):
    from .validation import enforce_rules_product

    patch = {
        "category_id": category_id,
        "name": name,
        "price": price,
        "stock": stock,
        "description": description,
        "status": "pre_order" if pre_order else "available",
    }
    try:
        enforce_rules_product(patch)
        product = catalog_service.create_product(patch)
    except ShopError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created product {product.name} (ID: {product.id}, status: {product.status})")


@catalog_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include hidden categories and products')
@with_appcontext
def list_catalog(show_all):
    """Print categories and their products."""
    for category in catalog_service.list_categories(include_hidden=show_all):
        click.echo(f"\n{category.full_name} (ID: {category.id}, order: {category.display_order})")
        for product in sorted(category.products, key=lambda p: p.name):
            if product.status == "hidden" and not show_all:
                continue
            click.echo(
                f"  {product.id:<5} {product.name:<30} {product.price:>10,} "
                f"stock={product.stock:<6} {product.status}"
            )


@click.group('bot')
def bot_group():
    """Discord bot commands."""


@bot_group.command('run')
@with_appcontext
def run_bot_cli():
    """Run the Discord bot in the foreground until interrupted."""
    from .bot.runner import run_bot

    if not current_app.config.get("DISCORD_BOT_TOKEN"):
        raise click.ClickException("DISCORD_BOT_TOKEN is not set")
    run_bot(current_app._get_current_object())


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(shop_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(bot_group)
