"""
CLI command tests via Flask's CliRunner.
"""

from shopcord.models import Category, Product, UserAccount
from shopcord.services import account_service


def test_create_user_with_token(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'users', 'create', '--username', 'owner', '--discord-id', '777', '--admin', '--with-token',
    ])

    assert result.exit_code == 0, result.output
    assert "PASS Created user owner" in result.output
    user = db_session.query(UserAccount).filter_by(discord_id="777").one()
    assert user.is_admin
    token = [line for line in result.output.splitlines() if line.startswith("TOKEN ")][0][6:]
    assert account_service.get_user_by_token(token).id == user.id


def test_create_user_requires_identity(app, db_session):
    result = app.test_cli_runner().invoke(args=['users', 'create', '--username', 'ghost'])

    assert result.exit_code != 0
    assert "discord_id or email is required" in result.output


def test_token_for_unknown_user(app, db_session):
    result = app.test_cli_runner().invoke(args=['users', 'token', 'nobody'])

    assert result.exit_code != 0
    assert "not found" in result.output


def test_list_users(app, db_session, customer, staff):
    result = app.test_cli_runner().invoke(args=['users', 'list'])

    assert result.exit_code == 0
    assert customer.username in result.output
    assert "staff" in result.output


def test_catalog_bootstrap(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['catalog', 'add-category', '--name', 'Games', '--emoji', '🎮'])
    assert result.exit_code == 0, result.output
    category = db_session.query(Category).filter_by(name="Games").one()

    result = runner.invoke(args=[
        'catalog', 'add-product', '--category-id', str(category.id),
        '--name', 'Gift card', '--price', '1000', '--stock', '5', '--pre-order',
    ])
    assert result.exit_code == 0, result.output
    product = db_session.query(Product).filter_by(name="Gift card").one()
    assert product.status == "pre_order"
    assert product.stock == 5

    result = runner.invoke(args=['catalog', 'list'])
    assert "Gift card" in result.output


def test_add_product_rejects_negative_price(app, db_session, category):
    result = app.test_cli_runner().invoke(args=[
        'catalog', 'add-product', '--category-id', str(category.id), '--name', 'Broken', '--price', '-5',
    ])

    assert result.exit_code != 0
    assert db_session.query(Product).filter_by(name="Broken").count() == 0


def test_bot_run_needs_token(app, db_session):
    result = app.test_cli_runner().invoke(args=['bot', 'run'])

    assert result.exit_code != 0
    assert "DISCORD_BOT_TOKEN is not set" in result.output
