"""
Pytest fixtures for shopcord backend tests.

Provides an in-memory database, a per-test table wipe, a recording notifier
in place of Discord, seeded accounts with API tokens, and a small catalog.
"""

import pytest
from shopcord import create_app
from shopcord.extensions import db
from shopcord.errors import UpstreamError
from shopcord.models import Category, Product, UserAccount
from shopcord.services.account_service import issue_api_token
from shopcord.services.notification_service import EXTENSION_KEY, Notifier


ADMIN_CHANNEL = "900000000000000001"
ALLOW_LISTED_DISCORD_ID = "424242"


class RecordingNotifier(Notifier):
    """Captures outbound messages; set fail=True to simulate Discord rejecting them."""

    def __init__(self):
        self.direct_messages = []
        self.channel_posts = []
        self.fail = False

    def send_direct_message(self, discord_id, *, content=None, embeds=None, components=None):
        if self.fail:
            raise UpstreamError("Cannot send messages to this user", status_code=403)
        self.direct_messages.append({
            "discord_id": discord_id,
            "content": content,
            "embeds": embeds or [],
            "components": components or [],
        })

    def post_to_channel(self, channel_id, *, content=None, embeds=None, components=None):
        if self.fail:
            raise UpstreamError("Missing access", status_code=403)
        self.channel_posts.append({
            "channel_id": channel_id,
            "content": content,
            "embeds": embeds or [],
            "components": components or [],
        })

    def dm_titles(self, discord_id):
        return [
            embed.get("title")
            for message in self.direct_messages
            if message["discord_id"] == discord_id
            for embed in message["embeds"]
        ]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DISCORD_BOT_TOKEN': None,
        'ADMIN_CHANNEL_ID': ADMIN_CHANNEL,
        'ORDER_NOTIFICATION_CHANNEL_ID': ADMIN_CHANNEL,
        'ADMIN_DISCORD_IDS': {ALLOW_LISTED_DISCORD_ID},
        'DASHBOARD_URL': 'https://shop.example.com',
        'BANK_TRANSFER_DETAILS': 'Example Bank 1234567',
        'POINTS_REWARD_RATE': 0.05,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function', autouse=True)
def notifier(app):
    """Swap Discord delivery for an in-memory recorder for every test."""
    original = app.extensions[EXTENSION_KEY]
    recorder = RecordingNotifier()
    app.extensions[EXTENSION_KEY] = recorder
    yield recorder
    app.extensions[EXTENSION_KEY] = original


@pytest.fixture(scope='function')
def customer(db_session):
    user = UserAccount(username="buyer", discord_id="1001", points=3000)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_customer(db_session):
    user = UserAccount(username="someone-else", discord_id="1002", points=0)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def staff(db_session):
    user = UserAccount(username="staffer", discord_id="2001", is_staff=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    user = UserAccount(username="owner", email="owner@shop.example.com", is_admin=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer_headers(customer):
    return auth_headers(issue_api_token(customer))


@pytest.fixture(scope='function')
def other_headers(other_customer):
    return auth_headers(issue_api_token(other_customer))


@pytest.fixture(scope='function')
def staff_headers(staff):
    return auth_headers(issue_api_token(staff))


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(issue_api_token(admin))


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Gift Cards", emoji="🎁", description="Digital codes", display_order=1)
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def product(db_session, category):
    """Stock 5, price 1000, available."""
    item = Product(name="Store Credit 1000", price=1000, stock=5, status="available", category_id=category.id)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def cheap_product(db_session, category):
    item = Product(name="Sticker", price=100, stock=50, status="available", category_id=category.id)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def hidden_product(db_session, category):
    item = Product(name="Secret Bundle", price=500, stock=10, status="hidden", category_id=category.id)
    db_session.add(item)
    db_session.commit()
    return item


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
