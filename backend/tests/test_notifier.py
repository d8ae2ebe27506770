"""
Discord REST notifier tests (httpx.MockTransport, no network).

Verifies:
- DMs open a DM channel first and cache it per recipient
- Channel posts go straight to /channels/{id}/messages
- HTTP errors and transport errors surface as UpstreamError
- Fan-out helpers swallow UpstreamError so business writes are unaffected
"""

import json

import httpx
import pytest

from shopcord.errors import UpstreamError
from shopcord.models import Order
from shopcord.services.notification_service import DiscordRestNotifier, LogNotifier
from shopcord.services.purchase_service import buy_product


API_BASE = "https://discord.test/api/v10"


class FakeDiscord:
    def __init__(self, *, message_status=200, dm_status=200):
        self.calls = []
        self.message_status = message_status
        self.dm_status = dm_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, body, request.headers.get("Authorization")))
        if request.url.path.endswith("/users/@me/channels"):
            return httpx.Response(self.dm_status, json={"id": f"dm-{body['recipient_id']}"})
        return httpx.Response(self.message_status, json={"id": "msg-1"})


def _notifier(fake):
    return DiscordRestNotifier("secret-token", api_base=API_BASE, transport=httpx.MockTransport(fake))


class TestDiscordRestNotifier:

    def test_direct_message_opens_dm_channel(self):
        fake = FakeDiscord()
        notifier = _notifier(fake)

        notifier.send_direct_message("1001", content="hello", embeds=[{"title": "Hi"}])

        assert [(method, path) for method, path, _, _ in fake.calls] == [
            ("POST", "/api/v10/users/@me/channels"),
            ("POST", "/api/v10/channels/dm-1001/messages"),
        ]
        assert fake.calls[0][2] == {"recipient_id": "1001"}
        assert fake.calls[1][2] == {"content": "hello", "embeds": [{"title": "Hi"}]}
        assert fake.calls[1][3] == "Bot secret-token"

    def test_dm_channel_is_cached(self):
        fake = FakeDiscord()
        notifier = _notifier(fake)

        notifier.send_direct_message("1001", content="one")
        notifier.send_direct_message("1001", content="two")

        paths = [path for _, path, _, _ in fake.calls]
        assert paths.count("/api/v10/users/@me/channels") == 1
        assert paths.count("/api/v10/channels/dm-1001/messages") == 2

    def test_channel_post(self):
        fake = FakeDiscord()
        notifier = _notifier(fake)

        notifier.post_to_channel("900", embeds=[{"title": "Alert"}], components=[{"type": 1, "components": []}])

        assert len(fake.calls) == 1
        method, path, body, _ = fake.calls[0]
        assert path == "/api/v10/channels/900/messages"
        assert body == {"embeds": [{"title": "Alert"}], "components": [{"type": 1, "components": []}]}

    def test_forbidden_dm_raises_upstream_error(self):
        notifier = _notifier(FakeDiscord(dm_status=403))

        with pytest.raises(UpstreamError) as exc:
            notifier.send_direct_message("1001", content="hello")
        assert exc.value.status_code == 403

    def test_failed_post_raises_upstream_error(self):
        notifier = _notifier(FakeDiscord(message_status=500))

        with pytest.raises(UpstreamError):
            notifier.post_to_channel("900", content="boom")

    def test_transport_error_raises_upstream_error(self):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        notifier = DiscordRestNotifier("t", api_base=API_BASE, transport=httpx.MockTransport(unreachable))

        with pytest.raises(UpstreamError):
            notifier.post_to_channel("900", content="boom")


class TestLogNotifier:

    def test_log_notifier_logs_instead_of_sending(self, app, caplog):
        notifier = LogNotifier(app.logger)

        with caplog.at_level("INFO", logger=app.logger.name):
            notifier.send_direct_message("1001", embeds=[{"title": "Receipt"}])
            notifier.post_to_channel("900", content="New order")

        assert "DM to 1001: Receipt" in caplog.text
        assert "Post to channel 900: New order" in caplog.text


class TestDeliveryFailures:

    def test_failed_delivery_does_not_undo_purchase(self, db_session, customer, product, notifier):
        notifier.fail = True

        result = buy_product(customer, product.id, 1, "points", source="api")

        assert result.ok
        assert db_session.query(Order).count() == 1
