# Overview: Outbound Discord notifications (DMs and admin-channel posts); fire-and-forget.

"""
Notification Service

DELIVERY CONTRACT:
- Notifications run after the business transaction has committed.
- Delivery failures surface as UpstreamError, are logged, and are never
  propagated: a DM that cannot be delivered must not undo a purchase or a
  status change.

The active Notifier lives in app.extensions["shopcord.notifier"]:
DiscordRestNotifier when DISCORD_BOT_TOKEN is configured, LogNotifier otherwise.
"""

from __future__ import annotations

import traceback

import httpx
from flask import current_app

from ..errors import UpstreamError
from ..bot import embeds


EXTENSION_KEY = "shopcord.notifier"


class Notifier:
    """Transport interface. Implementations raise UpstreamError on delivery failure."""

    def send_direct_message(self, discord_id: str, *, content: str | None = None,
                            embeds: list[dict] | None = None, components: list[dict] | None = None) -> None:
        raise NotImplementedError

    def post_to_channel(self, channel_id: str, *, content: str | None = None,
                        embeds: list[dict] | None = None, components: list[dict] | None = None) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


def _message_body(content, embeds, components) -> dict:
    body = {}
    if content:
        body["content"] = content
    if embeds:
        body["embeds"] = embeds
    if components:
        body["components"] = components
    return body


class LogNotifier(Notifier):
    """Used when no bot token is configured: messages go to the app log only."""

    def __init__(self, logger):
        self._logger = logger

    def send_direct_message(self, discord_id, *, content=None, embeds=None, components=None):
        self._logger.info("DM to %s: %s", discord_id, _summarize(content, embeds))

    def post_to_channel(self, channel_id, *, content=None, embeds=None, components=None):
        self._logger.info("Post to channel %s: %s", channel_id, _summarize(content, embeds))


def _summarize(content, embeds) -> str:
    if content:
        return content
    if embeds:
        return embeds[0].get("title") or "(embed)"
    return "(empty)"


class DiscordRestNotifier(Notifier):
    """
    Minimal Discord REST client.

    DMs need a DM channel first (POST /users/@me/channels); channel ids are
    cached per recipient for the lifetime of the notifier.
    """

    def __init__(self, token: str, *, api_base: str, timeout: float = 10.0, transport: httpx.BaseTransport | None = None):
        self._client = httpx.Client(
            base_url=api_base.rstrip("/"),
            headers={
                "Authorization": f"Bot {token}",
                "User-Agent": "shopcord (https://github.com/shopcord, 1.0)",
            },
            timeout=timeout,
            transport=transport,
        )
        self._dm_channels: dict[str, str] = {}

    def _request(self, method: str, path: str, payload: dict) -> dict:
        try:
            response = self._client.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise UpstreamError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()

    def _dm_channel_id(self, discord_id: str) -> str:
        channel_id = self._dm_channels.get(discord_id)
        if channel_id is None:
            data = self._request("POST", "/users/@me/channels", {"recipient_id": discord_id})
            channel_id = data.get("id")
            if not channel_id:
                raise UpstreamError(f"No DM channel returned for user {discord_id}")
            self._dm_channels[discord_id] = channel_id
        return channel_id

    def send_direct_message(self, discord_id, *, content=None, embeds=None, components=None):
        channel_id = self._dm_channel_id(str(discord_id))
        self._request("POST", f"/channels/{channel_id}/messages", _message_body(content, embeds, components))

    def post_to_channel(self, channel_id, *, content=None, embeds=None, components=None):
        self._request("POST", f"/channels/{channel_id}/messages", _message_body(content, embeds, components))

    def close(self) -> None:
        self._client.close()


def init_notifier(app) -> Notifier:
    token = app.config.get("DISCORD_BOT_TOKEN")
    if token:
        notifier = DiscordRestNotifier(
            token,
            api_base=app.config["DISCORD_API_BASE"],
            timeout=app.config["NOTIFICATION_TIMEOUT"],
        )
    else:
        app.logger.info("DISCORD_BOT_TOKEN not set; notifications will only be logged")
        notifier = LogNotifier(app.logger)
    app.extensions[EXTENSION_KEY] = notifier
    return notifier


def get_notifier() -> Notifier:
    return current_app.extensions[EXTENSION_KEY]


def _deliver(action: str, send, *args, **kwargs) -> bool:
    try:
        send(*args, **kwargs)
    except UpstreamError as exc:
        current_app.logger.warning("Notification failed (%s): %s", action, exc)
        return False
    return True


def _admin_channel() -> str | None:
    return current_app.config.get("ORDER_NOTIFICATION_CHANNEL_ID") or current_app.config.get("ADMIN_CHANNEL_ID")


# ---------- Fan-out ----------

def notify_order_created(order) -> None:
    """Purchaser receipt (with payment instructions) plus the admin-channel alert."""
    notifier = get_notifier()

    if order.discord_id:
        receipt, components = embeds.order_receipt(order)
        _deliver(
            "order receipt", notifier.send_direct_message, order.discord_id,
            embeds=receipt, components=components,
        )

    channel_id = _admin_channel()
    if channel_id:
        alert, components = embeds.admin_order_alert(order)
        _deliver("admin order alert", notifier.post_to_channel, channel_id, embeds=alert, components=components)
    else:
        current_app.logger.warning("No admin channel configured; order %s not announced", order.id)


def notify_status_changed(order, old_status: str, new_status: str) -> None:
    if not order.discord_id:
        return
    _deliver(
        "status change", get_notifier().send_direct_message, order.discord_id,
        embeds=embeds.status_change(order, old_status, new_status),
    )


def notify_payment_changed(order, old_status: str, new_status: str) -> None:
    if not order.discord_id:
        return
    _deliver(
        "payment change", get_notifier().send_direct_message, order.discord_id,
        embeds=embeds.payment_change(order, old_status, new_status),
    )


def notify_failure(context: str, exc: BaseException) -> None:
    """Diagnostic post to the admin channel for unexpected errors."""
    channel_id = current_app.config.get("ADMIN_CHANNEL_ID")
    if not channel_id:
        return
    detail = "".join(traceback.format_exception_only(type(exc), exc)).strip()
    _deliver("failure report", get_notifier().post_to_channel, channel_id, embeds=embeds.failure_report(context, detail))
