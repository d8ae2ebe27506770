# Overview: discord.py gateway client; defers each interaction and runs the handlers in the Flask app context.

"""
Bot Runner

The gateway loop stays responsive: every interaction is acknowledged first
(defer), then the synchronous handler runs on a worker thread inside
app.app_context() so it gets its own SQLAlchemy session. The reply is sent as
an edit of the original message (reply.update) or as a follow-up.

Component payloads that open a modal cannot be deferred (a modal must be the
first response), so those are answered directly.

Commands: /buy and /order for everyone; /add_category, /add_product and the
/orders group (list, info, update) default to Administrator only.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import discord
from discord import app_commands

from . import handlers, payloads
from .embeds import ORDER_STATUS_LABELS, PRODUCT_STATUS_LABELS, error_notice
from .handlers import Interaction, InteractionReply
from ..services.notification_service import notify_failure


VIEW_TIMEOUT = 600

GENERIC_ERROR = "Something went wrong. The shop staff have been notified."

ORDER_STATUS_CHOICES = [
    app_commands.Choice(name=label, value=status) for status, label in ORDER_STATUS_LABELS.items()
]
PRODUCT_STATUS_CHOICES = [
    app_commands.Choice(name=PRODUCT_STATUS_LABELS[status], value=status)
    for status in ("available", "pre_order", "hidden")
]


def _to_interaction(interaction: discord.Interaction) -> Interaction:
    data = interaction.data or {}
    fields = {}
    for row in data.get("components", []):
        for component in row.get("components", []):
            if "custom_id" in component:
                fields[component["custom_id"]] = component.get("value", "")

    user = interaction.user
    is_guild_admin = isinstance(user, discord.Member) and user.guild_permissions.administrator
    return Interaction(
        user_id=str(user.id),
        username=user.name,
        custom_id=data.get("custom_id"),
        values=list(data.get("values", [])),
        fields=fields,
        is_guild_admin=is_guild_admin,
    )


def _build_view(components: list[dict]) -> Optional[discord.ui.View]:
    """Rebuild API-shaped action rows as a discord.py View. Clicks arrive through on_interaction."""
    if not components:
        return None
    view = discord.ui.View(timeout=VIEW_TIMEOUT)
    for row_index, row in enumerate(components):
        for item in row.get("components", []):
            emoji = (item.get("emoji") or {}).get("name")
            if item["type"] == 2:
                view.add_item(discord.ui.Button(
                    style=discord.ButtonStyle(item["style"]),
                    label=item.get("label"),
                    custom_id=item.get("custom_id"),
                    url=item.get("url"),
                    emoji=emoji,
                    disabled=item.get("disabled", False),
                    row=row_index,
                ))
            elif item["type"] == 3:
                view.add_item(discord.ui.Select(
                    custom_id=item["custom_id"],
                    placeholder=item.get("placeholder"),
                    min_values=item.get("min_values", 1),
                    max_values=item.get("max_values", 1),
                    options=[
                        discord.SelectOption(
                            label=option["label"],
                            value=option["value"],
                            description=option.get("description"),
                            emoji=(option.get("emoji") or {}).get("name"),
                        )
                        for option in item["options"]
                    ],
                    row=row_index,
                ))
    return view


def _build_modal(data: dict) -> discord.ui.Modal:
    modal = discord.ui.Modal(title=data["title"], custom_id=data["custom_id"])
    for row in data["components"]:
        for item in row["components"]:
            modal.add_item(discord.ui.TextInput(
                label=item["label"],
                custom_id=item["custom_id"],
                min_length=item.get("min_length"),
                max_length=item.get("max_length"),
                placeholder=item.get("placeholder"),
                required=item.get("required", True),
            ))
    return modal


def _opens_modal(custom_id: Optional[str]) -> bool:
    try:
        return isinstance(payloads.decode(custom_id or ""), payloads.AskQuantity)
    except payloads.PayloadError:
        return False


class ShopBot(discord.Client):
    def __init__(self, app):
        super().__init__(intents=discord.Intents.default())
        self.app = app
        self.tree = app_commands.CommandTree(self)
        self._register_commands()

    def _register_commands(self) -> None:
        @self.tree.command(name="buy", description="Browse the shop and buy products")
        @app_commands.describe(category="Category ID to open", product_id="Product ID to open")
        async def buy(interaction: discord.Interaction, category: Optional[int] = None,
                      product_id: Optional[int] = None):
            await interaction.response.defer(ephemeral=True, thinking=True)
            reply = await self._run(
                "/buy", handlers.handle_buy_command, _to_interaction(interaction),
                category_id=category, product_id=product_id,
            )
            await self._send(interaction, reply)

        @self.tree.command(name="order", description="Show one of your orders")
        @app_commands.describe(order_id="Order number")
        async def order(interaction: discord.Interaction, order_id: int):
            await interaction.response.defer(ephemeral=True, thinking=True)
            reply = await self._run("/order", handlers.handle_order_command, _to_interaction(interaction), order_id)
            await self._send(interaction, reply)

        self._register_admin_commands()

    def _register_admin_commands(self) -> None:
        @self.tree.command(name="add_category", description="Add a shop category")
        @app_commands.default_permissions(administrator=True)
        @app_commands.guild_only()
        @app_commands.describe(name="Category name", emoji="Emoji shown next to the name",
                               description="Short description", order="Display order (lower comes first)")
        async def add_category(interaction: discord.Interaction, name: str, emoji: Optional[str] = None,
                               description: Optional[str] = None, order: Optional[app_commands.Range[int, 0]] = None):
            await interaction.response.defer(ephemeral=True, thinking=True)
            reply = await self._run(
                "/add_category", handlers.handle_add_category, _to_interaction(interaction),
                name=name, emoji=emoji, description=description, display_order=order,
            )
            await self._send(interaction, reply)

        @self.tree.command(name="add_product", description="Add a product to a category")
        @app_commands.default_permissions(administrator=True)
        @app_commands.guild_only()
        @app_commands.describe(category="Category (type to search)", image="Image URL")
        @app_commands.choices(status=PRODUCT_STATUS_CHOICES)
        async def add_product(interaction: discord.Interaction, name: str, price: app_commands.Range[int, 0],
                              category: int, stock: app_commands.Range[int, 0], description: Optional[str] = None,
                              emoji: Optional[str] = None, image: Optional[str] = None,
                              status: Optional[str] = None):
            await interaction.response.defer(ephemeral=True, thinking=True)
            reply = await self._run(
                "/add_product", handlers.handle_add_product, _to_interaction(interaction),
                name=name, price=price, category_id=category, stock=stock,
                description=description, emoji=emoji, image=image, status=status,
            )
            await self._send(interaction, reply)

        @add_product.autocomplete("category")
        async def category_autocomplete(interaction: discord.Interaction, current: str):
            choices = await asyncio.to_thread(self._in_app, handlers.category_choices, current)
            return [app_commands.Choice(name=name[:100], value=value) for name, value in choices]

        orders = app_commands.Group(
            name="orders",
            description="Manage shop orders",
            default_permissions=discord.Permissions(administrator=True),
            guild_only=True,
        )

        @orders.command(name="list", description="List recent orders")
        @app_commands.describe(status="Only orders with this status", limit="How many to show (default 10)")
        @app_commands.choices(status=ORDER_STATUS_CHOICES)
        async def orders_list(interaction: discord.Interaction, status: Optional[str] = None,
                              limit: app_commands.Range[int, 1, 25] = 10):
            await interaction.response.defer(ephemeral=True, thinking=True)
            reply = await self._run(
                "/orders list", handlers.handle_order_list, _to_interaction(interaction), status=status, limit=limit,
            )
            await self._send(interaction, reply)

        @orders.command(name="info", description="Show an order with status controls")
        async def orders_info(interaction: discord.Interaction, order_id: int):
            await interaction.response.defer(ephemeral=True, thinking=True)
            reply = await self._run("/orders info", handlers.handle_order_info, _to_interaction(interaction), order_id)
            await self._send(interaction, reply)

        @orders.command(name="update", description="Change an order's status")
        @app_commands.choices(status=ORDER_STATUS_CHOICES)
        async def orders_update(interaction: discord.Interaction, order_id: int, status: str):
            await interaction.response.defer(ephemeral=True, thinking=True)
            reply = await self._run(
                "/orders update", handlers.handle_order_update, _to_interaction(interaction), order_id, status,
            )
            await self._send(interaction, reply)

        self.tree.add_command(orders)

    async def setup_hook(self) -> None:
        guild_id = self.app.config.get("DISCORD_GUILD_ID")
        if guild_id:
            guild = discord.Object(id=int(guild_id))
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
        else:
            await self.tree.sync()

    async def on_ready(self) -> None:
        self.app.logger.info("Discord bot connected as %s (id=%s)", self.user, self.user.id if self.user else None)

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type == discord.InteractionType.component:
            shop_interaction = _to_interaction(interaction)
            if _opens_modal(shop_interaction.custom_id):
                reply = await self._run("component", handlers.handle_component, shop_interaction)
                if reply.modal:
                    await interaction.response.send_modal(_build_modal(reply.modal))
                else:
                    await interaction.response.send_message(**self._message_kwargs(reply), ephemeral=True)
                return
            await interaction.response.defer()
            reply = await self._run("component", handlers.handle_component, shop_interaction)
            await self._send(interaction, reply)

        elif interaction.type == discord.InteractionType.modal_submit:
            await interaction.response.defer(ephemeral=True, thinking=True)
            reply = await self._run("modal", handlers.handle_modal_submit, _to_interaction(interaction))
            await self._send(interaction, reply)

    async def _run(self, context: str, handler, *args, **kwargs) -> InteractionReply:
        return await asyncio.to_thread(self._call, context, handler, *args, **kwargs)

    def _in_app(self, fn, *args):
        with self.app.app_context():
            return fn(*args)

    def _call(self, context: str, handler, *args, **kwargs) -> InteractionReply:
        with self.app.app_context():
            try:
                return handler(*args, **kwargs)
            except Exception as exc:
                self.app.logger.exception("Interaction handler failed (%s)", context)
                notify_failure(f"Discord interaction ({context})", exc)
                return InteractionReply(embeds=error_notice(GENERIC_ERROR))

    @staticmethod
    def _message_kwargs(reply: InteractionReply) -> dict:
        kwargs = {}
        if reply.content:
            kwargs["content"] = reply.content
        if reply.embeds:
            kwargs["embeds"] = [discord.Embed.from_dict(e) for e in reply.embeds]
        view = _build_view(reply.components)
        if view is not None:
            kwargs["view"] = view
        return kwargs

    async def _send(self, interaction: discord.Interaction, reply: InteractionReply) -> None:
        kwargs = self._message_kwargs(reply)
        try:
            if reply.update:
                await interaction.edit_original_response(
                    content=kwargs.get("content"),
                    embeds=kwargs.get("embeds", []),
                    view=kwargs.get("view"),
                )
            else:
                await interaction.followup.send(ephemeral=reply.ephemeral, **kwargs)
        except discord.HTTPException:
            self.app.logger.exception("Failed to deliver interaction reply")


def run_bot(app) -> None:
    """Blocking: connect to the gateway and serve until interrupted."""
    bot = ShopBot(app)
    bot.run(app.config["DISCORD_BOT_TOKEN"], log_handler=None)
