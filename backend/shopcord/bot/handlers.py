# Overview: Discord interaction handlers; thin adapters from interactions to the shop services.

"""
Bot Handlers

Handlers are synchronous and framework-free: they take an Interaction (the
few fields we read from Discord) and return an InteractionReply. bot.runner
translates both ways and runs handlers inside the Flask app context.

Flow for /buy:
    categories -> products -> product detail -> quantity -> payment method
    -> confirmation -> purchase_service.buy_product

Admin commands (/add_category, /add_product, /orders ...) are gated twice: Discord
hides them behind the Administrator permission, and the handlers re-check the
guild flag or the account role before touching anything.

Expected failures (ShopError) become an ephemeral error notice. Anything else
propagates to the runner, which logs it and reports it to the admin channel.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import NotFoundError, PermissionDeniedError, ShopError
from ..models import Category, Product, UserAccount
from ..validation import (
    CATEGORY_POLICY,
    PRODUCT_POLICY,
    enforce_rules_category,
    enforce_rules_product,
    parse_quantity,
    validate_payload,
)
from ..services import account_service, cart_service, catalog_service, order_service
from ..services.purchase_service import buy_product
from . import embeds, payloads


@dataclass
class Interaction:
    user_id: str
    username: str
    custom_id: str | None = None
    # Select-menu choices
    values: list[str] = field(default_factory=list)
    # Modal text inputs by custom_id
    fields: dict[str, str] = field(default_factory=dict)
    # Administrator permission in the guild the interaction came from
    is_guild_admin: bool = False


@dataclass
class InteractionReply:
    content: str | None = None
    embeds: list[dict] = field(default_factory=list)
    components: list[dict] = field(default_factory=list)
    ephemeral: bool = True
    # Edit the message the component is attached to instead of sending a new one
    update: bool = False
    modal: dict | None = None


def _reply(view, *, update: bool = False, content: str | None = None) -> InteractionReply:
    message_embeds, components = view
    return InteractionReply(content=content, embeds=message_embeds, components=components, update=update)


def _error(message: str, *, update: bool = False) -> InteractionReply:
    return InteractionReply(embeds=embeds.error_notice(message), update=update)


def _account(interaction: Interaction) -> UserAccount:
    return account_service.get_or_create_discord_user(interaction.user_id, interaction.username)


def _is_staff(user: UserAccount, interaction: Interaction) -> bool:
    return interaction.is_guild_admin or account_service.is_staff(user)


def _visible_product(product_id: int):
    product = catalog_service.get_product(product_id)
    if product.status == "hidden" or not product.category.is_visible:
        raise NotFoundError("That product is not available")
    return product


def _visible_category(category_id: int):
    category = catalog_service.get_category(category_id)
    if not category.is_visible:
        raise NotFoundError("That category is not available")
    return category


# ---------- Views ----------

def _category_view(*, update: bool = False) -> InteractionReply:
    return _reply(embeds.category_list(catalog_service.list_categories()), update=update)


def _product_list_view(category_id: int, *, update: bool = True) -> InteractionReply:
    category = _visible_category(category_id)
    products = catalog_service.list_purchasable_products(category.id)
    return _reply(embeds.product_list(category, products), update=update)


def _product_view(product_id: int, *, update: bool = True) -> InteractionReply:
    return _reply(embeds.product_detail(_visible_product(product_id)), update=update)


def _quantity_chosen(user: UserAccount, product_id: int, quantity: int, *, update: bool = True) -> InteractionReply:
    product = _visible_product(product_id)
    if not product.is_purchasable() or product.stock < quantity:
        available = product.stock if product.is_purchasable() else 0
        return _error(
            f"Not enough stock for {product.name}. Requested: {quantity}, available: {available}",
            update=update,
        )
    return _reply(embeds.payment_choice(product, quantity, user.points), update=update)


def _order_view(user: UserAccount, interaction: Interaction, order_id: int, *, update: bool) -> InteractionReply:
    order = order_service.get_order(order_id)
    staff = _is_staff(user, interaction)
    if order.user_id != user.id and not staff:
        raise PermissionDeniedError("You can only view your own orders")
    components = [embeds.order_status_controls(order)] if staff and order_service.TRANSITIONS[order.status] else []
    return InteractionReply(embeds=embeds.order_summary(order), components=components, update=update)


# ---------- Entry points ----------

def handle_buy_command(interaction: Interaction, *, category_id: int | None = None,
                       product_id: int | None = None) -> InteractionReply:
    """/buy [category] [product_id]"""
    _account(interaction)
    try:
        if product_id is not None:
            return _product_view(product_id, update=False)
        if category_id is not None:
            return _product_list_view(category_id, update=False)
        return _category_view()
    except ShopError as e:
        return _error(e.message)


def handle_order_command(interaction: Interaction, order_id: int) -> InteractionReply:
    """/order <order_id>: summary for the owner or staff."""
    user = _account(interaction)
    try:
        return _order_view(user, interaction, order_id, update=False)
    except ShopError as e:
        return _error(e.message)


def handle_component(interaction: Interaction) -> InteractionReply:
    """Button and select-menu clicks."""
    try:
        payload = payloads.decode(interaction.custom_id or "")
    except payloads.PayloadError as e:
        current_app.logger.warning("Rejected component payload %r: %s", interaction.custom_id, e.message)
        return _error("This button is no longer valid. Run /buy again.")

    user = _account(interaction)
    try:
        return _dispatch(user, interaction, payload)
    except ShopError as e:
        return _error(e.message, update=True)


def _selected_id(interaction: Interaction) -> int:
    if not interaction.values or not (interaction.values[0].isascii() and interaction.values[0].isdigit()):
        raise payloads.PayloadError("Nothing was selected")
    return int(interaction.values[0])


def _dispatch(user: UserAccount, interaction: Interaction, payload) -> InteractionReply:
    if isinstance(payload, payloads.BrowseCategories):
        return _category_view(update=True)

    if isinstance(payload, payloads.CategorySelect):
        return _product_list_view(_selected_id(interaction))

    if isinstance(payload, payloads.ShowCategory):
        return _product_list_view(payload.category_id)

    if isinstance(payload, payloads.ProductSelect):
        return _product_view(_selected_id(interaction))

    if isinstance(payload, payloads.ShowProduct):
        return _product_view(payload.product_id)

    if isinstance(payload, payloads.ChooseQuantity):
        return _quantity_chosen(user, payload.product_id, payload.quantity)

    if isinstance(payload, payloads.AskQuantity):
        product = _visible_product(payload.product_id)
        return InteractionReply(modal=embeds.quantity_modal(product))

    if isinstance(payload, payloads.ChoosePayment):
        product = _visible_product(payload.product_id)
        return _reply(embeds.purchase_confirmation(product, payload.quantity, payload.method), update=True)

    if isinstance(payload, payloads.ConfirmPurchase):
        result = buy_product(
            user, payload.product_id, payload.quantity, payload.method, source="discord_button",
        )
        if not result.ok:
            return _error(result.reason, update=True)
        return _reply(embeds.order_receipt(result.order), update=True, content="Thank you for your order!")

    if isinstance(payload, payloads.CancelPurchase):
        return InteractionReply(content="Purchase cancelled.", update=True)

    if isinstance(payload, payloads.AddToCart):
        cart_service.add_to_cart(user, payload.product_id, 1)
        return InteractionReply(
            content="Added to your cart.",
            embeds=embeds.cart_view(cart_service.cart_summary(user)),
        )

    if isinstance(payload, payloads.ViewOrder):
        return _order_view(user, interaction, payload.order_id, update=False)

    if isinstance(payload, payloads.UpdateOrderStatus):
        if not _is_staff(user, interaction):
            raise PermissionDeniedError("Only staff can change order status")
        order_service.update_status(payload.order_id, payload.status, actor=user)
        return _order_view(user, interaction, payload.order_id, update=True)

    if isinstance(payload, payloads.QuantityModal):
        # Only ever arrives through handle_modal_submit
        raise payloads.PayloadError("Unexpected modal payload on a component")

    raise payloads.PayloadError(f"Unhandled action {payload.action!r}")


def handle_modal_submit(interaction: Interaction) -> InteractionReply:
    """Free-form quantity modal."""
    try:
        payload = payloads.decode(interaction.custom_id or "")
        if not isinstance(payload, payloads.QuantityModal):
            raise payloads.PayloadError("Unexpected modal")
    except payloads.PayloadError as e:
        current_app.logger.warning("Rejected modal payload %r: %s", interaction.custom_id, e.message)
        return _error("This form is no longer valid. Run /buy again.")

    user = _account(interaction)
    try:
        quantity = parse_quantity(interaction.fields.get("quantity"))
        return _quantity_chosen(user, payload.product_id, quantity, update=False)
    except ShopError as e:
        return _error(e.message)


# ---------- Admin commands ----------

def _require_admin(user: UserAccount, interaction: Interaction) -> None:
    if not (interaction.is_guild_admin or account_service.is_admin(user)):
        raise PermissionDeniedError("Only administrators can use this command")


def _require_staff(user: UserAccount, interaction: Interaction) -> None:
    if not _is_staff(user, interaction):
        raise PermissionDeniedError("Only staff can use this command")


def handle_add_category(interaction: Interaction, *, name: str, emoji: str | None = None,
                        description: str | None = None, display_order: int | None = None) -> InteractionReply:
    """/add_category name [emoji] [description] [order]"""
    user = _account(interaction)
    try:
        _require_admin(user, interaction)
        payload = {"name": name, "description": description or "", "display_order": display_order or 0}
        if emoji:
            payload["emoji"] = emoji
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        enforce_rules_category(patch)
        category = catalog_service.create_category(patch)
    except ShopError as e:
        return _error(e.message)
    return _reply(embeds.category_created(category), content="Category added.")


def handle_add_product(interaction: Interaction, *, name: str, price: int, category_id: int, stock: int,
                       description: str | None = None, emoji: str | None = None, image: str | None = None,
                       status: str | None = None) -> InteractionReply:
    """/add_product name price category stock [description] [emoji] [image] [status]"""
    user = _account(interaction)
    try:
        _require_admin(user, interaction)
        payload = {
            "name": name,
            "price": price,
            "category_id": category_id,
            "stock": stock,
            "description": description or "",
        }
        if emoji:
            payload["emoji"] = emoji
        if image:
            payload["images"] = [image]
        if status:
            payload["status"] = status
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(patch, actor_user_id=user.id)
    except ShopError as e:
        return _error(e.message)
    return _reply(embeds.product_created(product), content="Product added.")


def category_choices(query: str, limit: int = 25) -> list[tuple[str, int]]:
    """Autocomplete for the category option of /add_product (hidden categories included)."""
    query = (query or "").strip().lower()
    return [
        (category.full_name, category.id)
        for category in catalog_service.list_categories(include_hidden=True)
        if query in category.name.lower()
    ][:limit]


def handle_order_list(interaction: Interaction, *, status: str | None = None, limit: int = 10) -> InteractionReply:
    """/orders list [status] [limit]"""
    user = _account(interaction)
    try:
        _require_staff(user, interaction)
        result = order_service.list_orders(status=status, limit=limit)
    except ShopError as e:
        return _error(e.message)
    return _reply(embeds.order_list(result["orders"], result["pagination"]["total"], status))


def handle_order_info(interaction: Interaction, order_id: int) -> InteractionReply:
    """/orders info <order_id>: summary with status controls."""
    user = _account(interaction)
    try:
        _require_staff(user, interaction)
        return _order_view(user, interaction, order_id, update=False)
    except ShopError as e:
        return _error(e.message)


def handle_order_update(interaction: Interaction, order_id: int, status: str) -> InteractionReply:
    """/orders update <order_id> <status>"""
    user = _account(interaction)
    try:
        _require_staff(user, interaction)
        order = order_service.update_status(order_id, status, actor=user)
        reply = _order_view(user, interaction, order.id, update=False)
    except ShopError as e:
        return _error(e.message)
    reply.content = f"Order {order.reference} is now {embeds.ORDER_STATUS_LABELS.get(order.status, order.status)}."
    return reply
