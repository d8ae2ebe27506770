# Overview: Discord embed and component builders, shared by the bot handlers and notifications.

"""
Everything here returns plain dicts in Discord API shape, so the same embed can
be posted over REST (notification_service) or handed to discord.py through
Embed.from_dict (bot.runner).
"""

from __future__ import annotations

from flask import current_app

from ..time_utils import format_display_time, to_utc_z
from . import payloads
from .payloads import encode


COLOR_INFO = 0x5865F2
COLOR_SUCCESS = 0x57F287
COLOR_WARNING = 0xFEE75C
COLOR_ERROR = 0xED4245

BUTTON_PRIMARY = 1
BUTTON_SECONDARY = 2
BUTTON_SUCCESS = 3
BUTTON_DANGER = 4
BUTTON_LINK = 5

# Discord limits
MAX_SELECT_OPTIONS = 25
MAX_BUTTONS_PER_ROW = 5

QUANTITY_CHOICES = (1, 2, 3, 5, 10)

ORDER_STATUS_LABELS = {
    "pending": "⏳ Pending",
    "processing": "🔄 Processing",
    "completed": "✅ Completed",
    "cancelled": "❌ Cancelled",
    "refunded": "💸 Refunded",
}

PAYMENT_STATUS_LABELS = {
    "pending": "⏳ Awaiting payment",
    "paid": "✅ Paid",
    "failed": "⚠️ Failed",
    "refunded": "💸 Refunded",
}

PAYMENT_METHOD_LABELS = {
    "stripe": "💳 Card (Stripe)",
    "paypal": "🅿️ PayPal",
    "bank_transfer": "🏦 Bank transfer",
    "points": "⭐ Points",
}

PRODUCT_STATUS_LABELS = {
    "available": "In stock",
    "pre_order": "Pre-order",
    "out_of_stock": "Sold out",
    "hidden": "Hidden",
}


def format_price(amount: int) -> str:
    return f"{current_app.config['CURRENCY_SYMBOL']}{amount:,}"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


# ---------- Components ----------

def button(label: str, custom_id: str | None = None, *, style: int = BUTTON_PRIMARY,
           emoji: str | None = None, url: str | None = None, disabled: bool = False) -> dict:
    data = {"type": 2, "style": style, "label": _truncate(label, 80), "disabled": disabled}
    if style == BUTTON_LINK:
        data["url"] = url
    else:
        data["custom_id"] = custom_id
    if emoji:
        data["emoji"] = {"name": emoji}
    return data


def select_menu(custom_id: str, options: list[dict], placeholder: str) -> dict:
    return {
        "type": 3,
        "custom_id": custom_id,
        "placeholder": placeholder,
        "min_values": 1,
        "max_values": 1,
        "options": options[:MAX_SELECT_OPTIONS],
    }


def action_row(*components: dict) -> dict:
    return {"type": 1, "components": list(components)}


def rows_of(buttons: list[dict]) -> list[dict]:
    return [
        action_row(*buttons[i:i + MAX_BUTTONS_PER_ROW])
        for i in range(0, len(buttons), MAX_BUTTONS_PER_ROW)
    ]


def quantity_modal(product) -> dict:
    """Modal asking for a free-form quantity (text input, custom_id 'quantity')."""
    return {
        "custom_id": encode(payloads.QuantityModal(product_id=product.id)),
        "title": _truncate(f"Quantity: {product.name}", 45),
        "components": [
            action_row({
                "type": 4,
                "custom_id": "quantity",
                "label": "Quantity",
                "style": 1,
                "min_length": 1,
                "max_length": 4,
                "required": True,
                "placeholder": f"1 - {product.stock}",
            })
        ],
    }


# ---------- Browsing ----------

def category_list(categories) -> tuple[list[dict], list[dict]]:
    embed = {
        "title": "🛒 Shop",
        "description": "Pick a category to browse its products.",
        "color": COLOR_INFO,
    }
    if not categories:
        embed["description"] = "No categories are open right now."
        return [embed], []

    options = [
        {
            "label": _truncate(c.name, 100),
            "value": str(c.id),
            "description": _truncate(c.description or c.name, 100),
            "emoji": {"name": c.emoji},
        }
        for c in categories
    ]
    menu = select_menu(encode(payloads.CategorySelect()), options, "Choose a category")
    return [embed], [action_row(menu)]


def product_list(category, products) -> tuple[list[dict], list[dict]]:
    embed = {
        "title": category.full_name,
        "description": category.description or "Pick a product.",
        "color": COLOR_INFO,
        "fields": [
            {
                "name": _truncate(f"{p.emoji or '•'} {p.name}", 256),
                "value": f"{format_price(p.price)} · {PRODUCT_STATUS_LABELS.get(p.status, p.status)} · stock {p.stock}",
                "inline": False,
            }
            for p in products[:MAX_SELECT_OPTIONS]
        ],
    }
    back = button("Back", encode(payloads.BrowseCategories()), style=BUTTON_SECONDARY, emoji="↩️")
    if not products:
        embed["description"] = "Nothing for sale in this category right now."
        return [embed], [action_row(back)]

    options = [
        {
            "label": _truncate(p.name, 100),
            "value": str(p.id),
            "description": _truncate(f"{format_price(p.price)} · stock {p.stock}", 100),
        }
        for p in products
    ]
    menu = select_menu(encode(payloads.ProductSelect()), options, "Choose a product")
    return [embed], [action_row(menu), action_row(back)]


def product_detail(product) -> tuple[list[dict], list[dict]]:
    embed = {
        "title": _truncate(f"{product.emoji or '🛍️'} {product.name}", 256),
        "description": _truncate(product.description or "", 4096),
        "color": COLOR_INFO,
        "fields": [
            {"name": "Price", "value": format_price(product.price), "inline": True},
            {"name": "Stock", "value": str(product.stock), "inline": True},
            {"name": "Status", "value": PRODUCT_STATUS_LABELS.get(product.status, product.status), "inline": True},
        ],
    }
    if product.images:
        embed["image"] = {"url": product.images[0]}
    if product.tags:
        embed["footer"] = {"text": " ".join(f"#{t}" for t in product.tags)}

    back = button(
        "Back", encode(payloads.ShowCategory(category_id=product.category_id)),
        style=BUTTON_SECONDARY, emoji="↩️",
    )
    if not product.is_purchasable() or product.stock <= 0:
        return [embed], [action_row(back)]

    qty_buttons = [
        button(f"× {q}", encode(payloads.ChooseQuantity(product_id=product.id, quantity=q)))
        for q in QUANTITY_CHOICES
        if q <= product.stock
    ]
    extras = [
        button("Other amount", encode(payloads.AskQuantity(product_id=product.id)), style=BUTTON_SECONDARY, emoji="🔢"),
        button("Add to cart", encode(payloads.AddToCart(product_id=product.id)), style=BUTTON_SUCCESS, emoji="🛒"),
        back,
    ]
    return [embed], rows_of(qty_buttons) + [action_row(*extras)]


# ---------- Purchase ----------

def payment_choice(product, quantity: int, points_balance: int) -> tuple[list[dict], list[dict]]:
    total = product.price * quantity
    embed = {
        "title": "💳 Choose a payment method",
        "color": COLOR_INFO,
        "fields": [
            {"name": "Product", "value": product.name, "inline": True},
            {"name": "Quantity", "value": str(quantity), "inline": True},
            {"name": "Total", "value": format_price(total), "inline": True},
            {"name": "Your points", "value": f"{points_balance:,}", "inline": True},
        ],
    }
    methods = [
        button(
            PAYMENT_METHOD_LABELS[method],
            encode(payloads.ChoosePayment(product_id=product.id, quantity=quantity, method=method)),
            style=BUTTON_PRIMARY,
            disabled=(method == "points" and points_balance < total),
        )
        for method in PAYMENT_METHOD_LABELS
    ]
    cancel = button("Cancel", encode(payloads.CancelPurchase()), style=BUTTON_DANGER)
    return [embed], [action_row(*methods), action_row(cancel)]


def purchase_confirmation(product, quantity: int, method: str) -> tuple[list[dict], list[dict]]:
    total = product.price * quantity
    embed = {
        "title": "🧾 Confirm your order",
        "description": "Check the details below, then confirm.",
        "color": COLOR_WARNING,
        "fields": [
            {"name": "Product", "value": product.name, "inline": False},
            {"name": "Unit price", "value": format_price(product.price), "inline": True},
            {"name": "Quantity", "value": str(quantity), "inline": True},
            {"name": "Total", "value": format_price(total), "inline": True},
            {"name": "Payment", "value": PAYMENT_METHOD_LABELS[method], "inline": True},
        ],
    }
    confirm = button(
        "Confirm",
        encode(payloads.ConfirmPurchase(product_id=product.id, quantity=quantity, method=method)),
        style=BUTTON_SUCCESS,
        emoji="✅",
    )
    cancel = button("Cancel", encode(payloads.CancelPurchase()), style=BUTTON_DANGER)
    return [embed], [action_row(confirm, cancel)]


def payment_instructions(order) -> str:
    """Human-readable next step for the purchaser, by payment method."""
    if order.payment_method == "points":
        return "Paid with points. No further action needed."
    if order.payment_method == "bank_transfer":
        return (
            f"Please transfer {format_price(order.total_amount)} to:\n"
            f"{current_app.config['BANK_TRANSFER_DETAILS']}\n"
            f"Use {order.reference} as the transfer reference."
        )
    return f"Complete your payment here: {payment_link(order)}"


def payment_link(order) -> str:
    return f"{current_app.config['DASHBOARD_URL'].rstrip('/')}/payment/{order.id}"


def _items_field(order) -> dict:
    lines = [
        f"{item.name} × {item.quantity} = {format_price(item.line_total)}"
        for item in order.items
    ]
    return {"name": "Items", "value": _truncate("\n".join(lines) or "-", 1024), "inline": False}


def order_receipt(order) -> tuple[list[dict], list[dict]]:
    """Purchaser-facing confirmation with payment instructions."""
    paid = order.payment_status == "paid"
    embed = {
        "title": f"🎉 Order {order.reference} received",
        "color": COLOR_SUCCESS if paid else COLOR_INFO,
        "fields": [
            _items_field(order),
            {"name": "Total", "value": format_price(order.total_amount), "inline": True},
            {"name": "Payment", "value": PAYMENT_METHOD_LABELS.get(order.payment_method, order.payment_method), "inline": True},
            {"name": "Payment status", "value": PAYMENT_STATUS_LABELS.get(order.payment_status, order.payment_status), "inline": True},
            {"name": "Next step", "value": _truncate(payment_instructions(order), 1024), "inline": False},
        ],
        "timestamp": to_utc_z(order.created_at),
    }
    components = []
    if order.payment_method in ("stripe", "paypal") and not paid:
        components.append(action_row(button("Pay now", style=BUTTON_LINK, url=payment_link(order), emoji="💳")))
    return [embed], components


def admin_order_alert(order) -> tuple[list[dict], list[dict]]:
    """Admin-channel post for a new order, with status shortcuts."""
    embed = {
        "title": f"🆕 New order {order.reference}",
        "color": COLOR_INFO,
        "fields": [
            {"name": "Customer", "value": _customer_label(order), "inline": True},
            {"name": "Source", "value": order.source, "inline": True},
            _items_field(order),
            {"name": "Total", "value": format_price(order.total_amount), "inline": True},
            {"name": "Payment", "value": PAYMENT_METHOD_LABELS.get(order.payment_method, order.payment_method), "inline": True},
            {"name": "Payment status", "value": PAYMENT_STATUS_LABELS.get(order.payment_status, order.payment_status), "inline": True},
        ],
        "timestamp": to_utc_z(order.created_at),
    }
    return [embed], [order_status_controls(order)]


def _customer_label(order) -> str:
    if order.discord_id:
        return f"<@{order.discord_id}> ({order.username})"
    return order.username


def order_status_controls(order) -> dict:
    return action_row(
        button("Processing", encode(payloads.UpdateOrderStatus(order_id=order.id, status="processing")), style=BUTTON_PRIMARY),
        button("Completed", encode(payloads.UpdateOrderStatus(order_id=order.id, status="completed")), style=BUTTON_SUCCESS),
        button("Cancel", encode(payloads.UpdateOrderStatus(order_id=order.id, status="cancelled")), style=BUTTON_DANGER),
    )


def order_summary(order) -> list[dict]:
    return [{
        "title": f"📦 Order {order.reference}",
        "color": COLOR_INFO,
        "fields": [
            _items_field(order),
            {"name": "Total", "value": format_price(order.total_amount), "inline": True},
            {"name": "Status", "value": ORDER_STATUS_LABELS.get(order.status, order.status), "inline": True},
            {"name": "Payment", "value": PAYMENT_STATUS_LABELS.get(order.payment_status, order.payment_status), "inline": True},
            {"name": "Ordered", "value": format_display_time(order.created_at), "inline": True},
            {"name": "Completed", "value": format_display_time(order.completed_at), "inline": True},
        ],
    }]


def status_change(order, old_status: str, new_status: str) -> list[dict]:
    return [{
        "title": f"Order {order.reference} updated",
        "description": (
            f"{ORDER_STATUS_LABELS.get(old_status, old_status)} → "
            f"{ORDER_STATUS_LABELS.get(new_status, new_status)}"
        ),
        "color": COLOR_ERROR if new_status in ("cancelled", "refunded") else COLOR_SUCCESS,
    }]


def payment_change(order, old_status: str, new_status: str) -> list[dict]:
    return [{
        "title": f"Payment for order {order.reference}",
        "description": (
            f"{PAYMENT_STATUS_LABELS.get(old_status, old_status)} → "
            f"{PAYMENT_STATUS_LABELS.get(new_status, new_status)}"
        ),
        "color": COLOR_SUCCESS if new_status == "paid" else COLOR_WARNING,
    }]


def failure_report(context: str, detail: str) -> list[dict]:
    return [{
        "title": "⚠️ Shop error",
        "description": _truncate(f"**{context}**\n```\n{detail}\n```", 4096),
        "color": COLOR_ERROR,
    }]


def cart_view(summary: dict) -> list[dict]:
    lines = summary["cart"]
    if not lines:
        return [{"title": "🛒 Your cart", "description": "Your cart is empty.", "color": COLOR_INFO}]
    fields = [
        {
            "name": _truncate(line["product"]["name"], 256),
            "value": f"{format_price(line['product']['price'])} × {line['quantity']}",
            "inline": False,
        }
        for line in lines[:MAX_SELECT_OPTIONS]
    ]
    return [{
        "title": "🛒 Your cart",
        "color": COLOR_INFO,
        "fields": fields,
        "footer": {"text": f"Total: {format_price(summary['total_amount'])} · {summary['item_count']} item(s)"},
    }]


def error_notice(message: str) -> list[dict]:
    return [{"title": "Something went wrong", "description": _truncate(message, 4096), "color": COLOR_ERROR}]


# ---------- Admin commands ----------

def category_created(category) -> tuple[list[dict], list[dict]]:
    embed = {
        "title": "Category added",
        "description": f"{category.full_name} is now open.",
        "color": COLOR_SUCCESS,
        "fields": [
            {"name": "Description", "value": category.description or "(none)", "inline": False},
            {"name": "Display order", "value": str(category.display_order), "inline": True},
            {"name": "Category ID", "value": str(category.id), "inline": True},
        ],
    }
    manage = button(
        "Manage on dashboard", style=BUTTON_LINK, emoji="🌐",
        url=f"{current_app.config['DASHBOARD_URL']}/categories/{category.id}",
    )
    return [embed], [action_row(manage)]


def product_created(product) -> tuple[list[dict], list[dict]]:
    embed = {
        "title": "Product added",
        "description": f"{product.emoji or '🛍️'} **{product.name}** in {product.category.full_name}",
        "color": COLOR_SUCCESS,
        "fields": [
            {"name": "Price", "value": format_price(product.price), "inline": True},
            {"name": "Stock", "value": str(product.stock), "inline": True},
            {"name": "Status", "value": PRODUCT_STATUS_LABELS.get(product.status, product.status), "inline": True},
            {"name": "Product ID", "value": str(product.id), "inline": True},
        ],
    }
    if product.images:
        embed["thumbnail"] = {"url": product.images[0]}
    manage = button(
        "Manage on dashboard", style=BUTTON_LINK, emoji="🌐",
        url=f"{current_app.config['DASHBOARD_URL']}/products/{product.id}",
    )
    return [embed], [action_row(manage)]


def order_list(orders: list[dict], total: int, status: str | None) -> tuple[list[dict], list[dict]]:
    """Staff order listing; takes Order.to_dict() rows. Detail buttons for the first few."""
    heading = ORDER_STATUS_LABELS.get(status, status) if status else "All orders"
    if not orders:
        return [{"title": f"📋 {heading}", "description": "No orders found.", "color": COLOR_INFO}], []

    lines = [
        f"{ORDER_STATUS_LABELS.get(o['status'], o['status'])} **{o['reference']}** · {o['username']} · "
        f"{format_price(o['total_amount'])} · {PAYMENT_STATUS_LABELS.get(o['payment_status'], o['payment_status'])}"
        for o in orders
    ]
    embed = {
        "title": f"📋 {heading}",
        "description": _truncate("\n".join(lines), 4096),
        "color": COLOR_INFO,
        "footer": {"text": f"Showing {len(orders)} of {total}"},
    }
    details = [
        button(o["reference"], encode(payloads.ViewOrder(order_id=o["id"])), style=BUTTON_SECONDARY)
        for o in orders[:MAX_BUTTONS_PER_ROW * 2]
    ]
    return [embed], rows_of(details)
