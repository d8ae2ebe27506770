# backend/shopcord/config.py
from __future__ import annotations
import os


def _env_list(name: str) -> set[str]:
    raw = os.environ.get(name, "")
    return {part.strip() for part in raw.split(",") if part.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopcord.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopcord.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Discord. Without a bot token notifications are only logged.
    DISCORD_BOT_TOKEN = os.environ.get("DISCORD_BOT_TOKEN")
    DISCORD_API_BASE = os.environ.get("DISCORD_API_BASE", "https://discord.com/api/v10")
    DISCORD_GUILD_ID = os.environ.get("GUILD_ID")
    ADMIN_CHANNEL_ID = os.environ.get("ADMIN_CHANNEL_ID")
    ORDER_NOTIFICATION_CHANNEL_ID = os.environ.get("ORDER_NOTIFICATION_CHANNEL") or ADMIN_CHANNEL_ID
    NOTIFICATION_TIMEOUT = float(os.environ.get("NOTIFICATION_TIMEOUT", "10"))

    # Discord user IDs that always have admin rights, regardless of the account flags
    ADMIN_DISCORD_IDS = _env_list("ADMIN_DISCORD_IDS")

    DASHBOARD_URL = os.environ.get("DASHBOARD_URL", "http://localhost:3000")
    BANK_TRANSFER_DETAILS = os.environ.get(
        "BANK_TRANSFER_DETAILS",
        "Bank: Example Bank\nBranch: Main\nAccount type: Checking\nAccount number: 0000000\nAccount name: SHOPCORD",
    )
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "¥")

    # Share of the order total credited back as points once a non-points order is paid
    POINTS_REWARD_RATE = float(os.environ.get("POINTS_REWARD_RATE", "0.05"))
