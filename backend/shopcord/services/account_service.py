# Overview: Service-layer operations for user accounts, API tokens and point balances.

"""
Account Service

POINTS INVARIANT: points >= 0 at all times. Debits are conditional UPDATEs
(`WHERE points >= :amount`), so a concurrent debit can never drive the balance
negative; the loser gets ConflictError and its transaction is rolled back.

TOKENS: Bearer tokens are 32 random bytes (hex), stored as SHA-256 only.
"""

from __future__ import annotations

import hashlib
import secrets

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import UserAccount
from ..errors import ConflictError, NotFoundError, ValidationError
from ..time_utils import utcnow
from .audit_service import append_audit_event
from .concurrency import conditional_decrement, increment


POINT_ACTIONS = ("add", "subtract", "set")


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def issue_api_token(user: UserAccount) -> str:
    """Replace the user's API token; returns the plaintext (shown once)."""
    token = generate_token()
    user.api_token_hash = hash_token(token)
    db.session.commit()
    return token


def get_user_by_token(token: str) -> UserAccount | None:
    if not token:
        return None
    return db.session.query(UserAccount).filter_by(api_token_hash=hash_token(token)).first()


def get_user(user_id: int) -> UserAccount:
    user = db.session.get(UserAccount, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def find_by_discord_id(discord_id: str) -> UserAccount | None:
    return db.session.query(UserAccount).filter_by(discord_id=str(discord_id)).first()


def create_account(
    *,
    username: str,
    discord_id: str | None = None,
    email: str | None = None,
    is_admin: bool = False,
    is_staff: bool = False,
    points: int = 0,
) -> UserAccount:
    if not discord_id and not email:
        raise ValidationError("discord_id or email is required")
    if points < 0:
        raise ValidationError("points must be >= 0")

    q = db.session.query(UserAccount)
    clauses = []
    if discord_id:
        clauses.append(UserAccount.discord_id == str(discord_id))
    if email:
        clauses.append(UserAccount.email == email.lower())
    if q.filter(or_(*clauses)).first() is not None:
        raise ConflictError("An account with this identity already exists", code="duplicate_account")

    user = UserAccount(
        username=username,
        discord_id=str(discord_id) if discord_id else None,
        email=email.lower() if email else None,
        is_admin=is_admin,
        is_staff=is_staff,
        points=points,
    )
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("Account created: %s (id=%s)", user.username, user.id)
    return user


def get_or_create_discord_user(discord_id: str, username: str) -> UserAccount:
    """
    Lazily create the account on first interaction.

    Keeps the stored username in sync with Discord and stamps last_seen_at.
    """
    user = find_by_discord_id(discord_id)
    if user is None:
        user = UserAccount(discord_id=str(discord_id), username=username or str(discord_id))
        db.session.add(user)
        current_app.logger.info("Account created on first interaction: %s (discord_id=%s)", username, discord_id)
    elif username and user.username != username:
        user.username = username
    user.last_seen_at = utcnow()
    db.session.commit()
    return user


def is_admin(user: UserAccount | None) -> bool:
    if user is None or not user.is_active:
        return False
    allow_list = current_app.config.get("ADMIN_DISCORD_IDS") or set()
    return bool(user.is_admin or (user.discord_id and user.discord_id in allow_list))


def is_staff(user: UserAccount | None) -> bool:
    return is_admin(user) or bool(user is not None and user.is_active and user.is_staff)


def set_roles(user_id: int, *, is_admin: bool | None = None, is_staff: bool | None = None) -> UserAccount:
    user = get_user(user_id)
    if is_admin is not None:
        user.is_admin = is_admin
    if is_staff is not None:
        user.is_staff = is_staff
    db.session.commit()
    current_app.logger.info(
        "Roles updated: %s (id=%s) admin=%s staff=%s", user.username, user.id, user.is_admin, user.is_staff
    )
    return user


def list_users(*, search: str | None = None, page: int = 1, per_page: int = 20) -> dict:
    q = db.session.query(UserAccount)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            UserAccount.username.ilike(like),
            UserAccount.email.ilike(like),
            UserAccount.discord_id.ilike(like),
        ))
    page = max(1, page)
    per_page = min(max(1, per_page), 100)
    total = q.count()
    users = q.order_by(UserAccount.id.asc()).offset((page - 1) * per_page).limit(per_page).all()
    return {
        "users": [u.to_dict() for u in users],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "pages": (total + per_page - 1) // per_page,
        },
    }


def _audit_points(user: UserAccount, old: int, *, actor_user_id, reason, order_id=None) -> None:
    payload = {"order_id": order_id} if order_id is not None else None
    append_audit_event(
        event_type="account.points_changed",
        entity_type="user",
        entity_id=user.id,
        actor_user_id=actor_user_id,
        from_value=old,
        to_value=user.points,
        note=reason,
        payload=payload,
    )


def debit_points(
    user: UserAccount,
    amount: int,
    *,
    actor_user_id: int | None = None,
    reason: str | None = None,
    order_id: int | None = None,
) -> int:
    """
    Conditional debit. Raises ConflictError (balance untouched) when the
    balance is short. Does not commit.
    """
    if amount < 0:
        raise ValidationError("amount must be >= 0")
    old = user.points
    if not conditional_decrement(UserAccount, user.id, "points", amount):
        db.session.refresh(user, attribute_names=["points"])
        raise ConflictError(
            f"Insufficient points. Required: {amount}, balance: {user.points}",
            details={"required": amount, "balance": user.points},
            code="insufficient_points",
        )
    db.session.refresh(user, attribute_names=["points"])
    _audit_points(user, old, actor_user_id=actor_user_id, reason=reason or "debit", order_id=order_id)
    current_app.logger.info("Points debited: %s (id=%s) -%s -> %s", user.username, user.id, amount, user.points)
    return user.points


def credit_points(
    user: UserAccount,
    amount: int,
    *,
    actor_user_id: int | None = None,
    reason: str | None = None,
    order_id: int | None = None,
) -> int:
    """Atomic credit. Does not commit."""
    if amount < 0:
        raise ValidationError("amount must be >= 0")
    old = user.points
    increment(UserAccount, user.id, "points", amount)
    db.session.refresh(user, attribute_names=["points"])
    _audit_points(user, old, actor_user_id=actor_user_id, reason=reason or "credit", order_id=order_id)
    current_app.logger.info("Points credited: %s (id=%s) +%s -> %s", user.username, user.id, amount, user.points)
    return user.points


def adjust_points(
    user_id: int,
    *,
    action: str,
    points: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> dict:
    """Admin adjustment: add / subtract / set. Returns previous and current balance."""
    if action not in POINT_ACTIONS:
        raise ValidationError("action must be one of: add, subtract, set")
    if points < 0:
        raise ValidationError("points must be >= 0")

    user = get_user(user_id)
    previous = user.points
    reason = reason or "admin adjustment"

    try:
        if action == "add":
            credit_points(user, points, actor_user_id=actor_user_id, reason=reason)
        elif action == "subtract":
            debit_points(user, points, actor_user_id=actor_user_id, reason=reason)
        else:
            user.points = points
            db.session.flush()
            _audit_points(user, previous, actor_user_id=actor_user_id, reason=reason)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Points adjusted: %s (id=%s) %s -> %s (action=%s)", user.username, user.id, previous, user.points, action
    )
    return {"user": user, "previous": previous, "current": user.points, "action": action}
