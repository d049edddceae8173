# Overview: Service-layer operations for auth; bcrypt password hashing, user creation and authentication.

"""
Authentication Service

WHY: Every ledger movement records who caused it. Users authenticate with
a bcrypt-hashed password and receive an opaque session token
(see session_service.py).

MULTI-TENANT: Users belong to exactly one shop, and optionally one branch.
Usernames are unique within a shop.

ROLES:
- super_admin, shop_owner: shop-wide (no branch)
- branch_manager, staff: bound to a branch
"""

import re

import bcrypt
from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, Shop, User
from ..time_utils import utcnow

USER_ROLES = ("super_admin", "shop_owner", "branch_manager", "staff")
BRANCH_BOUND_ROLES = ("branch_manager", "staff")

DEFAULT_BCRYPT_ROUNDS = 12


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with an uppercase letter, a lowercase letter,
    a digit and a special character.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", DEFAULT_BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check via bcrypt.checkpw; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    *,
    shop_id: int,
    username: str,
    email: str,
    password: str,
    role: str = "staff",
    branch_id: int | None = None,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Branch-bound roles require a branch of the same shop; shop-wide roles
    must not carry one.
    """
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    shop = db.session.query(Shop).filter_by(id=shop_id).first()
    if not shop:
        raise NotFoundError("Shop not found")
    if not shop.is_active:
        raise ValidationError("Shop is not active")

    if role in BRANCH_BOUND_ROLES:
        if branch_id is None:
            raise ValidationError(f"{role} users must belong to a branch")
        branch = db.session.query(Branch).filter_by(id=branch_id, shop_id=shop_id).first()
        if not branch:
            raise ValidationError("Branch does not belong to this shop")
    elif branch_id is not None:
        raise ValidationError(f"{role} users are shop-wide and cannot be bound to a branch")

    existing = db.session.query(User).filter(
        User.shop_id == shop_id,
        db.or_(User.username == username, User.email == email),
    ).first()
    if existing:
        raise ConflictError("Username or email already exists in this shop")

    user = User(
        shop_id=shop_id,
        branch_id=branch_id,
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Username (or email) + password -> User, or None.

    Updates last_login_at on success. Users of inactive shops cannot log in.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    if not user.shop or not user.shop.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user
    return None
