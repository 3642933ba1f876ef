# Overview: Back-office user accounts; bcrypt password hashing and login.

"""
User Accounts

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with upper, lower, digit and special character
- Session tokens are handled separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt

from ..extensions import db
from ..models import User, Business, BusinessMember, Shop, ShopMember
from ..models.auth import SHOP_ROLES, ROLE_BUSINESS_ADMIN
from hirepay.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserError(Exception):
    """Raised for invalid user or membership input."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash
        return False


def create_user(
    email: str,
    password: str,
    name: str | None = None,
    *,
    is_super_admin: bool = False,
) -> User:
    """
    Raises:
        UserError: email already registered
        PasswordValidationError
    """
    email = (email or "").strip().lower()
    if not email:
        raise UserError("Email is required")
    if db.session.query(User).filter_by(email=email).first():
        raise UserError("Email already exists")

    user = User(
        email=email,
        name=name,
        password_hash=hash_password(password),
        is_super_admin=is_super_admin,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """Returns the active user for valid credentials, else None."""
    user = db.session.query(User).filter(
        User.email == (email or "").strip().lower(),
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user
    return None


def add_business_admin(business_id: int, user_id: int) -> BusinessMember:
    if not db.session.get(Business, business_id):
        raise UserError("Business not found")
    member = db.session.query(BusinessMember).filter_by(business_id=business_id, user_id=user_id).first()
    if member is None:
        member = BusinessMember(business_id=business_id, user_id=user_id, role=ROLE_BUSINESS_ADMIN)
        db.session.add(member)
    member.is_active = True
    db.session.commit()
    return member


def add_shop_member(shop_id: int, user_id: int, role: str, *, can_load_wallet: bool = False) -> ShopMember:
    if role not in SHOP_ROLES:
        raise UserError(f"Invalid role: {role}. Must be one of {SHOP_ROLES}")
    if not db.session.get(Shop, shop_id):
        raise UserError("Shop not found")
    member = db.session.query(ShopMember).filter_by(shop_id=shop_id, user_id=user_id).first()
    if member is None:
        member = ShopMember(shop_id=shop_id, user_id=user_id)
        db.session.add(member)
    member.role = role
    member.can_load_wallet = can_load_wallet
    member.is_active = True
    db.session.commit()
    return member
