# Overview: Shop-scoped authority resolution and capability checks.

"""
Shop Authority

WHY: Every admin action happens "in a shop". This module resolves who the
caller is relative to that shop once, at the entry of an operation, and
answers capability questions from that single snapshot.

AUTHORITY LEVELS (highest first):
- Super admin (User.is_super_admin): everything, no membership row
- Business admin (BusinessMember of the shop's business): everything in
  every shop of that business
- Shop admin (ShopMember.role == SHOP_ADMIN)
- Staff (SALES_STAFF, DEBT_COLLECTOR): wallet loading only when
  ShopMember.can_load_wallet is set

SECURITY: A shop the caller cannot reach is reported exactly like a shop
that does not exist.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Shop, ShopMember, BusinessMember, User
from ..models.auth import ROLE_SHOP_ADMIN, ROLE_BUSINESS_ADMIN


class NotAuthorizedError(Exception):
    """Raised when the caller lacks authority for the shop or action."""
    pass


@dataclass
class ShopAuthority:
    """Caller identity and scope for one shop."""
    shop: Shop
    user: User
    membership: ShopMember | None
    is_super_admin: bool = False
    is_business_admin: bool = False

    @property
    def acting_member_id(self) -> int | None:
        return self.membership.id if self.membership else None


def require_shop_authority(shop_slug: str, user: User) -> ShopAuthority:
    """
    Resolve the caller's authority over a shop.

    Raises:
        NotAuthorizedError: unknown/inactive shop, inactive user, or no
            membership path into the shop
    """
    if user is None or not user.is_active:
        raise NotAuthorizedError("Authentication required")

    shop = db.session.query(Shop).filter_by(slug=shop_slug, is_active=True).first()
    if not shop:
        raise NotAuthorizedError("Shop not found")

    membership = db.session.query(ShopMember).filter_by(
        shop_id=shop.id,
        user_id=user.id,
        is_active=True,
    ).first()

    if user.is_super_admin:
        return ShopAuthority(shop=shop, user=user, membership=membership, is_super_admin=True)

    business_member = db.session.query(BusinessMember).filter_by(
        business_id=shop.business_id,
        user_id=user.id,
        is_active=True,
    ).first()
    if business_member:
        return ShopAuthority(shop=shop, user=user, membership=membership, is_business_admin=True)

    if membership is None:
        raise NotAuthorizedError("Shop not found")

    return ShopAuthority(shop=shop, user=user, membership=membership)


def is_admin(authority: ShopAuthority) -> bool:
    return authority.is_super_admin or authority.is_business_admin


def can_load_wallet(authority: ShopAuthority) -> bool:
    if is_admin(authority):
        return True
    return bool(authority.membership and authority.membership.can_load_wallet)


def can_confirm_deposit(authority: ShopAuthority) -> bool:
    """Shop admin or higher."""
    if is_admin(authority):
        return True
    return bool(authority.membership and authority.membership.role == ROLE_SHOP_ADMIN)


def can_adjust_wallet(authority: ShopAuthority) -> bool:
    return is_admin(authority)


def can_manage_staff(authority: ShopAuthority) -> bool:
    return is_admin(authority)


def ensure_acting_member(authority: ShopAuthority) -> ShopMember | None:
    """
    Make sure a business admin acting in a shop has a ShopMember row.

    WHY: Wallet transactions attribute creators/confirmers to shop members.
    Business admins get a BUSINESS_ADMIN shadow membership on first use.
    Super admins stay unattributed (None), matching their lack of
    membership.

    An inactive row is never credited as it stands: a deactivated shadow
    membership is reactivated, while a deactivated regular membership
    (e.g. a former SALES_STAFF seat) leaves the business admin unattributed.
    """
    if authority.membership is not None or not authority.is_business_admin:
        return authority.membership

    member = db.session.query(ShopMember).filter_by(
        shop_id=authority.shop.id,
        user_id=authority.user.id,
    ).first()
    if member is None:
        member = ShopMember(
            shop_id=authority.shop.id,
            user_id=authority.user.id,
            role=ROLE_BUSINESS_ADMIN,
            can_load_wallet=True,
            is_active=True,
        )
        db.session.add(member)
        db.session.commit()
    elif not member.is_active:
        if member.role != ROLE_BUSINESS_ADMIN:
            return None
        member.is_active = True
        db.session.commit()
    authority.membership = member
    return member
