# Overview: Shop customer records; registration and lookup.

from __future__ import annotations

from ..extensions import db
from ..models import Customer
from . import audit_service
from .authority_service import ShopAuthority


class CustomerError(Exception):
    """Raised for invalid customer input."""
    pass


class CustomerNotFound(CustomerError):
    pass


def create_customer(
    authority: ShopAuthority,
    *,
    first_name: str,
    last_name: str,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
    city: str | None = None,
    region: str | None = None,
) -> Customer:
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not first_name or not last_name:
        raise CustomerError("first_name and last_name are required")

    if phone:
        duplicate = db.session.query(Customer).filter_by(shop_id=authority.shop.id, phone=phone.strip()).first()
        if duplicate:
            raise CustomerError("A customer with this phone number already exists in this shop")

    customer = Customer(
        shop_id=authority.shop.id,
        first_name=first_name,
        last_name=last_name,
        phone=phone.strip() if phone else None,
        email=email,
        address=address,
        city=city,
        region=region,
        wallet_balance_cents=0,
    )
    db.session.add(customer)
    db.session.commit()

    audit_service.record(
        "CUSTOMER_CREATED",
        "CUSTOMER",
        customer.id,
        {"name": customer.full_name, "shop_id": authority.shop.id},
        actor_user_id=authority.user.id,
    )
    return customer


def get_customer(customer_id: int, authority: ShopAuthority) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, shop_id=authority.shop.id).first()
    if not customer:
        raise CustomerNotFound("Customer not found")
    return customer


def list_customers(
    authority: ShopAuthority,
    *,
    search: str | None = None,
    include_inactive: bool = False,
) -> list[Customer]:
    query = db.session.query(Customer).filter(Customer.shop_id == authority.shop.id)
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            Customer.first_name.ilike(like)
            | Customer.last_name.ilike(like)
            | Customer.phone.ilike(like)
        )
    return query.order_by(Customer.first_name, Customer.last_name, Customer.id).all()
