# Overview: Purchase ledger operations; encapsulates business logic and database work.

"""
Purchase Ledger

WHY: Purchases are the debts wallet deposits settle. This module owns their
creation and the queries the allocation engine consumes.

INVARIANTS:
- outstanding_balance_cents == max(0, total_amount_cents - amount_paid_cents)
- status is COMPLETED exactly when the outstanding balance is zero
- totals derive from line items (quantity x unit price), never client input
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Customer, Product, Purchase, PurchaseItem, Payment
from hirepay.time_utils import utcnow
from . import audit_service
from .authority_service import ShopAuthority, NotAuthorizedError, ensure_acting_member
from .concurrency import UnitOfWork, lock_for_update
from .document_service import next_document_number, DOC_PURCHASE
from .waybill_service import release_for_delivery


class PurchaseError(Exception):
    """Raised for invalid purchase input."""
    pass


class PurchaseNotFoundError(PurchaseError):
    """Raised when a purchase is missing or outside the caller's shop."""
    pass


STATUS_PENDING = "PENDING"
STATUS_ACTIVE = "ACTIVE"
STATUS_COMPLETED = "COMPLETED"
STATUS_DEFAULTED = "DEFAULTED"
STATUS_CANCELLED = "CANCELLED"

VALID_STATUSES = [STATUS_PENDING, STATUS_ACTIVE, STATUS_COMPLETED, STATUS_DEFAULTED, STATUS_CANCELLED]

# Statuses that still accept payments
OPEN_STATUSES = [STATUS_ACTIVE, STATUS_PENDING]

TYPE_CASH = "CASH"
TYPE_CREDIT = "CREDIT"
TYPE_LAYAWAY = "LAYAWAY"

VALID_PURCHASE_TYPES = [TYPE_CASH, TYPE_CREDIT, TYPE_LAYAWAY]


def outstanding_after(total_cents: int, paid_cents: int) -> int:
    return max(0, total_cents - paid_cents)


def create_purchase(
    authority: ShopAuthority,
    *,
    customer_id: int,
    items: list[dict],
    purchase_type: str = TYPE_CREDIT,
    down_payment_cents: int = 0,
    due_date: datetime | None = None,
    notes: str | None = None,
) -> Purchase:
    """
    Create a purchase with its line items.

    Args:
        items: [{"product_id": 1, "quantity": 2, "unit_price_cents": 5000}, ...]
            product_name/unit_price_cents default from the product.
        down_payment_cents: paid at the counter, recorded as a CASH payment

    Raises:
        NotAuthorizedError, PurchaseError
    """
    if authority.membership is None and not (authority.is_super_admin or authority.is_business_admin):
        raise NotAuthorizedError("You don't have access to this shop")

    if purchase_type not in VALID_PURCHASE_TYPES:
        raise PurchaseError(f"Invalid purchase type: {purchase_type}. Must be one of {VALID_PURCHASE_TYPES}")

    if not items:
        raise PurchaseError("At least one item is required")

    shop = authority.shop
    customer = db.session.query(Customer).filter_by(id=customer_id, shop_id=shop.id).first()
    if not customer:
        raise PurchaseNotFoundError("Customer not found")

    lines = [_normalize_item(item, shop.business_id) for item in items]
    total = sum(line["line_total_cents"] for line in lines)

    if isinstance(down_payment_cents, bool) or not isinstance(down_payment_cents, int):
        raise PurchaseError("down_payment_cents must be an integer")
    if down_payment_cents < 0 or down_payment_cents > total:
        raise PurchaseError("Down payment must be between zero and the purchase total")

    actor = ensure_acting_member(authority)
    now = utcnow()
    outstanding = outstanding_after(total, down_payment_cents)

    if outstanding == 0:
        status = STATUS_COMPLETED
    elif down_payment_cents > 0:
        status = STATUS_ACTIVE
    else:
        status = STATUS_PENDING

    if due_date is None:
        due_date = now + timedelta(days=current_app.config.get("DEFAULT_TENOR_DAYS", 60))

    with UnitOfWork():
        purchase = Purchase(
            shop_id=shop.id,
            customer_id=customer.id,
            purchase_number=next_document_number(shop_id=shop.id, document_type=DOC_PURCHASE),
            total_amount_cents=total,
            amount_paid_cents=down_payment_cents,
            outstanding_balance_cents=outstanding,
            status=status,
            purchase_type=purchase_type,
            due_date=due_date,
            notes=notes,
            created_by_user_id=authority.user.id,
        )
        db.session.add(purchase)
        db.session.flush()

        for line in lines:
            db.session.add(PurchaseItem(purchase_id=purchase.id, **line))

        if down_payment_cents > 0:
            db.session.add(Payment(
                purchase_id=purchase.id,
                amount_cents=down_payment_cents,
                payment_method="CASH",
                status="COMPLETED",
                is_confirmed=True,
                confirmed_by_id=actor.id if actor else None,
                confirmed_at=now,
                paid_at=now,
                notes="Down payment",
            ))
        db.session.flush()

        if status == STATUS_COMPLETED and purchase_type != TYPE_CASH:
            release_for_delivery(
                purchase,
                customer,
                generated_by_user_id=authority.user.id,
                special_instructions="Paid in full at purchase. Ready for delivery.",
            )

    audit_service.record(
        "PURCHASE_CREATED",
        "PURCHASE",
        purchase.id,
        {
            "purchase_number": purchase.purchase_number,
            "customer_id": customer.id,
            "customer": customer.full_name,
            "total_amount_cents": total,
            "down_payment_cents": down_payment_cents,
        },
        actor_user_id=authority.user.id,
    )
    return purchase


def _normalize_item(item: dict, business_id: int) -> dict:
    quantity = item.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise PurchaseError("Item quantity must be a positive integer")

    product = None
    product_id = item.get("product_id")
    if product_id is not None:
        product = db.session.query(Product).filter_by(id=product_id, business_id=business_id).first()
        if not product:
            raise PurchaseError(f"Product {product_id} not found")

    unit_price = item.get("unit_price_cents")
    if unit_price is None and product is not None:
        unit_price = product.price_cents
    if isinstance(unit_price, bool) or not isinstance(unit_price, int) or unit_price < 0:
        raise PurchaseError("Item unit_price_cents must be a non-negative integer")

    name = item.get("product_name") or (product.name if product else None)
    if not name:
        raise PurchaseError("Item product_name is required when no product_id is given")

    return {
        "product_id": product.id if product else None,
        "product_name": name,
        "quantity": quantity,
        "unit_price_cents": unit_price,
        "line_total_cents": quantity * unit_price,
    }


def get_outstanding_purchases(customer_id: int, *, lock: bool = False) -> list[Purchase]:
    """
    Open purchases of a customer that still owe money.

    Ordered oldest-due first for display; allocation planning applies its
    own deterministic ordering on top.
    """
    query = db.session.query(Purchase).filter(
        Purchase.customer_id == customer_id,
        Purchase.status.in_(OPEN_STATUSES),
        Purchase.outstanding_balance_cents > 0,
    ).order_by(Purchase.due_date.asc(), Purchase.created_at.asc(), Purchase.id.asc())
    if lock:
        query = lock_for_update(query)
    return query.all()


def get_purchase(purchase_id: int, authority: ShopAuthority) -> Purchase:
    purchase = db.session.query(Purchase).filter_by(id=purchase_id, shop_id=authority.shop.id).first()
    if not purchase:
        raise PurchaseNotFoundError("Purchase not found")
    return purchase


def list_purchases(
    authority: ShopAuthority,
    *,
    customer_id: int | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Purchase]:
    query = db.session.query(Purchase).filter(Purchase.shop_id == authority.shop.id)
    if customer_id is not None:
        query = query.filter(Purchase.customer_id == customer_id)
    if status:
        if status not in VALID_STATUSES:
            raise PurchaseError(f"Invalid status: {status}")
        query = query.filter(Purchase.status == status)
    return query.order_by(Purchase.created_at.desc(), Purchase.id.desc()).offset(offset).limit(limit).all()


def get_purchase_detail(purchase: Purchase) -> dict:
    """Purchase with its line items, payments and waybill."""
    data = purchase.to_dict()
    data["items"] = [i.to_dict() for i in db.session.query(PurchaseItem).filter_by(purchase_id=purchase.id).order_by(PurchaseItem.id).all()]
    data["payments"] = [
        p.to_dict()
        for p in db.session.query(Payment).filter_by(purchase_id=purchase.id).order_by(Payment.created_at, Payment.id).all()
    ]
    data["waybill"] = purchase.waybill.to_dict() if purchase.waybill else None
    return data
