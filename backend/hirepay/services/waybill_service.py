# Overview: Release of fully paid purchases for delivery (stock out + waybill).

"""
Waybill Issuance

WHY: A non-cash purchase is held in the shop until it is fully paid. The
moment it completes, its goods leave stock and a delivery waybill is issued.

IDEMPOTENCY: The waybill is the marker that a purchase has been released.
The whole release block (stock decrement, waybill, delivery status) is
skipped when a waybill already exists, so replaying a completion never
deducts stock twice or issues a second waybill. The unique constraint on
waybills.purchase_id backs this up at the database level.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Purchase, PurchaseItem, Customer, Waybill
from .document_service import next_document_number, DOC_WAYBILL
from .inventory_service import decrement_stock


DELIVERY_SCHEDULED = "SCHEDULED"

WALLET_RELEASE_INSTRUCTIONS = "Payment completed via wallet deposit. Ready for delivery."


def get_waybill(purchase_id: int) -> Waybill | None:
    return db.session.query(Waybill).filter_by(purchase_id=purchase_id).first()


def release_for_delivery(
    purchase: Purchase,
    customer: Customer,
    *,
    generated_by_user_id: int | None,
    special_instructions: str | None = WALLET_RELEASE_INSTRUCTIONS,
) -> Waybill | None:
    """
    Deduct stock for every line item and issue the purchase's waybill.

    Runs in the caller's transaction (no commit).

    Returns:
        The new Waybill, or None if the purchase was already released.
    """
    if get_waybill(purchase.id) is not None:
        return None

    items = db.session.query(PurchaseItem).filter_by(purchase_id=purchase.id).order_by(PurchaseItem.id).all()
    for item in items:
        if item.product_id:
            decrement_stock(purchase.shop_id, item.product_id, item.quantity)

    waybill = Waybill(
        purchase_id=purchase.id,
        waybill_number=next_document_number(shop_id=purchase.shop_id, document_type=DOC_WAYBILL),
        recipient_name=customer.full_name,
        recipient_phone=customer.phone,
        delivery_address=customer.address or "N/A",
        delivery_city=customer.city,
        delivery_region=customer.region,
        special_instructions=special_instructions,
        generated_by_id=generated_by_user_id,
    )
    db.session.add(waybill)

    purchase.delivery_status = DELIVERY_SCHEDULED
    db.session.flush()
    return waybill
