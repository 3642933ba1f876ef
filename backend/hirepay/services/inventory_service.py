# Overview: Per-shop stock levels for products.

"""
Stock Store

- ShopProduct.stock_quantity is the on-hand count for a product in a shop.
- Stock leaves the shop when a hire-purchase is fully paid and released for
  delivery (see waybill_service), one decrement per purchase line item.
- decrement_stock is not idempotent by itself; callers guard against
  repeating it.
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import ShopProduct, Product


class InventoryError(Exception):
    """Raised for invalid stock operations."""
    pass


def get_stock_quantity(shop_id: int, product_id: int) -> int:
    qty = db.session.query(ShopProduct.stock_quantity).filter_by(
        shop_id=shop_id,
        product_id=product_id,
    ).scalar()
    return int(qty or 0)


def decrement_stock(shop_id: int, product_id: int, quantity: int) -> int:
    """
    Remove quantity units of a product from a shop's stock.

    Runs in the caller's transaction (no commit). Returns the number of
    stock rows touched; a product the shop does not stock is a no-op.
    """
    if quantity <= 0:
        raise InventoryError("Quantity must be positive")

    stmt = (
        update(ShopProduct)
        .where(ShopProduct.shop_id == shop_id, ShopProduct.product_id == product_id)
        .values(stock_quantity=ShopProduct.stock_quantity - quantity)
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)
    return result.rowcount or 0


def receive_stock(shop_id: int, product_id: int, quantity: int) -> ShopProduct:
    """Add stock for a product in a shop, creating the stock row if needed."""
    if quantity <= 0:
        raise InventoryError("Quantity must be positive")

    product = db.session.get(Product, product_id)
    if not product:
        raise InventoryError(f"Product {product_id} not found")

    row = db.session.query(ShopProduct).filter_by(shop_id=shop_id, product_id=product_id).first()
    if row is None:
        row = ShopProduct(shop_id=shop_id, product_id=product_id, stock_quantity=0)
        db.session.add(row)

    row.stock_quantity = (row.stock_quantity or 0) + quantity
    db.session.commit()
    return row
