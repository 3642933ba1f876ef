from __future__ import annotations

from ..extensions import db
from hirepay.time_utils import to_utc_z


class Purchase(db.Model):
    """
    Hire-purchase agreement between a shop and a customer.

    BALANCE INVARIANT:
    outstanding_balance_cents == max(0, total_amount_cents - amount_paid_cents)
    after every update, and status becomes COMPLETED exactly when the
    outstanding balance reaches zero.

    STATUS: PENDING (nothing paid) -> ACTIVE (partially paid) -> COMPLETED.
    DEFAULTED and CANCELLED are set by collection workflows.

    PURCHASE TYPES:
    - CASH: paid at the counter, goods leave with the customer
    - CREDIT: instalments; goods delivered once fully paid
    - LAYAWAY: goods held until fully paid, then delivered
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "purchase_number", name="uq_purchases_shop_number"),
        db.Index("ix_purchases_customer_status", "customer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    purchase_number = db.Column(db.String(64), nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    outstanding_balance_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    purchase_type = db.Column(db.String(16), nullable=False, default="CREDIT")
    delivery_status = db.Column(db.String(16), nullable=False, default="PENDING")

    due_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shop = db.relationship("Shop", backref=db.backref("purchases", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("purchases", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "customer_id": self.customer_id,
            "purchase_number": self.purchase_number,
            "total_amount_cents": self.total_amount_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "outstanding_balance_cents": self.outstanding_balance_cents,
            "status": self.status,
            "purchase_type": self.purchase_type,
            "delivery_status": self.delivery_status,
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class PurchaseItem(db.Model):
    """Line item on a purchase."""
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    purchase = db.relationship("Purchase", backref=db.backref("items", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Payment(db.Model):
    """
    Funds applied to a purchase.

    IMMUTABLE: One row per amount applied; never updated after creation.
    Wallet auto-allocation writes rows with payment_method=WALLET that are
    confirmed on creation.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_purchase_paid", "purchase_id", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)  # CASH, MOBILE_MONEY, BANK_TRANSFER, CARD, WALLET
    status = db.Column(db.String(16), nullable=False, default="COMPLETED")

    is_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    confirmed_by_id = db.Column(db.Integer, db.ForeignKey("shop_members.id"), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase = db.relationship("Purchase", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "is_confirmed": self.is_confirmed,
            "confirmed_by_id": self.confirmed_by_id,
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class Waybill(db.Model):
    """
    Delivery authorization for a fully paid purchase.

    At most one waybill per purchase (unique purchase_id).
    """
    __tablename__ = "waybills"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, unique=True)
    waybill_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    recipient_name = db.Column(db.String(255), nullable=False)
    recipient_phone = db.Column(db.String(32), nullable=True)
    delivery_address = db.Column(db.String(255), nullable=False)
    delivery_city = db.Column(db.String(128), nullable=True)
    delivery_region = db.Column(db.String(128), nullable=True)
    special_instructions = db.Column(db.String(255), nullable=True)

    generated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase = db.relationship("Purchase", backref=db.backref("waybill", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "waybill_number": self.waybill_number,
            "recipient_name": self.recipient_name,
            "recipient_phone": self.recipient_phone,
            "delivery_address": self.delivery_address,
            "delivery_city": self.delivery_city,
            "delivery_region": self.delivery_region,
            "special_instructions": self.special_instructions,
            "generated_by_id": self.generated_by_id,
            "created_at": to_utc_z(self.created_at),
        }
