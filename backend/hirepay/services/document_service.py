# Overview: Per-shop document numbering for purchases and waybills.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence


DOC_PURCHASE = "PURCHASE"
DOC_WAYBILL = "WAYBILL"

DOCUMENT_PREFIXES = {
    DOC_PURCHASE: "P",
    DOC_WAYBILL: "WB",
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    shop_id: int,
    document_type: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a shop/type, e.g. "WB-003-0012".

    Runs inside the caller's transaction: the increment is a single
    UPDATE on (shop_id, document_type), so the number is only consumed if
    the caller commits. A concurrent first insert surfaces as an
    IntegrityError for the caller to handle.
    """
    if not shop_id:
        raise DocumentSequenceError("shop_id is required")
    prefix = DOCUMENT_PREFIXES.get(document_type)
    if not prefix:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.shop_id == shop_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(shop_id=shop_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(shop_id=shop_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        db.session.flush()
        next_num = 1

    return f"{prefix}-{shop_id:03d}-{next_num:0{pad}d}"
