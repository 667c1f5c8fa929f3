# Overview: Atomic human-readable document numbers (ORD-, INV-, PKP-, RTN-).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from rental_engine.time_utils import utcnow


DOC_ORDER = "ORDER"
DOC_INVOICE = "INVOICE"
DOC_PICKUP = "PICKUP"
DOC_RETURN = "RETURN"

PREFIXES = {
    DOC_ORDER: "ORD",
    DOC_INVOICE: "INV",
    DOC_PICKUP: "PKP",
    DOC_RETURN: "RTN",
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _current_value(document_type: str, year: int) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, year=year)
        .scalar()
    )


def next_document_number(
    document_type: str,
    *,
    year: int | None = None,
    prefix: str | None = None,
    pad: int = 4,
) -> str:
    """
    Allocate the next number for a document type within the caller's transaction.

    The counter row is bumped with a single UPDATE, which takes the row lock,
    so two transactions never hand out the same number. The increment rolls
    back with the enclosing transaction, so aborted confirmations leave no gap.
    Format: "<prefix>-<year>-<seq>", e.g. "ORD-2025-0001".
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    prefix = prefix or PREFIXES.get(document_type)
    if not prefix:
        raise DocumentSequenceError(f"No prefix configured for {document_type}")
    if year is None:
        year = utcnow().year

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        next_num = _current_value(document_type, year) - 1
    else:
        seq = DocumentSequence(document_type=document_type, year=year, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            # Another transaction created the row first; take the next value from it.
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            db.session.flush()
            next_num = _current_value(document_type, year) - 1

    return f"{prefix}-{year}-{next_num:0{pad}d}"
