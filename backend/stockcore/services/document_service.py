# Overview: Document numbering from per-(prefix, day) counters.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..errors import InvalidArgument
from stockcore.time_utils import utcnow, date_key


def _increment(prefix: str, key: str) -> int | None:
    """Bump the counter row; returns the number allocated, or None if no row."""
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.prefix == prefix,
            DocumentSequence.date_key == key,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(prefix=prefix, date_key=key)
        .scalar()
    )
    return current - 1


def next_document_number(*, prefix: str, on: datetime | None = None, pad: int = 4) -> str:
    """
    Allocate the next "{PREFIX}-{YYMMDD}-{NNNN}" number.

    Must be called inside the atomic scope of the document being numbered:
    the counter increment commits or rolls back together with it. The first
    document of a day inserts the counter row under a savepoint so a racing
    insert only costs a retry of the UPDATE, not the caller's transaction.
    """
    if not prefix:
        raise InvalidArgument("prefix is required", field="prefix")

    key = date_key(on or utcnow())

    number = _increment(prefix, key)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(prefix=prefix, date_key=key, next_number=2))
            number = 1
        except IntegrityError:
            number = _increment(prefix, key)
            if number is None:
                raise

    return f"{prefix}-{key}-{number:0{pad}d}"
