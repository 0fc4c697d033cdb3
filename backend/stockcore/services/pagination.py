# Overview: Offset pagination shared by list operations.

from __future__ import annotations


def paginate_query(query, *, page: int, per_page: int) -> dict:
    """Returns rows plus the pagination metadata every list endpoint carries."""
    page = max(page, 1)
    per_page = max(per_page, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": rows,
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
