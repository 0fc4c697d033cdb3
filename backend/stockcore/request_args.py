# Overview: Query-string parsing shared by list endpoints.

from __future__ import annotations

from datetime import datetime

from flask import current_app, request

from .errors import InvalidArgument
from .validation import coerce_datetime, coerce_int
from stockcore.time_utils import end_of_day


def pagination_args() -> tuple[int, int]:
    """
    page/per_page from the query string.

    per_page defaults to DEFAULT_PAGE_SIZE and is capped at MAX_PAGE_SIZE.
    """
    config = current_app.config
    page = request.args.get("page")
    per_page = request.args.get("per_page")
    page = coerce_int(page, "page", minimum=1) if page else 1
    per_page = coerce_int(per_page, "per_page", minimum=1) if per_page else config["DEFAULT_PAGE_SIZE"]
    return page, min(per_page, config["MAX_PAGE_SIZE"])


def date_range_args() -> tuple[datetime | None, datetime | None]:
    """
    from_date/to_date from the query string.

    A bare date as to_date covers the whole day.
    """
    from_date = coerce_datetime(request.args.get("from_date") or None, "from_date")
    raw_to = request.args.get("to_date") or None
    to_date = coerce_datetime(raw_to, "to_date")
    if to_date is not None and raw_to and "T" not in raw_to:
        to_date = end_of_day(to_date)
    if from_date and to_date and from_date > to_date:
        raise InvalidArgument("from_date must be before to_date", field="from_date")
    return from_date, to_date


def optional_int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    return coerce_int(raw, name, minimum=1)


def bool_arg(name: str, default: bool) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def serialize_page(result: dict) -> dict:
    return {
        "items": [row.to_dict() for row in result["items"]],
        "pagination": result["pagination"],
    }
