"""Shared input helpers used by repositories and blueprints.

normalize_text:     trims and collapses internal whitespace
require_text:       normalize_text + ValidationError when empty
parse_iso_date:     strict YYYY-MM-DD parsing, raises ValidationError
validate_choice:    closed-enum membership, raises ValidationError
validate_url:       optional external link, http(s) only
page_params:        limit/offset from query args, clamped to MAX_PAGE_SIZE
paged:              {items, total, limit, offset} list envelope
"""
import re
from datetime import date, datetime, timezone
from urllib.parse import urlparse

from flask import current_app

from portal.core.exceptions import ValidationError

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utcnow():
    return datetime.now(timezone.utc)


def today_utc():
    return utcnow().date()


def display_timestamp(moment=None):
    """Format a timestamp the way the UI shows it next to comments (dd/mm/yyyy HH:MM:SS)."""
    moment = moment or utcnow()
    return moment.strftime("%d/%m/%Y %H:%M:%S")


def normalize_text(value):
    """Trim and collapse runs of whitespace; None becomes ""."""
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def require_text(data, field, *, max_length=None):
    value = normalize_text(data.get(field))
    if not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if max_length and len(value) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters", details={field: "too_long"},
        )
    return value


def optional_text(data, field, *, max_length=None):
    value = normalize_text(data.get(field))
    if max_length and len(value) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters", details={field: "too_long"},
        )
    return value or None


def parse_iso_date(value, field, *, required=False):
    """Parse a YYYY-MM-DD string into a date.

    Accepts date objects as-is. Empty input returns None unless required.

    Raises:
        ValidationError: malformed string, impossible calendar date, or
            missing value when ``required``.
    """
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", details={field: "required"})
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not _ISO_DATE.match(text):
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format", details={field: "invalid"})
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"{field} is not a valid calendar date", details={field: "invalid"}) from exc


def validate_choice(value, choices, field):
    if value not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(choices)}",
            details={field: "invalid_choice"},
        )
    return value


def validate_url(value, field):
    """Return a normalized http(s) link, or None when empty."""
    text = normalize_text(value)
    if not text:
        return None
    parsed = urlparse(text)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{field} must be an http(s) link", details={field: "invalid_url"})
    return text


def page_params(args):
    """Read limit/offset from request args.

    Returns:
        (limit, offset) with limit clamped to [1, MAX_PAGE_SIZE].
    """
    default = current_app.config.get("PAGE_SIZE", 20)
    ceiling = current_app.config.get("MAX_PAGE_SIZE", 200)
    try:
        limit = int(args.get("limit", default))
        offset = int(args.get("offset", 0))
    except (TypeError, ValueError) as exc:
        raise ValidationError("limit and offset must be integers") from exc
    limit = max(1, min(limit, ceiling))
    offset = max(0, offset)
    return limit, offset


def paged(items, total, limit, offset):
    """Standard list envelope."""
    return {"items": items, "total": total, "limit": limit, "offset": offset}


def json_body(request):
    """Request body as a dict; anything else is a ValidationError."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
