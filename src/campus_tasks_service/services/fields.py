"""Field parsing helpers for request bodies."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

from campus_tasks_service.core.exceptions import ValidationError

MAX_PRICE_CENTS = 2**53
MAX_QUERY_INT = 2**31 - 1


def parse_price(value: object, field_name: str) -> int:
    """
    Parse a positive money amount with at most two fractional digits.

    Accepts JSON numbers or numeric strings. Returns the amount in cents.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError(
            f"Field '{field_name}' must be a number",
            {"field": field_name},
        )
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(
            f"Field '{field_name}' must be a number",
            {"field": field_name},
        ) from exc

    if not amount.is_finite() or amount <= 0:
        raise ValidationError(
            f"Field '{field_name}' must be a positive amount",
            {"field": field_name},
        )
    if amount > Decimal(MAX_PRICE_CENTS) / 100:
        raise ValidationError(
            f"Field '{field_name}' exceeds the maximum amount",
            {"field": field_name, "max_cents": MAX_PRICE_CENTS},
        )
    cents = amount * 100
    if cents != cents.to_integral_value():
        raise ValidationError(
            f"Field '{field_name}' must have at most two decimal places",
            {"field": field_name},
        )
    return int(cents)


def format_price(cents: int | None) -> str | None:
    """Render cents as a two-decimal string."""
    if cents is None:
        return None
    return f"{cents // 100}.{cents % 100:02d}"


def require_text(body: dict[str, object], field_name: str, max_length: int) -> str:
    """A required, non-blank string, trimmed, of at most ``max_length`` chars."""
    value = body.get(field_name)
    if value is None:
        raise ValidationError(f"Missing required field: {field_name}", {"field": field_name})
    if not isinstance(value, str):
        raise ValidationError(f"Field '{field_name}' must be a string", {"field": field_name})
    text = value.strip()
    if text == "":
        raise ValidationError(f"Field '{field_name}' must not be empty", {"field": field_name})
    if len(text) > max_length:
        raise ValidationError(
            f"Field '{field_name}' must be at most {max_length} characters",
            {"field": field_name, "max_length": max_length},
        )
    return text


def optional_text(body: dict[str, object], field_name: str, max_length: int) -> str | None:
    """An optional string, trimmed; blank becomes None."""
    value = body.get(field_name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Field '{field_name}' must be a string", {"field": field_name})
    text = value.strip()
    if text == "":
        return None
    if len(text) > max_length:
        raise ValidationError(
            f"Field '{field_name}' must be at most {max_length} characters",
            {"field": field_name, "max_length": max_length},
        )
    return text


def optional_timestamp(body: dict[str, object], field_name: str) -> str | None:
    """An optional ISO 8601 timestamp, normalised to UTC with a Z suffix."""
    value = body.get(field_name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Field '{field_name}' must be a string", {"field": field_name})
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(
            f"Field '{field_name}' must be an ISO 8601 timestamp",
            {"field": field_name},
        ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        normalised = parsed.astimezone(UTC)
    except OverflowError as exc:
        raise ValidationError(
            f"Field '{field_name}' is out of the supported date range",
            {"field": field_name},
        ) from exc
    return normalised.isoformat(timespec="microseconds").replace("+00:00", "Z")


def first_present(body: dict[str, object], *names: str) -> object:
    """Value of the first key present in ``body``, accepting camelCase aliases."""
    for name in names:
        if name in body:
            return body[name]
    return None
