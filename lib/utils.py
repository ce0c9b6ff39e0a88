# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application.
# =============================================================================

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from uuid import UUID

CENT = Decimal("0.01")


# =============================================================================
# UUID Utilities
# =============================================================================

def normalize_uuid(value: str | UUID) -> str:
    """
    Normalize a UUID to string format.

    Example:
        campaign_id = normalize_uuid(uuid_obj)  # "550e8400-..."
        campaign_id = normalize_uuid("550e8400-...")  # "550e8400-..."
    """
    return str(value) if isinstance(value, UUID) else value


# =============================================================================
# Money Utilities
# =============================================================================

def to_decimal(value: Any, default: Decimal | None = None) -> Decimal | None:
    """
    Convert a database numeric to Decimal.

    PostgREST returns numeric columns as int, float or str depending on
    the column type, so everything goes through str() to avoid float noise.

    Args:
        value: Raw value from a Supabase row
        default: Returned when value is None or unparsable

    Returns:
        Decimal value, or default

    Example:
        to_decimal(29.99)      # Decimal("29.99")
        to_decimal(None, Decimal("0"))  # Decimal("0")
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def round_money(amount: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount to integer cents (12.345 -> 1235)."""
    return int((round_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def format_money(amount: Decimal | None) -> str:
    """Format an amount for email templates ("15.00")."""
    return f"{round_money(amount or Decimal('0')):.2f}"
