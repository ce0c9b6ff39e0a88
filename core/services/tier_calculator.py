# =============================================================================
# core/services/tier_calculator.py - Tier Settlement
# =============================================================================
# Pure functions that decide which price tier a campaign settled in.
#
# Tier tables must be well-formed (same rules as the admin pricing form):
# - exactly tiers 1, 2, 3
# - range_low <= range_high within a tier
# - tier n+1 starts after tier n ends (no overlaps; gaps are allowed)
# - retail price strictly decreasing from tier 1 to tier 3
#
# Usage:
#   from core.services.tier_calculator import settle_tier
#   tier = settle_tier(150, campaign.tiers)  # -> 2
# =============================================================================

from decimal import Decimal

from app.exceptions import ConfigurationError
from core.models.campaign import TierRow

TIER_COUNT = 3


def validate_tiers(
    tiers: list[TierRow],
    campaign_id: str | None = None,
    load_errors: list[str] | None = None,
) -> list[TierRow]:
    """
    Check a tier table and return it sorted by tier number.

    Args:
        tiers: Tier rows in any order
        campaign_id: Included in the error details when validation fails
        load_errors: Rows that could not be parsed when the campaign was loaded

    Returns:
        The rows ordered tier 1 -> 3

    Raises:
        ConfigurationError: If the table is not a well-ordered, non-overlapping
            three-tier table with strictly decreasing prices
    """
    if load_errors:
        raise ConfigurationError(
            f"unreadable tier rows: {' | '.join(load_errors)}",
            campaign_id=campaign_id,
        )

    out_of_range = sorted({t.tier for t in tiers if not 1 <= t.tier <= TIER_COUNT})
    if out_of_range:
        raise ConfigurationError(
            f"tier numbers must be 1-{TIER_COUNT}, found {out_of_range}",
            campaign_id=campaign_id,
        )

    ordered = sorted(tiers, key=lambda t: t.tier)
    numbers = [t.tier for t in ordered]

    if numbers != list(range(1, TIER_COUNT + 1)):
        raise ConfigurationError(
            f"expected tiers 1, 2, 3 but found {numbers or 'none'}",
            campaign_id=campaign_id,
        )

    for row in ordered:
        if row.range_low > row.range_high:
            raise ConfigurationError(
                f"tier {row.tier} range {row.range_low}-{row.range_high} is inverted",
                campaign_id=campaign_id,
            )
        if row.retail_price < 0 or row.supplier_cost < 0:
            raise ConfigurationError(
                f"tier {row.tier} has a negative price or cost",
                campaign_id=campaign_id,
            )

    for lower, upper in zip(ordered, ordered[1:]):
        if upper.range_low <= lower.range_high:
            raise ConfigurationError(
                f"tier {upper.tier} range must start after tier {lower.tier} ends "
                f"({upper.range_low} <= {lower.range_high})",
                campaign_id=campaign_id,
            )
        if upper.retail_price >= lower.retail_price:
            raise ConfigurationError(
                f"tier {upper.tier} price must be less than tier {lower.tier} price "
                f"({upper.retail_price} >= {lower.retail_price})",
                campaign_id=campaign_id,
            )

    return ordered


def settle_tier(
    final_order_count: int,
    tiers: list[TierRow],
    campaign_id: str | None = None,
    load_errors: list[str] | None = None,
) -> int:
    """
    Determine which tier's price applies for the final order volume.

    The settled tier is the highest tier whose range starts at or below the
    count. That is the containing tier when a range contains the count,
    tier 3 when the count exceeds every range, and tier 1 when the count is
    below tier 1's range. A count inside a gap between ranges settles in
    the lower tier.

    Args:
        final_order_count: Units sold (>= 0)
        tiers: The campaign's three tier rows
        load_errors: Campaign.tier_errors; any entry makes the table malformed

    Returns:
        Tier number in {1, 2, 3}

    Raises:
        ConfigurationError: If the tier table is malformed
        ValueError: If final_order_count is negative

    Example:
        tiers = [[1,100]@30, [101,200]@25, [201,500]@20]
        settle_tier(150, tiers)  # 2
        settle_tier(900, tiers)  # 3
    """
    if final_order_count < 0:
        raise ValueError(f"final_order_count must be >= 0, got {final_order_count}")

    ordered = validate_tiers(tiers, campaign_id=campaign_id, load_errors=load_errors)

    settled = ordered[0].tier
    for row in ordered:
        if row.range_low <= final_order_count:
            settled = row.tier
    return settled


def refund_per_unit(tiers: list[TierRow], settled_tier: int) -> Decimal:
    """
    Per-unit credit owed to tier-1 buyers: tier 1 price minus settled price.

    Never negative; zero when the campaign settled in tier 1.
    """
    by_number = {t.tier: t for t in tiers}
    difference = by_number[1].retail_price - by_number[settled_tier].retail_price
    return max(difference, Decimal("0"))
