# =============================================================================
# tests/test_tier_calculator.py - Tier Settlement Tests
# =============================================================================
# Unit tests for settle_tier / validate_tiers / refund_per_unit:
# - Counts inside, on the edges of, above and below the ranges
# - Malformed tables raise ConfigurationError
#
# Run with: pytest tests/test_tier_calculator.py -v
# =============================================================================

from decimal import Decimal

import pytest

from app.exceptions import ConfigurationError
from core.models import TierRow
from core.services.tier_calculator import refund_per_unit, settle_tier, validate_tiers


def _row(tier, low, high, price, cost="0"):
    return TierRow(tier=tier, range_low=low, range_high=high, retail_price=Decimal(price), supplier_cost=Decimal(cost))


# =============================================================================
# settle_tier
# =============================================================================

class TestSettleTier:
    """Tests for choosing the settled tier."""

    @pytest.mark.parametrize("count,expected", [
        (1, 1),
        (50, 1),
        (100, 1),
        (101, 2),
        (150, 2),
        (200, 2),
        (201, 3),
        (500, 3),
    ])
    def test_count_inside_a_range(self, tiers, count, expected):
        """The tier whose range contains the count is chosen."""
        assert settle_tier(count, tiers) == expected

    def test_count_above_all_ranges_is_tier_3(self, tiers):
        """Selling more than anticipated gets the best price."""
        assert settle_tier(900, tiers) == 3

    def test_zero_count_is_tier_1(self, tiers):
        """A count below tier 1's range settles in tier 1."""
        assert settle_tier(0, tiers) == 1

    def test_chosen_range_contains_count(self, tiers):
        """For every count up to the top range, the chosen range contains it."""
        by_number = {t.tier: t for t in tiers}
        for count in range(1, 501):
            assert by_number[settle_tier(count, tiers)].contains(count)

    def test_count_in_gap_settles_lower_tier(self):
        """A gap between ranges keeps the lower tier."""
        gapped = [_row(1, 1, 50, "30"), _row(2, 60, 100, "25"), _row(3, 101, 200, "20")]
        assert settle_tier(55, gapped) == 1

    def test_unordered_input_is_accepted(self, tiers):
        """Rows may arrive in any order."""
        assert settle_tier(150, list(reversed(tiers))) == 2

    def test_negative_count_rejected(self, tiers):
        """Negative counts are a caller bug."""
        with pytest.raises(ValueError):
            settle_tier(-1, tiers)


# =============================================================================
# validate_tiers
# =============================================================================

class TestValidateTiers:
    """Tests for tier table validation."""

    def test_valid_table_sorted(self, tiers):
        """A valid table comes back ordered 1 -> 3."""
        ordered = validate_tiers(list(reversed(tiers)))
        assert [t.tier for t in ordered] == [1, 2, 3]

    def test_missing_tier(self, tiers):
        """Exactly three tiers are required."""
        with pytest.raises(ConfigurationError) as exc_info:
            validate_tiers(tiers[:2], campaign_id="design-1")
        assert exc_info.value.code == "INVALID_TIER_CONFIGURATION"
        assert exc_info.value.details["campaign_id"] == "design-1"

    def test_empty_table(self):
        with pytest.raises(ConfigurationError):
            settle_tier(10, [])

    def test_overlapping_ranges(self):
        """Tier 2 must start after tier 1 ends."""
        overlapping = [_row(1, 1, 100, "30"), _row(2, 100, 200, "25"), _row(3, 201, 500, "20")]
        with pytest.raises(ConfigurationError, match="must start after"):
            settle_tier(150, overlapping)

    def test_non_decreasing_price(self):
        """Prices must strictly decrease."""
        flat = [_row(1, 1, 100, "30"), _row(2, 101, 200, "30"), _row(3, 201, 500, "20")]
        with pytest.raises(ConfigurationError, match="price must be less"):
            validate_tiers(flat)

    def test_inverted_range(self):
        inverted = [_row(1, 100, 1, "30"), _row(2, 101, 200, "25"), _row(3, 201, 500, "20")]
        with pytest.raises(ConfigurationError, match="inverted"):
            validate_tiers(inverted)

    def test_tier_number_out_of_range(self, tiers):
        extra = tiers + [_row(4, 501, 900, "15")]
        with pytest.raises(ConfigurationError, match=r"must be 1-3, found \[4\]"):
            validate_tiers(extra)

    def test_load_errors_make_table_invalid(self, tiers):
        """Rows that failed to parse at load time invalidate an otherwise good table."""
        with pytest.raises(ConfigurationError, match="unreadable tier rows: row 4") as exc_info:
            settle_tier(150, tiers, campaign_id="design-1", load_errors=["row 4: retail_price: Field required"])
        assert exc_info.value.details["campaign_id"] == "design-1"

    def test_negative_cost(self):
        negative = [_row(1, 1, 100, "30", "-1"), _row(2, 101, 200, "25"), _row(3, 201, 500, "20")]
        with pytest.raises(ConfigurationError, match="negative"):
            validate_tiers(negative)


# =============================================================================
# refund_per_unit
# =============================================================================

class TestRefundPerUnit:
    """Tests for the per-unit refund amount."""

    def test_tier_1_owes_nothing(self, tiers):
        assert refund_per_unit(tiers, 1) == Decimal("0")

    def test_tier_2_difference(self, tiers):
        assert refund_per_unit(tiers, 2) == Decimal("5")

    def test_tier_3_difference(self, tiers):
        assert refund_per_unit(tiers, 3) == Decimal("10")
