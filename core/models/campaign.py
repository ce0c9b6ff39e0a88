# =============================================================================
# core/models/campaign.py - Campaign, Tier & Order Schemas
# =============================================================================
# These models describe a design's pre-order campaign as the settlement
# pipeline sees it:
# - TierRow: one of the three pricing brackets
# - Campaign: a design_submissions row with its tier table and lifecycle state
# - PreOrder: a buyer's pre-order line item
# - DesignerAccount: the payout-relevant slice of a designer's profile
#
# Lifecycle:
#   accepting_orders -> in_settlement -> in_production -> completed
# =============================================================================

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from lib.utils import to_decimal

# "Retained-12%" -> 12
_ROYALTY_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%")


class CampaignStatus(str, Enum):
    """
    Lifecycle of a pre-order campaign.

    - accepting_orders: pre-order window is open
    - in_settlement: claimed by a settlement run, tier not yet persisted
    - in_production: tier settled and refunds reconciled; awaiting payout
    - completed: designer payout transferred (terminal)
    """
    ACCEPTING_ORDERS = "accepting_orders"
    IN_SETTLEMENT = "in_settlement"
    IN_PRODUCTION = "in_production"
    COMPLETED = "completed"


class OrderStatus(str, Enum):
    """Payment state of a pre-order."""
    CHARGED = "charged"
    REFUNDED = "refunded"


class TierRow(BaseModel):
    """
    One pricing bracket of a campaign.

    Accepts the camelCase keys written by the admin pricing screen as well
    as the snake_case keys used by the database functions.

    Example:
        {"tier": 2, "rangeLow": 101, "rangeHigh": 200,
         "supplierCost": 12.0, "retailPrice": 25.0}
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tier: int = Field(..., description="Tier number (1-3, checked by validate_tiers)")

    range_low: int = Field(
        ...,
        validation_alias=AliasChoices("range_low", "rangeLow"),
        description="Lowest unit count (inclusive) for this tier"
    )

    range_high: int = Field(
        ...,
        validation_alias=AliasChoices("range_high", "rangeHigh"),
        description="Highest unit count (inclusive) for this tier"
    )

    supplier_cost: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("supplier_cost", "supplierCost"),
        description="Per-unit cost paid to the supplier at this volume"
    )

    retail_price: Decimal = Field(
        ...,
        validation_alias=AliasChoices("retail_price", "retailPrice", "price"),
        description="Per-unit price buyers pay at this tier"
    )

    def contains(self, units: int) -> bool:
        """Check whether a unit count falls inside this tier's range."""
        return self.range_low <= units <= self.range_high

    @property
    def margin(self) -> Decimal:
        """Per-unit profit before royalty split."""
        return self.retail_price - self.supplier_cost


class Campaign(BaseModel):
    """
    A design's pre-order campaign.

    Built from a design_submissions row via from_db_row(). The tier table is
    validated by the tier calculator, not here, so a malformed table still
    loads and can be reported as a ConfigurationError for that campaign only.
    """

    id: str
    title: str = "Untitled design"
    designer_id: str | None = None
    tiers: list[TierRow] = Field(default_factory=list)
    tier_errors: list[str] = Field(
        default_factory=list,
        description="Tier rows that could not be parsed when the campaign was loaded"
    )
    preorder_start_date: datetime | None = None
    status: CampaignStatus = CampaignStatus.ACCEPTING_ORDERS
    settled_tier: int | None = None
    refund_per_unit: Decimal | None = None
    royalty_rate: Decimal = Decimal("0.12")

    def tier(self, number: int) -> TierRow | None:
        """Get the tier row with the given number."""
        for row in self.tiers:
            if row.tier == number:
                return row
        return None

    @property
    def is_settled(self) -> bool:
        """True once the tier has been persisted (in_production or completed)."""
        return self.status in (CampaignStatus.IN_PRODUCTION, CampaignStatus.COMPLETED)

    @classmethod
    def from_db_row(
        cls,
        row: dict[str, Any],
        default_royalty_rate: Decimal = Decimal("0.12"),
    ) -> Campaign:
        """
        Create a Campaign from a design_submissions row.

        Args:
            row: Row with id, title, designer_id, tiered_pricing_data,
                 preorder_start_date, submission_status, current_active_tier,
                 potential_refund_per_unit and copyright_model
            default_royalty_rate: Used when copyright_model has no percentage

        Returns:
            Campaign instance
        """
        tiers, tier_errors = parse_tier_table(row.get("tiered_pricing_data"))
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "Untitled design",
            designer_id=row.get("designer_id"),
            tiers=tiers,
            tier_errors=tier_errors,
            preorder_start_date=row.get("preorder_start_date"),
            status=CampaignStatus(row.get("submission_status") or CampaignStatus.ACCEPTING_ORDERS.value),
            settled_tier=row.get("current_active_tier") if row.get("submission_status") in (
                CampaignStatus.IN_PRODUCTION.value, CampaignStatus.COMPLETED.value
            ) else None,
            refund_per_unit=to_decimal(row.get("potential_refund_per_unit")),
            royalty_rate=parse_royalty_rate(row.get("copyright_model"), default_royalty_rate),
        )


def parse_tier_table(raw: Any) -> tuple[list[TierRow], list[str]]:
    """
    Parse tiered_pricing_data row by row.

    Rows that fail validation are reported instead of raised, so one bad
    campaign can't stop a whole list of campaigns from loading.

    Returns:
        (parsed rows, one message per row that could not be parsed)
    """
    if raw is None:
        return [], []
    if not isinstance(raw, list):
        return [], [f"tier table must be a list, got {type(raw).__name__}"]

    tiers: list[TierRow] = []
    errors: list[str] = []
    for position, entry in enumerate(raw, start=1):
        try:
            tiers.append(TierRow.model_validate(entry))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'row'}: {err['msg']}"
                for err in e.errors()
            )
            errors.append(f"row {position}: {problems}")
    return tiers, errors


def parse_royalty_rate(copyright_model: str | None, default: Decimal) -> Decimal:
    """
    Extract the designer royalty rate from a copyright model label.

    Example:
        parse_royalty_rate("Retained-12%", Decimal("0.1"))  # Decimal("0.12")
        parse_royalty_rate(None, Decimal("0.1"))            # Decimal("0.1")
    """
    if not copyright_model:
        return default
    match = _ROYALTY_PATTERN.search(copyright_model)
    if not match:
        return default
    return Decimal(match.group(1)) / Decimal(100)


class PreOrder(BaseModel):
    """A buyer's pre-order line item (pre_orders row)."""

    id: str
    campaign_id: str
    buyer_id: str | None = None
    quantity: int = Field(default=1, ge=0)
    amount_paid: Decimal | None = None
    status: OrderStatus = OrderStatus.CHARGED
    refund_credit_issued: bool = False

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> PreOrder:
        """Create a PreOrder from a pre_orders row."""
        return cls(
            id=str(row["id"]),
            campaign_id=str(row.get("design_id", "")),
            buyer_id=str(row["user_id"]) if row.get("user_id") else None,
            quantity=row.get("quantity") or 0,
            amount_paid=to_decimal(row.get("amount_paid")),
            status=OrderStatus(row.get("status") or OrderStatus.CHARGED.value),
            refund_credit_issued=bool(row.get("refund_credit_issued", False)),
        )


class DesignerAccount(BaseModel):
    """Payout-relevant fields of a designer's user_profiles row."""

    id: str
    stripe_connect_account_id: str | None = None
    total_earnings: Decimal = Decimal("0")
    current_quarter_earned: Decimal = Decimal("0")
    quarterly_cap: Decimal = Decimal("5000")

    @property
    def remaining_quarter_allowance(self) -> Decimal:
        """How much more the designer may earn this quarter (never negative)."""
        return max(self.quarterly_cap - self.current_quarter_earned, Decimal("0"))

    @classmethod
    def from_db_row(
        cls,
        row: dict[str, Any],
        default_quarterly_cap: Decimal = Decimal("5000"),
    ) -> DesignerAccount:
        """Create a DesignerAccount from a user_profiles row."""
        return cls(
            id=str(row["id"]),
            stripe_connect_account_id=row.get("stripe_connect_account_id") or None,
            total_earnings=to_decimal(row.get("total_earnings"), Decimal("0")),
            current_quarter_earned=to_decimal(row.get("current_quarter_bonus_earned"), Decimal("0")),
            quarterly_cap=to_decimal(row.get("quarterly_bonus_cap"), default_quarterly_cap),
        )
