# =============================================================================
# lib/stripe_client.py - Stripe Connect Transfers
# =============================================================================
# FundsTransferProvider backed by Stripe Connect transfers.
#
# - Amounts are sent in minor units (cents)
# - The caller passes idempotency_key="payout-<campaign_id>"; it is also set
#   as the transfer_group so find_transfer() can see an earlier transfer long
#   after Stripe's idempotency window has passed
# - Every Stripe failure (card/API/connection/timeout) becomes TransferError
#
# Usage:
#   from lib.stripe_client import StripeTransferClient
#   transfer_id = StripeTransferClient().transfer("acct_123", Decimal("12.00"), "sgd", {...})
# =============================================================================

import logging
from decimal import Decimal

import stripe

from app.config import settings
from app.exceptions import TransferError
from core.services.interfaces import FundsTransferProvider
from lib.utils import to_minor_units

logger = logging.getLogger(__name__)


class StripeTransferClient(FundsTransferProvider):
    """
    Creates Stripe Connect transfers to designers' connected accounts.

    Example:
        client = StripeTransferClient()
        transfer_id = client.transfer(
            "acct_1Nv...",
            Decimal("42.50"),
            "sgd",
            metadata={"design_id": "d-1", "designer_id": "u-9"},
            idempotency_key="payout-d-1",
        )
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout_seconds: int | None = None,
    ):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        timeout = timeout_seconds or settings.EXTERNAL_CALL_TIMEOUT_SECONDS
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def transfer(
        self,
        destination_account_id: str,
        amount: Decimal,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str | None = None,
    ) -> str:
        """
        Create a transfer and return its id.

        Raises:
            TransferError: If Stripe rejects the transfer or the call times out
        """
        if amount <= 0:
            raise TransferError(f"amount must be positive, got {amount}")

        design_id = metadata.get("design_id", "unknown")
        try:
            result = stripe.Transfer.create(
                api_key=self.api_key,
                amount=to_minor_units(amount),
                currency=currency.lower(),
                destination=destination_account_id,
                description=f"Payout for design {design_id}",
                metadata=metadata,
                transfer_group=idempotency_key,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            raise TransferError(
                e.user_message or str(e),
                details={
                    "stripe_error_code": getattr(e, "code", None),
                    "stripe_error_type": type(e).__name__,
                    "destination": destination_account_id,
                },
            )

        logger.debug(f"Stripe transfer {result.id} created for design {design_id}")
        return result.id

    def find_transfer(self, transfer_key: str) -> str | None:
        """
        Find a transfer created earlier with transfer_group=transfer_key.

        Raises:
            TransferError: If Stripe can't be queried
        """
        try:
            page = stripe.Transfer.list(api_key=self.api_key, transfer_group=transfer_key, limit=1)
        except stripe.StripeError as e:
            raise TransferError(
                f"transfer lookup failed: {e.user_message or str(e)}",
                details={"transfer_group": transfer_key, "stripe_error_type": type(e).__name__},
            )

        if not page.data:
            return None
        logger.debug(f"Found Stripe transfer {page.data[0].id} in group {transfer_key}")
        return page.data[0].id
