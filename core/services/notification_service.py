# =============================================================================
# core/services/notification_service.py - Notification Dispatcher
# =============================================================================
# Queues REFUND_ISSUED and PAYOUT_SENT emails. Delivery is handled by the
# email queue processor outside this service.
#
# Notifications are best-effort: a failed enqueue is logged as a
# NotificationError and never interrupts the settlement pipeline.
# =============================================================================

import logging
from decimal import Decimal
from typing import Any

from app.exceptions import NotificationError
from core.models.settlement import NotificationTemplate
from core.services.interfaces import EmailQueue
from lib.utils import format_money

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Fire-and-forget email queueing for settlement events.

    Example:
        dispatcher = NotificationDispatcher(store)
        dispatcher.refund_issued("user-1", "Neon Jacket", 2, Decimal("15"), Decimal("40"))
    """

    def __init__(self, queue: EmailQueue):
        self.queue = queue

    def dispatch(
        self,
        user_id: str,
        template: NotificationTemplate,
        template_data: dict[str, Any],
    ) -> str | None:
        """
        Queue one email.

        Returns:
            Queue entry id, or None if queueing failed
        """
        try:
            queue_id = self.queue.enqueue_email(user_id, template.value, template_data)
            logger.debug(f"Queued {template.value} email {queue_id} for user {user_id}")
            return queue_id
        except Exception as e:
            error = NotificationError(user_id, template.value, str(e))
            logger.warning(str(error))
            return None

    def refund_issued(
        self,
        user_id: str,
        design_name: str,
        tier: int,
        refund_amount: Decimal,
        credit_balance: Decimal | None,
    ) -> str | None:
        """Tell a buyer their pre-order settled lower and credit was added."""
        return self.dispatch(
            user_id,
            NotificationTemplate.REFUND_ISSUED,
            {
                "design_name": design_name,
                "tier": str(tier),
                "refund_amount": format_money(refund_amount),
                "credit_balance": format_money(credit_balance),
            },
        )

    def payout_sent(
        self,
        user_id: str,
        design_name: str,
        amount: Decimal,
        total_earnings: Decimal | None,
    ) -> str | None:
        """Tell a designer their payout was transferred."""
        return self.dispatch(
            user_id,
            NotificationTemplate.PAYOUT_SENT,
            {
                "design_name": design_name or "Your Design",
                "amount": format_money(amount),
                "total_earnings": format_money(total_earnings),
            },
        )
