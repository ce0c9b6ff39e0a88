# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains the infrastructure adapters and shared helpers:
# - supabase_client.py: Supabase client singleton + SettlementStore/EmailQueue
# - stripe_client.py: Stripe Connect transfers (FundsTransferProvider)
# - utils.py: Money and UUID helpers
#
# The adapters are imported from their modules directly; core.models depends
# on lib.utils, so this package keeps its own imports light.
# =============================================================================

from lib.utils import format_money, normalize_uuid, round_money, to_decimal, to_minor_units

__all__ = [
    "format_money",
    "normalize_uuid",
    "round_money",
    "to_decimal",
    "to_minor_units",
]
