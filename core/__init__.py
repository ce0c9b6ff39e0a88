# =============================================================================
# core/ - Business Logic Package
# =============================================================================
# This package contains the settlement pipeline:
# - models/: Pydantic schemas for campaigns, orders and run results
# - services/: tier calculator, refund reconciler, payout calculator,
#   notification dispatcher and the campaign orchestrator
#
# Services depend only on the abstract collaborators in
# services/interfaces.py; Supabase and Stripe adapters live in lib/.
# =============================================================================
