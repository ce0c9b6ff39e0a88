# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the settlement service:
# - test_tier_calculator.py / test_refund_reconciler.py / test_payout_calculator.py:
#   pipeline components against in-memory fakes (fakes.py)
# - test_settlement_service.py: end-to-end batch scenarios
# - test_supabase_store.py / test_stripe_client.py: adapters with mocked clients
# - test_api.py / test_workers.py: HTTP and Celery entry points
#
# Run tests with: pytest
# =============================================================================
