#!/usr/bin/env python3
# =============================================================================
# scripts/run_settlement.py - Run One Settlement Batch In-Process
# =============================================================================
# Runs the settlement batch (or a single campaign) without Celery and prints
# the report as JSON.
#
# Usage:
#   python scripts/run_settlement.py
#   python scripts/run_settlement.py --campaign <design_id> [--force]
#
# Exit codes:
#   0 - every campaign succeeded
#   1 - the batch failed wholesale, or at least one campaign errored
# =============================================================================

import argparse
import json
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the pre-order settlement batch")
    parser.add_argument("--campaign", help="Settle a single campaign instead of the whole batch")
    parser.add_argument(
        "--force",
        action="store_true",
        help="With --campaign: ignore the settlement window",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the batch and print the report. Returns the process exit code."""
    args = parse_args(argv)

    from app.exceptions import SettlementException
    from core.models.settlement import Outcome
    from core.services.settlement_service import CampaignOrchestrator

    try:
        orchestrator = CampaignOrchestrator.from_settings()
        if args.campaign:
            outcome = orchestrator.settle_campaign(args.campaign, force=args.force)
            print(json.dumps(outcome.model_dump(mode="json"), indent=2))
            return 0 if outcome.outcome == Outcome.SUCCESS else 1

        report = orchestrator.run_batch()
    except SettlementException as e:
        logger.error(f"Settlement run failed: {e}")
        print(json.dumps(e.to_dict(), indent=2))
        return 1

    print(json.dumps(report.to_summary(), indent=2))
    return 1 if report.has_errors else 0


if __name__ == "__main__":
    sys.exit(main())
