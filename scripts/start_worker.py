#!/usr/bin/env python3
# =============================================================================
# scripts/start_worker.py - Celery Worker Entry Point
# =============================================================================
# Starts a Celery worker with an embedded beat scheduler, so one process
# both triggers and runs the daily settlement batch.
#
# Usage:
#   # Start worker (development)
#   python scripts/start_worker.py
#
#   # Or use Celery CLI directly (separate beat process in production)
#   celery -A workers.celery_app worker --loglevel=info -Q default,settlement
#   celery -A workers.celery_app beat --loglevel=info
#
# Prerequisites:
#   - Redis must be running
#   - Environment variables must be set (.env file)
# =============================================================================

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from workers.celery_app import celery_app


def main():
    """Start the Celery worker with embedded beat."""
    print("=" * 60)
    print("Settlement Celery Worker")
    print("=" * 60)
    print()
    print("Starting worker (with beat)...")
    print("Press Ctrl+C to stop")
    print()

    celery_app.worker_main([
        "worker",
        "--loglevel=info",
        "--beat",
        "--queues=default,settlement",
        # Campaigns are processed sequentially; one process is enough
        "--concurrency=1",
    ])


if __name__ == "__main__":
    main()
