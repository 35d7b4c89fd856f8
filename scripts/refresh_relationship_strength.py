#!/usr/bin/env python3
"""
Recompute relationship strength for one person or everyone.

Safe to re-run: each run overwrites the stored score. Should run after
interaction ingestion so scores reflect the latest data.
"""
import sys
import logging
import argparse
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import settings
from relgraph.services.relationship_metrics import RelationshipStrengthCalculator

logging.basicConfig(level=settings.log_level, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description='Update relationship strengths')
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument('--person-id', help='Recompute for a single person')
    group.add_argument('--all', action='store_true', help='Recompute for everyone with interactions')
    args = parser.parse_args()

    calculator = RelationshipStrengthCalculator()

    if args.person_id:
        result = calculator.update_relationship_strength(args.person_id)
        logger.info(
            f"{args.person_id}: strength={result.strength:.2f} trend={result.trend} "
            f"(recency={result.recency_score}, frequency={result.frequency_score}, "
            f"engagement={result.engagement_score}, reciprocity={result.reciprocity_score})"
        )
        return

    result = calculator.update_all_relationship_strengths()
    logger.info(f"\n=== Strength Update Summary ===")
    logger.info(f"Updated: {result['updated']}")
    logger.info(f"Errors: {result['errors']}")


if __name__ == '__main__':
    main()
