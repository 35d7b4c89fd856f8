#!/usr/bin/env python3
"""
Merge duplicate person or organization records.

Folds the duplicate into the primary, reassigning every reference
(facts, tasks, commitments, deals, relationships) in one transaction.
Runs as a dry run unless --execute is given.

Usage:
    python scripts/merge_entities.py --type person --primary <id> --duplicate <id> [--execute]
    python scripts/merge_entities.py --type organization --find-duplicates "Acme"
"""
import sys
import json
import logging
import argparse
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import settings
from relgraph.services.duplicate_detector import DuplicateDetector
from relgraph.services.entities import OrganizationInput, PersonInput
from relgraph.services.entity_merger import get_entity_merger
from relgraph.services.errors import GraphError

logging.basicConfig(level=settings.log_level, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def find_duplicates(entity_type: str, name: str, threshold: float = None):
    """Print likely duplicates for a name."""
    detector = DuplicateDetector()
    if entity_type == "person":
        first_name, _, last_name = name.strip().partition(" ")
        matches = detector.find_duplicate_people(PersonInput(first_name, last_name), threshold=threshold)
    else:
        matches = detector.find_duplicate_organizations(OrganizationInput(name), threshold=threshold)

    if not matches:
        logger.info(f"No duplicates found for '{name}'")
        return

    logger.info(f"Found {len(matches)} possible duplicates for '{name}':")
    for m in matches:
        logger.info(f"  {m.similarity:.2f}  {m.id}  {m.name}  {m.email or ''}")


def main():
    parser = argparse.ArgumentParser(description='Merge duplicate entities')
    parser.add_argument('--type', choices=['person', 'organization'], default='person',
                        help='Entity type to merge')
    parser.add_argument('--primary', help='ID of the entity to keep')
    parser.add_argument('--duplicate', help='ID of the entity to merge and delete')
    parser.add_argument('--execute', action='store_true', help='Actually apply changes')
    parser.add_argument('--find-duplicates', metavar='NAME', help='List likely duplicates for a name')
    parser.add_argument('--threshold', type=float, help='Similarity threshold for --find-duplicates')
    args = parser.parse_args()

    if args.find_duplicates:
        find_duplicates(args.type, args.find_duplicates, args.threshold)
        return

    if not args.primary or not args.duplicate:
        parser.error('--primary and --duplicate are required')

    dry_run = not args.execute
    if dry_run:
        logger.info("DRY RUN - use --execute to apply changes")

    merger = get_entity_merger()
    try:
        if args.type == 'person':
            result = merger.merge_people(args.primary, args.duplicate, dry_run=dry_run)
        else:
            result = merger.merge_organizations(args.primary, args.duplicate, dry_run=dry_run)
    except GraphError as e:
        logger.error(f"Merge failed: {e.message}")
        sys.exit(1)

    logger.info(f"\n=== Merge Summary ===")
    logger.info(json.dumps(result.stats, indent=2))


if __name__ == '__main__':
    main()
