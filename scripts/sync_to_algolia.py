#!/usr/bin/env python3
"""
Bulk sync products, vendors and customers from Supabase to Algolia.

Usage:
    # From project root, with venv active:
    PYTHONPATH=src python scripts/sync_to_algolia.py

    # Dry run - just count rows:
    PYTHONPATH=src python scripts/sync_to_algolia.py --dry-run

    # One entity type only:
    PYTHONPATH=src python scripts/sync_to_algolia.py --entity-type vendor

    # Only apply index settings (no indexing):
    PYTHONPATH=src python scripts/sync_to_algolia.py --configure-only
"""

import argparse
import os
import sys
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv
load_dotenv()

from supabase import create_client

from content_search.algolia_client import AlgoliaSearchService
from content_search.algolia_config import prepare_entity_for_algolia

# Entity type -> source table
ENTITY_TABLES = {
    "product": "products",
    "vendor": "vendors",
    "customer": "customers",
}


def get_supabase():
    """Create Supabase client."""
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
    return create_client(url, key)


def fetch_total_count(supabase, table: str) -> int:
    result = supabase.table(table).select("id", count="exact").execute()
    return result.count or 0


def fetch_batch(supabase, table: str, offset: int, batch_size: int):
    """Fetch a page of rows ordered by id."""
    result = (
        supabase.table(table)
        .select("*")
        .order("id")
        .range(offset, offset + batch_size - 1)
        .execute()
    )
    return result.data or []


def save_with_retry(algolia, entity_type, records, batch_size=100, max_retries=3, retry_delay=5):
    """Save records to Algolia, retrying on error."""
    for attempt in range(1, max_retries + 1):
        try:
            algolia.save_objects(entity_type, records, batch_size=batch_size)
            return True
        except Exception as e:
            if attempt < max_retries:
                print(f"    [RETRY {attempt}/{max_retries}] Error: {e}, retrying in {retry_delay}s...")
                time.sleep(retry_delay)
            else:
                print(f"    [FAILED] All {max_retries} attempts failed: {e}")
    return False


def sync_entity_type(supabase, algolia, entity_type: str, args) -> dict:
    table = ENTITY_TABLES[entity_type]
    total = fetch_total_count(supabase, table)
    print(f"\n{entity_type}: {total} rows in '{table}' -> {algolia.index_name_for(entity_type)}")

    stats = {"total": total, "indexed": 0, "skipped": 0, "failed": 0}
    if args.dry_run or total == 0:
        return stats

    offset = 0
    t_start = time.time()
    while offset < total:
        rows = fetch_batch(supabase, table, offset, args.batch_size)
        if not rows:
            break

        records = []
        for row in rows:
            try:
                records.append(prepare_entity_for_algolia(entity_type, row))
            except ValueError as e:
                stats["skipped"] += 1
                if stats["skipped"] <= 10:
                    print(f"  [SKIP] {row.get('id')}: {e}")

        if records:
            if save_with_retry(algolia, entity_type, records, batch_size=args.batch_size, max_retries=args.retries):
                stats["indexed"] += len(records)
            else:
                stats["failed"] += len(records)

        offset += len(rows)
        elapsed = time.time() - t_start
        pct = min(100.0, offset / total * 100)
        print(
            f"  [{pct:5.1f}%] Indexed: {stats['indexed']} | "
            f"Skipped: {stats['skipped']} | "
            f"Failed: {stats['failed']} | "
            f"Elapsed: {elapsed:.0f}s"
        )

    return stats


def main():
    parser = argparse.ArgumentParser(description="Sync entities to Algolia")
    parser.add_argument("--dry-run", action="store_true", help="Just count, don't index")
    parser.add_argument("--entity-type", choices=sorted(ENTITY_TABLES), help="Sync one entity type only")
    parser.add_argument("--batch-size", type=int, default=100, help="Records per batch (default 100)")
    parser.add_argument("--configure-only", action="store_true", help="Only apply index settings")
    parser.add_argument("--retries", type=int, default=3, help="Max retries per batch on failure")
    args = parser.parse_args()

    supabase = get_supabase()
    algolia = AlgoliaSearchService()

    if not args.dry_run:
        print("Configuring Algolia index settings...")
        algolia.configure_indices()

    if args.configure_only:
        print("\nDone (configure-only mode).")
        return

    entity_types = [args.entity_type] if args.entity_type else list(ENTITY_TABLES)
    t_start = time.time()
    summary = {et: sync_entity_type(supabase, algolia, et, args) for et in entity_types}

    if args.dry_run:
        print("\n[DRY RUN] Would index the above rows. Run without --dry-run to execute.")
        return

    elapsed = time.time() - t_start
    print(f"\n{'='*60}")
    print("SYNC COMPLETE")
    print(f"{'='*60}")
    for entity_type, stats in summary.items():
        print(
            f"  {entity_type:<10} total={stats['total']} indexed={stats['indexed']} "
            f"skipped={stats['skipped']} failed={stats['failed']}"
        )
    print(f"  Time: {elapsed:.1f}s")
    print(f"{'='*60}")


if __name__ == "__main__":
    main()
