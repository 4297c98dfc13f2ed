#!/usr/bin/env python3
"""
Recompute Postgres search vectors in search_index.

Usage:
    PYTHONPATH=src python scripts/rebuild_search_index.py
    PYTHONPATH=src python scripts/rebuild_search_index.py --entity-type invoice
"""

import argparse
import sys
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv
load_dotenv()

from content_search.postgres_search import SearchService


def main():
    parser = argparse.ArgumentParser(description="Rebuild Postgres full-text search vectors")
    parser.add_argument("--entity-type", type=str, help="Only rebuild rows of this entity type")
    args = parser.parse_args()

    service = SearchService()
    scope = args.entity_type or "all entity types"
    print(f"Rebuilding search vectors for {scope} (config: {service.text_config})...")

    t_start = time.time()
    rows = service.rebuild_index(args.entity_type)
    print(f"  Updated {rows} rows in {time.time() - t_start:.1f}s")


if __name__ == "__main__":
    main()
