#!/usr/bin/env python3
"""
Re-embed stored transcripts whose vectors were produced by an older
embedding model.

Usage:
    export SUPABASE_URL="https://<project>.supabase.co"
    export SUPABASE_SERVICE_ROLE_KEY="..."
    export OPENAI_API_KEY="sk-..."
    python scripts/reembed_transcripts.py --batch-size 20 --delay 1.0
"""

import argparse
import logging
import sys

from truthtable.config import Settings
from truthtable.llm import LLMClient
from truthtable.reembed import reembed_stale_transcripts
from truthtable.store import SupabaseStore, get_supabase_client

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    """Run the re-embedding job."""
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Re-embed transcripts with the current embedding model")
    parser.add_argument("--batch-size", type=int, default=settings.reembed_batch_size,
                        help="Rows per batch")
    parser.add_argument("--delay", type=float, default=settings.reembed_delay_seconds,
                        help="Seconds to wait between batches")
    parser.add_argument("--max-rows", type=int, default=None,
                        help="Stop after this many rows")
    args = parser.parse_args(argv)

    try:
        store = SupabaseStore(get_supabase_client(settings))
    except ValueError as e:
        logger.error(str(e))
        return 1

    llm = LLMClient.from_settings(settings)
    if llm.openai_client is None:
        logger.error("OPENAI_API_KEY environment variable required")
        return 1

    print("=" * 60)
    print(f"Re-embedding transcripts with {settings.embedding_model}")
    print("=" * 60)

    report = reembed_stale_transcripts(
        store,
        llm,
        batch_size=args.batch_size,
        delay_seconds=args.delay,
        max_rows=args.max_rows,
    )

    print(f"  Rows processed: {report.processed}")
    print(f"  Rows skipped (no source text): {report.skipped}")
    print(f"  Rows failed: {report.failed}")
    print(f"  Batches: {report.batches}")
    return 0 if report.failed == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
