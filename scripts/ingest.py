#!/usr/bin/env python3
"""Catalog ingestion CLI script.

This script walks TMDB's popular movies page by page, storing each movie's
top-billed cast as a costar clique in the graph store. Progress is recorded as
a page watermark so an interrupted run can pick up where it stopped.

Usage:
    python scripts/ingest.py
    python scripts/ingest.py --pages 500 --max-cast 15
    python scripts/ingest.py --resume
    python scripts/ingest.py --all --resume

Options:
    --pages: Last catalog page to ingest (default: pipeline.max_pages)
    --max-cast: Top-billed cast members per movie (default: pipeline.max_cast)
    --resume: Start after the stored watermark instead of page 1
    --all: Ingest every page the provider reports (ignores --pages)
    --config, -c: Path to config file (default: config/config.yaml)
    --verbose, -v: Enable verbose logging
    --dry-run: Show what would be processed without actually doing it
"""

import argparse
import signal
import sys
from pathlib import Path

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from degrees.pipeline.ingestion_pipeline import IngestionPipeline
from degrees.utils.config import MIN_CAST, load_config
from degrees.utils.log_setup import configure_logging


def main():
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Ingest TMDB popular movies into the costar graph",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument("--pages", type=int, help="Last catalog page to ingest")

    parser.add_argument("--max-cast", type=int, help="Top-billed cast members per movie")

    parser.add_argument(
        "--resume", action="store_true", help="Resume from the page after the stored watermark"
    )

    parser.add_argument(
        "--all", action="store_true", help="Ingest every page the provider reports"
    )

    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config/config.yaml"),
        help="Path to configuration file (default: config/config.yaml)",
    )

    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be processed without actually doing it",
    )

    args = parser.parse_args()

    if args.pages is not None and args.pages < 1:
        parser.error("--pages must be at least 1")
    if args.max_cast is not None and args.max_cast < MIN_CAST:
        parser.error(f"--max-cast must be at least {MIN_CAST}")

    try:
        config = load_config(args.config, require_api_token=not args.dry_run)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(config.logging, verbose=args.verbose)
    logger.info(f"Loaded configuration from {args.config}")

    end_page = None if args.all else (args.pages or config.pipeline.max_pages)
    max_cast = args.max_cast or config.pipeline.max_cast

    try:
        pipeline = IngestionPipeline(config)
        pipeline.initialize_components()

        if args.dry_run:
            watermark = pipeline.store.get_watermark()
            first = watermark + 1 if args.resume else 1
            logger.info("Dry run mode - would process:")
            logger.info(f"  pages {first}..{end_page if end_page is not None else 'last'}")
            logger.info(f"  up to {max_cast} cast members per movie")
            logger.info(f"  current watermark: {watermark}")
            return 0

        health = pipeline.health_check()
        unhealthy = [comp for comp, healthy in health.items() if not healthy]
        if unhealthy:
            logger.error(f"Unhealthy components: {', '.join(unhealthy)}")
            return 1

        def _handle_signal(signum, frame):
            logger.warning(f"Received signal {signum}, finishing current request and stopping")
            pipeline.cancel()

        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)

        result = pipeline.run(
            start_page=1,
            end_page=end_page,
            max_participants=max_cast,
            resume=args.resume,
        )

        skipped_pages = [p.page for p in result.pages if p.error]
        held_pages = [p.page for p in result.pages if p.watermark_held]

        logger.info("=" * 50)
        logger.info("INGESTION SUMMARY")
        logger.info("=" * 50)
        logger.info(f"Pages attempted: {len(result.pages)}")
        logger.info(f"Pages completed: {result.pages_completed}")
        logger.info(f"Watermark: {result.watermark}")
        logger.info(f"Total processing time: {result.processing_time:.2f}s")

        if skipped_pages:
            logger.warning(f"Skipped pages (rerun with --resume): {skipped_pages}")
        if held_pages:
            logger.warning(f"Ingested but not watermarked: {held_pages}")

        pipeline_stats = pipeline.get_statistics()
        logger.info("Pipeline statistics:")
        for key, value in pipeline_stats.items():
            logger.info(f"  {key}: {value}")

        if result.cancelled:
            logger.warning("Ingest interrupted; rerun with --resume to continue")
            return 130
        if result.aborted:
            logger.error(f"Ingest aborted: {result.error}")
            return 1
        return 0

    except Exception as e:
        logger.error(f"Ingestion failed: {e}")
        return 1
    finally:
        if "pipeline" in locals():
            pipeline.close()


if __name__ == "__main__":
    sys.exit(main())
