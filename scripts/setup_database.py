#!/usr/bin/env python3
"""Database setup script for initializing the Neo4j costar graph.

This script creates the Person uniqueness constraint, the full-text name index,
and the ingest-state constraint. It can be run multiple times safely (idempotent).

Usage:
    python scripts/setup_database.py [--reset] [--yes]

Environment variables:
    NEO4J_URI - Neo4j connection URI (default: bolt://localhost:7687)
    NEO4J_USER - Neo4j username (default: neo4j)
    NEO4J_PASSWORD - Neo4j password (default: degrees2024)
"""

import argparse
import sys
from pathlib import Path

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from degrees.storage.neo4j_manager import Neo4jManager
from degrees.utils.config import load_config
from degrees.utils.log_setup import configure_logging


def setup_neo4j(config, *, reset: bool = False) -> bool:
    """Set up Neo4j database with schema and constraints.

    Args:
        config: Application configuration
        reset: Delete all graph data (including the watermark) first

    Returns:
        True if setup successful, False otherwise
    """
    logger.info("Setting up Neo4j database...")

    try:
        neo4j_manager = Neo4jManager(config.database)
        neo4j_manager.connect()

        if reset:
            neo4j_manager.clear()

        neo4j_manager.create_schema()

        if neo4j_manager.health_check():
            logger.success("Neo4j setup completed successfully")
            return True
        else:
            logger.error("Neo4j health check failed after setup")
            return False

    except Exception as e:
        logger.error(f"Neo4j setup failed: {e}")
        return False
    finally:
        if "neo4j_manager" in locals():
            neo4j_manager.close()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Initialize the Neo4j schema for the costar graph.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config/config.yaml"),
        help="Path to configuration file",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete every person, costar edge, and the ingest watermark before setup.",
    )
    parser.add_argument("--yes", "-y", action="store_true", help="Skip the reset confirmation")
    return parser.parse_args()


def main():
    """Main setup function."""
    args = parse_args()

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(config.logging)
    logger.info("Starting database setup...")

    if args.reset and not args.yes:
        answer = input("This deletes the whole costar graph. Continue? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            logger.info("Reset cancelled")
            return 1

    if setup_neo4j(config, reset=args.reset):
        logger.info("You can now run the ingestion pipeline")
        return 0

    logger.error("Database setup failed. Check logs above for details.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
