#!/usr/bin/env python3
"""
Migrate Docker images from one registry to another through the Docker Engine.

For every image in the configuration file, concurrently:
1. Pull the image from the source registry
2. Tag it for the destination registry
3. Push it to the destination registry
4. Remove both local copies

A failure in pull, tag or push stops that image only; the other images carry
on. SIGINT/SIGTERM cancel all in-flight operations.

Configuration file (YAML or JSON):

  from_repo: {base_address: src.example.com, server_address: src.example.com, username: u, password: p}
  to_repo:   {base_address: dst.example.com, server_address: dst.example.com, username: u, password: p}
  images:
    - {name: app, tag: v1, from_prefix: team/, to_prefix: ""}

Usage examples:
  # Migrate using ./config.json and the engine from DOCKER_HOST
  python migrate_images.py

  # Explicit config file and engine endpoint
  python migrate_images.py -f migration.yaml --docker-host tcp://localhost:2375

  # Write a JSON report and keep engine progress output off stdout
  python migrate_images.py -f migration.yaml --output reports/migration-report.json --quiet-progress

Exit status: 0 when every image migrated (cleanup failures are only logged),
1 when any image failed or the configuration is invalid, 130 when cancelled.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directory to path for imports
_parent_dir = Path(__file__).parent.parent.absolute()
if str(_parent_dir) not in sys.path:
    sys.path.insert(0, str(_parent_dir))

from migrator.config_manager import DEFAULT_CONFIG_FILE, ConfigManager
from migrator.docker_client import DockerEngineClient
from migrator.error_utils import ActionableError, ConfigValidationError, create_config_error, \
    create_docker_connection_error
from migrator.logging_utils import get_logger, log_exception, setup_logging
from migrator.models import MigrationSummary
from migrator.orchestrator import MigrationOrchestrator
from migrator.report_utils import build_report, format_summary_table, save_json

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Migrate Docker images from one registry to another",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-f",
        "--config",
        default=None,
        help=f"Config file path (default: CONFIG_FILE env var or {DEFAULT_CONFIG_FILE})",
    )

    parser.add_argument(
        "--docker-host",
        help="Docker Engine API endpoint (default: DOCKER_HOST env var or docker.host from config)",
    )

    parser.add_argument(
        "--output",
        help="Write a JSON migration report to this path (default: report.output from config, if set)",
    )

    parser.add_argument(
        "--quiet-progress",
        action="store_true",
        help="Do not copy pull/push progress output to stdout",
    )

    parser.add_argument(
        "--skip-ping",
        action="store_true",
        help="Do not check the Docker Engine is reachable before starting",
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def write_progress(chunk: bytes) -> None:
    """Copy engine progress output to stdout."""
    sys.stdout.buffer.write(chunk)
    sys.stdout.buffer.flush()


def exit_code_for(summary: MigrationSummary) -> int:
    if summary.cancelled:
        return EXIT_CANCELLED
    if summary.failed:
        return EXIT_FAILED
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    setup_logging(args.log_level)

    try:
        config_manager = ConfigManager(config_file=args.config)
    except ConfigValidationError as e:
        config_file = args.config or DEFAULT_CONFIG_FILE
        logger.error(str(create_config_error(config_file, e.errors)))
        return EXIT_FAILED

    config = config_manager.get_migration_config()
    docker_host = args.docker_host or config_manager.get_docker_host()
    output_file = args.output or config_manager.get_report_output()

    logger.info("=" * 60)
    logger.info("   REGISTRY IMAGE MIGRATION")
    logger.info("=" * 60)
    config_manager.print_config()
    logger.info("")

    try:
        client = DockerEngineClient(
            docker_host,
            timeout=config_manager.get_docker_timeout(),
            pool_size=len(config.images),
        )
    except ActionableError as e:
        logger.error(str(e))
        return EXIT_FAILED

    try:
        if config.images and not args.skip_ping and not client.ping():
            logger.error(str(create_docker_connection_error(docker_host, RuntimeError("no answer on /_ping"))))
            return EXIT_FAILED

        orchestrator = MigrationOrchestrator(
            config,
            client,
            progress=None if args.quiet_progress else write_progress,
        )
        summary = orchestrator.run()
    except Exception as e:
        log_exception(logger, "Error in migration", exc_info=e)
        return EXIT_FAILED
    finally:
        client.close()

    if summary.outcomes:
        logger.info("\n" + format_summary_table(summary))

    if output_file:
        save_json(output_file, build_report(config, summary))

    return exit_code_for(summary)


if __name__ == "__main__":
    sys.exit(main())
