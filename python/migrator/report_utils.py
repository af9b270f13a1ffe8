"""
Utility functions for the migration report.

This module provides functions to:
- Render the per-image outcome table printed at the end of a run
- Build and save the JSON migration report
"""
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from tabulate import tabulate

from migrator.logging_utils import get_logger
from migrator.models import MigrationConfig, MigrationSummary

logger = get_logger(__name__)


def format_summary_table(summary: MigrationSummary) -> str:
    """Render one row per image with its final status."""
    headers = ["Image", "Source", "Destination", "Status", "Error"]
    rows = []
    for outcome in summary.outcomes:
        error = str(outcome.error) if outcome.error is not None else ""
        if outcome.succeeded and outcome.cleanup_errors:
            error = f"cleanup: {len(outcome.cleanup_errors)} failed"
        rows.append([
            f"{outcome.image.name}:{outcome.image.tag}",
            outcome.job.source_ref if outcome.job else "",
            outcome.job.dest_ref if outcome.job else "",
            outcome.status,
            error,
        ])
    return tabulate(rows, headers=headers, tablefmt="grid")


def build_report(config: MigrationConfig, summary: MigrationSummary) -> Dict[str, Any]:
    """Assemble the JSON report. Credentials other than the addresses are not included."""
    return {
        "summary": {
            "total_images": len(summary.outcomes),
            "succeeded": summary.succeeded,
            "failed": summary.failed,
            "cleanup_failures": sum(len(o.cleanup_errors) for o in summary.outcomes),
            "cancelled": summary.cancelled,
        },
        "images": [outcome.to_dict() for outcome in summary.outcomes],
        "metadata": {
            "source_registry": config.from_registry.base_address,
            "dest_registry": config.to_registry.base_address,
            "timestamp": datetime.now().isoformat(),
        },
    }


def save_json(path: str, data: Any) -> str:
    """
    Write JSON data to a file with indentation.

    Args:
        path: Path to save the JSON file
        data: Data to save

    Returns:
        Path to the saved file
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    with open(target, "w") as f:
        json.dump(data, f, indent=2, default=str)

    logger.info(f"Report saved to: {target}")
    return str(target)
