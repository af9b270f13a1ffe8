"""
Registry image migrator.

Pulls each configured image from a source registry, re-tags it, pushes it to
a destination registry and removes the local copies, one concurrent pipeline
per image.
"""

from migrator.cancellation import CancellationWatcher, MigrationContext
from migrator.credentials import decode_credential, encode_credential
from migrator.models import (
    ImageDescriptor,
    MigrationConfig,
    MigrationJob,
    MigrationSummary,
    PipelineOutcome,
    RegistryCredential,
    Stage,
)
from migrator.orchestrator import MigrationOrchestrator
from migrator.pipeline import ImagePipeline, run_pipeline

__all__ = [
    "CancellationWatcher",
    "ImageDescriptor",
    "ImagePipeline",
    "MigrationConfig",
    "MigrationContext",
    "MigrationJob",
    "MigrationOrchestrator",
    "MigrationSummary",
    "PipelineOutcome",
    "RegistryCredential",
    "Stage",
    "decode_credential",
    "encode_credential",
    "run_pipeline",
]
