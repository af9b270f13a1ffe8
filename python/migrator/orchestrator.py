"""
Concurrent migration of every configured image.

The orchestrator starts one pipeline per image at once (no worker cap), shares
a single MigrationContext between them, and waits until each one has produced
an outcome. A failing image never stops its siblings.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from migrator.cancellation import CancellationWatcher, MigrationContext
from migrator.docker_client import RegistryClient
from migrator.logging_utils import get_logger, log_exception
from migrator.models import MigrationConfig, MigrationSummary, PipelineOutcome
from migrator.pipeline import ImagePipeline, ProgressSink

logger = get_logger(__name__)


class MigrationOrchestrator:
    """Fans out one ImagePipeline per image and joins them all."""

    def __init__(
        self,
        config: MigrationConfig,
        client: RegistryClient,
        context: Optional[MigrationContext] = None,
        progress: Optional[ProgressSink] = None,
        watch_signals: bool = True,
    ):
        """Initialize the orchestrator

        Args:
            config: Registries and images to migrate
            client: Registry client shared by all pipelines
            context: Shared cancellation context (a new one is created if omitted)
            progress: Optional sink for pull/push progress chunks
            watch_signals: Install SIGINT/SIGTERM handlers for the duration of run()
        """
        self.config = config
        self.client = client
        self.context = context or MigrationContext()
        self.progress = progress
        self.watch_signals = watch_signals

    def _build_pipelines(self) -> List[ImagePipeline]:
        return [
            ImagePipeline(
                self.context,
                self.client,
                self.config.from_registry,
                self.config.to_registry,
                image,
                progress=self.progress,
            )
            for image in self.config.images
        ]

    def _run_all(self, pipelines: List[ImagePipeline]) -> List[PipelineOutcome]:
        outcomes = []
        with ThreadPoolExecutor(max_workers=len(pipelines), thread_name_prefix="migrate") as executor:
            futures = [executor.submit(pipeline.run) for pipeline in pipelines]
            for pipeline, future in zip(pipelines, futures):
                try:
                    outcomes.append(future.result())
                except Exception as e:
                    # Escaped the pipeline's own handling; still an outcome for this image
                    log_exception(logger, f"Unexpected error migrating {pipeline.image.name}:{pipeline.image.tag}", e)
                    pipeline.outcome.error = e
                    outcomes.append(pipeline.outcome)
        return outcomes

    def run(self) -> MigrationSummary:
        """Migrate every configured image; blocks until all pipelines are terminal."""
        pipelines = self._build_pipelines()
        if not pipelines:
            logger.info("No images configured. Nothing to migrate.")
            return MigrationSummary(cancelled=self.context.cancelled)

        logger.info(
            f"Migrating {len(pipelines)} images from {self.config.from_registry.base_address} "
            f"to {self.config.to_registry.base_address}"
        )

        watcher = CancellationWatcher(self.context) if self.watch_signals else None
        if watcher is not None:
            watcher.start()
        try:
            outcomes = self._run_all(pipelines)
        finally:
            if watcher is not None:
                watcher.stop()

        summary = MigrationSummary(outcomes=outcomes, cancelled=self.context.cancelled)
        logger.info(f"Migration finished: {summary.succeeded} succeeded, {summary.failed} failed")
        if summary.cancelled:
            logger.warning("Migration was cancelled before all images completed")
        return summary
