"""
Per-image migration pipeline.

One pipeline moves one image: pull from the source registry, tag for the
destination, push, then remove both local references. Pull, tag and push
abort the pipeline on the first failure; the two removals are best effort and
independent of each other.
"""

from typing import Callable, Iterable, Optional

from migrator.cancellation import MigrationContext
from migrator.credentials import encode_credential
from migrator.docker_client import RegistryClient
from migrator.logging_utils import get_logger
from migrator.models import ImageDescriptor, MigrationJob, PipelineOutcome, RegistryCredential, Stage

logger = get_logger(__name__)

ProgressSink = Callable[[bytes], None]


class StageFailure(Exception):
    """A pull, tag or push step failed; carries the stage it failed in."""

    def __init__(self, stage: Stage, job: MigrationJob, cause: BaseException):
        self.stage = stage
        self.job = job
        self.cause = cause
        super().__init__(str(cause))


class ImagePipeline:
    """Runs the pull -> tag -> push -> cleanup sequence for a single image."""

    def __init__(
        self,
        ctx: MigrationContext,
        client: RegistryClient,
        from_registry: RegistryCredential,
        to_registry: RegistryCredential,
        image: ImageDescriptor,
        progress: Optional[ProgressSink] = None,
    ):
        self.ctx = ctx
        self.client = client
        self.from_registry = from_registry
        self.to_registry = to_registry
        self.image = image
        self.progress = progress
        self.outcome = PipelineOutcome(image=image, job=None)

    def _drain(self, stream: Iterable[bytes]) -> None:
        """Consume a progress stream to the end, forwarding chunks to the sink."""
        for chunk in stream:
            if self.progress is not None:
                self.progress(chunk)

    def _enter(self, stage: Stage) -> None:
        self.outcome.stage = stage
        logger.debug(f"[{self.image.name}:{self.image.tag}] entering {stage.value}")

    def _pull(self, job: MigrationJob) -> None:
        self._enter(Stage.PULLING)
        try:
            auth = encode_credential(self.from_registry)
            self._drain(self.client.pull(self.ctx, job.source_ref, auth))
        except Exception as e:
            raise StageFailure(Stage.PULLING, job, e) from e

    def _tag(self, job: MigrationJob) -> None:
        self._enter(Stage.TAGGING)
        try:
            self.client.tag(self.ctx, job.source_ref, job.dest_ref)
        except Exception as e:
            raise StageFailure(Stage.TAGGING, job, e) from e

    def _push(self, job: MigrationJob) -> None:
        self._enter(Stage.PUSHING)
        try:
            auth = encode_credential(self.to_registry)
            self._drain(self.client.push(self.ctx, job.dest_ref, auth))
        except Exception as e:
            raise StageFailure(Stage.PUSHING, job, e) from e

    def _cleanup(self, job: MigrationJob) -> None:
        self._enter(Stage.CLEANING_UP)
        for image_ref in (job.source_ref, job.dest_ref):
            try:
                removed = self.client.remove(self.ctx, image_ref)
            except Exception as e:
                logger.warning(f"can't delete image '{image_ref}': {e}")
                self.outcome.cleanup_errors.append(f"{image_ref}: {e}")
                continue
            logger.info(f"delete images: {removed}")
            self.outcome.removed.extend(removed or [])

    def run(self) -> PipelineOutcome:
        """Execute every stage in order and return the terminal outcome."""
        job = MigrationJob.build(self.image, self.from_registry, self.to_registry)
        self.outcome.job = job

        try:
            self._pull(job)
            self._tag(job)
            self._push(job)
        except StageFailure as failure:
            self.outcome.error = failure.cause
            if failure.stage is Stage.TAGGING:
                logger.error(f"can't tag image '{job.source_ref}', '{job.dest_ref}': {failure.cause}")
            else:
                ref = job.source_ref if failure.stage is Stage.PULLING else job.dest_ref
                logger.error(f"can't {failure.stage.value} image '{ref}': {failure.cause}")
            return self.outcome

        self._cleanup(job)
        self._enter(Stage.DONE)
        logger.info(f"Migrated {job.source_ref} -> {job.dest_ref}")
        return self.outcome


def run_pipeline(
    ctx: MigrationContext,
    client: RegistryClient,
    from_registry: RegistryCredential,
    to_registry: RegistryCredential,
    image: ImageDescriptor,
    progress: Optional[ProgressSink] = None,
) -> PipelineOutcome:
    """Migrate one image and return its outcome. Never raises for stage failures."""
    return ImagePipeline(ctx, client, from_registry, to_registry, image, progress=progress).run()
