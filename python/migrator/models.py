"""
Data model for image migration.

Credentials, descriptors and jobs are frozen; they are read concurrently by
every pipeline and never mutated after the configuration is loaded.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class RegistryCredential:
    """Authentication and base-address information for one registry endpoint."""

    base_address: str = ""
    server_address: str = ""
    username: str = ""
    password: str = ""

    def __repr__(self) -> str:
        masked = "****" if self.password else ""
        return (
            f"RegistryCredential(base_address={self.base_address!r}, server_address={self.server_address!r}, "
            f"username={self.username!r}, password={masked!r})"
        )


@dataclass(frozen=True)
class ImageDescriptor:
    """One configured image: name and tag plus the repository prefix on each side."""

    name: str
    tag: str
    from_prefix: str = ""
    to_prefix: str = ""


@dataclass(frozen=True)
class MigrationConfig:
    from_registry: RegistryCredential
    to_registry: RegistryCredential
    images: List[ImageDescriptor] = field(default_factory=list)


@dataclass(frozen=True)
class MigrationJob:
    source_ref: str
    dest_ref: str

    @classmethod
    def build(cls, image: ImageDescriptor, from_registry: RegistryCredential,
              to_registry: RegistryCredential) -> "MigrationJob":
        """Compose the full source and destination references for an image."""
        source_ref = f"{from_registry.base_address}/{image.from_prefix}{image.name}:{image.tag}"
        dest_ref = f"{to_registry.base_address}/{image.to_prefix}{image.name}:{image.tag}"
        return cls(source_ref=source_ref, dest_ref=dest_ref)


class Stage(Enum):
    """Pipeline states, in the order they are entered."""

    PENDING = "pending"
    PULLING = "pull"
    TAGGING = "tag"
    PUSHING = "push"
    CLEANING_UP = "cleanup"
    DONE = "done"


@dataclass
class PipelineOutcome:
    """Terminal result of one pipeline.

    ``stage`` is the last stage entered. A failed outcome has ``error`` set and
    ``stage`` names the step that failed; a successful one ends in DONE.
    Cleanup problems never make an outcome fail, they are kept in
    ``cleanup_errors`` for the report.
    """

    image: ImageDescriptor
    job: Optional[MigrationJob]
    stage: Stage = Stage.PENDING
    error: Optional[BaseException] = None
    cleanup_errors: List[str] = field(default_factory=list)
    removed: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def status(self) -> str:
        if self.succeeded:
            return "success"
        return f"failed at {self.stage.value}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image": f"{self.image.name}:{self.image.tag}",
            "source_ref": self.job.source_ref if self.job else None,
            "dest_ref": self.job.dest_ref if self.job else None,
            "status": self.status,
            "stage": self.stage.value,
            "error": str(self.error) if self.error is not None else None,
            "cleanup_errors": list(self.cleanup_errors),
            "removed": list(self.removed),
        }


@dataclass
class MigrationSummary:
    """All pipeline outcomes of one run, in configuration order."""

    outcomes: List[PipelineOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.succeeded)

    @property
    def failed_outcomes(self) -> List[PipelineOutcome]:
        return [o for o in self.outcomes if not o.succeeded]
