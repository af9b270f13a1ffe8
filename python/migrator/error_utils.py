"""
Error types and actionable error messages for the image migrator.

Registry client failures are raised as RegistryClientError (or one of its
subclasses) and contained inside the owning pipeline. Configuration problems
are raised as ActionableError with suggested fixes, the same way they are
surfaced to the operator on the command line.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    REGISTRY = "registry"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [self.message]

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\nAdditional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class ConfigValidationError(Exception):
    """Raised when the migration configuration cannot be loaded or is invalid"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in self.errors))


class CredentialEncodingError(Exception):
    """Raised when a registry credential cannot be serialized into an auth token"""


class RegistryClientError(Exception):
    """A pull, tag, push or remove call against the Docker Engine failed."""

    def __init__(self, operation: str, image_ref: str, reason: str,
                 category: ErrorCategory = ErrorCategory.REGISTRY):
        self.operation = operation
        self.image_ref = image_ref
        self.reason = reason
        self.category = category
        super().__init__(f"can't {operation} image '{image_ref}': {reason}")


class OperationCancelledError(RegistryClientError):
    """The shared migration context was cancelled while the call was pending."""

    def __init__(self, operation: str, image_ref: str):
        super().__init__(operation, image_ref, "operation cancelled", category=ErrorCategory.CANCELLED)


def create_docker_connection_error(docker_host: str, error: Exception) -> ActionableError:
    """Create actionable error for Docker Engine connection failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the Docker Engine API is reachable at {docker_host}",
        "Set DOCKER_HOST or pass --docker-host to point at the engine",
        "Check that the daemon exposes its API over TCP (or through a socket proxy)",
    ]

    if "timeout" in error_str or "timed out" in error_str:
        suggestions.insert(1, "Increase docker.timeout in the configuration file")

    if "refused" in error_str:
        suggestions.insert(1, "Check that the Docker daemon is running")

    return ActionableError(
        message=f"Failed to connect to Docker Engine at {docker_host}",
        category=ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details={
            "docker_host": docker_host,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_config_error(config_file: str, errors: List[str]) -> ActionableError:
    """Create actionable error for configuration validation failures"""
    suggestions = [
        f"Check the values in {config_file}",
        "Each of from_repo and to_repo needs a base_address",
        "Each image needs a name and a tag",
    ]

    if any("password" in e.lower() for e in errors):
        suggestions.append("Passwords may also be supplied via FROM_REGISTRY_PASSWORD / TO_REGISTRY_PASSWORD")

    return ActionableError(
        message=f"Configuration error in '{config_file}'",
        category=ErrorCategory.CONFIGURATION,
        suggestions=suggestions,
        details={f"error {i}": e for i, e in enumerate(errors, 1)}
    )
