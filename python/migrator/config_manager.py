#!/usr/bin/env python3
"""
Configuration Manager for the registry image migrator

This module loads the migration file (YAML or JSON, same keys as the
original config.json format) and applies environment variable overrides:

- CONFIG_FILE: path to the configuration file
- DOCKER_HOST: Docker Engine API endpoint
- FROM_REGISTRY_PASSWORD / TO_REGISTRY_PASSWORD: registry passwords
"""

import os
import re
from typing import Any, Dict, List, Optional

import yaml

from migrator.error_utils import ConfigValidationError
from migrator.logging_utils import get_logger
from migrator.models import ImageDescriptor, MigrationConfig, RegistryCredential

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_DOCKER_HOST = "http://localhost:2375"
DEFAULT_DOCKER_TIMEOUT = 300

_IMAGE_FIELDS = ("name", "tag", "from_prefix", "to_prefix")

_REGISTRY_KEYS = {
    "from": ("from_repo", "from_registry"),
    "to": ("to_repo", "to_registry"),
}

# Loose check: lowercase path components, no scheme, no tag
_PREFIX_RE = re.compile(r"^([a-z0-9]+([._-][a-z0-9]+)*/)*$")


class ConfigManager:
    """Manages configuration for a migration run"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to the configuration file (defaults to CONFIG_FILE env var, then config.json)
            validate: If True, validate configuration on initialization

        Raises:
            ConfigValidationError: If the file cannot be read or parsed, or validation fails
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", DEFAULT_CONFIG_FILE)
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file merged over defaults"""
        default_config = {
            "from_repo": {},
            "to_repo": {},
            "images": [],
            "docker": {"host": DEFAULT_DOCKER_HOST, "timeout": DEFAULT_DOCKER_TIMEOUT},
            "report": {"output": ""},
        }

        if not os.path.exists(self.config_file):
            raise ConfigValidationError([f"can't read config file '{self.config_file}': file not found"])

        try:
            with open(self.config_file, "r") as f:
                # YAML is a superset of JSON, so both formats load here
                user_config = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigValidationError([f"can't read config file '{self.config_file}': {e}"]) from e
        except yaml.YAMLError as e:
            raise ConfigValidationError([f"can't unmarshal config '{self.config_file}': {e}"]) from e

        if not isinstance(user_config, dict):
            raise ConfigValidationError([f"can't unmarshal config '{self.config_file}': top level must be a mapping"])

        user_config = self._normalize_registry_keys(user_config)
        return self._merge_config(default_config, user_config)

    @staticmethod
    def _normalize_registry_keys(user: Dict[str, Any]) -> Dict[str, Any]:
        """Accept from_registry/to_registry as aliases of from_repo/to_repo"""
        result = dict(user)
        for canonical, alias in _REGISTRY_KEYS.values():
            if alias in result and canonical not in result:
                result[canonical] = result.pop(alias)
        return result

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    # Registry configuration
    def _get_registry(self, side: str) -> RegistryCredential:
        key = _REGISTRY_KEYS[side][0]
        raw = self.config.get(key) or {}
        if not isinstance(raw, dict):
            raw = {}

        password = os.environ.get(f"{side.upper()}_REGISTRY_PASSWORD") or raw.get("password") or ""
        return RegistryCredential(
            base_address=str(raw.get("base_address") or "").rstrip("/"),
            server_address=str(raw.get("server_address") or ""),
            username=str(raw.get("username") or ""),
            password=str(password),
        )

    def get_from_registry(self) -> RegistryCredential:
        """Get the source registry credential"""
        return self._get_registry("from")

    def get_to_registry(self) -> RegistryCredential:
        """Get the destination registry credential"""
        return self._get_registry("to")

    def get_images(self) -> List[ImageDescriptor]:
        """Get the configured images, in file order"""
        images = []
        for entry in self.config.get("images") or []:
            if not isinstance(entry, dict):
                continue
            images.append(
                ImageDescriptor(
                    name=str(entry.get("name") or ""),
                    tag=str(entry.get("tag") or ""),
                    from_prefix=str(entry.get("from_prefix") or ""),
                    to_prefix=str(entry.get("to_prefix") or ""),
                )
            )
        return images

    def _section(self, key: str) -> Dict[str, Any]:
        section = self.config.get(key)
        return section if isinstance(section, dict) else {}

    # Docker Engine configuration
    def get_docker_host(self) -> str:
        """Get the Docker Engine API endpoint from environment or config"""
        return os.environ.get("DOCKER_HOST") or self._section("docker").get("host") or DEFAULT_DOCKER_HOST

    def get_docker_timeout(self) -> float:
        """Get the per-request timeout in seconds for Docker Engine calls"""
        return self._section("docker").get("timeout", DEFAULT_DOCKER_TIMEOUT)

    def get_report_output(self) -> Optional[str]:
        """Get the report output path, if one is configured"""
        return self._section("report").get("output") or None

    def get_migration_config(self) -> MigrationConfig:
        """Build the immutable migration configuration"""
        return MigrationConfig(
            from_registry=self.get_from_registry(),
            to_registry=self.get_to_registry(),
            images=self.get_images(),
        )

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        for side, (key, _) in _REGISTRY_KEYS.items():
            raw = self.config.get(key)
            if raw is not None and not isinstance(raw, dict):
                errors.append(f"'{key}' must be a mapping")
                continue
            registry = self._get_registry(side)
            if not registry.base_address.strip():
                errors.append(f"'{key}.base_address' is required and cannot be empty")
            elif "://" in registry.base_address:
                errors.append(f"'{key}.base_address' must not contain a scheme, got: {registry.base_address}")
            if registry.username and not registry.password:
                warnings.append(f"'{key}' has a username but no password")

        raw_images = self.config.get("images")
        if not isinstance(raw_images, list):
            errors.append("'images' must be a list")
            raw_images = []
        elif not raw_images:
            warnings.append("No images configured, nothing to migrate")

        seen = set()
        for i, entry in enumerate(raw_images):
            if not isinstance(entry, dict):
                errors.append(f"images[{i}] must be a mapping")
                continue
            # YAML reads unquoted 1.10 as the float 1.1, so only strings are accepted
            mistyped = [k for k in _IMAGE_FIELDS if entry.get(k) is not None and not isinstance(entry.get(k), str)]
            for field_key in mistyped:
                errors.append(
                    f"images[{i}].{field_key} must be a string, got {type(entry[field_key]).__name__}: "
                    f"{entry[field_key]!r} (quote the value in the config file)"
                )
            if mistyped:
                continue
            name = entry.get("name") or ""
            tag = entry.get("tag") or ""
            if not name.strip():
                errors.append(f"images[{i}].name is required and cannot be empty")
            if not tag.strip():
                errors.append(f"images[{i}].tag is required and cannot be empty")
            for prefix_key in ("from_prefix", "to_prefix"):
                prefix = str(entry.get(prefix_key) or "")
                if prefix and not _PREFIX_RE.match(prefix):
                    warnings.append(f"images[{i}].{prefix_key} '{prefix}' should be lowercase and end with '/'")
            ident = (name, tag, entry.get("from_prefix") or "", entry.get("to_prefix") or "")
            if ident in seen:
                warnings.append(f"images[{i}] ({name}:{tag}) is configured more than once")
            seen.add(ident)

        docker = self.config.get("docker")
        if not isinstance(docker, dict):
            errors.append("'docker' must be a mapping")
        else:
            timeout = docker.get("timeout")
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
                errors.append(f"docker.timeout must be a positive number, got: {timeout}")

            docker_host = os.environ.get("DOCKER_HOST") or docker.get("host")
            if not isinstance(docker_host, str):
                errors.append(f"docker.host must be a string, got: {docker_host!r}")
            elif not docker_host.strip():
                errors.append("docker.host is required and cannot be empty")

        report = self.config.get("report")
        if not isinstance(report, dict):
            errors.append("'report' must be a mapping")
        elif report.get("output") is not None and not isinstance(report.get("output"), str):
            errors.append(f"report.output must be a string, got: {report.get('output')!r}")

        for warning in warnings:
            logger.warning(f"Config warning: {warning}")

        if errors:
            raise ConfigValidationError(errors)

        logger.debug("Configuration validated successfully")

    def print_config(self) -> None:
        """Log the current configuration with passwords redacted"""
        from_registry = self.get_from_registry()
        to_registry = self.get_to_registry()
        logger.info("Current Configuration:")
        logger.info(f"  Config file:     {self.config_file}")
        logger.info(f"  Source registry: {from_registry.base_address} (user: {from_registry.username or '-'})")
        logger.info(f"  Dest registry:   {to_registry.base_address} (user: {to_registry.username or '-'})")
        logger.info(f"  Images:          {len(self.get_images())}")
        logger.info(f"  Docker host:     {self.get_docker_host()}")
