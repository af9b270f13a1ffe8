"""
Docker Engine client for image migration.

This module implements the registry-client capability used by the pipelines
(pull, tag, push, remove) on top of the Docker Engine HTTP API. Pull and push
return the engine's progress stream, which the caller must read to the end
before the operation is complete. Every call observes the shared
MigrationContext: it refuses to start once the context is cancelled and
aborts an in-flight progress stream when cancellation arrives.

Cancellation does not interrupt a request that is still waiting for its
response headers (tag, remove, or pull/push before the stream starts).
Such a call runs until the engine answers or the request timeout expires,
and the next step of the pipeline then sees the cancelled context.
"""

import json
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter

from migrator.cancellation import MigrationContext
from migrator.error_utils import (
    ErrorCategory,
    OperationCancelledError,
    RegistryClientError,
    create_docker_connection_error,
)
from migrator.logging_utils import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 300


class RegistryClient(Protocol):
    """Capability consumed by the pipelines. Every method raises on failure."""

    def pull(self, ctx: MigrationContext, image_ref: str, auth: str) -> Iterator[bytes]:
        ...

    def tag(self, ctx: MigrationContext, src_ref: str, dst_ref: str) -> None:
        ...

    def push(self, ctx: MigrationContext, image_ref: str, auth: str) -> Iterator[bytes]:
        ...

    def remove(self, ctx: MigrationContext, image_ref: str) -> List[Dict[str, Any]]:
        ...


def split_image_ref(image_ref: str) -> Tuple[str, str]:
    """Split "host:port/repo/name:tag" into ("host:port/repo/name", "tag").

    The tag separator is the last ':' after the last '/', so registry ports
    are left in the repository part. A reference without a tag gets "latest".
    """
    slash = image_ref.rfind("/")
    colon = image_ref.rfind(":")
    if colon > slash:
        return image_ref[:colon], image_ref[colon + 1:]
    return image_ref, "latest"


def normalize_docker_host(docker_host: str) -> str:
    """Turn a DOCKER_HOST style endpoint into an HTTP base URL."""
    host = docker_host.strip().rstrip("/")
    if host.startswith("tcp://"):
        host = "http://" + host[len("tcp://"):]
    elif "://" not in host:
        host = "http://" + host
    return host


class DockerEngineClient:
    """Registry operations through the Docker Engine API."""

    def __init__(self, docker_host: str, timeout: float = DEFAULT_TIMEOUT, pool_size: int = 10,
                 session: Optional[requests.Session] = None):
        """Initialize DockerEngineClient.

        Args:
            docker_host: Engine endpoint, e.g. "tcp://localhost:2375" or "http://docker:2375"
            timeout: Connect/read timeout in seconds for each request
            pool_size: HTTP connection pool size; one connection per concurrent pipeline
            session: Optional pre-built requests session (tests)
        """
        if docker_host.startswith(("unix://", "npipe://")):
            raise create_docker_connection_error(
                docker_host, ValueError("socket endpoints are not supported, expose the engine over TCP")
            )
        self.base_url = normalize_docker_host(docker_host)
        self.timeout = timeout

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=1, pool_maxsize=max(pool_size, 1))
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

    def _url(self, path: str, *args: str) -> str:
        return self.base_url + path.format(*(quote(a, safe="/:") for a in args))

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
            if isinstance(body, dict) and body.get("message"):
                return f"{response.status_code}: {body['message']}"
        except ValueError:
            pass
        return f"{response.status_code}: {response.text.strip() or response.reason}"

    def _request(self, ctx: MigrationContext, operation: str, image_ref: str, method: str, url: str,
                 stream: bool = False, **kwargs) -> requests.Response:
        ctx.raise_if_cancelled(operation, image_ref)
        try:
            response = self.session.request(method, url, stream=stream, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            if ctx.cancelled:
                raise OperationCancelledError(operation, image_ref) from e
            category = ErrorCategory.CONNECTION if isinstance(e, requests.exceptions.ConnectionError) \
                else ErrorCategory.REGISTRY
            raise RegistryClientError(operation, image_ref, str(e), category=category) from e

        if response.status_code >= 400:
            message = self._error_message(response)
            response.close()
            category = ErrorCategory.AUTHENTICATION if response.status_code in (401, 403) else ErrorCategory.REGISTRY
            raise RegistryClientError(operation, image_ref, message, category=category)
        return response

    def _progress(self, ctx: MigrationContext, operation: str, image_ref: str,
                  response: requests.Response) -> Iterator[bytes]:
        """Yield progress lines; an error message in the stream fails the operation."""
        handle = ctx.on_cancel(response.close)
        try:
            for line in response.iter_lines():
                ctx.raise_if_cancelled(operation, image_ref)
                if not line:
                    continue
                try:
                    message = json.loads(line)
                except ValueError:
                    message = None
                if isinstance(message, dict) and (message.get("error") or message.get("errorDetail")):
                    detail = message.get("errorDetail") or {}
                    reason = message.get("error") or detail.get("message") or "unknown error"
                    raise RegistryClientError(operation, image_ref, reason)
                yield line + b"\n"
            ctx.raise_if_cancelled(operation, image_ref)
        except RegistryClientError:
            raise
        except Exception as e:
            if ctx.cancelled:
                raise OperationCancelledError(operation, image_ref) from e
            raise RegistryClientError(operation, image_ref, f"can't read progress stream: {e}") from e
        finally:
            ctx.remove_callback(handle)
            response.close()

    def ping(self) -> bool:
        """Check the engine answers on /_ping."""
        try:
            response = self.session.get(self._url("/_ping"), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Docker Engine ping failed: {e}")
            return False
        return response.status_code == 200

    def pull(self, ctx: MigrationContext, image_ref: str, auth: str) -> Iterator[bytes]:
        repository, tag = split_image_ref(image_ref)
        logger.debug(f"Pulling {image_ref}")
        response = self._request(
            ctx, "pull", image_ref, "POST", self._url("/images/create"),
            stream=True,
            params={"fromImage": repository, "tag": tag},
            headers={"X-Registry-Auth": auth},
        )
        return self._progress(ctx, "pull", image_ref, response)

    def tag(self, ctx: MigrationContext, src_ref: str, dst_ref: str) -> None:
        repository, tag = split_image_ref(dst_ref)
        logger.debug(f"Tagging {src_ref} as {dst_ref}")
        response = self._request(
            ctx, "tag", src_ref, "POST", self._url("/images/{}/tag", src_ref),
            params={"repo": repository, "tag": tag},
        )
        response.close()

    def push(self, ctx: MigrationContext, image_ref: str, auth: str) -> Iterator[bytes]:
        repository, tag = split_image_ref(image_ref)
        logger.debug(f"Pushing {image_ref}")
        response = self._request(
            ctx, "push", image_ref, "POST", self._url("/images/{}/push", repository),
            stream=True,
            params={"tag": tag},
            headers={"X-Registry-Auth": auth},
        )
        return self._progress(ctx, "push", image_ref, response)

    def remove(self, ctx: MigrationContext, image_ref: str) -> List[Dict[str, Any]]:
        logger.debug(f"Removing {image_ref}")
        response = self._request(
            ctx, "delete", image_ref, "DELETE", self._url("/images/{}", image_ref),
            params={"force": "true", "noprune": "false"},
        )
        try:
            removed = response.json()
        except ValueError:
            removed = []
        finally:
            response.close()
        return removed if isinstance(removed, list) else []

    def close(self) -> None:
        self.session.close()
