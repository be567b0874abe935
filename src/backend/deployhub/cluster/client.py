"""Thin async wrapper around the official Kubernetes Python client.

The kubernetes client is blocking, so every call runs in a worker thread.
Each call carries a request timeout and is retried a bounded number of times,
but only for transient failures (throttling, 5xx, dropped connections).
Everything that escapes is converted to ClusterApiError.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential
from urllib3.exceptions import HTTPError as TransportError

from deployhub.config import AppSettings
from deployhub.errors import ClusterApiError

log = logging.getLogger(__name__)

_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, ApiException):
        return exc.status in _TRANSIENT_STATUSES
    return isinstance(exc, (TransportError, ConnectionError, TimeoutError))


def load_cluster_config(in_cluster: bool, kubeconfig: str | None = None) -> None:
    try:
        if in_cluster:
            config.load_incluster_config()
            log.info("Loaded in-cluster Kubernetes configuration")
        else:
            config.load_kube_config(config_file=kubeconfig)
            log.info("Loaded Kubernetes configuration from %s", kubeconfig or "default kubeconfig")
    except ConfigException as exc:
        raise ClusterApiError(f"Unable to load Kubernetes configuration: {exc}") from exc


class ClusterClient:
    """Shared by all requests; the underlying urllib3 pool is thread-safe."""

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        self.api_client = api_client or client.ApiClient()
        self.apps_v1 = client.AppsV1Api(self.api_client)
        self.core_v1 = client.CoreV1Api(self.api_client)
        self.networking_v1 = client.NetworkingV1Api(self.api_client)
        self._timeout = timeout_seconds
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_seconds

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ClusterClient":
        load_cluster_config(settings.K8S_IN_CLUSTER, settings.K8S_KUBECONFIG)
        return cls(
            timeout_seconds=settings.K8S_API_TIMEOUT_SECONDS,
            max_attempts=settings.K8S_MAX_RETRIES,
        )

    async def call(self, description: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run one Kubernetes API call with timeout and transient-error retry."""
        kwargs.setdefault("_request_timeout", self._timeout)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff, max=8),
            retry=retry_if_exception(is_transient),
            before_sleep=lambda state: log.warning(
                "Transient cluster error on '%s' (attempt %d): %s",
                description,
                state.attempt_number,
                state.outcome.exception() if state.outcome else None,
            ),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await asyncio.to_thread(fn, *args, **kwargs)
        except ApiException as exc:
            raise ClusterApiError(
                f"Failed to {description}: {exc.status} {exc.reason}", status=exc.status
            ) from exc
        except (TransportError, OSError) as exc:
            raise ClusterApiError(f"Failed to {description}: {exc}") from exc

    # ── read helpers used by the detail view and the live-status channel ────

    async def read_workload_status(self, namespace: str, name: str) -> client.V1Deployment:
        return await self.call(
            f"read deployment status {namespace}/{name}",
            self.apps_v1.read_namespaced_deployment_status,
            name,
            namespace,
        )

    async def list_pods(self, namespace: str, label_selector: str) -> list[client.V1Pod]:
        pods = await self.call(
            f"list pods in {namespace} ({label_selector})",
            self.core_v1.list_namespaced_pod,
            namespace,
            label_selector=label_selector,
        )
        return list(pods.items or [])

    def close(self) -> None:
        self.api_client.close()
