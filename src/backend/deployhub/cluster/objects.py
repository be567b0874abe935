"""Cluster object variants managed for one deployment.

The set is closed: WorkloadObject (apps/v1 Deployment), NetworkObject
(v1 Service), RouteObject (networking.k8s.io/v1 Ingress) and SecretObject
(v1 Secret). Each is built from its required fields plus, where relevant, an
ObjectOptions holding the genuinely optional knobs, renders a plain-dict
manifest, and exposes the same create/read/patch/delete capability against
a ClusterClient.
"""

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from deployhub.cluster.client import ClusterClient
from deployhub.errors import ClusterApiError

log = logging.getLogger(__name__)

CONTAINER_NAME = "app"


@dataclass(frozen=True)
class ObjectOptions:
    env_vars: dict[str, str] = field(default_factory=dict)
    # Names only; values live in the SecretObject and are referenced, never inlined
    secret_keys: tuple[str, ...] = ()
    secret_name: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    node_selector: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ResourceQuantities:
    cpu_request: str
    cpu_limit: str
    memory_request: str
    memory_limit: str

    @classmethod
    def from_spec(cls, spec: dict[str, int]) -> "ResourceQuantities":
        """Millicores become ``<n>m`` CPU, megabytes become ``<n>Mi`` memory."""
        return cls(
            cpu_request=f"{spec['cpu_request_millicores']}m",
            cpu_limit=f"{spec['cpu_limit_millicores']}m",
            memory_request=f"{spec['memory_request_mb']}Mi",
            memory_limit=f"{spec['memory_limit_mb']}Mi",
        )

    def requirements(self) -> dict[str, dict[str, str]]:
        return {
            "requests": {"cpu": self.cpu_request, "memory": self.memory_request},
            "limits": {"cpu": self.cpu_limit, "memory": self.memory_limit},
        }


class ClusterObject(ABC):
    kind: ClassVar[str]

    def __init__(self, name: str, namespace: str, labels: dict[str, str]) -> None:
        self.name = name
        self.namespace = namespace
        self.labels = dict(labels)

    def metadata(self, **extra: Any) -> dict[str, Any]:
        return {"name": self.name, "namespace": self.namespace, "labels": dict(self.labels), **extra}

    @abstractmethod
    def manifest(self) -> dict[str, Any]: ...

    async def create(self, cluster: ClusterClient) -> Any:
        """Create the object, adopting it when it already exists.

        A create retried after a timeout can find the first attempt already
        applied by the API server, which then answers 409.
        """
        try:
            return await self.submit(cluster)
        except ClusterApiError as exc:
            if exc.status != 409:
                raise
            log.info("%r already exists, reading it back", self)
            return await self.read(cluster)

    @abstractmethod
    async def submit(self, cluster: ClusterClient) -> Any: ...

    @abstractmethod
    async def read(self, cluster: ClusterClient) -> Any: ...

    @abstractmethod
    async def patch(self, cluster: ClusterClient, body: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def delete(self, cluster: ClusterClient) -> Any: ...

    def __repr__(self) -> str:
        return f"{self.kind}({self.namespace}/{self.name})"


class SecretObject(ClusterObject):
    kind = "Secret"

    def __init__(
        self, name: str, namespace: str, labels: dict[str, str], data: dict[str, str]
    ) -> None:
        super().__init__(name, namespace, labels)
        self._data = dict(data)

    def __repr__(self) -> str:
        # Never render values
        return f"Secret({self.namespace}/{self.name}, keys={sorted(self._data)})"

    def manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": self.metadata(),
            "type": "Opaque",
            "data": {
                key: base64.b64encode(value.encode()).decode()
                for key, value in self._data.items()
            },
        }

    async def submit(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"create secret {self.name}",
            cluster.core_v1.create_namespaced_secret,
            self.namespace,
            self.manifest(),
        )

    async def read(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"read secret {self.name}",
            cluster.core_v1.read_namespaced_secret,
            self.name,
            self.namespace,
        )

    async def patch(self, cluster: ClusterClient, body: dict[str, Any]) -> Any:
        return await cluster.call(
            f"patch secret {self.name}",
            cluster.core_v1.patch_namespaced_secret,
            self.name,
            self.namespace,
            body,
        )

    async def delete(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"delete secret {self.name}",
            cluster.core_v1.delete_namespaced_secret,
            self.name,
            self.namespace,
        )


class WorkloadObject(ClusterObject):
    kind = "Deployment"

    def __init__(
        self,
        name: str,
        namespace: str,
        selector: dict[str, str],
        image: str,
        replicas: int,
        container_port: int,
        resources: ResourceQuantities,
        options: ObjectOptions | None = None,
    ) -> None:
        self.options = options or ObjectOptions()
        # Selector labels win over user labels so the selector never drifts
        super().__init__(name, namespace, {**self.options.labels, **selector})
        self.selector = dict(selector)
        self.image = image
        self.replicas = replicas
        self.container_port = container_port
        self.resources = resources

    def container_env(self) -> list[dict[str, Any]]:
        env: list[dict[str, Any]] = [
            {"name": key, "value": value} for key, value in self.options.env_vars.items()
        ]
        for key in self.options.secret_keys:
            env.append(
                {
                    "name": key,
                    "valueFrom": {
                        "secretKeyRef": {"name": self.options.secret_name, "key": key}
                    },
                }
            )
        return env

    def manifest(self) -> dict[str, Any]:
        container: dict[str, Any] = {
            "name": CONTAINER_NAME,
            "image": self.image,
            "ports": [{"containerPort": self.container_port}],
            "resources": self.resources.requirements(),
        }
        env = self.container_env()
        if env:
            container["env"] = env

        pod_spec: dict[str, Any] = {"containers": [container]}
        if self.options.node_selector:
            pod_spec["nodeSelector"] = dict(self.options.node_selector)

        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": self.metadata(),
            "spec": {
                "replicas": self.replicas,
                "selector": {"matchLabels": dict(self.selector)},
                "template": {
                    "metadata": {"labels": dict(self.labels)},
                    "spec": pod_spec,
                },
            },
        }

    async def submit(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"create deployment {self.name}",
            cluster.apps_v1.create_namespaced_deployment,
            self.namespace,
            self.manifest(),
        )

    async def read(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"read deployment {self.name}",
            cluster.apps_v1.read_namespaced_deployment,
            self.name,
            self.namespace,
        )

    async def patch(self, cluster: ClusterClient, body: dict[str, Any]) -> Any:
        return await cluster.call(
            f"patch deployment {self.name}",
            cluster.apps_v1.patch_namespaced_deployment,
            self.name,
            self.namespace,
            body,
        )

    async def delete(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"delete deployment {self.name}",
            cluster.apps_v1.delete_namespaced_deployment,
            self.name,
            self.namespace,
        )


class NetworkObject(ClusterObject):
    kind = "Service"

    def __init__(
        self,
        name: str,
        namespace: str,
        selector: dict[str, str],
        port: int,
        target_port: int,
    ) -> None:
        super().__init__(name, namespace, selector)
        self.selector = dict(selector)
        self.port = port
        self.target_port = target_port

    def manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": self.metadata(),
            "spec": {
                "type": "ClusterIP",
                "selector": dict(self.selector),
                "ports": [
                    {
                        "name": "http",
                        "port": self.port,
                        "targetPort": self.target_port,
                        "protocol": "TCP",
                    }
                ],
            },
        }

    async def submit(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"create service {self.name}",
            cluster.core_v1.create_namespaced_service,
            self.namespace,
            self.manifest(),
        )

    async def read(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"read service {self.name}",
            cluster.core_v1.read_namespaced_service,
            self.name,
            self.namespace,
        )

    async def patch(self, cluster: ClusterClient, body: dict[str, Any]) -> Any:
        return await cluster.call(
            f"patch service {self.name}",
            cluster.core_v1.patch_namespaced_service,
            self.name,
            self.namespace,
            body,
        )

    async def delete(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"delete service {self.name}",
            cluster.core_v1.delete_namespaced_service,
            self.name,
            self.namespace,
        )


class RouteObject(ClusterObject):
    kind = "Ingress"

    def __init__(
        self,
        name: str,
        namespace: str,
        labels: dict[str, str],
        host: str,
        service_name: str,
        service_port: int,
        tls_secret_name: str,
        ingress_class: str,
        annotations: dict[str, str] | None = None,
    ) -> None:
        super().__init__(name, namespace, labels)
        self.host = host
        self.service_name = service_name
        self.service_port = service_port
        self.tls_secret_name = tls_secret_name
        self.ingress_class = ingress_class
        self.annotations = dict(annotations or {})

    def manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "networking.k8s.io/v1",
            "kind": "Ingress",
            "metadata": self.metadata(annotations=dict(self.annotations)),
            "spec": {
                "ingressClassName": self.ingress_class,
                "rules": [
                    {
                        "host": self.host,
                        "http": {
                            "paths": [
                                {
                                    "path": "/",
                                    "pathType": "Prefix",
                                    "backend": {
                                        "service": {
                                            "name": self.service_name,
                                            "port": {"number": self.service_port},
                                        }
                                    },
                                }
                            ]
                        },
                    }
                ],
                "tls": [{"hosts": [self.host], "secretName": self.tls_secret_name}],
            },
        }

    async def submit(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"create ingress {self.name}",
            cluster.networking_v1.create_namespaced_ingress,
            self.namespace,
            self.manifest(),
        )

    async def read(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"read ingress {self.name}",
            cluster.networking_v1.read_namespaced_ingress,
            self.name,
            self.namespace,
        )

    async def patch(self, cluster: ClusterClient, body: dict[str, Any]) -> Any:
        return await cluster.call(
            f"patch ingress {self.name}",
            cluster.networking_v1.patch_namespaced_ingress,
            self.name,
            self.namespace,
            body,
        )

    async def delete(self, cluster: ClusterClient) -> Any:
        return await cluster.call(
            f"delete ingress {self.name}",
            cluster.networking_v1.delete_namespaced_ingress,
            self.name,
            self.namespace,
        )
