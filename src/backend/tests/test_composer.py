"""Tests for ClusterResourceComposer: name derivation, object manifests and
the compose / delete / scale call sequences. The cluster is a mock whose
``call`` records which Kubernetes API function was invoked."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import ReadTimeoutError

from deployhub.cluster.client import ClusterClient
from deployhub.cluster.composer import (
    ClusterResourceComposer,
    label_selector,
    make_resource_name,
    make_subdomain,
)
from deployhub.config import AppSettings
from deployhub.errors import ClusterApiError, ValidationError
from deployhub.models.deployment import DEFAULT_RESOURCES, Deployment

PROJECT_ID = "9b1f3c2e-5a6d-4e7f-8a9b-0c1d2e3f4a5b"
OWNER_ID = "f47ac10b-58cc-4372-a567-0e02b2c3d479"
HOST = "web-f47ac10b.apps.example.com"


def _deployment(**overrides) -> Deployment:
    fields = dict(
        id="d0e1f2a3-b4c5-4d6e-8f70-1a2b3c4d5e6f",
        owner_id=OWNER_ID,
        project_id=PROJECT_ID,
        name="web",
        image="nginx:1.27",
        env_vars={"LOG_LEVEL": "debug"},
        replicas=2,
        resources=dict(DEFAULT_RESOURCES),
        labels={"team": "frontend"},
        node_selector=None,
        status="pending",
        cluster_namespace="default",
        cluster_resource_name=make_resource_name(PROJECT_ID, "web"),
        container_port=8080,
        external_host=HOST,
    )
    fields.update(overrides)
    return Deployment(**fields)


def _cluster() -> MagicMock:
    cluster = MagicMock()
    cluster.call = AsyncMock()
    return cluster


def _called_functions(cluster: MagicMock) -> list:
    return [c.args[1] for c in cluster.call.await_args_list]


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(_env_file=None)


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


class TestResourceNames:
    def test_same_inputs_give_same_name(self):
        assert make_resource_name(PROJECT_ID, "web") == make_resource_name(PROJECT_ID, "web")

    def test_different_projects_give_different_names(self):
        assert make_resource_name(PROJECT_ID, "web") != make_resource_name("other", "web")

    def test_name_is_a_dns_label(self):
        name = make_resource_name(PROJECT_ID, "My_Service.v2" + "x" * 80)
        assert len(name) <= 63
        assert name[0].isalpha()
        assert name == name.lower()
        assert set(name) <= set("abcdefghijklmnopqrstuvwxyz0123456789-")

    def test_name_starting_with_digit_gets_prefix(self):
        assert make_resource_name(PROJECT_ID, "9lives").startswith("d-9lives-")

    def test_label_selector_matches_selector_labels(self):
        deployment = _deployment()
        assert label_selector(deployment) == (
            f"app={deployment.cluster_resource_name},deployment-id={deployment.id}"
        )


class TestSubdomain:
    def test_derived_from_name_and_owner_prefix(self):
        assert make_subdomain("web", OWNER_ID) == "web-f47ac10b"

    def test_long_name_keeps_owner_suffix_within_label_limit(self):
        other_owner = "22222222-2222-4222-8222-222222222222"
        name = "a" * 62

        mine = make_subdomain(name, OWNER_ID)
        theirs = make_subdomain(name, other_owner)

        assert mine != theirs
        assert mine == "a" * 54 + "-f47ac10b"
        assert theirs.endswith("-22222222")
        assert len(mine) == len(theirs) == 63

    def test_name_without_usable_characters_raises(self):
        with pytest.raises(ValidationError):
            make_subdomain("!!!", OWNER_ID)

    def test_explicit_subdomain_is_lowercased(self):
        assert make_subdomain("web", OWNER_ID, "Shop") == "shop"

    @pytest.mark.parametrize("bad", ["-leading", "has.dot", "x" * 64, "under_score"])
    def test_invalid_explicit_subdomain_raises(self, bad):
        with pytest.raises(ValidationError):
            make_subdomain("web", OWNER_ID, bad)


# ---------------------------------------------------------------------------
# Manifests
# ---------------------------------------------------------------------------


class TestManifests:
    def test_plan_without_secrets_skips_secret_object(self, settings):
        composer = ClusterResourceComposer(_cluster(), settings)
        plan = composer.plan(_deployment(), HOST, {"LOG_LEVEL": "debug"}, {})
        assert [obj.kind for obj in plan] == ["Deployment", "Service", "Ingress"]

    def test_plan_with_secrets_starts_with_secret(self, settings):
        composer = ClusterResourceComposer(_cluster(), settings)
        plan = composer.plan(_deployment(), HOST, {}, {"API_KEY": "s3cret"})
        assert [obj.kind for obj in plan] == ["Secret", "Deployment", "Service", "Ingress"]

    def test_workload_references_secrets_without_inlining_values(self, settings):
        deployment = _deployment()
        composer = ClusterResourceComposer(_cluster(), settings)
        workload = composer.workload_object(deployment, {"LOG_LEVEL": "debug"}, ("API_KEY",))
        manifest = workload.manifest()

        container = manifest["spec"]["template"]["spec"]["containers"][0]
        assert container["image"] == "nginx:1.27"
        assert container["ports"] == [{"containerPort": 8080}]
        assert container["env"] == [
            {"name": "LOG_LEVEL", "value": "debug"},
            {
                "name": "API_KEY",
                "valueFrom": {
                    "secretKeyRef": {
                        "name": f"{deployment.cluster_resource_name}-secrets",
                        "key": "API_KEY",
                    }
                },
            },
        ]
        assert "s3cret" not in json.dumps(manifest)

    def test_workload_resources_and_labels(self, settings):
        deployment = _deployment(node_selector={"disktype": "ssd"})
        manifest = ClusterResourceComposer(_cluster(), settings).workload_object(
            deployment
        ).manifest()

        spec = manifest["spec"]
        assert spec["replicas"] == 2
        assert spec["selector"]["matchLabels"] == {
            "app": deployment.cluster_resource_name,
            "deployment-id": deployment.id,
        }
        assert spec["template"]["metadata"]["labels"]["team"] == "frontend"
        assert spec["template"]["spec"]["nodeSelector"] == {"disktype": "ssd"}
        assert spec["template"]["spec"]["containers"][0]["resources"] == {
            "requests": {"cpu": "250m", "memory": "256Mi"},
            "limits": {"cpu": "500m", "memory": "512Mi"},
        }

    def test_secret_manifest_is_base64_and_repr_hides_values(self, settings):
        secret = ClusterResourceComposer(_cluster(), settings).secret_object(
            _deployment(), {"API_KEY": "s3cret"}
        )
        assert secret.manifest()["data"] == {"API_KEY": "czNjcmV0"}
        assert secret.manifest()["type"] == "Opaque"
        assert "s3cret" not in repr(secret)

    def test_service_maps_port_80_to_container_port(self, settings):
        manifest = ClusterResourceComposer(_cluster(), settings).network_object(
            _deployment()
        ).manifest()
        assert manifest["spec"]["type"] == "ClusterIP"
        assert manifest["spec"]["ports"][0]["port"] == 80
        assert manifest["spec"]["ports"][0]["targetPort"] == 8080

    def test_ingress_routes_host_with_tls(self, settings):
        deployment = _deployment()
        manifest = ClusterResourceComposer(_cluster(), settings).route_object(
            deployment, HOST
        ).manifest()

        annotations = manifest["metadata"]["annotations"]
        assert annotations["traefik.ingress.kubernetes.io/router.entrypoints"] == "websecure"
        assert annotations["cert-manager.io/cluster-issuer"] == "letsencrypt-prod"
        rule = manifest["spec"]["rules"][0]
        assert rule["host"] == HOST
        backend = rule["http"]["paths"][0]["backend"]["service"]
        assert backend == {"name": deployment.cluster_resource_name, "port": {"number": 80}}
        assert manifest["spec"]["tls"] == [
            {"hosts": [HOST], "secretName": f"{deployment.cluster_resource_name}-tls"}
        ]


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class TestCompose:
    async def test_creates_objects_in_order(self, settings):
        cluster = _cluster()
        composer = ClusterResourceComposer(cluster, settings)

        await composer.compose(_deployment(), HOST, {}, {"API_KEY": "s3cret"})

        assert _called_functions(cluster) == [
            cluster.core_v1.create_namespaced_secret,
            cluster.apps_v1.create_namespaced_deployment,
            cluster.core_v1.create_namespaced_service,
            cluster.networking_v1.create_namespaced_ingress,
        ]

    async def test_first_failure_stops_composition(self, settings):
        cluster = _cluster()
        cluster.call = AsyncMock(side_effect=[None, ClusterApiError("quota exceeded", status=403)])
        composer = ClusterResourceComposer(cluster, settings)

        with pytest.raises(ClusterApiError, match="quota"):
            await composer.compose(_deployment(), HOST, {}, {})

        assert _called_functions(cluster) == [
            cluster.apps_v1.create_namespaced_deployment,
            cluster.core_v1.create_namespaced_service,
        ]

    async def test_existing_object_is_adopted_and_composition_continues(self, settings):
        cluster = _cluster()
        cluster.call = AsyncMock(
            side_effect=[ClusterApiError("AlreadyExists", status=409), MagicMock(), None, None]
        )
        composer = ClusterResourceComposer(cluster, settings)

        await composer.compose(_deployment(), HOST, {}, {})

        assert _called_functions(cluster) == [
            cluster.apps_v1.create_namespaced_deployment,
            cluster.apps_v1.read_namespaced_deployment,
            cluster.core_v1.create_namespaced_service,
            cluster.networking_v1.create_namespaced_ingress,
        ]

    async def test_create_retried_after_timeout_succeeds_on_conflict(self, settings):
        cluster = ClusterClient(
            api_client=MagicMock(), timeout_seconds=1, max_attempts=3, backoff_seconds=0
        )
        existing = MagicMock()
        cluster.apps_v1 = MagicMock()
        cluster.apps_v1.create_namespaced_deployment = MagicMock(
            side_effect=[
                ReadTimeoutError(None, "/apis/apps/v1", "Read timed out."),
                ApiException(status=409, reason="AlreadyExists"),
            ]
        )
        cluster.apps_v1.read_namespaced_deployment = MagicMock(return_value=existing)
        workload = ClusterResourceComposer(cluster, settings).workload_object(_deployment())

        assert await workload.create(cluster) is existing
        assert cluster.apps_v1.create_namespaced_deployment.call_count == 2
        cluster.apps_v1.read_namespaced_deployment.assert_called_once_with(
            workload.name, "default", _request_timeout=1
        )

    async def test_other_create_errors_still_propagate(self, settings):
        cluster = _cluster()
        cluster.call = AsyncMock(side_effect=ClusterApiError("forbidden", status=403))
        workload = ClusterResourceComposer(cluster, settings).workload_object(_deployment())

        with pytest.raises(ClusterApiError, match="forbidden"):
            await workload.create(cluster)
        assert cluster.call.await_count == 1


class TestDelete:
    async def test_removes_in_reverse_order(self, settings):
        cluster = _cluster()
        failed = await ClusterResourceComposer(cluster, settings).delete(_deployment())

        assert failed == []
        assert _called_functions(cluster) == [
            cluster.networking_v1.delete_namespaced_ingress,
            cluster.core_v1.delete_namespaced_service,
            cluster.apps_v1.delete_namespaced_deployment,
            cluster.core_v1.delete_namespaced_secret,
        ]

    async def test_missing_objects_are_ignored_and_failures_reported(self, settings):
        cluster = _cluster()
        cluster.call = AsyncMock(
            side_effect=[
                ClusterApiError("not found", status=404),
                ClusterApiError("server error", status=500),
                None,
                ClusterApiError("not found", status=404),
            ]
        )
        failed = await ClusterResourceComposer(cluster, settings).delete(_deployment())

        assert failed == ["Service"]
        assert cluster.call.await_count == 4


class TestScale:
    async def test_scale_is_a_single_replica_patch(self, settings):
        cluster = _cluster()
        deployment = _deployment()

        await ClusterResourceComposer(cluster, settings).scale(deployment, 5)

        cluster.call.assert_awaited_once()
        args = cluster.call.await_args.args
        assert args[1] is cluster.apps_v1.patch_namespaced_deployment
        assert args[2:] == (
            deployment.cluster_resource_name,
            "default",
            {"spec": {"replicas": 5}},
        )

    async def test_read_ready_replicas(self, settings):
        cluster = _cluster()
        workload = MagicMock()
        workload.status.ready_replicas = 3
        cluster.read_workload_status = AsyncMock(return_value=workload)

        assert await ClusterResourceComposer(cluster, settings).read_ready_replicas(
            _deployment()
        ) == 3
