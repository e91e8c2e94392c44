import pytest

from oamtraits.client import InMemoryClient, ObjectKey
from oamtraits.core import RECONCILE_WAIT_RESULT, ConditionType, Result, TypedReference
from oamtraits.hpa_api import (
    API_VERSION,
    KIND,
    HorizontalPodAutoscalerTrait,
    HorizontalPodAutoscalerTraitSpec,
)
from oamtraits.hpa_controller import (
    ERR_LOCATE_AVAILABLE_RESOURCES,
    ERR_LOCATE_RESOURCES,
    ERR_LOCATE_WORKLOAD,
    LABEL_KEY,
    HorizontalPodAutoscalerTraitReconciler,
    determine_workload_type,
    render_hpas,
    render_reference,
)

NS = "ns"
TRAIT_NAME = "mockHPATrait"


class FaultyClient(InMemoryClient):
    def __init__(self):
        super().__init__()
        self.get_failure = None
        self.status_failure = None
        self.apply_failure = None

    def get(self, api_version, kind, key):
        if self.get_failure is not None:
            err = self.get_failure(api_version, kind, key)
            if err is not None:
                raise err
        return super().get(api_version, kind, key)

    def apply(self, obj, field_owner):
        if self.apply_failure is not None:
            raise self.apply_failure
        return super().apply(obj, field_owner)

    def update_status(self, obj):
        if self.status_failure is not None:
            raise self.status_failure
        return super().update_status(obj)


def deployment(name, owner_uid=None, requests=None, kind="Deployment", with_requests=True):
    resources = {"requests": requests or {"cpu": "1"}} if with_requests else {}
    meta = {"name": name, "namespace": NS}
    if owner_uid:
        meta["ownerReferences"] = [{"uid": owner_uid}]
    return {
        "apiVersion": "apps/v1",
        "kind": kind,
        "metadata": meta,
        "spec": {
            "template": {
                "spec": {"containers": [{"name": "c", "image": "img", "resources": resources}]}
            }
        },
    }


def make_trait(ref, name=TRAIT_NAME):
    return HorizontalPodAutoscalerTrait(
        metadata={"name": name, "namespace": NS},
        spec=HorizontalPodAutoscalerTraitSpec(
            max_replicas=5,
            min_replicas=2,
            target_cpu_utilization_percentage=50,
            workload_reference=ref,
        ),
    )


def stored_trait(client, name=TRAIT_NAME):
    return HorizontalPodAutoscalerTrait.from_dict(
        client.get(API_VERSION, KIND, ObjectKey(NS, name))
    )


def stored_hpa(client, name=TRAIT_NAME):
    return client.get("autoscaling/v1", "HorizontalPodAutoscaler", ObjectKey(NS, name))


def test_get_trait_error_other_than_not_found_is_raised():
    client = FaultyClient()
    client.get_failure = lambda *args: RuntimeError("mocked error")
    with pytest.raises(RuntimeError, match="mocked error"):
        HorizontalPodAutoscalerTraitReconciler(client).reconcile(NS, TRAIT_NAME)


def test_missing_trait_gives_empty_result():
    client = InMemoryClient()
    assert HorizontalPodAutoscalerTraitReconciler(client).reconcile(NS, "absent") == Result()


def test_fetch_workload_failure_with_status_failure_raises():
    client = FaultyClient()
    client.create(make_trait(TypedReference()))
    client.status_failure = RuntimeError("mocked error")
    with pytest.raises(RuntimeError, match="mocked error"):
        HorizontalPodAutoscalerTraitReconciler(client).reconcile(NS, TRAIT_NAME)


def test_fetch_workload_failure_records_condition():
    client = InMemoryClient()
    client.create(make_trait(TypedReference("apps/v1", "Deployment", "missing")))
    result = HorizontalPodAutoscalerTraitReconciler(client).reconcile(NS, TRAIT_NAME)
    assert result == RECONCILE_WAIT_RESULT
    condition = stored_trait(client).get_condition(ConditionType.SYNCED)
    assert condition.status == "False"
    assert condition.message.startswith(ERR_LOCATE_WORKLOAD)


def test_unsupported_workload_records_locate_resources_error():
    client = InMemoryClient()
    client.create({"apiVersion": "example.com/v1", "kind": "Unknown", "metadata": {"name": "w", "namespace": NS}})
    client.create(make_trait(TypedReference("example.com/v1", "Unknown", "w")))
    result = HorizontalPodAutoscalerTraitReconciler(client).reconcile(NS, TRAIT_NAME)
    assert result == RECONCILE_WAIT_RESULT
    assert stored_trait(client).get_condition(ConditionType.SYNCED).message == ERR_LOCATE_RESOURCES


def test_containerized_workload_renders_hpa():
    client = InMemoryClient()
    client.create(
        {
            "apiVersion": "core.oam.dev/v1alpha2",
            "kind": "WorkloadDefinition",
            "metadata": {"name": "containerizedworkloads.core.oam.dev"},
            "spec": {"childResourceKinds": [{"apiVersion": "apps/v1", "kind": "Deployment"}]},
        }
    )
    client.create(
        {
            "apiVersion": "core.oam.dev/v1alpha2",
            "kind": "ContainerizedWorkload",
            "metadata": {"name": "cw", "namespace": NS, "uid": "mockCWUID"},
        }
    )
    client.create(deployment("mockDeploy", owner_uid="mockCWUID"))
    client.create(make_trait(TypedReference("core.oam.dev/v1alpha2", "ContainerizedWorkload", "cw")))

    result = HorizontalPodAutoscalerTraitReconciler(client).reconcile(NS, TRAIT_NAME)

    assert result == Result()
    hpa = stored_hpa(client)
    assert hpa["spec"]["scaleTargetRef"] == {
        "kind": "Deployment",
        "name": "mockDeploy",
        "apiVersion": "apps/v1",
    }
    assert hpa["spec"]["minReplicas"] == 2
    assert hpa["spec"]["maxReplicas"] == 5
    assert hpa["spec"]["targetCPUUtilizationPercentage"] == 50
    trait = stored_trait(client)
    assert [r.uid for r in trait.status.resources] == [hpa["metadata"]["uid"]]
    assert trait.get_condition(ConditionType.SYNCED).status == "True"


def test_deployment_workload_creates_hpa_named_after_trait():
    client = InMemoryClient()
    client.create(deployment("php-apache-deployment"))
    client.create(
        make_trait(TypedReference("apps/v1", "Deployment", "php-apache-deployment"), "test-deployment-hpatrait")
    )
    reconciler = HorizontalPodAutoscalerTraitReconciler(client)
    assert reconciler.reconcile(NS, "test-deployment-hpatrait") == Result()
    hpa = stored_hpa(client, "test-deployment-hpatrait")
    assert hpa["spec"]["scaleTargetRef"]["name"] == "php-apache-deployment"
    owner = hpa["metadata"]["ownerReferences"][0]
    assert owner["name"] == "test-deployment-hpatrait"
    assert owner["controller"] is True


def test_statefulset_workload_creates_hpa():
    client = InMemoryClient()
    client.create(deployment("php-apache", kind="StatefulSet"))
    client.create(
        make_trait(TypedReference("apps/v1", "StatefulSet", "php-apache"), "test-statefulset-hpatrait")
    )
    reconciler = HorizontalPodAutoscalerTraitReconciler(client)
    assert reconciler.reconcile(NS, "test-statefulset-hpatrait") == Result()
    hpa = stored_hpa(client, "test-statefulset-hpatrait")
    assert hpa["spec"]["scaleTargetRef"] == {
        "kind": "Deployment",
        "name": "php-apache",
        "apiVersion": "apps/v1",
    }


def test_no_scalable_resource_records_condition():
    client = InMemoryClient()
    client.create(deployment("ds", kind="DaemonSet"))
    client.create(make_trait(TypedReference("apps/v1", "DaemonSet", "ds")))
    result = HorizontalPodAutoscalerTraitReconciler(client).reconcile(NS, TRAIT_NAME)
    assert result == Result()
    message = stored_trait(client).get_condition(ConditionType.SYNCED).message
    assert message == ERR_LOCATE_AVAILABLE_RESOURCES


def test_missing_requests_is_raised_from_reconcile():
    client = InMemoryClient()
    client.create(deployment("d", with_requests=False))
    client.create(make_trait(TypedReference("apps/v1", "Deployment", "d")))
    with pytest.raises(ValueError, match="container.resources.requests"):
        HorizontalPodAutoscalerTraitReconciler(client).reconcile(NS, TRAIT_NAME)


def test_apply_failure_records_condition():
    client = FaultyClient()
    client.create(deployment("d"))
    client.create(make_trait(TypedReference("apps/v1", "Deployment", "d")))
    client.apply_failure = RuntimeError("boom")
    result = HorizontalPodAutoscalerTraitReconciler(client).reconcile(NS, TRAIT_NAME)
    assert result == RECONCILE_WAIT_RESULT
    message = stored_trait(client).get_condition(ConditionType.SYNCED).message
    assert message == "cannot apply the HPA: boom"


def test_determine_workload_type_native_returns_workload():
    client = InMemoryClient()
    workload = deployment("d")
    assert determine_workload_type(client, workload) == [workload]


def test_determine_workload_type_empty_api_version():
    with pytest.raises(ValueError, match="failed to get the workload APIVersion"):
        determine_workload_type(InMemoryClient(), {"kind": "unknown", "metadata": {}})


def test_determine_workload_type_unsupported():
    with pytest.raises(ValueError, match="doesn't support this APIVersion"):
        determine_workload_type(InMemoryClient(), {"apiVersion": "x.io/v1", "kind": "X"})


def test_render_reference_ignores_other_kinds():
    assert render_reference({"apiVersion": "v1", "kind": "Service", "metadata": {"name": "s"}}) is None


def test_render_reference_requires_requests():
    with pytest.raises(ValueError, match="from deployment: d"):
        render_reference(deployment("d", with_requests=False))


def test_render_reference_statefulset_message():
    with pytest.raises(ValueError, match="from statefulset: s"):
        render_reference(deployment("s", kind="StatefulSet", with_requests=False))


def test_render_hpas_rejects_other_objects():
    with pytest.raises(TypeError, match="not a hpa trait"):
        render_hpas(object(), [deployment("d")])


def test_render_hpas_labels_and_optional_fields():
    trait = HorizontalPodAutoscalerTrait(
        metadata={"name": "t", "namespace": NS, "uid": "trait-uid"},
        spec=HorizontalPodAutoscalerTraitSpec(max_replicas=3),
    )
    hpas = render_hpas(trait, [deployment("a"), deployment("s", kind="Service"), deployment("b")])
    assert len(hpas) == 2
    assert hpas[0]["metadata"]["labels"] == {LABEL_KEY: "trait-uid"}
    assert hpas[1]["spec"] == {
        "scaleTargetRef": {"kind": "Deployment", "name": "b", "apiVersion": "apps/v1"},
        "maxReplicas": 3,
    }


def test_clean_up_legacy_hpas_deletes_only_stale():
    client = InMemoryClient()
    old = client.create({"apiVersion": "autoscaling/v1", "kind": "HorizontalPodAutoscaler", "metadata": {"name": "old", "namespace": NS, "uid": "old-uid"}})
    new = client.create({"apiVersion": "autoscaling/v1", "kind": "HorizontalPodAutoscaler", "metadata": {"name": "new", "namespace": NS, "uid": "new-uid"}})
    trait = make_trait(TypedReference())
    trait.status.resources = [
        TypedReference("autoscaling/v1", "HorizontalPodAutoscaler", "gone", "gone-uid"),
        TypedReference("autoscaling/v1", "HorizontalPodAutoscaler", "old", "old-uid"),
        TypedReference("autoscaling/v1", "HorizontalPodAutoscaler", "new", "new-uid"),
    ]
    HorizontalPodAutoscalerTraitReconciler(client).clean_up_legacy_hpas(trait, ["new-uid"])
    remaining = client.list("autoscaling/v1", "HorizontalPodAutoscaler", NS)
    assert [h["metadata"]["name"] for h in remaining] == ["new"]
    assert old["metadata"]["uid"] == "old-uid" and new["metadata"]["uid"] == "new-uid"