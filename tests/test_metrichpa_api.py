from oamtraits.core import (
    STATUS_FALSE,
    STATUS_UNKNOWN,
    ConditionType,
    TypedReference,
    reconcile_error,
)
from oamtraits.metrichpa_api import MetricHPATrait, MetricHPATraitSpec


def make_trait() -> MetricHPATrait:
    return MetricHPATrait(
        metadata={"name": "mhpa", "namespace": "ns", "uid": "uid-1"},
        spec=MetricHPATraitSpec(
            prom_query="sum(rate(requests[1m]))",
            prom_threshold=10,
            polling_interval=15,
            cooldown_period=30,
            min_replica_count=1,
            max_replica_count=4,
            workload_reference=TypedReference(
                api_version="core.oam.dev/v1alpha2", kind="ContainerizedWorkload", name="cw"
            ),
        ),
    )


def test_defaults_match_api_group():
    trait = MetricHPATrait()
    assert trait.api_version == "extend.oam.dev/v1alpha2"
    assert trait.kind == "MetricHPATrait"


def test_round_trip():
    trait = make_trait()
    trait.spec.prom_server_address = "http://prom.example.com:9090"
    trait.status.resources.append(TypedReference(api_version="apps/v1", kind="Deployment", name="d"))
    trait.set_conditions(reconcile_error("bad"))
    assert MetricHPATrait.from_dict(trait.to_dict()) == trait


def test_to_dict_uses_wire_names():
    spec = make_trait().to_dict()["spec"]
    assert spec["pollingInterval"] == 15
    assert spec["cooldownPeriod"] == 30
    assert spec["minReplicaCount"] == 1
    assert spec["maxReplicaCount"] == 4
    assert spec["promQuery"] == "sum(rate(requests[1m]))"
    assert spec["promThreshold"] == 10
    assert spec["workloadRef"]["name"] == "cw"


def test_unset_optionals_are_omitted_but_threshold_kept():
    spec = MetricHPATraitSpec(prom_query="q").to_dict()
    for key in ("pollingInterval", "cooldownPeriod", "minReplicaCount", "maxReplicaCount", "promServerAddress"):
        assert key not in spec
    assert "promThreshold" in spec
    assert spec["promThreshold"] is None


def test_from_dict_missing_fields():
    trait = MetricHPATrait.from_dict({"metadata": {"name": "x"}, "spec": {"promQuery": "q"}})
    assert trait.name == "x"
    assert trait.spec.prom_threshold is None
    assert trait.spec.polling_interval is None
    assert trait.spec.prom_server_address == ""


def test_properties():
    trait = make_trait()
    assert (trait.name, trait.namespace, trait.uid) == ("mhpa", "ns", "uid-1")
    assert trait.workload_reference.kind == "ContainerizedWorkload"


def test_conditions():
    trait = make_trait()
    assert trait.get_condition(ConditionType.SYNCED).status == STATUS_UNKNOWN
    trait.set_conditions(reconcile_error("bad"))
    cond = trait.get_condition(ConditionType.SYNCED)
    assert cond.status == STATUS_FALSE
    assert cond.message == "bad"