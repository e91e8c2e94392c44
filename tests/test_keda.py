import pytest

from oamtraits.autoscaler_api import (
    Autoscaler,
    AutoscalerSpec,
    TargetWorkload,
    Trigger,
    TriggerType,
)
from oamtraits.client import InMemoryClient, ObjectKey
from oamtraits.keda import (
    REASON_PARSE_REPLICA_FAILED,
    SCALED_OBJECT_API_VERSION,
    SCALED_OBJECT_KIND,
    SPEC_WARNING_DURATION_TIME_NOT_IN_RIGHT_FORMAT,
    SPEC_WARNING_DURATION_TIME_REQUIRED,
    SPEC_WARNING_REPLICAS_REQUIRED,
    SPEC_WARNING_START_AT_TIME_FORMAT,
    SPEC_WARNING_START_AT_TIME_REQUIRED,
    SPEC_WARNING_TARGET_WORKLOAD_NOT_SET,
    CronTypeCondition,
    SpecError,
    build_keda_triggers,
    prepare_cron_triggers,
    scale_by_keda,
)


class _Recorder:
    def __init__(self):
        self.warnings = []

    def warning(self, obj, reason, err):
        self.warnings.append((obj, reason, err))


def _cron(**condition):
    base = {"startAt": "08:00", "duration": "2h", "days": "Monday", "replicas": "3"}
    base.update(condition)
    return Trigger(type=TriggerType.CRON, name="daily", condition=base)


def _scaler(triggers, target="web", min_replicas=None, max_replicas=None):
    return Autoscaler(
        metadata={"name": "scaler", "namespace": "default", "uid": "scaler-uid"},
        spec=AutoscalerSpec(
            min_replicas=min_replicas,
            max_replicas=max_replicas,
            triggers=list(triggers),
            target_workload=TargetWorkload(name=target, api_version="apps/v1", kind="Deployment"),
        ),
    )


def test_condition_from_mapping_reads_fields():
    cond = CronTypeCondition.from_mapping(
        {"startAt": "08:00", "duration": "1h", "days": "Monday", "replicas": "2", "timezone": "UTC"}
    )
    assert cond == CronTypeCondition("08:00", "1h", "Monday", "2", "UTC")


def test_condition_from_mapping_ignores_key_case_and_defaults_empty():
    cond = CronTypeCondition.from_mapping({"StartAt": "09:15"})
    assert cond.start_at == "09:15"
    assert cond.duration == ""
    assert cond.timezone == ""


def test_cron_trigger_worked_example():
    triggers = prepare_cron_triggers(_scaler([]), _cron())
    assert len(triggers) == 1
    meta = triggers[0]["metadata"]
    assert meta["start"] == "0 8 * * 1"
    assert meta["end"] == "0 10 * * 1"
    assert meta["desiredReplicas"] == "3"
    assert triggers[0]["type"] == TriggerType.CRON.value


def test_cron_trigger_wraps_past_midnight():
    trig = _cron(startAt="23:30", duration="1h45m", days="Saturday")
    (result,) = prepare_cron_triggers(_scaler([]), trig)
    assert result["metadata"]["end"] == "15 1 * * 0"


def test_one_trigger_per_day_with_trimmed_names():
    trig = _cron(days="Monday, friday", timezone="Asia/Shanghai")
    triggers = prepare_cron_triggers(_scaler([]), trig)
    assert len(triggers) == 2
    assert triggers[0]["name"].endswith("-Monday")
    assert triggers[1]["name"].endswith("-friday")
    assert all(t["name"].startswith("daily-") for t in triggers)
    assert all(t["metadata"]["timezone"] == "Asia/Shanghai" for t in triggers)


def test_equivalent_durations_give_equal_triggers():
    scaler = _scaler([])
    a = prepare_cron_triggers(scaler, _cron(duration="90m"))
    b = prepare_cron_triggers(scaler, _cron(duration="1h30m"))
    c = prepare_cron_triggers(scaler, _cron(duration="1.5h"))
    assert a == b == c


def test_single_digit_hour_is_accepted():
    scaler = _scaler([])
    assert prepare_cron_triggers(scaler, _cron(startAt="8:00")) == prepare_cron_triggers(
        scaler, _cron(startAt="08:00")
    )


@pytest.mark.parametrize(
    "condition, reason",
    [
        ({"startAt": ""}, SPEC_WARNING_START_AT_TIME_REQUIRED),
        ({"duration": ""}, SPEC_WARNING_DURATION_TIME_REQUIRED),
        ({"startAt": "25:00"}, SPEC_WARNING_START_AT_TIME_FORMAT),
        ({"startAt": "8-00"}, SPEC_WARNING_START_AT_TIME_FORMAT),
        ({"duration": "abc"}, SPEC_WARNING_DURATION_TIME_NOT_IN_RIGHT_FORMAT),
        ({"duration": "5x"}, SPEC_WARNING_DURATION_TIME_NOT_IN_RIGHT_FORMAT),
        ({"replicas": "x"}, REASON_PARSE_REPLICA_FAILED),
        ({"replicas": ""}, REASON_PARSE_REPLICA_FAILED),
        ({"replicas": "0"}, SPEC_WARNING_REPLICAS_REQUIRED),
    ],
)
def test_invalid_conditions(condition, reason):
    with pytest.raises(SpecError) as info:
        prepare_cron_triggers(_scaler([]), _cron(**condition))
    assert info.value.reason == reason


def test_missing_target_workload():
    with pytest.raises(SpecError) as info:
        prepare_cron_triggers(_scaler([], target=""), _cron())
    assert info.value.reason == SPEC_WARNING_TARGET_WORKLOAD_NOT_SET


def test_unknown_day():
    with pytest.raises(SpecError, match="wrong format Funday") as info:
        prepare_cron_triggers(_scaler([]), _cron(days="Funday"))
    assert info.value.reason == ""


def test_build_keeps_order_and_passes_other_triggers_through():
    cpu = Trigger(type="cpu", name="load", condition={"type": "Utilization", "value": "60"})
    scaler = _scaler([_cron(), cpu])
    triggers = build_keda_triggers(scaler)
    assert triggers[0]["type"] == TriggerType.CRON.value
    assert triggers[1] == {"type": "cpu", "name": "load", "metadata": cpu.condition}


def test_scale_by_keda_creates_owned_scaled_object():
    client = InMemoryClient()
    scaler = _scaler([_cron()], min_replicas=1, max_replicas=4)
    created = scale_by_keda(client, scaler, "default")
    stored = client.get(SCALED_OBJECT_API_VERSION, SCALED_OBJECT_KIND, ObjectKey("default", "scaler"))
    assert stored["spec"] == created["spec"]
    assert stored["spec"]["minReplicaCount"] == 1
    assert stored["spec"]["maxReplicaCount"] == 4
    assert stored["spec"]["scaleTargetRef"] == {
        "name": "web",
        "apiVersion": "apps/v1",
        "kind": "Deployment",
    }
    owner = stored["metadata"]["ownerReferences"][0]
    assert owner["uid"] == "scaler-uid"
    assert owner["kind"] == "Autoscaler"
    assert owner["controller"] is True


def test_scale_by_keda_updates_existing_and_keeps_uid():
    client = InMemoryClient()
    first = scale_by_keda(client, _scaler([_cron()]), "default")
    second = scale_by_keda(client, _scaler([_cron(replicas="7")]), "default")
    assert second["metadata"]["uid"] == first["metadata"]["uid"]
    assert second["spec"]["triggers"][0]["metadata"]["desiredReplicas"] == "7"
    assert "minReplicaCount" not in second["spec"]


def test_scale_by_keda_reports_invalid_trigger():
    client = InMemoryClient()
    recorder = _Recorder()
    scaler = _scaler([_cron(startAt="")])
    with pytest.raises(SpecError):
        scale_by_keda(client, scaler, "default", recorder)
    assert [reason for _, reason, _ in recorder.warnings] == [SPEC_WARNING_START_AT_TIME_REQUIRED]
    assert client.list(SCALED_OBJECT_API_VERSION, SCALED_OBJECT_KIND) == []