"""Translation of Autoscaler triggers into KEDA ScaledObjects."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

from .autoscaler_api import Autoscaler, Trigger, TriggerType
from .client import Client, ObjectKey
from .core import NotFoundError

_log = logging.getLogger(__name__)

SPEC_WARNING_TARGET_WORKLOAD_NOT_SET = "Spec.targetWorkload is not set"
SPEC_WARNING_START_AT_TIME_FORMAT = (
    "startAt is not in the right format, which should be like `12:01`"
)
SPEC_WARNING_START_AT_TIME_REQUIRED = "spec.triggers.condition.startAt: Required value"
SPEC_WARNING_DURATION_TIME_REQUIRED = "spec.triggers.condition.duration: Required value"
SPEC_WARNING_REPLICAS_REQUIRED = "spec.triggers.condition.replicas: Required value"
SPEC_WARNING_DURATION_TIME_NOT_IN_RIGHT_FORMAT = (
    "spec.triggers.condition.duration: not in the right format"
)
REASON_CONVERT_CONDITION_FAILED = "convert cron condition failed"
REASON_PARSE_REPLICA_FAILED = "parse replica failed"

SCALED_OBJECT_API_VERSION = "keda.sh/v1alpha1"
SCALED_OBJECT_KIND = "ScaledObject"

WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

_MINUTE_NS = 60 * 10**9
_HOUR_NS = 60 * _MINUTE_NS
_MAX_DURATION_NS = 2**63 - 1
_UNIT_NS = {
    "ns": 1,
    "us": 10**3,
    "µs": 10**3,
    "μs": 10**3,
    "ms": 10**6,
    "s": 10**9,
    "m": _MINUTE_NS,
    "h": _HOUR_NS,
}
_DURATION_PART = re.compile(r"(\d*)(?:\.(\d*))?([^\d.]+)")
_CLOCK = re.compile(r"(\d{1,2}):(\d{2})")
_INTEGER = re.compile(r"[+-]?\d+")

_CONDITION_KEYS = (
    ("start_at", "startAt"),
    ("duration", "duration"),
    ("days", "days"),
    ("replicas", "replicas"),
    ("timezone", "timezone"),
)


class SpecError(ValueError):
    """An Autoscaler spec that cannot be turned into KEDA triggers."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message if message is not None else reason)
        self.reason = reason


@dataclass
class CronTypeCondition:
    """The condition of a cron trigger."""

    start_at: str = ""
    duration: str = ""
    days: str = ""
    replicas: str = ""
    timezone: str = ""

    @classmethod
    def from_mapping(cls, condition: Mapping[str, Any] | None) -> CronTypeCondition:
        """Read the condition; keys match exactly first, then ignoring case."""
        condition = condition or {}
        values: dict[str, str] = {}
        for attr, key in _CONDITION_KEYS:
            if key in condition:
                values[attr] = str(condition[key])
                continue
            folded = key.casefold()
            for candidate, value in condition.items():
                if str(candidate).casefold() == folded:
                    values[attr] = str(value)
        return cls(**values)


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // b
    return q if a >= 0 else -q


def _trunc_mod(a: int, b: int) -> int:
    r = abs(a) % b
    return r if a >= 0 else -r


def _parse_clock(text: str) -> tuple[int, int]:
    match = _CLOCK.fullmatch(text)
    if not match:
        raise ValueError(f'parsing time "{text}" as "15:04": cannot parse')
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23:
        raise ValueError(f'parsing time "{text}": hour out of range')
    if minute > 59:
        raise ValueError(f'parsing time "{text}": minute out of range')
    return hour, minute


def _parse_duration_ns(text: str) -> int:
    invalid = ValueError(f'time: invalid duration "{text}"')
    rest = text
    negative = False
    if rest[:1] in ("+", "-"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return 0
    if not rest:
        raise invalid
    total = 0
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if not match or not (match.group(1) or match.group(2)):
            raise invalid
        whole, fraction, unit = match.group(1), match.group(2) or "", match.group(3)
        if unit not in _UNIT_NS:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{text}"')
        scale = _UNIT_NS[unit]
        total += int(whole or "0") * scale
        if fraction:
            total += int(fraction) * scale // 10 ** len(fraction)
        if total > _MAX_DURATION_NS:
            raise invalid
        pos = match.end()
    return -total if negative else total


def _parse_int(text: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise ValueError(f'strconv.Atoi: parsing "{text}": invalid syntax')
    return int(text)


def _type_name(trigger_type: TriggerType | str) -> str:
    return trigger_type.value if isinstance(trigger_type, TriggerType) else str(trigger_type)


def _weekday_number(day: str) -> int:
    folded = day.casefold()
    for number, name in enumerate(WEEKDAYS):
        if name.casefold() == folded:
            return number
    raise SpecError(
        "", f"wrong format {day}, should be one of [{' '.join(WEEKDAYS)}]"
    )


def prepare_cron_triggers(scaler: Autoscaler, trigger: Trigger) -> list[dict[str, Any]]:
    """Expand a cron trigger into one KEDA cron trigger per listed weekday."""
    if not scaler.spec.target_workload.name:
        raise SpecError(SPEC_WARNING_TARGET_WORKLOAD_NOT_SET)
    condition = CronTypeCondition.from_mapping(trigger.condition)
    if not condition.start_at:
        raise SpecError(SPEC_WARNING_START_AT_TIME_REQUIRED)
    if not condition.duration:
        raise SpecError(SPEC_WARNING_DURATION_TIME_REQUIRED)
    try:
        start_hour, start_minute = _parse_clock(condition.start_at)
    except ValueError as err:
        raise SpecError(SPEC_WARNING_START_AT_TIME_FORMAT, str(err)) from err
    try:
        duration_ns = _parse_duration_ns(condition.duration)
    except ValueError as err:
        raise SpecError(SPEC_WARNING_DURATION_TIME_NOT_IN_RIGHT_FORMAT, str(err)) from err

    duration_minutes = _trunc_mod(_trunc_div(duration_ns, _MINUTE_NS), 60)
    end_minute = start_minute + duration_minutes
    end_hour = _trunc_div(duration_ns, _HOUR_NS) + start_hour
    if end_minute >= 60:
        end_minute %= 60
        end_hour += 1
    extra_day = 0
    if end_hour >= 24:
        end_hour %= 24
        extra_day = 1

    try:
        replicas = _parse_int(condition.replicas)
    except ValueError as err:
        raise SpecError(REASON_PARSE_REPLICA_FAILED, str(err)) from err
    if replicas == 0:
        raise SpecError(SPEC_WARNING_REPLICAS_REQUIRED)

    days = [day.strip() for day in condition.days.split(",")]
    numbers = [_weekday_number(day) for day in days]

    return [
        {
            "type": _type_name(trigger.type),
            "name": f"{trigger.name}-{day}",
            "metadata": {
                "timezone": condition.timezone,
                "start": f"{start_minute} {start_hour} * * {number}",
                "end": f"{end_minute} {end_hour} * * {(number + extra_day) % 7}",
                "desiredReplicas": str(replicas),
            },
        }
        for day, number in zip(days, numbers)
    ]


def _plain_trigger(trigger: Trigger) -> dict[str, Any]:
    data: dict[str, Any] = {"type": _type_name(trigger.type)}
    if trigger.name:
        data["name"] = trigger.name
    data["metadata"] = dict(trigger.condition)
    return data


def build_keda_triggers(scaler: Autoscaler) -> list[dict[str, Any]]:
    """All KEDA triggers for the scaler, in the order its triggers are listed."""
    triggers: list[dict[str, Any]] = []
    for trigger in scaler.spec.triggers:
        if trigger.type == TriggerType.CRON:
            triggers.extend(prepare_cron_triggers(scaler, trigger))
        else:
            triggers.append(_plain_trigger(trigger))
    return triggers


def _scaled_object_spec(scaler: Autoscaler, triggers: list[dict[str, Any]]) -> dict[str, Any]:
    target = scaler.spec.target_workload
    ref: dict[str, Any] = {"name": target.name}
    if target.api_version:
        ref["apiVersion"] = target.api_version
    if target.kind:
        ref["kind"] = target.kind
    spec: dict[str, Any] = {"scaleTargetRef": ref}
    if scaler.spec.min_replicas is not None:
        spec["minReplicaCount"] = scaler.spec.min_replicas
    if scaler.spec.max_replicas is not None:
        spec["maxReplicaCount"] = scaler.spec.max_replicas
    spec["triggers"] = triggers
    return spec


def scale_by_keda(
    client: Client, scaler: Autoscaler, namespace: str, recorder: Any = None
) -> dict[str, Any]:
    """Create or update the ScaledObject for the scaler and return it as stored.

    An invalid cron trigger is reported to ``recorder`` as a warning and re-raised.
    """
    try:
        triggers = build_keda_triggers(scaler)
    except SpecError as err:
        _log.error("%s: %s", err.reason, err)
        if recorder is not None:
            recorder.warning(scaler, err.reason, err)
        raise
    spec = _scaled_object_spec(scaler, triggers)
    key = ObjectKey(namespace=namespace, name=scaler.name)
    try:
        existing = client.get(SCALED_OBJECT_API_VERSION, SCALED_OBJECT_KIND, key)
    except NotFoundError:
        scaled_object = {
            "apiVersion": SCALED_OBJECT_API_VERSION,
            "kind": SCALED_OBJECT_KIND,
            "metadata": {
                "name": scaler.name,
                "namespace": namespace,
                "ownerReferences": [
                    {
                        "apiVersion": scaler.api_version,
                        "kind": scaler.kind,
                        "uid": scaler.uid,
                        "name": scaler.name,
                        "controller": True,
                        "blockOwnerDeletion": True,
                    }
                ],
            },
            "spec": spec,
        }
        created = client.create(scaled_object)
        _log.info("KEDA ScaledObj created: %s", scaler.name)
        return created
    existing["spec"] = spec
    updated = client.update(existing)
    _log.info("KEDA ScaledObj updated: %s", scaler.name)
    return updated