"""The Autoscaler trait resource."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from .core import STANDARD_V1ALPHA1, Condition, ConditionedStatus, ConditionType, TypedReference

API_VERSION = str(STANDARD_V1ALPHA1)
KIND = "Autoscaler"


class TriggerType(str, Enum):
    """Trigger types handled specially; other type names pass through as plain strings."""

    CRON = "cron"
    CPU = "cpu"


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


@dataclass
class Trigger:
    """When and how scaling is triggered."""

    type: TriggerType | str
    condition: dict[str, str] = field(default_factory=dict)
    name: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.name:
            data["name"] = self.name
        data["type"] = self.type.value if isinstance(self.type, TriggerType) else self.type
        data["condition"] = dict(self.condition)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Trigger:
        raw_type = data.get("type", "")
        try:
            trigger_type: TriggerType | str = TriggerType(raw_type)
        except ValueError:
            trigger_type = raw_type
        return cls(
            type=trigger_type,
            condition=dict(data.get("condition") or {}),
            name=data.get("name", ""),
        )


@dataclass
class TargetWorkload:
    """The object that is scaled."""

    name: str = ""
    api_version: str = ""
    kind: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = {"name": self.name}
        if self.api_version:
            data["apiVersion"] = self.api_version
        if self.kind:
            data["kind"] = self.kind
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> TargetWorkload:
        data = data or {}
        return cls(
            name=data.get("name", ""),
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
        )


@dataclass
class AutoscalerSpec:
    min_replicas: int | None = None
    max_replicas: int | None = None
    triggers: list[Trigger] = field(default_factory=list)
    target_workload: TargetWorkload = field(default_factory=TargetWorkload)
    workload_reference: TypedReference = field(default_factory=TypedReference)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.min_replicas is not None:
            data["minReplicas"] = self.min_replicas
        if self.max_replicas is not None:
            data["maxReplicas"] = self.max_replicas
        data["triggers"] = [t.to_dict() for t in self.triggers]
        data["targetWorkload"] = self.target_workload.to_dict()
        data["workloadRef"] = self.workload_reference.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> AutoscalerSpec:
        data = data or {}
        return cls(
            min_replicas=_optional_int(data.get("minReplicas")),
            max_replicas=_optional_int(data.get("maxReplicas")),
            triggers=[Trigger.from_dict(t) for t in data.get("triggers") or []],
            target_workload=TargetWorkload.from_dict(data.get("targetWorkload")),
            workload_reference=TypedReference.from_dict(data.get("workloadRef")),
        )


@dataclass
class AutoscalerStatus(ConditionedStatus):
    """Observed state of an Autoscaler."""


@dataclass
class Autoscaler:
    """An Autoscaler trait object."""

    metadata: dict[str, Any] = field(default_factory=dict)
    spec: AutoscalerSpec = field(default_factory=AutoscalerSpec)
    status: AutoscalerStatus = field(default_factory=AutoscalerStatus)
    api_version: str = API_VERSION
    kind: str = KIND

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "")

    @property
    def uid(self) -> str:
        return self.metadata.get("uid", "")

    @property
    def workload_reference(self) -> TypedReference:
        return self.spec.workload_reference

    @workload_reference.setter
    def workload_reference(self, reference: TypedReference) -> None:
        self.spec.workload_reference = reference

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Autoscaler:
        status = ConditionedStatus.from_dict(data.get("status"))
        return cls(
            metadata=copy.deepcopy(dict(data.get("metadata") or {})),
            spec=AutoscalerSpec.from_dict(data.get("spec")),
            status=AutoscalerStatus(conditions=status.conditions),
            api_version=data.get("apiVersion", API_VERSION),
            kind=data.get("kind", KIND),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": copy.deepcopy(self.metadata),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    def set_conditions(self, *args: Condition) -> None:
        self.status.set_conditions(*args)

    def get_condition(self, condition_type: ConditionType | str) -> Condition:
        return self.status.get_condition(condition_type)