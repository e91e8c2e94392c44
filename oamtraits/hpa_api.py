"""The HorizontalPodAutoscalerTrait resource."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Mapping

from .core import CORE_OAM_V1ALPHA2, Condition, ConditionedStatus, ConditionType, TypedReference

API_VERSION = str(CORE_OAM_V1ALPHA2)
KIND = "HorizontalPodAutoscalerTrait"


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


@dataclass
class HorizontalPodAutoscalerTraitSpec:
    """Desired state: replica bounds and the CPU utilisation to aim for."""

    max_replicas: int = 0
    min_replicas: int | None = None
    target_cpu_utilization_percentage: int | None = None
    workload_reference: TypedReference = field(default_factory=TypedReference)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.min_replicas is not None:
            data["minReplicas"] = self.min_replicas
        data["maxReplicas"] = self.max_replicas
        if self.target_cpu_utilization_percentage is not None:
            data["targetCPUUtilizationPercentage"] = self.target_cpu_utilization_percentage
        data["workloadRef"] = self.workload_reference.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> HorizontalPodAutoscalerTraitSpec:
        data = data or {}
        return cls(
            max_replicas=int(data.get("maxReplicas", 0)),
            min_replicas=_optional_int(data.get("minReplicas")),
            target_cpu_utilization_percentage=_optional_int(
                data.get("targetCPUUtilizationPercentage")
            ),
            workload_reference=TypedReference.from_dict(data.get("workloadRef")),
        )


@dataclass
class HorizontalPodAutoscalerTraitStatus(ConditionedStatus):
    """Observed state, including the resources the trait manages."""

    resources: list[TypedReference] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.resources:
            data["resources"] = [r.to_dict() for r in self.resources]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> HorizontalPodAutoscalerTraitStatus:
        data = data or {}
        return cls(
            conditions=ConditionedStatus.from_dict(data).conditions,
            resources=[TypedReference.from_dict(r) for r in data.get("resources") or []],
        )


@dataclass
class HorizontalPodAutoscalerTrait:
    """A HorizontalPodAutoscalerTrait object."""

    metadata: dict[str, Any] = field(default_factory=dict)
    spec: HorizontalPodAutoscalerTraitSpec = field(
        default_factory=HorizontalPodAutoscalerTraitSpec
    )
    status: HorizontalPodAutoscalerTraitStatus = field(
        default_factory=HorizontalPodAutoscalerTraitStatus
    )
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
    def from_dict(cls, data: Mapping[str, Any]) -> HorizontalPodAutoscalerTrait:
        return cls(
            metadata=copy.deepcopy(dict(data.get("metadata") or {})),
            spec=HorizontalPodAutoscalerTraitSpec.from_dict(data.get("spec")),
            status=HorizontalPodAutoscalerTraitStatus.from_dict(data.get("status")),
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