"""The MetricHPATrait resource."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Mapping

from .core import EXTEND_OAM_V1ALPHA2, Condition, ConditionedStatus, ConditionType, TypedReference

API_VERSION = str(EXTEND_OAM_V1ALPHA2)
KIND = "MetricHPATrait"


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


_OPTIONAL_INTS = (
    ("polling_interval", "pollingInterval"),
    ("cooldown_period", "cooldownPeriod"),
    ("min_replica_count", "minReplicaCount"),
    ("max_replica_count", "maxReplicaCount"),
)


@dataclass
class MetricHPATraitSpec:
    """Desired state: a Prometheus query and threshold driving the scaling."""

    prom_query: str = ""
    prom_threshold: int | None = None
    polling_interval: int | None = None
    cooldown_period: int | None = None
    min_replica_count: int | None = None
    max_replica_count: int | None = None
    prom_server_address: str = ""
    workload_reference: TypedReference = field(default_factory=TypedReference)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for attr, key in _OPTIONAL_INTS:
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        if self.prom_server_address:
            data["promServerAddress"] = self.prom_server_address
        data["promQuery"] = self.prom_query
        data["promThreshold"] = self.prom_threshold
        data["workloadRef"] = self.workload_reference.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MetricHPATraitSpec:
        data = data or {}
        return cls(
            prom_query=data.get("promQuery", ""),
            prom_threshold=_optional_int(data.get("promThreshold")),
            prom_server_address=data.get("promServerAddress", ""),
            workload_reference=TypedReference.from_dict(data.get("workloadRef")),
            **{attr: _optional_int(data.get(key)) for attr, key in _OPTIONAL_INTS},
        )


@dataclass
class MetricHPATraitStatus(ConditionedStatus):
    """Observed state, including the resources the trait manages."""

    resources: list[TypedReference] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.resources:
            data["resources"] = [r.to_dict() for r in self.resources]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MetricHPATraitStatus:
        data = data or {}
        return cls(
            conditions=ConditionedStatus.from_dict(data).conditions,
            resources=[TypedReference.from_dict(r) for r in data.get("resources") or []],
        )


@dataclass
class MetricHPATrait:
    """A MetricHPATrait object."""

    metadata: dict[str, Any] = field(default_factory=dict)
    spec: MetricHPATraitSpec = field(default_factory=MetricHPATraitSpec)
    status: MetricHPATraitStatus = field(default_factory=MetricHPATraitStatus)
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
    def from_dict(cls, data: Mapping[str, Any]) -> MetricHPATrait:
        return cls(
            metadata=copy.deepcopy(dict(data.get("metadata") or {})),
            spec=MetricHPATraitSpec.from_dict(data.get("spec")),
            status=MetricHPATraitStatus.from_dict(data.get("status")),
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