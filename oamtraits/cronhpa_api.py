"""The CronHPATrait resource."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Mapping

from .core import CORE_OAM_V1ALPHA2, Condition, ConditionedStatus, ConditionType, TypedReference

API_VERSION = str(CORE_OAM_V1ALPHA2)
KIND = "CronHPATrait"


@dataclass
class Job:
    """A scheduled scaling job."""

    name: str = ""
    schedule: str = ""
    run_once: bool = False
    target_size: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "schedule": self.schedule}
        if self.run_once:
            data["runOnce"] = True
        data["targetSize"] = self.target_size
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Job:
        return cls(
            name=data.get("name", ""),
            schedule=data.get("schedule", ""),
            run_once=bool(data.get("runOnce", False)),
            target_size=int(data.get("targetSize", 0)),
        )


@dataclass
class CronHPATraitSpec:
    jobs: list[Job] = field(default_factory=list)
    exclude_dates: list[str] = field(default_factory=list)
    workload_reference: TypedReference = field(default_factory=TypedReference)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.exclude_dates:
            data["excludeDates"] = list(self.exclude_dates)
        data["jobs"] = [job.to_dict() for job in self.jobs]
        data["workloadRef"] = self.workload_reference.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> CronHPATraitSpec:
        data = data or {}
        return cls(
            jobs=[Job.from_dict(j) for j in data.get("jobs") or []],
            exclude_dates=list(data.get("excludeDates") or []),
            workload_reference=TypedReference.from_dict(data.get("workloadRef")),
        )


@dataclass
class CronHPATraitStatus(ConditionedStatus):
    """Observed state, including the resources the trait manages."""

    resources: list[TypedReference] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.resources:
            data["resources"] = [r.to_dict() for r in self.resources]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> CronHPATraitStatus:
        data = data or {}
        return cls(
            conditions=ConditionedStatus.from_dict(data).conditions,
            resources=[TypedReference.from_dict(r) for r in data.get("resources") or []],
        )


@dataclass
class CronHPATrait:
    """A CronHPATrait object."""

    metadata: dict[str, Any] = field(default_factory=dict)
    spec: CronHPATraitSpec = field(default_factory=CronHPATraitSpec)
    status: CronHPATraitStatus = field(default_factory=CronHPATraitStatus)
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
    def from_dict(cls, data: Mapping[str, Any]) -> CronHPATrait:
        return cls(
            metadata=copy.deepcopy(dict(data.get("metadata") or {})),
            spec=CronHPATraitSpec.from_dict(data.get("spec")),
            status=CronHPATraitStatus.from_dict(data.get("status")),
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