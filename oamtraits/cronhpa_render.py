"""Rendering of CronHorizontalPodAutoscaler objects for a CronHPATrait."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from .core import GroupVersion
from .cronhpa_api import CronHPATrait, Job

ERR_NOT_CRON_HPA_TRAIT = "object is not a cronHPA trait"

LABEL_KEY = "cronhpatrait.oam.crossplane.io"

CRON_HPA_GROUP_VERSION = GroupVersion("autoscaling.alibabacloud.com", "v1beta1")
CRON_HPA_API_VERSION = str(CRON_HPA_GROUP_VERSION)
CRON_HPA_KIND = "CronHorizontalPodAutoscaler"


def _as_mapping(obj: Any) -> Mapping[str, Any]:
    if isinstance(obj, Mapping):
        return obj
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"cannot treat {type(obj).__name__} as an API object")


def convert_jobs(jobs: Iterable[Job]) -> list[dict[str, Any]]:
    """Turn trait jobs into the CronHPA job form."""
    return [
        {
            "name": job.name,
            "schedule": job.schedule,
            "runOnce": job.run_once,
            "targetSize": job.target_size,
        }
        for job in jobs
    ]


def render_cron_hpa(trait: Any, workload: Any) -> dict[str, Any]:
    """Build a CronHPA targeting ``workload`` from the trait's schedule."""
    if not isinstance(trait, CronHPATrait):
        raise TypeError(ERR_NOT_CRON_HPA_TRAIT)
    data = _as_mapping(workload)
    gv = GroupVersion.parse(data.get("apiVersion", ""))
    workload_name = (data.get("metadata") or {}).get("name", "")
    return {
        "apiVersion": CRON_HPA_API_VERSION,
        "kind": CRON_HPA_KIND,
        "metadata": {
            "name": trait.name,
            "namespace": trait.namespace,
            "labels": {LABEL_KEY: trait.uid},
        },
        "spec": {
            "excludeDates": list(trait.spec.exclude_dates),
            "jobs": convert_jobs(trait.spec.jobs),
            "scaleTargetRef": {
                "apiVersion": f"{gv.group}/{gv.version}",
                "kind": data.get("kind", ""),
                "name": workload_name,
            },
        },
        "status": {"conditions": []},
    }