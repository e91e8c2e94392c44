"""Reconciler turning HorizontalPodAutoscalerTraits into HorizontalPodAutoscalers."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

from .client import Client, ObjectKey, _plain, fetch_workload_child_resources, patch_condition
from .core import (
    APPS_V1,
    AUTOSCALING_V1,
    CORE_OAM_V1ALPHA2,
    RECONCILE_WAIT_RESULT,
    NotFoundError,
    Result,
    TypedReference,
    gvk_string,
    reconcile_error,
    reconcile_success,
    set_controller_reference,
)
from .hpa_api import API_VERSION, KIND, HorizontalPodAutoscalerTrait

_log = logging.getLogger(__name__)

ERR_LOCATE_WORKLOAD = "cannot find workload"
ERR_LOCATE_RESOURCES = "cannot find resources"
ERR_LOCATE_AVAILABLE_RESOURCES = "cannot find available resources"
ERR_APPLY_HPA = "cannot apply the HPA"
ERR_GC_HPA = "cannot clean up HPA"
ERR_NOT_HPA_TRAIT = "not a hpa trait"

OAM_API_VERSION = str(CORE_OAM_V1ALPHA2)
APPS_API_VERSION = str(APPS_V1)
GROUP_VERSION_HPA = str(AUTOSCALING_V1)

KIND_HPA = "HorizontalPodAutoscaler"
KIND_DEPLOYMENT = "Deployment"
KIND_STATEFUL_SET = "StatefulSet"

GVK_DEPLOYMENT = "apps/v1, Kind=Deployment"
GVK_STATEFUL_SET = "apps/v1, Kind=StatefulSet"

LABEL_KEY = "hpatrait.oam.crossplane.io"


def determine_workload_type(client: Client, workload: Any) -> list[dict[str, Any]]:
    """The resources behind a workload: its children for OAM workloads, itself for apps/v1."""
    data = _plain(workload)
    api_version = data.get("apiVersion", "")
    if api_version == OAM_API_VERSION:
        return fetch_workload_child_resources(client, data)
    if api_version == APPS_API_VERSION:
        _log.info("workload is K8S native resources, APIVersion %s", api_version)
        return [data]
    if not api_version:
        raise ValueError("failed to get the workload APIVersion")
    raise ValueError(f"This trait doesn't support this APIVersion{api_version}")


def _containers(resource: Mapping[str, Any], what: str) -> list[Mapping[str, Any]]:
    try:
        spec = resource.get("spec") or {}
        template = spec.get("template") or {}
        containers = (template.get("spec") or {}).get("containers") or []
        return [dict(container) for container in containers]
    except (AttributeError, TypeError, ValueError) as err:
        raise ValueError(
            f"Failed to convert an unstructured obj to a appsv1.{what}: {err}"
        ) from err


def _checked_reference(resource: Mapping[str, Any], what: str) -> dict[str, str]:
    name = (resource.get("metadata") or {}).get("name", "")
    for container in _containers(resource, what):
        if (container.get("resources") or {}).get("requests") is None:
            raise ValueError(f"cannot get container.resources.requests from {what}: {name}")
    # Stateful sets are referenced with the Deployment kind as well.
    return {"kind": KIND_DEPLOYMENT, "name": name, "apiVersion": APPS_API_VERSION}


def render_reference(resource: Mapping[str, Any]) -> dict[str, str] | None:
    """The scale target reference for a resource, or ``None`` if it cannot be scaled.

    Every container must declare resource requests; otherwise ``ValueError`` is raised.
    """
    gvk = gvk_string(resource)
    if gvk == GVK_DEPLOYMENT:
        return _checked_reference(resource, "deployment")
    if gvk == GVK_STATEFUL_SET:
        return _checked_reference(resource, "statefulset")
    return None


def render_hpas(trait: Any, resources: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """One HPA per scalable resource, each owned by the trait and named after it."""
    if not isinstance(trait, HorizontalPodAutoscalerTrait):
        raise TypeError(ERR_NOT_HPA_TRAIT)
    hpas = []
    for resource in resources:
        target = render_reference(resource)
        if target is None:
            continue
        spec: dict[str, Any] = {"scaleTargetRef": target}
        if trait.spec.min_replicas is not None:
            spec["minReplicas"] = trait.spec.min_replicas
        spec["maxReplicas"] = trait.spec.max_replicas
        if trait.spec.target_cpu_utilization_percentage is not None:
            spec["targetCPUUtilizationPercentage"] = (
                trait.spec.target_cpu_utilization_percentage
            )
        hpa = {
            "apiVersion": GROUP_VERSION_HPA,
            "kind": KIND_HPA,
            "metadata": {
                "name": trait.name,
                "namespace": trait.namespace,
                "labels": {LABEL_KEY: trait.uid},
            },
            "spec": spec,
        }
        set_controller_reference(trait, hpa)
        hpas.append(hpa)
    return hpas


class HorizontalPodAutoscalerTraitReconciler:
    """Keeps an HPA for each deployment or stateful set behind a trait's workload."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def _fetch_workload(self, trait: HorizontalPodAutoscalerTrait) -> dict[str, Any]:
        ref = trait.workload_reference
        workload = self.client.get(
            ref.api_version, ref.kind, ObjectKey(trait.namespace, ref.name)
        )
        _log.info(
            "Get the workload the trait is pointing to: %s %s/%s",
            ref.name,
            workload.get("apiVersion", ""),
            workload.get("kind", ""),
        )
        return workload

    def reconcile(self, namespace: str, name: str) -> Result:
        """Reconcile one HorizontalPodAutoscalerTrait.

        Problems recorded as conditions end in a result; store failures other than
        not-found, invalid workloads and failed status writes are raised.
        """
        _log.info("Reconcile HorizontalPodAutoscalerTrait %s/%s", namespace, name)
        try:
            stored = self.client.get(API_VERSION, KIND, ObjectKey(namespace, name))
        except NotFoundError:
            return Result()
        trait = HorizontalPodAutoscalerTrait.from_dict(stored)

        try:
            workload = self._fetch_workload(trait)
        except Exception as err:
            _log.error("Workload not found for %s: %s", trait.name, err)
            patch_condition(
                self.client, trait, reconcile_error(f"{ERR_LOCATE_WORKLOAD}: {err}")
            )
            return RECONCILE_WAIT_RESULT

        try:
            resources = determine_workload_type(self.client, workload)
        except Exception as err:
            _log.error("Cannot find the workload's child resources: %s", err)
            patch_condition(self.client, trait, reconcile_error(ERR_LOCATE_RESOURCES))
            return RECONCILE_WAIT_RESULT

        hpas = render_hpas(trait, resources)
        if not hpas:
            _log.info("Cannot get any HPA-applicable resources")
            patch_condition(self.client, trait, reconcile_error(ERR_LOCATE_AVAILABLE_RESOURCES))
            return Result()

        hpa_uids: list[str] = []
        trait.status.resources = []
        for hpa in hpas:
            hpa_name = hpa["metadata"]["name"]
            try:
                applied = self.client.apply(hpa, hpa_name)
            except Exception as err:
                _log.error("Failed to apply a HPA, total HPA count %d: %s", len(hpas), err)
                patch_condition(
                    self.client, trait, reconcile_error(f"{ERR_APPLY_HPA}: {err}")
                )
                return RECONCILE_WAIT_RESULT
            meta = applied.get("metadata") or {}
            uid = meta.get("uid", "")
            _log.info("Successfully applied a HPA, UID %s", uid)
            trait.status.resources.append(
                TypedReference(
                    api_version=applied.get("apiVersion", ""),
                    kind=applied.get("kind", ""),
                    name=meta.get("name", ""),
                    uid=uid,
                )
            )
            hpa_uids.append(uid)
            self.client.update_status(trait)

        try:
            self.clean_up_legacy_hpas(trait, hpa_uids)
        except Exception as err:
            _log.error("Failed to delete legacy HPAs: %s", err)
            patch_condition(self.client, trait, reconcile_error(f"{ERR_GC_HPA}: {err}"))
            return RECONCILE_WAIT_RESULT

        patch_condition(self.client, trait, reconcile_success())
        return Result()

    def clean_up_legacy_hpas(
        self, trait: HorizontalPodAutoscalerTrait, hpa_uids: Sequence[str]
    ) -> None:
        """Delete HPAs recorded on the trait whose uid is not among ``hpa_uids``."""
        current = set(hpa_uids)
        for res in trait.status.resources:
            if res.kind != KIND_HPA or res.api_version != GROUP_VERSION_HPA:
                continue
            if res.uid in current:
                continue
            _log.info("Find a legacy HPA, UID %s", res.uid)
            try:
                legacy = self.client.get(
                    GROUP_VERSION_HPA, KIND_HPA, ObjectKey(trait.namespace, res.name)
                )
            except NotFoundError as err:
                _log.info("Failed to get the legacy HPA: %s", err)
                continue
            self.client.delete(legacy)
            _log.info("Delete a legacy HPA, UID %s", res.uid)