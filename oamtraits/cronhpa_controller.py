"""Reconciler turning CronHPATraits into CronHorizontalPodAutoscalers."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .client import Client, ObjectKey, _plain, fetch_workload_child_resources, patch_condition
from .core import (
    APPS_V1,
    CORE_OAM_V1ALPHA2,
    RECONCILE_WAIT_RESULT,
    NotFoundError,
    Result,
    TypedReference,
    reconcile_error,
    reconcile_success,
    set_controller_reference,
)
from .cronhpa_api import API_VERSION, KIND, CronHPATrait
from .cronhpa_render import CRON_HPA_API_VERSION, CRON_HPA_KIND, render_cron_hpa

_log = logging.getLogger(__name__)

ERR_LOCATE_WORKLOAD = "cannot find workload"
ERR_LOCATE_RESOURCES = "cannot find resources"
ERR_APPLY_CRON_HPA = "cannot apply the cronHPA"
ERR_RENDER_CRON_HPA = "cannot render cronHPA"
ERR_GC_CRON_HPA = "cannot clean up stale cronHPA"

WORKLOAD_API_VERSION = str(CORE_OAM_V1ALPHA2)
APPS_API_VERSION = str(APPS_V1)


def determine_workload_type(client: Client, workload: Any) -> list[dict[str, Any]]:
    """The resources behind a workload: its children for OAM workloads, itself for apps/v1."""
    data = _plain(workload)
    api_version = data.get("apiVersion", "")
    if api_version == WORKLOAD_API_VERSION:
        return fetch_workload_child_resources(client, data)
    if api_version == APPS_API_VERSION:
        _log.info("workload is K8S native resources, APIVersion %s", api_version)
        return [data]
    if not api_version:
        raise ValueError("failed to get the workload apiVersion")
    raise ValueError(f"This trait doesn't support the type{api_version}")


class CronHPATraitReconciler:
    """Keeps one CronHPA per CronHPATrait, targeting the trait's workload."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def _fetch_workload(self, trait: CronHPATrait) -> dict[str, Any]:
        ref = trait.workload_reference
        return self.client.get(ref.api_version, ref.kind, ObjectKey(trait.namespace, ref.name))

    def _render(self, trait: CronHPATrait, resource: Mapping[str, Any]) -> dict[str, Any]:
        cron_hpa = render_cron_hpa(trait, resource)
        set_controller_reference(trait, cron_hpa)
        return cron_hpa

    def reconcile(self, namespace: str, name: str) -> Result:
        """Reconcile one CronHPATrait.

        Problems recorded as conditions end in a wait result; failing to write the
        trait's status is raised.
        """
        _log.info("Reconcile CronHPA Trait %s/%s", namespace, name)
        try:
            stored = self.client.get(API_VERSION, KIND, ObjectKey(namespace, name))
        except NotFoundError:
            return Result()
        trait = CronHPATrait.from_dict(stored)

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
            _log.error("Cannot find the workload child resources: %s", err)
            patch_condition(self.client, trait, reconcile_error(ERR_LOCATE_RESOURCES))
            return RECONCILE_WAIT_RESULT

        target = next(
            (res for res in resources if res.get("apiVersion") == APPS_API_VERSION), None
        )
        if target is None:
            _log.info("Cannot locate any resources, total resources %d", len(resources))
            patch_condition(self.client, trait, reconcile_error(ERR_LOCATE_RESOURCES))
            return Result()
        try:
            cron_hpa = self._render(trait, target)
        except (TypeError, ValueError) as err:
            _log.error("Failed to render a cronHPA: %s", err)
            patch_condition(
                self.client, trait, reconcile_error(f"{ERR_RENDER_CRON_HPA}: {err}")
            )
            return Result()

        try:
            applied = self.client.apply(cron_hpa, trait.name)
        except Exception as err:
            _log.error("Failed to apply a cronHPA: %s", err)
            patch_condition(
                self.client, trait, reconcile_error(f"{ERR_APPLY_CRON_HPA}: {err}")
            )
            return RECONCILE_WAIT_RESULT
        applied_meta = applied.get("metadata") or {}
        uid = applied_meta.get("uid", "")
        _log.info("Successfully applied a cronHPA, UID %s", uid)

        try:
            self.cleanup_resources(trait, uid)
        except Exception as err:
            _log.error("Failed to clean up resources: %s", err)
            patch_condition(self.client, trait, reconcile_error(f"{ERR_GC_CRON_HPA}: {err}"))
            return RECONCILE_WAIT_RESULT

        trait.status.resources = [
            TypedReference(
                api_version=applied.get("apiVersion", ""),
                kind=applied.get("kind", ""),
                name=applied_meta.get("name", ""),
                uid=uid,
            )
        ]
        self.client.update_status(trait)
        patch_condition(self.client, trait, reconcile_success())
        return Result()

    def cleanup_resources(self, trait: CronHPATrait, cron_hpa_uid: str) -> None:
        """Delete CronHPAs recorded on the trait other than the one with ``cron_hpa_uid``."""
        for res in trait.status.resources:
            if (
                res.kind != CRON_HPA_KIND
                or res.api_version != CRON_HPA_API_VERSION
                or res.uid == cron_hpa_uid
            ):
                continue
            _log.info("Found an orphaned cronHPA, UID %s", res.uid)
            try:
                orphan = self.client.get(
                    CRON_HPA_API_VERSION, CRON_HPA_KIND, ObjectKey(trait.namespace, res.name)
                )
            except NotFoundError:
                continue
            self.client.delete(orphan)
            _log.info("Removed an orphaned cronHPA, UID %s", res.uid)