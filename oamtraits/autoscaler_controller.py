"""Reconciler turning Autoscaler traits into KEDA ScaledObjects."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .autoscaler_api import API_VERSION, KIND, Autoscaler, TargetWorkload
from .client import Client, ObjectKey, fetch_workload_child_resources, patch_condition
from .core import RECONCILE_WAIT_RESULT, NotFoundError, Result, reconcile_error
from .keda import scale_by_keda

_log = logging.getLogger(__name__)

CONTROLLER_NAME = "Autoscaler"
APP_CONFIG_KIND = "ApplicationConfiguration"

ERR_LOCATE_APP_CONFIG = "cannot locate the parent application configuration to emit events to"
ERR_LOCATING_WORKLOAD = "failed to locate the workload"
ERR_FETCH_CHILD_RESOURCES = "failed to fetch workload child resources"

SCALABLE_KINDS = ("Deployment", "StatefulSet", "DaemonSet", "ReplicaSet")


def _as_mapping(obj: Any) -> Mapping[str, Any]:
    if isinstance(obj, Mapping):
        return obj
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"cannot treat {type(obj).__name__} as an API object")


class EventRecorder:
    """Keeps the events emitted by a controller, newest last."""

    def __init__(self, annotations: Mapping[str, str] | None = None) -> None:
        self.annotations = dict(annotations or {})
        self.events: list[dict[str, Any]] = []

    def warning(self, obj: Any, reason: str, err: BaseException | str) -> dict[str, Any]:
        data = _as_mapping(obj)
        meta = data.get("metadata") or {}
        event = {
            "type": "Warning",
            "reason": reason,
            "message": str(err),
            "object": {
                "apiVersion": data.get("apiVersion", ""),
                "kind": data.get("kind", ""),
                "namespace": meta.get("namespace", ""),
                "name": meta.get("name", ""),
            },
            "annotations": dict(self.annotations),
        }
        self.events.append(event)
        return event


def _target_of(obj: Mapping[str, Any]) -> TargetWorkload:
    return TargetWorkload(
        name=(obj.get("metadata") or {}).get("name", ""),
        api_version=obj.get("apiVersion", ""),
        kind=obj.get("kind", ""),
    )


def select_target_workload(
    resources: Iterable[Mapping[str, Any]], workload: Mapping[str, Any]
) -> TargetWorkload:
    """The first resource KEDA can scale, the workload included; else the workload."""
    for resource in [*resources, workload]:
        if resource.get("kind") in SCALABLE_KINDS:
            return _target_of(resource)
    return _target_of(workload)


class AutoscalerReconciler:
    """Brings the KEDA ScaledObject of an Autoscaler in line with its spec."""

    def __init__(self, client: Client, recorder: EventRecorder | None = None) -> None:
        self.client = client
        self.recorder = recorder or EventRecorder({"controller": CONTROLLER_NAME})

    def _locate_parent_app_config(self, scaler: Autoscaler) -> dict[str, Any] | None:
        for ref in scaler.metadata.get("ownerReferences") or []:
            if ref.get("kind") == APP_CONFIG_KIND:
                return self.client.get(
                    ref.get("apiVersion", ""),
                    APP_CONFIG_KIND,
                    ObjectKey(scaler.namespace, ref.get("name", "")),
                )
        return None

    def _fetch_workload(self, scaler: Autoscaler) -> dict[str, Any]:
        ref = scaler.workload_reference
        return self.client.get(ref.api_version, ref.kind, ObjectKey(scaler.namespace, ref.name))

    def reconcile(self, namespace: str, name: str) -> Result:
        """Reconcile one Autoscaler.

        Problems recorded as conditions end in a wait result; store failures and
        invalid cron triggers are raised for the caller to retry.
        """
        _log.info("Reconciling Autoscaler %s/%s", namespace, name)
        try:
            stored = self.client.get(API_VERSION, KIND, ObjectKey(namespace, name))
        except NotFoundError:
            _log.info("Autoscaler %s/%s not found", namespace, name)
            return RECONCILE_WAIT_RESULT
        scaler = Autoscaler.from_dict(stored)

        try:
            event_obj: Any = self._locate_parent_app_config(scaler)
        except Exception:
            _log.exception("Failed to find the parent resource of %s", scaler.name)
            patch_condition(self.client, scaler, reconcile_error(ERR_LOCATE_APP_CONFIG))
            return RECONCILE_WAIT_RESULT
        if event_obj is None:
            event_obj = scaler

        try:
            workload = self._fetch_workload(scaler)
        except Exception as err:
            _log.error("Error while fetching the workload of %s: %s", scaler.name, err)
            self.recorder.warning(scaler, ERR_LOCATING_WORKLOAD, err)
            patch_condition(
                self.client, scaler, reconcile_error(f"{ERR_LOCATING_WORKLOAD}: {err}")
            )
            return RECONCILE_WAIT_RESULT

        try:
            resources = fetch_workload_child_resources(self.client, workload)
        except Exception as err:
            _log.error("Error while fetching the workload child resources: %s", err)
            self.recorder.warning(event_obj, ERR_FETCH_CHILD_RESOURCES, err)
            patch_condition(self.client, scaler, reconcile_error(ERR_FETCH_CHILD_RESOURCES))
            return RECONCILE_WAIT_RESULT

        scaler.spec.target_workload = select_target_workload(resources, workload)
        scale_by_keda(self.client, scaler, namespace, self.recorder)
        return Result()