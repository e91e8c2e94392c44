"""Reconciler scaling a workload on a Prometheus metric through KEDA."""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Mapping

from .client import Client, ObjectKey, fetch_workload_child_resources, patch_condition
from .core import (
    APPS_V1,
    CORE_V1,
    Condition,
    NotFoundError,
    Result,
    TypedReference,
    gvk_string,
    reconcile_error,
    reconcile_success,
    set_controller_reference,
)
from .metrichpa_api import API_VERSION, KIND, MetricHPATrait

_log = logging.getLogger(__name__)

ERR_LOCATE_RESOURCES = "cannot find resources"
ERR_CREATE_CONFIG_MAP = "cannot create configmap"
ERR_CREATE_PROME_SVC = "cannot create service for Prometheus"
ERR_CREATE_PROME_DEPLOY = "cannot create deployment for Prometheus"
ERR_CREATE_SCALED_OBJECT = "cannot create KEDA ScaledObject"
ERR_GARBAGE_COLLECTION = "garbage collect failed"
LABEL_KEY = "extend.oam.dev/metrichpatrait"

GVK_DEPLOYMENT = "apps/v1, Kind=Deployment"
GVK_SERVICE = "/v1, Kind=Service"

APPS_API_VERSION = str(APPS_V1)
CORE_API_VERSION = str(CORE_V1)
KIND_DEPLOYMENT = "Deployment"
KIND_SERVICE = "Service"
KIND_CONFIG_MAP = "ConfigMap"

SCALED_OBJECT_API_VERSION = "keda.k8s.io/v1alpha1"
SCALED_OBJECT_KIND = "ScaledObject"

DEFAULT_PROME_SERVER_PORT = 9090

_PROMETHEUS_CONFIG = (
    "global:\n"
    "  scrape_interval: 5s\n"
    "  evaluation_interval: 5s\n"
    "scrape_configs:\n"
    "  - job_name: '{name}'\n"
    "    kubernetes_sd_configs:\n"
    "    - role: endpoints\n"
    "    relabel_configs:\n"
    "    - source_labels: [__meta_kubernetes_endpoints_name]\n"
    "      regex: '{name}'\n"
    "      action: keep"
)


def split_child_resources(
    resources: Iterable[Mapping[str, Any]],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """The deployment and the service among a workload's children; empty when absent.

    When several of a kind are present, the last one wins.
    """
    deployment: dict[str, Any] = {}
    service: dict[str, Any] = {}
    for resource in resources:
        gvk = gvk_string(resource)
        if gvk == GVK_DEPLOYMENT:
            deployment = copy.deepcopy(dict(resource))
        elif gvk == GVK_SERVICE:
            service = copy.deepcopy(dict(resource))
    return deployment, service


def _config_map_name(trait: MetricHPATrait) -> str:
    return "prom-conf-" + trait.workload_reference.name


def render_prometheus_resources(
    trait: MetricHPATrait,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """A Prometheus server deployment and its service, both named after the workload."""
    workload_name = trait.workload_reference.name
    labels = {"app": "prometheus-server-" + workload_name}
    deployment = {
        "apiVersion": APPS_API_VERSION,
        "kind": KIND_DEPLOYMENT,
        "metadata": {
            "name": "prometheus-deployment-" + workload_name,
            "namespace": trait.namespace,
        },
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": {
                    "volumes": [
                        {
                            "name": "prometheus-config-volume",
                            "configMap": {"name": _config_map_name(trait)},
                        },
                        {"name": "prometheus-storage-volume", "emptyDir": {}},
                    ],
                    "containers": [
                        {
                            "name": "prometheus",
                            "image": "prom/prometheus",
                            "args": [
                                "--config.file=/etc/prometheus/prometheus.yml",
                                "--storage.tsdb.path=/prometheus/",
                            ],
                            "ports": [
                                {
                                    "containerPort": DEFAULT_PROME_SERVER_PORT,
                                    "protocol": "TCP",
                                }
                            ],
                            "volumeMounts": [
                                {
                                    "name": "prometheus-config-volume",
                                    "mountPath": "/etc/prometheus/",
                                },
                                {
                                    "name": "prometheus-storage-volume",
                                    "mountPath": "/prometheus/",
                                },
                            ],
                        }
                    ],
                },
            },
        },
    }
    service = {
        "apiVersion": CORE_API_VERSION,
        "kind": KIND_SERVICE,
        "metadata": {
            "name": "prometheus-service-" + workload_name,
            "namespace": trait.namespace,
        },
        "spec": {
            "ports": [{"protocol": "TCP", "port": DEFAULT_PROME_SERVER_PORT}],
            "selector": dict(labels),
        },
    }
    return deployment, service


def render_prometheus_config_map(trait: MetricHPATrait) -> dict[str, Any]:
    """The Prometheus configuration scraping the workload's service endpoints."""
    service_name = trait.workload_reference.name
    return {
        "apiVersion": CORE_API_VERSION,
        "kind": KIND_CONFIG_MAP,
        "metadata": {
            "name": _config_map_name(trait),
            "namespace": trait.namespace,
            "labels": {LABEL_KEY: trait.uid},
        },
        "data": {"prometheus.yml": _PROMETHEUS_CONFIG.format(name=service_name)},
    }


def render_scaled_object(trait: MetricHPATrait, server_address: str) -> dict[str, Any]:
    """The KEDA ScaledObject with one Prometheus trigger for the trait's query."""
    spec_in = trait.spec
    if spec_in.prom_threshold is None:
        raise ValueError("spec.promThreshold is required")
    spec: dict[str, Any] = {"scaleTargetRef": {"deploymentName": trait.workload_reference.name}}
    for key, value in (
        ("pollingInterval", spec_in.polling_interval),
        ("cooldownPeriod", spec_in.cooldown_period),
        ("minReplicaCount", spec_in.min_replica_count),
        ("maxReplicaCount", spec_in.max_replica_count),
    ):
        if value is not None:
            spec[key] = value
    spec["triggers"] = [
        {
            "type": "prometheus",
            "metadata": {
                "serverAddress": server_address,
                "metricName": trait.name + "-metric",
                "threshold": str(spec_in.prom_threshold),
                "query": spec_in.prom_query,
            },
        }
    ]
    return {
        "apiVersion": SCALED_OBJECT_API_VERSION,
        "kind": SCALED_OBJECT_KIND,
        "metadata": {"name": trait.name, "namespace": trait.namespace},
        "spec": spec,
    }


def _reference(applied: Mapping[str, Any]) -> TypedReference:
    meta = applied.get("metadata") or {}
    return TypedReference(
        api_version=applied.get("apiVersion", ""),
        kind=applied.get("kind", ""),
        name=meta.get("name", ""),
        uid=meta.get("uid", ""),
    )


def _uid(applied: Mapping[str, Any] | None) -> str | None:
    if applied is None:
        return None
    return (applied.get("metadata") or {}).get("uid", "")


class MetricHPATraitReconciler:
    """Keeps the Prometheus set-up and the KEDA ScaledObject of a MetricHPATrait."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def _fail(self, trait: MetricHPATrait, condition: Condition, err: Exception) -> None:
        try:
            patch_condition(self.client, trait, condition)
        except Exception as patch_err:
            raise RuntimeError(f"{patch_err}: {err}") from err
        raise err

    def _apply(
        self, trait: MetricHPATrait, obj: dict[str, Any], message: str, owner: str
    ) -> dict[str, Any]:
        try:
            return self.client.apply(obj, owner)
        except Exception as err:
            _log.error("%s: %s", message, err)
            self._fail(trait, reconcile_error(f"{message}: {err}"), err)
            raise

    def reconcile(self, namespace: str, name: str) -> Result:
        """Reconcile one MetricHPATrait.

        A missing trait is ignored; any other failure is recorded as a condition
        where the trait allows it and raised.
        """
        _log.info("Reconcile MetricHPATrait %s/%s", namespace, name)
        try:
            stored = self.client.get(API_VERSION, KIND, ObjectKey(namespace, name))
        except NotFoundError:
            return Result()
        trait = MetricHPATrait.from_dict(stored)

        ref = trait.workload_reference
        try:
            workload = self.client.get(
                ref.api_version, ref.kind, ObjectKey(trait.namespace, ref.name)
            )
        except Exception as err:
            _log.error("Cannot find referenced workload %s %s: %s", ref.kind, ref.name, err)
            raise

        try:
            resources = fetch_workload_child_resources(self.client, workload)
            deployment, service = split_child_resources(resources)
        except Exception as err:
            self._fail(trait, reconcile_error(ERR_LOCATE_RESOURCES), err)
            raise
        _log.info(
            "Get resources: deployment %s, service %s",
            (deployment.get("metadata") or {}).get("name", ""),
            (service.get("metadata") or {}).get("name", ""),
        )

        owner = str(trait.uid)
        config_map = render_prometheus_config_map(trait)
        set_controller_reference(trait, config_map)
        self._apply(trait, config_map, ERR_CREATE_CONFIG_MAP, owner)

        prome_deploy: dict[str, Any] | None = None
        prome_svc: dict[str, Any] | None = None
        if trait.spec.prom_server_address:
            server_address = trait.spec.prom_server_address
        else:
            deploy_obj, svc_obj = render_prometheus_resources(trait)
            set_controller_reference(trait, deploy_obj)
            set_controller_reference(trait, svc_obj)
            prome_deploy = self._apply(trait, deploy_obj, ERR_CREATE_PROME_DEPLOY, owner)
            prome_svc = self._apply(trait, svc_obj, ERR_CREATE_PROME_SVC, owner)
            svc_meta = prome_svc.get("metadata") or {}
            host = ".".join(
                [svc_meta.get("name", ""), svc_meta.get("namespace", ""), "svc.cluster.local"]
            )
            server_address = f"http://{host}:{DEFAULT_PROME_SERVER_PORT}"

        scaled_obj = render_scaled_object(trait, server_address)
        set_controller_reference(trait, scaled_obj)
        applied_scaled = self._apply(trait, scaled_obj, ERR_CREATE_SCALED_OBJECT, owner)

        try:
            self.cleanup_resources(
                trait, _uid(prome_deploy), _uid(prome_svc), _uid(applied_scaled)
            )
        except Exception as err:
            _log.error("Garbage collection failed: %s", err)
            self._fail(trait, reconcile_error(f"{ERR_GARBAGE_COLLECTION}: {err}"), err)
            raise

        trait.status.resources = [_reference(applied_scaled)]
        if prome_deploy is not None and prome_svc is not None:
            trait.status.resources.extend([_reference(prome_deploy), _reference(prome_svc)])
        self.client.update_status(trait)
        patch_condition(self.client, trait, reconcile_success())
        return Result()

    def _remove(self, api_version: str, kind: str, namespace: str, name: str) -> None:
        try:
            orphan = self.client.get(api_version, kind, ObjectKey(namespace, name))
        except NotFoundError:
            return
        self.client.delete(orphan)
        _log.info("Removed an orphaned %s %s", kind, name)

    def cleanup_resources(
        self,
        trait: MetricHPATrait,
        deploy_uid: str | None,
        service_uid: str | None,
        scaled_object_uid: str | None,
    ) -> None:
        """Delete recorded deployments, services and ScaledObjects not currently in use.

        A uid of ``None`` means no object of that kind is in use.
        """
        kept = {
            (KIND_DEPLOYMENT, APPS_API_VERSION): deploy_uid,
            (KIND_SERVICE, CORE_API_VERSION): service_uid,
            (SCALED_OBJECT_KIND, SCALED_OBJECT_API_VERSION): scaled_object_uid,
        }
        for res in trait.status.resources:
            identity = (res.kind, res.api_version)
            if identity not in kept or res.uid == kept[identity]:
                continue
            _log.info("Found an orphaned %s, UID %s", res.kind, res.uid)
            self._remove(res.api_version, res.kind, trait.namespace, res.name)