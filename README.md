# oamtraits

Reconcilers for Open Application Model (OAM) autoscaling traits. Each
reconciler reads a trait object from a store, finds the workload it refers to,
renders the scaling objects the trait describes, applies them through a
client and records the outcome in the trait's status.

The package has no runtime dependencies. Objects are plain dictionaries in
the shape a Kubernetes API server exchanges. Storage is reached through the
abstract `oamtraits.client.Client`; `oamtraits.client.InMemoryClient` is an
in-memory implementation with create, get, list, update, apply (merge),
delete and status-update operations.

## Traits

| Trait | Modules | Renders |
| --- | --- | --- |
| `Autoscaler` (`standard.oam.dev/v1alpha1`) | `oamtraits.autoscaler_api`, `oamtraits.keda`, `oamtraits.autoscaler_controller` | a KEDA `ScaledObject` (`keda.sh/v1alpha1`); cron triggers are expanded per weekday |
| `CronHPATrait` (`core.oam.dev/v1alpha2`) | `oamtraits.cronhpa_api`, `oamtraits.cronhpa_render`, `oamtraits.cronhpa_controller` | a `CronHorizontalPodAutoscaler` (`autoscaling.alibabacloud.com/v1beta1`) |
| `HorizontalPodAutoscalerTrait` (`core.oam.dev/v1alpha2`) | `oamtraits.hpa_api`, `oamtraits.hpa_controller` | one `autoscaling/v1` HPA for each Deployment or StatefulSet behind the workload |
| `MetricHPATrait` (`extend.oam.dev/v1alpha2`) | `oamtraits.metrichpa_api`, `oamtraits.metrichpa_controller` | a Prometheus config map, a Prometheus deployment and service unless `promServerAddress` is given, and a KEDA `ScaledObject` (`keda.k8s.io/v1alpha1`) |

Shared building blocks live in `oamtraits.core` (`GroupVersion`,
`TypedReference`, `ConditionType`, `Condition`, `ConditionedStatus`,
`Result`, `reconcile_success`, `reconcile_error`, `NotFoundError`,
`AlreadyExistsError`, `ignore_not_found`, `gvk_string`,
`set_controller_reference`) and in `oamtraits.client` (`ObjectKey`, `Client`,
`InMemoryClient`, `fetch_workload_child_resources`, `patch_condition`).

Workloads of `core.oam.dev/v1alpha2` are resolved to their child resources
through the `WorkloadDefinition` named after the workload's plural kind and
group (for example `containerizedworkloads.core.oam.dev`); children are the
objects of the listed kinds whose owner references carry the workload's uid.

## Installing

```
pip install .
```

## Trait objects

Every trait type converts to and from plain dictionaries:

```python
from oamtraits.hpa_api import HorizontalPodAutoscalerTrait

trait = HorizontalPodAutoscalerTrait.from_dict({
    "apiVersion": "core.oam.dev/v1alpha2",
    "kind": "HorizontalPodAutoscalerTrait",
    "metadata": {"name": "web-hpa", "namespace": "demo"},
    "spec": {
        "minReplicas": 1,
        "maxReplicas": 5,
        "targetCPUUtilizationPercentage": 50,
        "workloadRef": {"apiVersion": "apps/v1", "kind": "Deployment", "name": "web"},
    },
})
manifest = trait.to_dict()
```

Status conditions are kept at most one per condition type:

```python
from oamtraits.core import ConditionType, reconcile_success

trait.set_conditions(reconcile_success())
trait.get_condition(ConditionType.SYNCED).status   # "True"
```

## Cron triggers for KEDA

An `Autoscaler` trigger of type `cron` carries `startAt` (`HH:MM`),
`duration` (such as `2h30m`), `days` (comma separated weekday names, any
case), `replicas` and an optional `timezone`.
`oamtraits.keda.prepare_cron_triggers` turns one such trigger into one KEDA
cron trigger per day, named `<trigger name>-<day>`, with cron expressions for
the start and the end of the window; a window that passes midnight ends on
the following day. A missing or malformed field, a zero replica count, an
unset target workload or an unknown day raises `SpecError`, whose `reason`
attribute holds the warning text. `build_keda_triggers` gathers all triggers
of a scaler; other trigger types pass through with their condition as
metadata. `scale_by_keda` creates the `ScaledObject` or updates its spec.

## Running a reconciler

A reconciler is given a client and asked to reconcile one trait by namespace
and name. It returns a `Result`; `RECONCILE_WAIT_RESULT` in `oamtraits.core`
asks for a retry after 30 seconds.

```python
from oamtraits.client import InMemoryClient
from oamtraits.hpa_controller import HorizontalPodAutoscalerTraitReconciler

client = InMemoryClient()
client.create(trait.to_dict())
client.create({
    "apiVersion": "apps/v1",
    "kind": "Deployment",
    "metadata": {"name": "web", "namespace": "demo"},
    "spec": {"template": {"spec": {"containers": [
        {"name": "web", "image": "web:1", "resources": {"requests": {"cpu": "100m"}}},
    ]}}},
})

reconciler = HorizontalPodAutoscalerTraitReconciler(client)
result = reconciler.reconcile("demo", "web-hpa")
```

After a successful run the rendered objects are stored in the client, the
trait's `status.resources` lists them, its `Synced` condition is `True`, and
objects of the same kinds recorded by earlier runs but no longer in use have
been deleted.

How failures surface differs between reconcilers:

- `AutoscalerReconciler` (`oamtraits.autoscaler_controller`): a missing
  trait gives the wait result. Failing to find the parent application
  configuration, the workload or its children sets the `Synced` condition to
  the error and gives the wait result; the latter two are also recorded as
  warnings on its `EventRecorder`. An invalid cron trigger is recorded as a
  warning and the `SpecError` is raised; store failures while writing the
  `ScaledObject` are raised.
- `CronHPATraitReconciler` and `HorizontalPodAutoscalerTraitReconciler`: a
  missing trait gives an empty `Result`. Problems with the workload, its
  resources, rendering, applying or clean-up are recorded in the `Synced`
  condition and end in a result; a failed status write is raised. A workload
  whose API version is neither `core.oam.dev/v1alpha2` nor `apps/v1` counts as
  a resource problem. For HPAs, a Deployment or StatefulSet with a container
  lacking `resources.requests` raises `ValueError`.
- `MetricHPATraitReconciler`: a missing trait gives an empty `Result`; a
  missing workload is raised; other failures set the `Synced` condition to
  the error and are then raised.

## What this package does not do

It does not connect to a Kubernetes cluster: there is no client for a real
API server, no watch loop, no controller manager, leader election or metrics
endpoint, and no command to start one. Reconcilers run when `reconcile` is
called, against whatever `Client` implementation they are given.

## Tests

```
pip install ".[test]"
pytest
```