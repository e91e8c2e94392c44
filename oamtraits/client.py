"""Object store access used by the controllers, with an in-memory implementation."""

from __future__ import annotations

import copy
import itertools
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping

from .core import CORE_OAM_V1ALPHA2, AlreadyExistsError, Condition, GroupVersion, NotFoundError

WORKLOAD_DEFINITION_KIND = "WorkloadDefinition"


@dataclass(frozen=True)
class ObjectKey:
    """Namespace and name of an object; cluster-scoped objects have no namespace."""

    namespace: str = ""
    name: str = ""


def _plain(obj: Any) -> dict[str, Any]:
    if isinstance(obj, Mapping):
        return copy.deepcopy(dict(obj))
    if hasattr(obj, "to_dict"):
        return copy.deepcopy(obj.to_dict())
    raise TypeError(f"cannot treat {type(obj).__name__} as an API object")


class Client(ABC):
    """Read and write access to API objects held as plain dictionaries."""

    @abstractmethod
    def get(self, api_version: str, kind: str, key: ObjectKey) -> dict[str, Any]: ...

    @abstractmethod
    def list(
        self,
        api_version: str,
        kind: str,
        namespace: str = "",
        labels: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    def create(self, obj: Any) -> dict[str, Any]: ...

    @abstractmethod
    def update(self, obj: Any) -> dict[str, Any]: ...

    @abstractmethod
    def apply(self, obj: Any, field_owner: str) -> dict[str, Any]: ...

    @abstractmethod
    def delete(self, obj: Any) -> None: ...

    @abstractmethod
    def update_status(self, obj: Any) -> dict[str, Any]: ...


def _merge(base: dict[str, Any], patch: Mapping[str, Any]) -> None:
    for key, value in patch.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)


class InMemoryClient(Client):
    """A client keeping objects in a dictionary, with API-server-like semantics."""

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str, str, str], dict[str, Any]] = {}
        self._versions = itertools.count(1)

    @staticmethod
    def _identity(data: Mapping[str, Any]) -> tuple[str, str, str, str]:
        meta = data.get("metadata") or {}
        api_version, kind, name = data.get("apiVersion"), data.get("kind"), meta.get("name")
        if not api_version or not kind or not name:
            raise ValueError("object must have apiVersion, kind and metadata.name")
        return api_version, kind, meta.get("namespace", ""), name

    def _stamp(self, data: dict[str, Any]) -> None:
        data.setdefault("metadata", {})["resourceVersion"] = str(next(self._versions))

    def _stored(self, identity: tuple[str, str, str, str]) -> dict[str, Any]:
        try:
            return self._objects[identity]
        except KeyError:
            raise NotFoundError(identity[1], identity[3]) from None

    def get(self, api_version: str, kind: str, key: ObjectKey) -> dict[str, Any]:
        stored = self._stored((api_version, kind, key.namespace, key.name))
        return copy.deepcopy(stored)

    def list(
        self,
        api_version: str,
        kind: str,
        namespace: str = "",
        labels: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        wanted = dict(labels or {})
        found = []
        for (obj_version, obj_kind, obj_ns, obj_name), obj in sorted(self._objects.items()):
            if obj_version != api_version or obj_kind != kind:
                continue
            if namespace and obj_ns != namespace:
                continue
            obj_labels = (obj.get("metadata") or {}).get("labels") or {}
            if all(obj_labels.get(k) == v for k, v in wanted.items()):
                found.append(copy.deepcopy(obj))
        return found

    def create(self, obj: Any) -> dict[str, Any]:
        """Store a new object; a uid is assigned unless one is given."""
        data = _plain(obj)
        identity = self._identity(data)
        if identity in self._objects:
            raise AlreadyExistsError(identity[1], identity[3])
        meta = data.setdefault("metadata", {})
        if not meta.get("uid"):
            meta["uid"] = str(uuid.uuid4())
        self._stamp(data)
        self._objects[identity] = data
        return copy.deepcopy(data)

    def update(self, obj: Any) -> dict[str, Any]:
        """Replace an object's content; its status and uid are kept."""
        data = _plain(obj)
        identity = self._identity(data)
        stored = self._stored(identity)
        data.pop("status", None)
        if "status" in stored:
            data["status"] = stored["status"]
        data["metadata"]["uid"] = stored["metadata"]["uid"]
        self._stamp(data)
        self._objects[identity] = data
        return copy.deepcopy(data)

    def apply(self, obj: Any, field_owner: str) -> dict[str, Any]:
        """Create the object or merge the given fields into it; status is ignored."""
        data = _plain(obj)
        data.pop("status", None)
        identity = self._identity(data)
        stored = self._objects.get(identity)
        if stored is None:
            stored = data
            stored["metadata"]["uid"] = str(uuid.uuid4())
            self._objects[identity] = stored
        else:
            uid = stored["metadata"]["uid"]
            _merge(stored, data)
            stored["metadata"]["uid"] = uid
        managers = stored["metadata"].setdefault("managedFields", [])
        entry = {"manager": str(field_owner), "operation": "Apply"}
        if entry not in managers:
            managers.append(entry)
        self._stamp(stored)
        return copy.deepcopy(stored)

    def delete(self, obj: Any) -> None:
        identity = self._identity(_plain(obj))
        self._stored(identity)
        del self._objects[identity]

    def update_status(self, obj: Any) -> dict[str, Any]:
        """Replace only the status of an existing object."""
        data = _plain(obj)
        identity = self._identity(data)
        stored = self._stored(identity)
        stored["status"] = data.get("status") or {}
        self._stamp(stored)
        return copy.deepcopy(stored)


def fetch_workload_child_resources(client: Client, workload: Any) -> list[dict[str, Any]]:
    """Find the objects a workload owns, as listed by its WorkloadDefinition."""
    data = _plain(workload)
    gv = GroupVersion.parse(data.get("apiVersion", ""))
    plural = data.get("kind", "").lower() + "s"
    definition_name = f"{plural}.{gv.group}" if gv.group else plural
    definition = client.get(
        str(CORE_OAM_V1ALPHA2), WORKLOAD_DEFINITION_KIND, ObjectKey(name=definition_name)
    )
    meta = data.get("metadata") or {}
    uid = meta.get("uid", "")
    namespace = meta.get("namespace", "")
    children = []
    for child_kind in (definition.get("spec") or {}).get("childResourceKinds") or []:
        candidates = client.list(
            child_kind.get("apiVersion", ""),
            child_kind.get("kind", ""),
            namespace,
            child_kind.get("selector"),
        )
        children.extend(
            candidate
            for candidate in candidates
            if any(
                ref.get("uid") == uid
                for ref in (candidate.get("metadata") or {}).get("ownerReferences") or []
            )
        )
    return children


def patch_condition(client: Client, trait: Any, *args: Condition) -> dict[str, Any]:
    """Record conditions on a trait and write its status back."""
    trait.set_conditions(*args)
    return client.update_status(trait)