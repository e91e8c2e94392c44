"""Shared API machinery: group versions, references, conditions and ownership."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, MutableMapping

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

STATUS_TRUE = "True"
STATUS_FALSE = "False"
STATUS_UNKNOWN = "Unknown"

REASON_RECONCILE_SUCCESS = "ReconcileSuccess"
REASON_RECONCILE_ERROR = "ReconcileError"


@dataclass(frozen=True)
class GroupVersion:
    """An API group together with its version."""

    group: str
    version: str

    def __str__(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @classmethod
    def parse(cls, text: str) -> GroupVersion:
        """Parse ``group/version`` or a bare ``version``."""
        if not text:
            return cls("", "")
        parts = text.split("/")
        if len(parts) == 1:
            return cls("", parts[0])
        if len(parts) == 2:
            return cls(parts[0], parts[1])
        raise ValueError(f"unexpected GroupVersion string: {text}")


STANDARD_V1ALPHA1 = GroupVersion("standard.oam.dev", "v1alpha1")
CORE_OAM_V1ALPHA2 = GroupVersion("core.oam.dev", "v1alpha2")
EXTEND_OAM_V1ALPHA2 = GroupVersion("extend.oam.dev", "v1alpha2")
APPS_V1 = GroupVersion("apps", "v1")
CORE_V1 = GroupVersion("", "v1")
AUTOSCALING_V1 = GroupVersion("autoscaling", "v1")


@dataclass
class TypedReference:
    """A reference to an object of a known API version and kind."""

    api_version: str = ""
    kind: str = ""
    name: str = ""
    uid: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = {"apiVersion": self.api_version, "kind": self.kind, "name": self.name}
        if self.uid:
            data["uid"] = self.uid
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> TypedReference:
        data = data or {}
        return cls(
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            uid=data.get("uid", ""),
        )


class ConditionType(str, Enum):
    READY = "Ready"
    SYNCED = "Synced"


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _condition_type(value: str) -> ConditionType | str:
    try:
        return ConditionType(value)
    except ValueError:
        return value


@dataclass
class Condition:
    """An observed condition; the transition time does not take part in equality."""

    type: ConditionType | str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: datetime = field(default_factory=_now, compare=False)

    def to_dict(self) -> dict[str, Any]:
        kind = self.type.value if isinstance(self.type, ConditionType) else self.type
        data = {
            "type": kind,
            "status": self.status,
            "lastTransitionTime": self.last_transition_time.strftime(_TIME_FORMAT),
            "reason": self.reason,
        }
        if self.message:
            data["message"] = self.message
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Condition:
        stamp = data.get("lastTransitionTime")
        when = (
            datetime.strptime(stamp, _TIME_FORMAT).replace(tzinfo=timezone.utc)
            if stamp
            else _now()
        )
        return cls(
            type=_condition_type(data.get("type", "")),
            status=data.get("status", ""),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_transition_time=when,
        )


@dataclass
class ConditionedStatus:
    """A status holding a list of conditions, at most one per type."""

    conditions: list[Condition] = field(default_factory=list)

    def set_conditions(self, *args: Condition) -> None:
        """Add or replace conditions; an equal existing condition is left untouched."""
        for new in args:
            exists = False
            for i, existing in enumerate(self.conditions):
                if existing.type != new.type:
                    continue
                exists = True
                if existing != new:
                    self.conditions[i] = new
            if not exists:
                self.conditions.append(new)

    def get_condition(self, condition_type: ConditionType | str) -> Condition:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return Condition(type=condition_type, status=STATUS_UNKNOWN)

    def to_dict(self) -> dict[str, Any]:
        if not self.conditions:
            return {}
        return {"conditions": [c.to_dict() for c in self.conditions]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ConditionedStatus:
        data = data or {}
        return cls(conditions=[Condition.from_dict(c) for c in data.get("conditions") or []])


def reconcile_success() -> Condition:
    """The condition recorded after a successful reconcile."""
    return Condition(
        type=ConditionType.SYNCED, status=STATUS_TRUE, reason=REASON_RECONCILE_SUCCESS
    )


def reconcile_error(err: BaseException | str) -> Condition:
    """The condition recorded when a reconcile failed with ``err``."""
    return Condition(
        type=ConditionType.SYNCED,
        status=STATUS_FALSE,
        reason=REASON_RECONCILE_ERROR,
        message=str(err),
    )


@dataclass(frozen=True)
class Result:
    """What a reconciler asks of its caller: whether and when to retry."""

    requeue: bool = False
    requeue_after: float = 0.0


RECONCILE_WAIT_RESULT = Result(requeue_after=30.0)


class NotFoundError(LookupError):
    """The requested object does not exist."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f'{kind} "{name}" not found')
        self.kind = kind
        self.name = name


class AlreadyExistsError(Exception):
    """An object with the same identity already exists."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f'{kind} "{name}" already exists')
        self.kind = kind
        self.name = name


def ignore_not_found(err: BaseException | None) -> BaseException | None:
    """Return ``None`` for a not-found error, otherwise the error itself."""
    if isinstance(err, NotFoundError):
        return None
    return err


def _as_mapping(obj: Any) -> Mapping[str, Any]:
    if isinstance(obj, Mapping):
        return obj
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"cannot treat {type(obj).__name__} as an API object")


def gvk_string(obj: Any) -> str:
    """Render an object's group, version and kind as ``group/version, Kind=kind``."""
    data = _as_mapping(obj)
    gv = GroupVersion.parse(data.get("apiVersion", ""))
    return f"{gv.group}/{gv.version}, Kind={data.get('kind', '')}"


def _same_owner(left: Mapping[str, Any], right: Mapping[str, Any]) -> bool:
    return (
        GroupVersion.parse(left.get("apiVersion", "")).group
        == GroupVersion.parse(right.get("apiVersion", "")).group
        and left.get("kind") == right.get("kind")
        and left.get("name") == right.get("name")
    )


def set_controller_reference(owner: Any, obj: MutableMapping[str, Any]) -> None:
    """Make ``owner`` the controlling owner of the object ``obj`` in place."""
    owner_data = _as_mapping(owner)
    owner_meta = owner_data.get("metadata") or {}
    meta = obj.setdefault("metadata", {})

    owner_ns = owner_meta.get("namespace", "")
    if owner_ns:
        obj_ns = meta.get("namespace", "")
        if not obj_ns:
            raise ValueError(
                "cluster-scoped resource must not have a namespace-scoped owner, "
                f"owner's namespace {owner_ns}"
            )
        if obj_ns != owner_ns:
            raise ValueError(
                "cross-namespace owner references are disallowed, "
                f"owner's namespace {owner_ns}, obj's namespace {obj_ns}"
            )

    ref = {
        "apiVersion": owner_data.get("apiVersion", ""),
        "kind": owner_data.get("kind", ""),
        "name": owner_meta.get("name", ""),
        "uid": owner_meta.get("uid", ""),
        "controller": True,
        "blockOwnerDeletion": True,
    }
    refs = list(meta.get("ownerReferences") or [])
    for existing in refs:
        if existing.get("controller") and not _same_owner(existing, ref):
            raise ValueError(
                f"object {meta.get('namespace', '')}/{meta.get('name', '')} is already "
                f"owned by another {existing.get('kind')} controller {existing.get('name')}"
            )
    for i, existing in enumerate(refs):
        if _same_owner(existing, ref):
            refs[i] = ref
            break
    else:
        refs.append(ref)
    meta["ownerReferences"] = refs