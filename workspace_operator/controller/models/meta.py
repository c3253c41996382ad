"""Object metadata shared by every custom resource.

Models mirror the Kubernetes wire format: snake_case attributes in Python,
camelCase keys on the wire (``deletion_timestamp`` <-> ``deletionTimestamp``).
Unknown keys are preserved so that a read-modify-write never drops fields
written by other clients.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from workspace_operator.controller.constants import API_GROUP, API_VERSION
from workspace_operator.controller.models.enums import ConditionStatus


class KubeModel(BaseModel):
    """Base for wire-format models (camelCase aliases, extra keys kept)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible dict sent to the store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ObjectMeta(KubeModel):
    name: str
    namespace: str | None = None
    uid: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    finalizers: list[str] = Field(default_factory=list)
    resource_version: str | None = None
    generation: int | None = None
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None


class Condition(KubeModel):
    """A single status condition, following the Kubernetes conventions."""

    type: str
    status: ConditionStatus
    reason: str | None = None
    message: str | None = None
    last_transition_time: datetime | None = None
    observed_generation: int | None = None


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Namespaced identity of an object (``namespace/name``)."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> ObjectKey:
        namespace, sep, name = value.partition("/")
        if not sep or not namespace or not name:
            msg = f"Invalid object key '{value}', expected '<namespace>/<name>'"
            raise ValueError(msg)
        return cls(namespace=namespace, name=name)


class Resource(KubeModel):
    """Base for the namespaced custom resources handled by the controller."""

    KIND: ClassVar[str]
    PLURAL: ClassVar[str]
    GROUP: ClassVar[str] = API_GROUP
    VERSION: ClassVar[str] = API_VERSION

    api_version: str = f"{API_GROUP}/{API_VERSION}"
    kind: str = ""
    metadata: ObjectMeta

    def model_post_init(self, __context: Any) -> None:
        if not self.kind:
            self.kind = self.KIND

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.metadata.namespace or "", name=self.metadata.name)

    @property
    def is_terminating(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Self:
        return cls.model_validate(data)


def set_condition(conditions: list[Condition], new: Condition) -> bool:
    """Insert or update *new* in *conditions* in place.

    ``lastTransitionTime`` only moves when the status flips.  Returns ``True``
    if anything changed.
    """
    for i, existing in enumerate(conditions):
        if existing.type != new.type:
            continue
        if (
            existing.status == new.status
            and existing.reason == new.reason
            and existing.message == new.message
            and existing.observed_generation == new.observed_generation
        ):
            return False
        transition = existing.last_transition_time
        if existing.status != new.status or transition is None:
            transition = datetime.now(UTC)
        conditions[i] = new.model_copy(update={"last_transition_time": transition})
        return True

    conditions.append(new.model_copy(update={"last_transition_time": datetime.now(UTC)}))
    return True


def get_condition(conditions: list[Condition], condition_type: str) -> Condition | None:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None
