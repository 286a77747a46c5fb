from enum import Enum
from typing import Any, Callable, Optional

from attr import dataclass, field


@dataclass(frozen=True)
class ResourceType:
    """
    An Azure resource type such as `Microsoft.Network/virtualNetworks`.

    Args:
        type (str): The fully qualified resource type. Child resources list
            every level, e.g. `Microsoft.Network/virtualNetworks/subnets`.
    """

    type: str

    def resource_id(self, name: str, *segments: str) -> "ResourceId":
        return ResourceId(type=self, name=name, segments=tuple(segments))

    @property
    def namespace(self) -> str:
        return self.type.split("/")[0]

    @property
    def type_names(self) -> list[str]:
        return self.type.split("/")[1:]


@dataclass(frozen=True)
class ResourceId:
    """
    Identifies a resource by type and name. Child resources carry the names
    of the levels below the top one in `segments`.
    """

    type: ResourceType
    name: str
    segments: tuple = field(factory=tuple)
    resource_group: Optional[str] = None
    subscription_id: Optional[str] = None

    @property
    def names(self) -> list[str]:
        return [self.name, *self.segments]

    @property
    def arm_expression(self) -> str:
        """
        The `resourceId(...)` template expression that evaluates to this id.
        """
        args = [f"'{self.type.type}'"] + [f"'{n}'" for n in self.names]
        if self.resource_group:
            args.insert(0, f"'{self.resource_group}'")
            if self.subscription_id:
                args.insert(0, f"'{self.subscription_id}'")
        return f"resourceId({', '.join(args)})"

    def path(self, subscription_id: str, resource_group: str) -> str:
        """
        Builds the full Azure resource path, preferring the subscription and
        resource group pinned on the id itself.
        """
        subscription_id = self.subscription_id or subscription_id
        resource_group = self.resource_group or resource_group
        parts = [
            f"{type_name}/{name}"
            for type_name, name in zip(self.type.type_names, self.names)
        ]
        return (
            f"/subscriptions/{subscription_id}"
            f"/resourceGroups/{resource_group}"
            f"/providers/{self.type.namespace}/{'/'.join(parts)}"
        )


@dataclass(frozen=True)
class LinkedResource:
    """
    A resource that is not created by the virtual machine builder itself.

    Args:
        resource_id (ResourceId): The id of the linked resource.
        managed (bool): True when the resource is deployed alongside the
            virtual machine, so a dependency on it must be declared. False
            when it already exists outside of this deployment.
    """

    resource_id: ResourceId
    managed: bool = True

    @classmethod
    def of_managed(cls, resource_id: ResourceId) -> "LinkedResource":
        return cls(resource_id=resource_id, managed=True)

    @classmethod
    def of_unmanaged(cls, resource_id: ResourceId) -> "LinkedResource":
        return cls(resource_id=resource_id, managed=False)

    @property
    def name(self) -> str:
        return self.resource_id.name

    @property
    def dependency(self) -> Optional[ResourceId]:
        return self.resource_id if self.managed else None


class RefKind(Enum):
    # Created here, named from the owning config.
    DERIVED = "derived"
    # Created here under a user supplied name.
    NAMED = "named"
    # Points at a resource created somewhere else.
    LINKED = "linked"


@dataclass(frozen=True)
class ResourceRef:
    """
    Reference to a resource a virtual machine needs, which is either created
    with the machine (DERIVED, NAMED) or linked to another one (LINKED).

    Use the `derived`, `named` and `linked` constructors rather than
    building the record directly.
    """

    kind: RefKind
    target: Optional[ResourceId] = None
    link: Optional[LinkedResource] = None
    derive: Optional[Callable[[Any], ResourceId]] = None

    @classmethod
    def derived(cls, derive: Callable[[Any], ResourceId]) -> "ResourceRef":
        return cls(kind=RefKind.DERIVED, derive=derive)

    @classmethod
    def named(cls, resource_id: ResourceId) -> "ResourceRef":
        return cls(kind=RefKind.NAMED, target=resource_id)

    @classmethod
    def linked(cls, link: LinkedResource) -> "ResourceRef":
        return cls(kind=RefKind.LINKED, link=link)

    @property
    def is_deployable(self) -> bool:
        return self.kind in (RefKind.DERIVED, RefKind.NAMED)

    def resource_id(self, config: Any) -> ResourceId:
        if self.kind == RefKind.DERIVED:
            return self.derive(config)
        if self.kind == RefKind.NAMED:
            return self.target
        if self.kind == RefKind.LINKED:
            return self.link.resource_id
        raise ValueError(f"Unknown resource reference kind: {self.kind}")

    def to_linked_resource(self, config: Any) -> LinkedResource:
        """
        Deployable references become managed links to the id they resolve to.
        """
        if self.kind == RefKind.LINKED:
            return self.link
        return LinkedResource.of_managed(self.resource_id(config))
