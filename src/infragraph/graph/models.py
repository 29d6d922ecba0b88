"""
Resource graph models.

Every declared infrastructure component is a ``ResourceNode``. Nodes hold
plain references to the nodes they depend on; ``references()`` exposes
those as data so the dependency pass in ``infragraph.graph.dependencies``
can derive edges without any hidden ordering state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Mapping

from infragraph.core.errors import TopologyConfigError


class NodeKind(Enum):
    """Kinds of nodes in the resource graph."""

    NETWORK = "network"
    PARTITION = "partition"
    TRAFFIC_FILTER = "traffic-filter"
    SECRET = "secret"
    STATEFUL_CLUSTER = "stateful-cluster"
    COMPUTE_CLUSTER = "compute-cluster"
    TASK_TEMPLATE = "task-template"
    SERVICE_INSTANCE = "service-instance"
    DISTRIBUTOR = "distributor"
    LISTENER = "listener"
    PERMISSION_GRANT = "permission-grant"


class ReachabilityClass(Enum):
    """Whether an address partition can be reached from outside the network."""

    EXTERNALLY_REACHABLE = "externally-reachable"
    ISOLATED = "isolated"


class Protocol(Enum):
    """Transport protocol for ingress rules and port exposures."""

    TCP = "tcp"
    UDP = "udp"


class ListenerProtocol(Enum):
    """Application protocol spoken by a distributor listener."""

    HTTP = "HTTP"
    HTTPS = "HTTPS"


class RemovalPolicy(Enum):
    """What happens to a stateful resource when the stack is torn down."""

    DESTROY = "destroy"
    RETAIN = "retain"
    SNAPSHOT = "snapshot"


class EdgeKind(Enum):
    """Origin of a dependency edge."""

    REFERENCE = "reference"  # Derived from a node's reference fields
    ORDERING = "ordering"  # Explicit OrderingConstraint


class DuplicateTargetPolicy(Enum):
    """How ``add_targets`` treats a service instance attached twice."""

    ALLOW = "allow"
    WARN = "warn"
    ERROR = "error"


@dataclass(frozen=True)
class DeploymentEnvironment:
    """Target account/region. ``None`` defers the choice to the provisioning engine."""

    account: str | None = None
    region: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.account is not None and self.region is not None

    def to_dict(self) -> dict[str, Any]:
        return {"account": self.account, "region": self.region}


def _frozen_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(eq=False)
class ResourceNode:
    """
    Base class for graph nodes. Identity is the handle; equality is identity.

    Relationship collections are tuples and read-only mappings. Only the
    builder replaces them, so a finalized graph cannot change underneath
    its edges and creation order.
    """

    kind: ClassVar[NodeKind]

    node_id: str

    def references(self) -> list[ResourceNode]:
        """Nodes that must exist before this one, in declaration order."""
        return []

    def attributes(self) -> dict[str, Any]:
        """Kind-specific fields for export."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        result: dict[str, Any] = {"id": self.node_id, "kind": self.kind.value}
        result.update(self.attributes())
        refs = _unique_ids(self.references())
        if refs:
            result["references"] = refs
        return result


# ---------------------------------------------------------------------------
# Network fabric
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PartitionSpec:
    """Requested address partition, as passed to ``declare_network``."""

    name: str
    cidr_mask: int
    reachability: ReachabilityClass | str


@dataclass(eq=False)
class NetworkFabric(ResourceNode):
    """Isolated virtual network. Root of the graph."""

    kind: ClassVar[NodeKind] = NodeKind.NETWORK

    cidr: str = "10.0.0.0/16"
    availability_zones: int = 2
    partitions: tuple[AddressPartition, ...] = ()

    def partition(self, name: str) -> AddressPartition | None:
        """Look up a partition by name."""
        for candidate in self.partitions:
            if candidate.name == name:
                return candidate
        return None

    def partitions_of(self, reachability: ReachabilityClass) -> list[AddressPartition]:
        return [p for p in self.partitions if p.reachability is reachability]

    def attributes(self) -> dict[str, Any]:
        return {
            "cidr": self.cidr,
            "availability_zones": self.availability_zones,
            "partitions": [p.node_id for p in self.partitions],
        }


@dataclass(eq=False)
class AddressPartition(ResourceNode):
    """
    Named subdivision of a network fabric.

    A partition spans every availability zone of its fabric, with one
    address block of ``cidr_mask`` per zone in ``cidr_blocks``.
    """

    kind: ClassVar[NodeKind] = NodeKind.PARTITION

    name: str = ""
    cidr_mask: int = 24
    reachability: ReachabilityClass = ReachabilityClass.ISOLATED
    fabric: NetworkFabric | None = field(default=None, repr=False)
    cidr_blocks: tuple[str, ...] = ()

    @property
    def is_isolated(self) -> bool:
        return self.reachability is ReachabilityClass.ISOLATED

    def references(self) -> list[ResourceNode]:
        return [self.fabric] if self.fabric is not None else []

    def attributes(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "cidr_mask": self.cidr_mask,
            "cidr_blocks": list(self.cidr_blocks),
            "reachability": self.reachability.value,
        }


# ---------------------------------------------------------------------------
# Traffic filters
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class IngressRule:
    """Permits traffic from ``source`` on ``protocol``/``port``."""

    source: TrafficFilter
    protocol: Protocol
    port: int
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.node_id,
            "protocol": self.protocol.value,
            "port": self.port,
            "description": self.description,
        }


@dataclass(eq=False)
class TrafficFilter(ResourceNode):
    """Fabric-scoped access-control boundary guarding exactly one consumer."""

    kind: ClassVar[NodeKind] = NodeKind.TRAFFIC_FILTER

    owner: str = ""
    fabric: NetworkFabric | None = field(default=None, repr=False)
    rules: tuple[IngressRule, ...] = field(default=(), repr=False)
    attached_to: ResourceNode | None = field(default=None, repr=False)

    def references(self) -> list[ResourceNode]:
        refs: list[ResourceNode] = [self.fabric] if self.fabric is not None else []
        # A rule naming this filter as its own source adds no ordering edge
        refs.extend(rule.source for rule in self.rules if rule.source is not self)
        return refs

    def attributes(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "owner": self.owner,
            "rules": [rule.to_dict() for rule in self.rules],
        }
        if self.attached_to is not None:
            result["attached_to"] = self.attached_to.node_id
        return result


# ---------------------------------------------------------------------------
# Secret material
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GeneratedSecretField:
    """Recipe for the one secret field produced at provisioning time."""

    name: str
    length: int = 32
    exclude_characters: str = ""
    exclude_punctuation: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "length": self.length,
            "exclude_characters": self.exclude_characters,
            "exclude_punctuation": self.exclude_punctuation,
        }


@dataclass(eq=False)
class SecretMaterial(ResourceNode):
    """
    Declared credential whose generated value never enters the graph.

    ``template`` holds the known, non-secret fields (e.g. a username).
    """

    kind: ClassVar[NodeKind] = NodeKind.SECRET

    template: Mapping[str, str] = field(default_factory=_frozen_mapping)
    generated: GeneratedSecretField = field(
        default_factory=lambda: GeneratedSecretField(name="password")
    )

    @property
    def field_names(self) -> list[str]:
        return [*self.template, self.generated.name]

    def field(self, name: str) -> SecretFieldRef:
        """Typed handle to one field, for env bindings and permission grants."""
        if name not in self.field_names:
            raise TopologyConfigError(
                f"secret {self.node_id!r} has no field {name!r}",
                details={"fields": ", ".join(self.field_names)},
            )
        return SecretFieldRef(secret=self, field_name=name)

    def attributes(self) -> dict[str, Any]:
        return {
            "template": dict(self.template),
            "generated": self.generated.to_dict(),
        }


@dataclass(frozen=True)
class SecretFieldRef:
    """Reference to one field of a SecretMaterial. Never a value."""

    secret: SecretMaterial
    field_name: str

    def __str__(self) -> str:
        return f"{self.secret.node_id}:{self.field_name}"


# ---------------------------------------------------------------------------
# Stateful service
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InstanceType:
    """Instance class/size pair, e.g. ``t3.medium``."""

    instance_class: str
    size: str

    @classmethod
    def parse(cls, value: str) -> InstanceType:
        """Parse ``"t3.medium"`` (an optional ``db.`` prefix is ignored)."""
        text = value.removeprefix("db.")
        instance_class, sep, size = text.partition(".")
        if not sep or not instance_class or not size:
            raise ValueError(f"invalid instance type: {value!r}")
        return cls(instance_class=instance_class, size=size)

    def __str__(self) -> str:
        return f"{self.instance_class}.{self.size}"


@dataclass(eq=False)
class StatefulServiceCluster(ResourceNode):
    """Managed database cluster bound to an isolated partition."""

    kind: ClassVar[NodeKind] = NodeKind.STATEFUL_CLUSTER

    fabric: NetworkFabric | None = field(default=None, repr=False)
    partition: AddressPartition | None = field(default=None, repr=False)
    traffic_filter: TrafficFilter | None = field(default=None, repr=False)
    secret: SecretMaterial | None = field(default=None, repr=False)
    instance_type: InstanceType = field(default_factory=lambda: InstanceType("t3", "medium"))
    instance_count: int = 1
    port: int = 27017
    removal_policy: RemovalPolicy = RemovalPolicy.DESTROY

    def references(self) -> list[ResourceNode]:
        return [
            ref
            for ref in (self.fabric, self.partition, self.traffic_filter, self.secret)
            if ref is not None
        ]

    def attributes(self) -> dict[str, Any]:
        return {
            "instance_type": str(self.instance_type),
            "instance_count": self.instance_count,
            "port": self.port,
            "removal_policy": self.removal_policy.value,
        }


# ---------------------------------------------------------------------------
# Compute
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class ComputeCluster(ResourceNode):
    """Logical grouping for running service tasks."""

    kind: ClassVar[NodeKind] = NodeKind.COMPUTE_CLUSTER

    fabric: NetworkFabric | None = field(default=None, repr=False)

    def references(self) -> list[ResourceNode]:
        return [self.fabric] if self.fabric is not None else []


@dataclass(frozen=True)
class PortMapping:
    """A container port exposed by a task template."""

    container_port: int
    protocol: Protocol = Protocol.TCP

    def to_dict(self) -> dict[str, Any]:
        return {"container_port": self.container_port, "protocol": self.protocol.value}


@dataclass(eq=False)
class TaskTemplate(ResourceNode):
    """One runnable container unit. Secrets are bound by reference only."""

    kind: ClassVar[NodeKind] = NodeKind.TASK_TEMPLATE

    image: str = ""
    cpu: int = 256
    memory_mib: int = 512
    ports: tuple[PortMapping, ...] = ()
    secret_env: Mapping[str, SecretFieldRef] = field(default_factory=_frozen_mapping)
    container_name: str = "AppContainer"

    @property
    def secrets(self) -> list[SecretMaterial]:
        """Distinct secrets bound into the environment, in binding order."""
        seen: list[SecretMaterial] = []
        for ref in self.secret_env.values():
            if not any(ref.secret is s for s in seen):
                seen.append(ref.secret)
        return seen

    def references(self) -> list[ResourceNode]:
        return list(self.secrets)

    def attributes(self) -> dict[str, Any]:
        return {
            "image": self.image,
            "cpu": self.cpu,
            "memory_mib": self.memory_mib,
            "container_name": self.container_name,
            "ports": [p.to_dict() for p in self.ports],
            "secret_env": {name: str(ref) for name, ref in self.secret_env.items()},
        }


@dataclass(eq=False)
class ServiceInstance(ResourceNode):
    """A task template running on a compute cluster."""

    kind: ClassVar[NodeKind] = NodeKind.SERVICE_INSTANCE

    compute_cluster: ComputeCluster | None = field(default=None, repr=False)
    task_template: TaskTemplate | None = field(default=None, repr=False)
    traffic_filter: TrafficFilter | None = field(default=None, repr=False)
    partition: AddressPartition | None = field(default=None, repr=False)
    assign_public_address: bool = False
    desired_count: int = 1

    def references(self) -> list[ResourceNode]:
        return [
            ref
            for ref in (
                self.compute_cluster,
                self.task_template,
                self.traffic_filter,
                self.partition,
            )
            if ref is not None
        ]

    def attributes(self) -> dict[str, Any]:
        return {
            "assign_public_address": self.assign_public_address,
            "desired_count": self.desired_count,
        }


# ---------------------------------------------------------------------------
# Traffic distribution
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class TrafficDistributor(ResourceNode):
    """Load-balancing front end."""

    kind: ClassVar[NodeKind] = NodeKind.DISTRIBUTOR

    fabric: NetworkFabric | None = field(default=None, repr=False)
    internet_facing: bool = True
    traffic_filter: TrafficFilter | None = field(default=None, repr=False)
    listeners: tuple[Listener, ...] = field(default=(), repr=False)

    def references(self) -> list[ResourceNode]:
        return [ref for ref in (self.fabric, self.traffic_filter) if ref is not None]

    def attributes(self) -> dict[str, Any]:
        return {
            "internet_facing": self.internet_facing,
            "listeners": [listener.node_id for listener in self.listeners],
        }


@dataclass(eq=False)
class Listener(ResourceNode):
    """Port + protocol on a distributor, forwarding to service instances."""

    kind: ClassVar[NodeKind] = NodeKind.LISTENER

    distributor: TrafficDistributor | None = field(default=None, repr=False)
    port: int = 80
    protocol: ListenerProtocol = ListenerProtocol.HTTP
    targets: tuple[ServiceInstance, ...] = field(default=(), repr=False)

    def references(self) -> list[ResourceNode]:
        refs: list[ResourceNode] = [self.distributor] if self.distributor is not None else []
        refs.extend(self.targets)
        return refs

    def attributes(self) -> dict[str, Any]:
        return {
            "port": self.port,
            "protocol": self.protocol.value,
            "targets": [t.node_id for t in self.targets],
        }


# ---------------------------------------------------------------------------
# Cross-cutting relationships
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class PermissionGrant(ResourceNode):
    """Allows a service instance's execution identity to act on resources."""

    kind: ClassVar[NodeKind] = NodeKind.PERMISSION_GRANT

    identity: ServiceInstance | None = field(default=None, repr=False)
    actions: tuple[str, ...] = ()
    resources: tuple[ResourceNode, ...] = field(default=(), repr=False)

    def references(self) -> list[ResourceNode]:
        refs: list[ResourceNode] = [self.identity] if self.identity is not None else []
        refs.extend(self.resources)
        return refs

    def attributes(self) -> dict[str, Any]:
        return {
            "identity": self.identity.node_id if self.identity is not None else None,
            "actions": list(self.actions),
            "resources": [r.node_id for r in self.resources],
        }


@dataclass(frozen=True, eq=False)
class OrderingConstraint:
    """Explicit "``after`` must be created after ``before``" edge."""

    before: ResourceNode
    after: ResourceNode


@dataclass(frozen=True)
class GraphEdge:
    """Directed edge from the node created first to the node created after it."""

    source: str
    target: str
    kind: EdgeKind = EdgeKind.REFERENCE

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "target": self.target, "kind": self.kind.value}


@dataclass(frozen=True)
class ResourceGraph:
    """Finalized, validated, acyclic resource graph. Read-only."""

    nodes: tuple[ResourceNode, ...]
    edges: tuple[GraphEdge, ...]
    creation_order: tuple[str, ...]
    environment: DeploymentEnvironment = field(default_factory=DeploymentEnvironment)
    warnings: tuple[str, ...] = ()

    def get(self, node_id: str) -> ResourceNode | None:
        for node in self.nodes:
            if node.node_id == node_id:
                return node
        return None

    def nodes_of(self, kind: NodeKind) -> list[ResourceNode]:
        """All nodes of one kind, in declaration order."""
        return [n for n in self.nodes if n.kind is kind]

    def dependencies_of(self, node_id: str) -> list[str]:
        """Ids of nodes that must be created before ``node_id``."""
        return [e.source for e in self.edges if e.target == node_id]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "environment": self.environment.to_dict(),
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "creation_order": list(self.creation_order),
            "warnings": list(self.warnings),
            "stats": {
                "node_count": len(self.nodes),
                "edge_count": len(self.edges),
            },
        }


def _unique_ids(nodes: list[ResourceNode]) -> list[str]:
    ids: list[str] = []
    for node in nodes:
        if node.node_id not in ids:
            ids.append(node.node_id)
    return ids
