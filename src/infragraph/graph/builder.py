"""
Topology builder.

Accumulates resource declarations into one explicitly owned graph. Each
``declare_*`` call validates its inputs, registers the new node and returns
it as a handle; callers thread handles into later calls. Nothing registers
itself implicitly.

Build order (leaves first):
    network -> traffic filters -> secrets -> stateful cluster
    -> compute cluster / task template / service instance
    -> distributor / listener / targets
    -> ingress rules, permission grants, ordering constraints

The builder starts ``OPEN`` and moves to ``FINALIZED`` after a successful
``finalize()``. Any mutation after that raises ``TopologyStateError``.
"""

from __future__ import annotations

import functools
import ipaddress
import re
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Sequence, TypeVar

from infragraph.core.errors import (
    TopologyConfigError,
    TopologyStateError,
)
from infragraph.graph.dependencies import (
    build_adjacency,
    check_new_edges,
    collect_edges,
    topological_order,
)
from infragraph.graph.lint import default_validators, lint_graph
from infragraph.graph.models import (
    AddressPartition,
    ComputeCluster,
    DeploymentEnvironment,
    DuplicateTargetPolicy,
    GeneratedSecretField,
    InstanceType,
    IngressRule,
    Listener,
    ListenerProtocol,
    NetworkFabric,
    OrderingConstraint,
    PartitionSpec,
    PermissionGrant,
    PortMapping,
    Protocol,
    ReachabilityClass,
    RemovalPolicy,
    ResourceGraph,
    ResourceNode,
    SecretFieldRef,
    SecretMaterial,
    ServiceInstance,
    StatefulServiceCluster,
    TaskTemplate,
    TrafficDistributor,
    TrafficFilter,
)
from infragraph.logging import bind_context

# Valid Fargate task sizes: cpu units -> allowed memory (MiB)
FARGATE_MEMORY_BY_CPU: dict[int, tuple[int, ...]] = {
    256: (512, 1024, 2048),
    512: tuple(range(1024, 4096 + 1, 1024)),
    1024: tuple(range(2048, 8192 + 1, 1024)),
    2048: tuple(range(4096, 16384 + 1, 1024)),
    4096: tuple(range(8192, 30720 + 1, 1024)),
    8192: tuple(range(16384, 61440 + 1, 4096)),
    16384: tuple(range(32768, 122880 + 1, 8192)),
}

MIN_CIDR_MASK = 16
MAX_CIDR_MASK = 28

# Load balancers and DB subnet groups both need subnets in two zones
MIN_AVAILABILITY_ZONES = 2

_ENV_VAR_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

T = TypeVar("T")
M = TypeVar("M", bound=Callable[..., Any])


class BuilderState(Enum):
    """Lifecycle of a TopologyBuilder."""

    OPEN = "open"
    FINALIZED = "finalized"


def _mutation(method: M) -> M:
    """Reject the call once the builder is finalized."""

    @functools.wraps(method)
    def wrapper(self: TopologyBuilder, *args: Any, **kwargs: Any) -> Any:
        if self.state is BuilderState.FINALIZED:
            raise TopologyStateError(
                f"cannot {method.__name__}() on a finalized graph",
                details={"operation": method.__name__},
            )
        return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class TopologyBuilder:
    """
    Builds a validated, acyclic resource graph.

    Args:
        environment: Target account/region; unset values are left for the
            provisioning engine to resolve
        duplicate_targets: Policy for a service instance attached to the
            same listener more than once

    Example:
        builder = TopologyBuilder()
        vpc = builder.declare_network([
            PartitionSpec("public", 24, ReachabilityClass.EXTERNALLY_REACHABLE),
            PartitionSpec("private", 24, ReachabilityClass.ISOLATED),
        ])
        ...
        graph = builder.finalize()
    """

    def __init__(
        self,
        environment: DeploymentEnvironment | None = None,
        duplicate_targets: DuplicateTargetPolicy | str = DuplicateTargetPolicy.WARN,
    ):
        self.environment = environment or DeploymentEnvironment()
        self.duplicate_targets = _coerce(
            DuplicateTargetPolicy, duplicate_targets, "duplicate target policy"
        )
        self._state = BuilderState.OPEN
        self._nodes: dict[str, ResourceNode] = {}
        self._constraints: list[OrderingConstraint] = []
        self._graph: ResourceGraph | None = None
        self._log = bind_context(
            account=self.environment.account,
            region=self.environment.region,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> BuilderState:
        return self._state

    @property
    def nodes(self) -> list[ResourceNode]:
        """Declared nodes in declaration order."""
        return list(self._nodes.values())

    @property
    def constraints(self) -> list[OrderingConstraint]:
        return list(self._constraints)

    def contains(self, node: object) -> bool:
        """True if ``node`` is a handle returned by this builder."""
        return (
            isinstance(node, ResourceNode)
            and self._nodes.get(node.node_id) is node
        )

    # ------------------------------------------------------------------
    # 1. Network fabric
    # ------------------------------------------------------------------

    @_mutation
    def declare_network(
        self,
        partitions: Sequence[PartitionSpec],
        name: str | None = None,
        cidr: str = "10.0.0.0/16",
        availability_zones: int = MIN_AVAILABILITY_ZONES,
    ) -> NetworkFabric:
        """
        Declare the network fabric and its address partitions.

        Every partition gets one address block per availability zone. Blocks
        are carved out of ``cidr`` in declaration order, partition by
        partition and zone by zone, each aligned to its own mask.

        Raises:
            TopologyConfigError: Duplicate partition names, an invalid mask,
                a reachability class with no partition, an invalid CIDR, or
                partitions that do not fit in it
        """
        node_id = self._new_id(name, "Network")
        specs = [self._partition_spec(spec) for spec in partitions]

        issues: list[str] = []
        seen: list[str] = []
        for spec, reachability in specs:
            if not spec.name:
                issues.append("partition name must not be empty")
            elif spec.name in seen:
                issues.append(f"duplicate partition name {spec.name!r}")
            else:
                seen.append(spec.name)
            if f"{node_id}/{spec.name}" in self._nodes:
                issues.append(f"node name '{node_id}/{spec.name}' is already taken")
            if not MIN_CIDR_MASK <= spec.cidr_mask <= MAX_CIDR_MASK:
                issues.append(
                    f"partition {spec.name!r} mask /{spec.cidr_mask} is outside "
                    f"/{MIN_CIDR_MASK}../{MAX_CIDR_MASK}"
                )
        present = {reachability for _, reachability in specs}
        for required in ReachabilityClass:
            if required not in present:
                issues.append(f"network needs at least one {required.value} partition")
        if availability_zones < MIN_AVAILABILITY_ZONES:
            issues.append(
                f"network needs at least {MIN_AVAILABILITY_ZONES} availability zones, "
                f"got {availability_zones}"
            )
        network = _ipv4_network(cidr, issues)
        if issues:
            raise TopologyConfigError.aggregate(issues)

        blocks = _carve_blocks(
            network,
            [spec.cidr_mask for spec, _ in specs for _zone in range(availability_zones)],
        )
        if blocks is None:
            raise TopologyConfigError(
                f"partitions do not fit in {cidr}",
                details={
                    "masks": ", ".join(f"/{spec.cidr_mask}" for spec, _ in specs),
                    "availability_zones": availability_zones,
                },
            )

        fabric = NetworkFabric(
            node_id=node_id,
            cidr=str(network),
            availability_zones=availability_zones,
        )
        fabric.partitions = tuple(
            AddressPartition(
                node_id=f"{node_id}/{spec.name}",
                name=spec.name,
                cidr_mask=spec.cidr_mask,
                reachability=reachability,
                fabric=fabric,
                cidr_blocks=tuple(
                    str(block)
                    for block in blocks[
                        index * availability_zones : (index + 1) * availability_zones
                    ]
                ),
            )
            for index, (spec, reachability) in enumerate(specs)
        )

        self._register(fabric)
        for partition in fabric.partitions:
            self._register(partition)
        return fabric

    # ------------------------------------------------------------------
    # 2. Traffic filters
    # ------------------------------------------------------------------

    @_mutation
    def declare_traffic_filter(
        self,
        owner: str,
        fabric: NetworkFabric,
        name: str | None = None,
    ) -> TrafficFilter:
        """Declare a traffic filter with no ingress rules."""
        self._require(fabric, NetworkFabric, "network fabric")
        node_id = self._new_id(name, "TrafficFilter")
        traffic_filter = TrafficFilter(node_id=node_id, owner=owner, fabric=fabric)
        self._register(traffic_filter)
        return traffic_filter

    # ------------------------------------------------------------------
    # 3. Secret material
    # ------------------------------------------------------------------

    @_mutation
    def declare_secret(
        self,
        fields: Mapping[str, str] | Iterable[str],
        generated_field: GeneratedSecretField,
        name: str | None = None,
    ) -> SecretMaterial:
        """
        Declare a secret whose generated field is produced at provisioning time.

        ``fields`` is either a template mapping of known values (for example
        ``{"username": "awsdemo"}``) or just the known field names.
        """
        node_id = self._new_id(name, "Secret")
        if isinstance(fields, Mapping):
            template = {str(k): str(v) for k, v in fields.items()}
        else:
            template = {str(k): "" for k in fields}

        if not generated_field.name:
            raise TopologyConfigError("generated secret field needs a name")
        if generated_field.name in template:
            raise TopologyConfigError(
                f"generated field {generated_field.name!r} collides with a known field"
            )
        if generated_field.length <= 0:
            raise TopologyConfigError(
                f"generated field length must be positive, got {generated_field.length}"
            )

        secret = SecretMaterial(
            node_id=node_id,
            template=MappingProxyType(template),
            generated=generated_field,
        )
        self._register(secret)
        return secret

    # ------------------------------------------------------------------
    # 4. Stateful service
    # ------------------------------------------------------------------

    @_mutation
    def declare_stateful_cluster(
        self,
        fabric: NetworkFabric,
        isolated_partition: AddressPartition,
        traffic_filter: TrafficFilter,
        secret: SecretMaterial,
        instance_type: InstanceType | str,
        instance_count: int = 1,
        name: str | None = None,
        port: int = 27017,
        removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
    ) -> StatefulServiceCluster:
        """
        Declare the managed database cluster.

        Raises:
            TopologyConfigError: The partition is not ``isolated``, a
                reference is not declared, or the filter already guards
                another consumer
        """
        self._require(fabric, NetworkFabric, "network fabric")
        self._require(isolated_partition, AddressPartition, "partition")
        self._require(traffic_filter, TrafficFilter, "traffic filter")
        self._require(secret, SecretMaterial, "secret")
        node_id = self._new_id(name, "StatefulCluster")

        if not isolated_partition.is_isolated:
            raise TopologyConfigError(
                f"stateful cluster {node_id!r} must be placed in an isolated partition, "
                f"but {isolated_partition.name!r} is {isolated_partition.reachability.value}",
                details={"partition": isolated_partition.node_id},
            )
        self._same_fabric(fabric, isolated_partition, traffic_filter)
        self._check_unattached(traffic_filter)
        if instance_count < 1:
            raise TopologyConfigError(
                f"stateful cluster needs at least one instance, got {instance_count}"
            )
        _check_port(port)

        cluster = StatefulServiceCluster(
            node_id=node_id,
            fabric=fabric,
            partition=isolated_partition,
            traffic_filter=traffic_filter,
            secret=secret,
            instance_type=_instance_type(instance_type),
            instance_count=instance_count,
            port=port,
            removal_policy=removal_policy,
        )
        traffic_filter.attached_to = cluster
        self._register(cluster)
        return cluster

    # ------------------------------------------------------------------
    # 5. Compute
    # ------------------------------------------------------------------

    @_mutation
    def declare_compute_cluster(
        self,
        fabric: NetworkFabric,
        name: str | None = None,
    ) -> ComputeCluster:
        self._require(fabric, NetworkFabric, "network fabric")
        cluster = ComputeCluster(node_id=self._new_id(name, "ComputeCluster"), fabric=fabric)
        self._register(cluster)
        return cluster

    @_mutation
    def declare_task_template(
        self,
        image: str,
        cpu: int,
        memory_mib: int,
        ports: Sequence[PortMapping | int] = (),
        secret_env_bindings: Mapping[str, SecretFieldRef | tuple[SecretMaterial, str]]
        | None = None,
        name: str | None = None,
        container_name: str = "AppContainer",
    ) -> TaskTemplate:
        """
        Declare a runnable container unit.

        Secret environment bindings map a variable name to a field of an
        already declared secret, given as ``secret.field("password")`` or
        ``(secret, "password")``.

        Raises:
            TopologyConfigError: Undeclared secret, unknown secret field,
                invalid env var name, duplicate port, or a cpu/memory pair
                Fargate does not offer
        """
        node_id = self._new_id(name, "TaskTemplate")
        if not image:
            raise TopologyConfigError(f"task template {node_id!r} needs an image")
        if memory_mib not in FARGATE_MEMORY_BY_CPU.get(cpu, ()):
            raise TopologyConfigError(
                f"unsupported task size: cpu={cpu} memory={memory_mib}MiB",
                details={"valid_cpu": ", ".join(str(c) for c in FARGATE_MEMORY_BY_CPU)},
            )

        mappings: list[PortMapping] = []
        for port in ports:
            mapping = port if isinstance(port, PortMapping) else PortMapping(container_port=port)
            _check_port(mapping.container_port)
            if any(m.container_port == mapping.container_port for m in mappings):
                raise TopologyConfigError(f"duplicate container port {mapping.container_port}")
            mappings.append(mapping)

        secret_env: dict[str, SecretFieldRef] = {}
        for env_name, binding in (secret_env_bindings or {}).items():
            if not _ENV_VAR_NAME.match(env_name):
                raise TopologyConfigError(f"invalid environment variable name {env_name!r}")
            if isinstance(binding, SecretFieldRef):
                secret, field_name = binding.secret, binding.field_name
            elif isinstance(binding, tuple) and len(binding) == 2:
                secret, field_name = binding
            else:
                raise TopologyConfigError(
                    f"environment variable {env_name!r} must reference a secret field, "
                    f"got {type(binding).__name__}"
                )
            self._require(secret, SecretMaterial, f"secret bound to {env_name}")
            secret_env[env_name] = secret.field(field_name)

        template = TaskTemplate(
            node_id=node_id,
            image=image,
            cpu=cpu,
            memory_mib=memory_mib,
            ports=tuple(mappings),
            secret_env=MappingProxyType(secret_env),
            container_name=container_name,
        )
        self._register(template)
        return template

    @_mutation
    def declare_service_instance(
        self,
        compute_cluster: ComputeCluster,
        task_template: TaskTemplate,
        traffic_filter: TrafficFilter,
        public_partition: AddressPartition,
        assign_public_address: bool,
        name: str | None = None,
        desired_count: int = 1,
    ) -> ServiceInstance:
        """
        Run a task template on a compute cluster.

        Raises:
            TopologyConfigError: A public address is requested in a
                partition that is not externally reachable, or a reference
                is not declared
        """
        self._require(compute_cluster, ComputeCluster, "compute cluster")
        self._require(task_template, TaskTemplate, "task template")
        self._require(traffic_filter, TrafficFilter, "traffic filter")
        self._require(public_partition, AddressPartition, "partition")
        node_id = self._new_id(name, "Service")

        if (
            assign_public_address
            and public_partition.reachability is not ReachabilityClass.EXTERNALLY_REACHABLE
        ):
            raise TopologyConfigError(
                f"service {node_id!r} requests a public address but partition "
                f"{public_partition.name!r} is {public_partition.reachability.value}",
                details={"partition": public_partition.node_id},
            )
        self._same_fabric(compute_cluster.fabric, public_partition, traffic_filter)
        self._check_unattached(traffic_filter)
        if desired_count < 0:
            raise TopologyConfigError(f"desired count must not be negative, got {desired_count}")

        service = ServiceInstance(
            node_id=node_id,
            compute_cluster=compute_cluster,
            task_template=task_template,
            traffic_filter=traffic_filter,
            partition=public_partition,
            assign_public_address=assign_public_address,
            desired_count=desired_count,
        )
        traffic_filter.attached_to = service
        self._register(service)
        return service

    # ------------------------------------------------------------------
    # 6. Traffic distribution
    # ------------------------------------------------------------------

    @_mutation
    def declare_distributor(
        self,
        fabric: NetworkFabric,
        internet_facing: bool,
        traffic_filter: TrafficFilter | None = None,
        name: str | None = None,
    ) -> TrafficDistributor:
        self._require(fabric, NetworkFabric, "network fabric")
        node_id = self._new_id(name, "Distributor")
        if traffic_filter is not None:
            self._require(traffic_filter, TrafficFilter, "traffic filter")
            self._same_fabric(fabric, traffic_filter)
            self._check_unattached(traffic_filter)

        distributor = TrafficDistributor(
            node_id=node_id,
            fabric=fabric,
            internet_facing=internet_facing,
            traffic_filter=traffic_filter,
        )
        if traffic_filter is not None:
            traffic_filter.attached_to = distributor
        self._register(distributor)
        return distributor

    @_mutation
    def add_listener(
        self,
        distributor: TrafficDistributor,
        port: int,
        protocol: ListenerProtocol | str = ListenerProtocol.HTTP,
        name: str | None = None,
    ) -> Listener:
        """Add a listener; ports are unique per distributor."""
        self._require(distributor, TrafficDistributor, "distributor")
        _check_port(port)
        listener_protocol = _coerce(ListenerProtocol, protocol, "listener protocol")
        if any(existing.port == port for existing in distributor.listeners):
            raise TopologyConfigError(
                f"distributor {distributor.node_id!r} already listens on port {port}"
            )
        node_id = self._new_id(name or f"{distributor.node_id}/Listener{port}", "Listener")

        listener = Listener(
            node_id=node_id,
            distributor=distributor,
            port=port,
            protocol=listener_protocol,
        )
        distributor.listeners = (*distributor.listeners, listener)
        self._register(listener)
        return listener

    @_mutation
    def add_targets(self, listener: Listener, targets: Sequence[ServiceInstance]) -> None:
        """
        Append service instances to a listener, in order.

        A target already on the listener (or repeated in ``targets``) is
        handled by the builder's ``DuplicateTargetPolicy``: appended silently,
        appended with a warning, or rejected with ``TopologyConfigError``.
        """
        self._require(listener, Listener, "listener")
        fabric = listener.distributor.fabric if listener.distributor else None

        pending: list[ServiceInstance] = []
        duplicates: list[str] = []
        for target in targets:
            self._require(target, ServiceInstance, "target")
            if target.compute_cluster is not None and target.compute_cluster.fabric is not fabric:
                raise TopologyConfigError(
                    f"target {target.node_id!r} runs outside the distributor's network"
                )
            if any(t is target for t in [*listener.targets, *pending]):
                duplicates.append(target.node_id)
            pending.append(target)

        if duplicates and self.duplicate_targets is DuplicateTargetPolicy.ERROR:
            raise TopologyConfigError(
                f"listener {listener.node_id!r} already targets {', '.join(duplicates)}",
                details={"policy": self.duplicate_targets.value},
            )

        self._check_acyclic([(t.node_id, listener.node_id) for t in pending])
        listener.targets = (*listener.targets, *pending)

        if duplicates and self.duplicate_targets is DuplicateTargetPolicy.WARN:
            self._log.warning(
                "duplicate_listener_target",
                listener=listener.node_id,
                targets=duplicates,
            )
        self._log.debug("targets_added", listener=listener.node_id, count=len(pending))

    # ------------------------------------------------------------------
    # 7. Cross-cutting relationships
    # ------------------------------------------------------------------

    @_mutation
    def add_ingress_rule(
        self,
        traffic_filter: TrafficFilter,
        source_filter: TrafficFilter,
        protocol: Protocol | str,
        port: int,
        description: str = "",
    ) -> IngressRule:
        """
        Allow traffic from ``source_filter`` into ``traffic_filter``.

        Raises:
            TopologyConfigError: Either filter is not declared in this graph
            TopologyCycleError: The implied ordering edge closes a cycle
        """
        self._require(traffic_filter, TrafficFilter, "traffic filter")
        self._require(source_filter, TrafficFilter, "source traffic filter")
        self._same_fabric(traffic_filter.fabric, source_filter)
        rule_protocol = _coerce(Protocol, protocol, "protocol")
        _check_port(port)

        if source_filter is not traffic_filter:
            self._check_acyclic([(source_filter.node_id, traffic_filter.node_id)])

        rule = IngressRule(
            source=source_filter,
            protocol=rule_protocol,
            port=port,
            description=description,
        )
        traffic_filter.rules = (*traffic_filter.rules, rule)
        self._log.debug(
            "edge_added",
            kind="ingress",
            source=source_filter.node_id,
            target=traffic_filter.node_id,
            port=port,
        )
        return rule

    @_mutation
    def grant_permission(
        self,
        identity: ServiceInstance,
        actions: Iterable[str],
        resources: Iterable[ResourceNode],
        name: str | None = None,
    ) -> PermissionGrant:
        """
        Let a service instance's execution identity perform ``actions`` on ``resources``.

        Raises:
            TopologyConfigError: The identity or any resource is not declared
                in this graph, or no actions are given
        """
        self._require(identity, ServiceInstance, "identity")
        action_set = tuple(sorted({a for a in actions if a}))
        if not action_set:
            raise TopologyConfigError("permission grant needs at least one action")

        resource_list: list[ResourceNode] = []
        for resource in resources:
            if isinstance(resource, SecretFieldRef):
                resource = resource.secret
            self._require(resource, ResourceNode, "granted resource")
            if not any(r is resource for r in resource_list):
                resource_list.append(resource)
        if not resource_list:
            raise TopologyConfigError("permission grant needs at least one resource")

        grant = PermissionGrant(
            node_id=self._new_id(name, "Grant"),
            identity=identity,
            actions=action_set,
            resources=tuple(resource_list),
        )
        self._register(grant)
        return grant

    @_mutation
    def add_ordering_constraint(self, before: ResourceNode, after: ResourceNode) -> None:
        """
        Require ``after`` to be created after ``before``.

        Raises:
            TopologyCycleError: ``after`` already precedes ``before``
        """
        self._require(before, ResourceNode, "constraint source")
        self._require(after, ResourceNode, "constraint target")
        if any(c.before is before and c.after is after for c in self._constraints):
            return

        self._check_acyclic([(before.node_id, after.node_id)])
        self._constraints.append(OrderingConstraint(before=before, after=after))
        self._log.debug("edge_added", kind="ordering", source=before.node_id, target=after.node_id)

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def finalize(self) -> ResourceGraph:
        """
        Validate the whole graph and freeze it.

        Returns the same ``ResourceGraph`` if called again after success.

        Raises:
            TopologyConfigError: Aggregating every graph-wide violation; the
                builder stays open so the caller can fix and retry
        """
        if self._graph is not None:
            return self._graph

        nodes = self.nodes
        result = lint_graph(nodes, default_validators(self.duplicate_targets))
        position = {node.node_id: index for index, node in enumerate(nodes)}
        errors = sorted(result.errors, key=lambda issue: position.get(issue.node_id, -1))
        warnings = sorted(result.warnings, key=lambda issue: position.get(issue.node_id, -1))

        if errors:
            self._log.info("finalize_failed", errors=len(errors))
            raise TopologyConfigError.aggregate([str(issue) for issue in errors])

        edges = collect_edges(nodes, self._constraints)
        order = topological_order([n.node_id for n in nodes], edges)

        for issue in warnings:
            self._log.warning("graph_lint_warning", node=issue.node_id, message=issue.message)

        self._graph = ResourceGraph(
            nodes=tuple(nodes),
            edges=tuple(edges),
            creation_order=tuple(order),
            environment=self.environment,
            warnings=tuple(str(issue) for issue in warnings),
        )
        self._state = BuilderState.FINALIZED
        self._log.info(
            "graph_finalized",
            nodes=len(nodes),
            edges=len(edges),
            warnings=len(warnings),
        )
        return self._graph

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _register(self, node: ResourceNode) -> None:
        self._nodes[node.node_id] = node
        self._log.debug("node_declared", node=node.node_id, kind=node.kind.value)

    def _new_id(self, name: str | None, prefix: str) -> str:
        if name is not None:
            if not name.strip():
                raise TopologyConfigError("node name must not be blank")
            if name in self._nodes:
                raise TopologyConfigError(f"duplicate node name {name!r}")
            return name
        counter = 1
        while f"{prefix}{counter}" in self._nodes:
            counter += 1
        return f"{prefix}{counter}"

    def _require(self, node: object, node_type: type, role: str) -> None:
        if not isinstance(node, node_type):
            raise TopologyConfigError(
                f"{role} must be a {node_type.__name__}, got {type(node).__name__}"
            )
        if not self.contains(node):
            raise TopologyConfigError(
                f"{role} {node.node_id!r} is not declared in this graph",  # type: ignore[attr-defined]
                details={"node": node.node_id},  # type: ignore[attr-defined]
            )

    def _same_fabric(self, fabric: NetworkFabric | None, *members: Any) -> None:
        for member in members:
            if member.fabric is not fabric:
                raise TopologyConfigError(
                    f"{member.node_id!r} belongs to a different network fabric"
                )

    def _check_unattached(self, traffic_filter: TrafficFilter) -> None:
        if traffic_filter.attached_to is not None:
            raise TopologyConfigError(
                f"traffic filter {traffic_filter.node_id!r} already guards "
                f"{traffic_filter.attached_to.node_id!r}"
            )

    def _check_acyclic(self, new_edges: list[tuple[str, str]]) -> None:
        adjacency = build_adjacency(collect_edges(self._nodes.values(), self._constraints))
        check_new_edges(adjacency, new_edges)

    @staticmethod
    def _partition_spec(spec: PartitionSpec) -> tuple[PartitionSpec, ReachabilityClass]:
        return spec, _coerce(ReachabilityClass, spec.reachability, "reachability class")


def _coerce(enum_type: type[T], value: Any, what: str) -> T:
    if isinstance(value, enum_type):
        return value
    candidates = [value]
    if isinstance(value, str):
        # externallyReachable, EXTERNALLY_REACHABLE and externally-reachable all match
        words = _WORD_BOUNDARY.sub("-", value.strip()).replace("_", "-")
        candidates += [value.lower(), value.upper(), words.lower(), words.upper()]
    for candidate in candidates:
        try:
            return enum_type(candidate)  # type: ignore[call-arg]
        except ValueError:
            continue
    valid = ", ".join(m.value for m in enum_type)  # type: ignore[attr-defined]
    raise TopologyConfigError(f"invalid {what} {value!r}; expected one of: {valid}") from None


def _ipv4_network(cidr: str, issues: list[str]) -> ipaddress.IPv4Network | None:
    try:
        network = ipaddress.ip_network(cidr)
    except ValueError as e:
        issues.append(f"invalid network CIDR {cidr!r}: {e}")
        return None
    if not isinstance(network, ipaddress.IPv4Network):
        issues.append(f"network CIDR {cidr!r} must be IPv4")
        return None
    return network


def _carve_blocks(
    network: ipaddress.IPv4Network | None, masks: Sequence[int]
) -> list[ipaddress.IPv4Network] | None:
    """Allocate consecutive, non-overlapping blocks; ``None`` if they overflow ``network``."""
    assert network is not None
    cursor = int(network.network_address)
    last = int(network.broadcast_address)
    blocks: list[ipaddress.IPv4Network] = []
    for mask in masks:
        size = 1 << (32 - mask)
        start = -(-cursor // size) * size
        if mask < network.prefixlen or start + size - 1 > last:
            return None
        blocks.append(ipaddress.IPv4Network((start, mask)))
        cursor = start + size
    return blocks


def _check_port(port: int) -> None:
    if not 1 <= port <= 65535:
        raise TopologyConfigError(f"port {port} is outside 1..65535")


def _instance_type(value: InstanceType | str) -> InstanceType:
    if isinstance(value, InstanceType):
        return value
    try:
        return InstanceType.parse(value)
    except ValueError as e:
        raise TopologyConfigError(str(e)) from None
