"""
Graph-wide checks run by ``TopologyBuilder.finalize()``.

Per-declaration invariants are enforced by the builder as each call is
made. The validators here cover what can only be judged once the whole
graph is known (orphans, unused declarations, duplicate targets).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from infragraph.graph.dependencies import referrers
from infragraph.graph.models import (
    AddressPartition,
    ComputeCluster,
    DuplicateTargetPolicy,
    Listener,
    NetworkFabric,
    ResourceNode,
    SecretMaterial,
    ServiceInstance,
    TaskTemplate,
    TrafficDistributor,
    TrafficFilter,
)


class Severity(Enum):
    """Lint issue severity levels."""

    ERROR = "error"
    WARNING = "warning"


@dataclass
class LintIssue:
    """A single finalize-time finding."""

    severity: Severity
    node_id: str
    validator: str
    message: str

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    @property
    def is_warning(self) -> bool:
        return self.severity == Severity.WARNING

    def __str__(self) -> str:
        return f"{self.node_id}: {self.message}"


@dataclass
class GraphContext:
    """Snapshot of the graph handed to each validator."""

    nodes: list[ResourceNode]
    referenced_by: dict[str, list[ResourceNode]] = field(default_factory=dict)

    @classmethod
    def from_nodes(cls, nodes: list[ResourceNode]) -> GraphContext:
        return cls(nodes=list(nodes), referenced_by=referrers(nodes))

    def of_type(self, node_type: type) -> list:
        return [n for n in self.nodes if isinstance(n, node_type)]

    def users_of(self, node: ResourceNode) -> list[ResourceNode]:
        return self.referenced_by.get(node.node_id, [])


@dataclass
class LintResult:
    """Outcome of running all validators."""

    issues: list[LintIssue] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not any(issue.is_error for issue in self.issues)

    @property
    def errors(self) -> list[LintIssue]:
        return [i for i in self.issues if i.is_error]

    @property
    def warnings(self) -> list[LintIssue]:
        return [i for i in self.issues if i.is_warning]


class BaseValidator(ABC):
    """Base class for graph validators."""

    name: str = "base"
    description: str = "Base validator"

    @abstractmethod
    def validate(self, graph: GraphContext) -> list[LintIssue]:
        """Validate the graph and return any issues."""

    def _issue(self, severity: Severity, node: ResourceNode, message: str) -> LintIssue:
        return LintIssue(
            severity=severity,
            node_id=node.node_id,
            validator=self.name,
            message=message,
        )


class HasNetworkFabric(BaseValidator):
    name = "hasNetworkFabric"
    description = "The graph declares a network fabric"

    def validate(self, graph: GraphContext) -> list[LintIssue]:
        if graph.of_type(NetworkFabric):
            return []
        return [
            LintIssue(
                severity=Severity.ERROR,
                node_id="<graph>",
                validator=self.name,
                message="no network fabric declared",
            )
        ]


class NoOrphanFilters(BaseValidator):
    name = "noOrphanFilters"
    description = "Every traffic filter guards a consumer"

    def validate(self, graph: GraphContext) -> list[LintIssue]:
        return [
            self._issue(
                Severity.ERROR,
                f,
                f"traffic filter (owner {f.owner!r}) is not attached to any consumer",
            )
            for f in graph.of_type(TrafficFilter)
            if f.attached_to is None
        ]


class ListenersHaveTargets(BaseValidator):
    name = "listenersHaveTargets"
    description = "Every listener forwards to at least one target"

    def validate(self, graph: GraphContext) -> list[LintIssue]:
        return [
            self._issue(Severity.ERROR, listener, f"listener on port {listener.port} has no targets")
            for listener in graph.of_type(Listener)
            if not listener.targets
        ]


class NoUnusedPartitions(BaseValidator):
    name = "noUnusedPartitions"
    description = "Every address partition hosts something"

    def validate(self, graph: GraphContext) -> list[LintIssue]:
        return [
            self._issue(
                Severity.WARNING,
                p,
                f"{p.reachability.value} partition {p.name!r} hosts no resources",
            )
            for p in graph.of_type(AddressPartition)
            if not graph.users_of(p)
        ]


class NoUnreferencedSecrets(BaseValidator):
    name = "noUnreferencedSecrets"
    description = "Every secret is consumed"

    def validate(self, graph: GraphContext) -> list[LintIssue]:
        return [
            self._issue(Severity.WARNING, s, "secret material is never referenced")
            for s in graph.of_type(SecretMaterial)
            if not graph.users_of(s)
        ]


class NoIdleTaskTemplates(BaseValidator):
    name = "noIdleTaskTemplates"
    description = "Every task template runs as a service"

    def validate(self, graph: GraphContext) -> list[LintIssue]:
        return [
            self._issue(Severity.WARNING, t, "task template is not run by any service instance")
            for t in graph.of_type(TaskTemplate)
            if not any(isinstance(u, ServiceInstance) for u in graph.users_of(t))
        ]


class NoEmptyComputeClusters(BaseValidator):
    name = "noEmptyComputeClusters"
    description = "Every compute cluster runs a service"

    def validate(self, graph: GraphContext) -> list[LintIssue]:
        return [
            self._issue(Severity.WARNING, c, "compute cluster has no service instances")
            for c in graph.of_type(ComputeCluster)
            if not any(isinstance(u, ServiceInstance) for u in graph.users_of(c))
        ]


class DistributorsHaveListeners(BaseValidator):
    name = "distributorsHaveListeners"
    description = "Every distributor has a listener"

    def validate(self, graph: GraphContext) -> list[LintIssue]:
        return [
            self._issue(Severity.WARNING, d, "traffic distributor has no listeners")
            for d in graph.of_type(TrafficDistributor)
            if not d.listeners
        ]


class NoDuplicateTargets(BaseValidator):
    name = "noDuplicateTargets"
    description = "A listener lists each target once"

    def validate(self, graph: GraphContext) -> list[LintIssue]:
        issues = []
        for listener in graph.of_type(Listener):
            seen: list[str] = []
            for target in listener.targets:
                if target.node_id in seen:
                    issues.append(
                        self._issue(
                            Severity.WARNING,
                            listener,
                            f"target {target.node_id!r} is attached more than once",
                        )
                    )
                else:
                    seen.append(target.node_id)
        return issues


def default_validators(
    duplicate_targets: DuplicateTargetPolicy = DuplicateTargetPolicy.WARN,
) -> list[BaseValidator]:
    """Validators run by ``finalize()``, errors first."""
    validators: list[BaseValidator] = [
        HasNetworkFabric(),
        NoOrphanFilters(),
        ListenersHaveTargets(),
        NoUnusedPartitions(),
        NoUnreferencedSecrets(),
        NoIdleTaskTemplates(),
        NoEmptyComputeClusters(),
        DistributorsHaveListeners(),
    ]
    if duplicate_targets is DuplicateTargetPolicy.WARN:
        validators.append(NoDuplicateTargets())
    return validators


def lint_graph(
    nodes: list[ResourceNode],
    validators: list[BaseValidator] | None = None,
) -> LintResult:
    """Run validators over the declared nodes, preserving declaration order."""
    context = GraphContext.from_nodes(nodes)
    result = LintResult()
    for validator in validators if validators is not None else default_validators():
        result.issues.extend(validator.validate(context))
    return result
