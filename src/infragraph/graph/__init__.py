"""
Resource graph construction and dependency resolution.

Declare infrastructure components through ``TopologyBuilder``, then
``finalize()`` to obtain a validated, acyclic ``ResourceGraph``.
"""

from infragraph.graph.builder import BuilderState, TopologyBuilder
from infragraph.graph.dependencies import collect_edges, find_path, topological_order
from infragraph.graph.lint import LintIssue, LintResult, Severity, lint_graph
from infragraph.graph.models import (
    AddressPartition,
    ComputeCluster,
    DeploymentEnvironment,
    DuplicateTargetPolicy,
    EdgeKind,
    GeneratedSecretField,
    GraphEdge,
    IngressRule,
    InstanceType,
    Listener,
    ListenerProtocol,
    NetworkFabric,
    NodeKind,
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

__all__ = [
    # Builder
    "TopologyBuilder",
    "BuilderState",
    # Models
    "NodeKind",
    "ReachabilityClass",
    "Protocol",
    "ListenerProtocol",
    "RemovalPolicy",
    "EdgeKind",
    "DuplicateTargetPolicy",
    "DeploymentEnvironment",
    "ResourceNode",
    "PartitionSpec",
    "NetworkFabric",
    "AddressPartition",
    "IngressRule",
    "TrafficFilter",
    "GeneratedSecretField",
    "SecretMaterial",
    "SecretFieldRef",
    "InstanceType",
    "StatefulServiceCluster",
    "ComputeCluster",
    "PortMapping",
    "TaskTemplate",
    "ServiceInstance",
    "TrafficDistributor",
    "Listener",
    "PermissionGrant",
    "OrderingConstraint",
    "GraphEdge",
    "ResourceGraph",
    # Dependencies
    "collect_edges",
    "find_path",
    "topological_order",
    # Lint
    "LintIssue",
    "LintResult",
    "Severity",
    "lint_graph",
]
