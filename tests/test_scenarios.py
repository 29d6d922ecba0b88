"""End-to-end topology scenarios and graph-wide properties."""

from __future__ import annotations

import pytest

from infragraph.core.errors import (
    TopologyConfigError,
    TopologyCycleError,
    TopologyStateError,
)
from infragraph.graph.builder import BuilderState, TopologyBuilder
from infragraph.graph.models import (
    GeneratedSecretField,
    NodeKind,
    PartitionSpec,
    Protocol,
    ReachabilityClass,
    SecretMaterial,
)


def _declare_database(builder: TopologyBuilder, partition_name: str):
    fabric = builder.declare_network(
        [
            PartitionSpec("public", 24, ReachabilityClass.EXTERNALLY_REACHABLE),
            PartitionSpec("private", 24, ReachabilityClass.ISOLATED),
        ]
    )
    ddb_sg = builder.declare_traffic_filter("docdb", fabric, name="ddbSG")
    secret = builder.declare_secret(
        {"username": "awsdemo"},
        GeneratedSecretField(name="password", length=16, exclude_punctuation=True),
    )
    return builder.declare_stateful_cluster(
        fabric,
        fabric.partition(partition_name),
        ddb_sg,
        secret,
        instance_type="t3.medium",
    )


class TestScenarioA:
    """Database in the isolated partition finalizes."""

    def test_finalize_succeeds(self):
        builder = TopologyBuilder()
        cluster = _declare_database(builder, "private")

        graph = builder.finalize()

        assert builder.state is BuilderState.FINALIZED
        assert graph.get(cluster.node_id) is cluster
        assert len(graph.nodes_of(NodeKind.STATEFUL_CLUSTER)) == 1

    def test_unused_public_partition_is_only_a_warning(self):
        builder = TopologyBuilder()
        _declare_database(builder, "private")

        graph = builder.finalize()

        assert graph.warnings == (
            "Network1/public: externally-reachable partition 'public' hosts no resources",
        )

    def test_secret_value_never_enters_graph(self):
        builder = TopologyBuilder()
        cluster = _declare_database(builder, "private")
        graph = builder.finalize()

        secret = graph.get(cluster.secret.node_id)
        assert isinstance(secret, SecretMaterial)
        assert secret.template == {"username": "awsdemo"}
        assert secret.to_dict()["generated"] == {
            "name": "password",
            "length": 16,
            "exclude_characters": "",
            "exclude_punctuation": True,
        }


class TestScenarioB:
    """Database in the externally reachable partition is rejected."""

    def test_raises_exactly_one_config_error(self):
        builder = TopologyBuilder()

        with pytest.raises(TopologyConfigError) as exc_info:
            _declare_database(builder, "public")
            builder.finalize()

        assert len(exc_info.value.issues) == 1
        assert "isolated partition" in exc_info.value.message
        assert "externally-reachable" in exc_info.value.message

    def test_rejected_cluster_is_not_registered(self):
        builder = TopologyBuilder()

        with pytest.raises(TopologyConfigError):
            _declare_database(builder, "public")

        assert all(n.kind is not NodeKind.STATEFUL_CLUSTER for n in builder.nodes)
        assert builder.state is BuilderState.OPEN


class TestScenarioC:
    """Grant referencing a foreign secret fails at the call."""

    def test_grant_with_undeclared_secret(self, builder, service):
        foreign = TopologyBuilder().declare_secret(
            {"username": "other"},
            GeneratedSecretField(name="password"),
        )
        declared_before = len(builder.nodes)

        with pytest.raises(TopologyConfigError, match="not declared in this graph"):
            builder.grant_permission(service, ["secretsmanager:GetSecretValue"], [foreign])

        assert len(builder.nodes) == declared_before
        assert builder.state is BuilderState.OPEN

    def test_grant_with_hand_built_secret(self, builder, service):
        stray = SecretMaterial(node_id="Stray")

        with pytest.raises(TopologyConfigError):
            builder.grant_permission(service, ["secretsmanager:GetSecretValue"], [stray])


class TestScenarioD:
    """Opposing ordering constraints close a cycle."""

    def test_second_constraint_raises_cycle_error(self, builder, database, service):
        builder.add_ordering_constraint(service, database)

        with pytest.raises(TopologyCycleError) as exc_info:
            builder.add_ordering_constraint(database, service)

        assert exc_info.value.cycle[0] == database.node_id
        assert exc_info.value.cycle[-1] == database.node_id
        assert service.node_id in exc_info.value.cycle

    def test_failed_constraint_is_not_recorded(self, builder, database, service):
        builder.add_ordering_constraint(service, database)

        with pytest.raises(TopologyCycleError):
            builder.add_ordering_constraint(database, service)

        assert len(builder.constraints) == 1
        graph = builder.finalize()
        order = list(graph.creation_order)
        assert order.index(service.node_id) < order.index(database.node_id)


class TestGraphProperties:
    def test_finalized_node_set_matches_declarations(self, builder, database, service):
        declared = builder.nodes

        graph = builder.finalize()

        assert len(graph.nodes) == len(declared)
        assert all(a is b for a, b in zip(graph.nodes, declared))

    def test_creation_order_respects_every_edge(self, builder, database, service):
        builder.add_ingress_rule(
            database.traffic_filter, service.traffic_filter, Protocol.TCP, 27017
        )
        builder.add_ordering_constraint(database, service)

        graph = builder.finalize()

        position = {node_id: i for i, node_id in enumerate(graph.creation_order)}
        assert sorted(position) == sorted(n.node_id for n in graph.nodes)
        for edge in graph.edges:
            assert position[edge.source] < position[edge.target]

    def test_ingress_rules_append_in_order(self, builder, fabric):
        guarded = builder.declare_traffic_filter("db", fabric)
        first = builder.declare_traffic_filter("a", fabric)
        second = builder.declare_traffic_filter("b", fabric)

        builder.add_ingress_rule(guarded, second, Protocol.TCP, 443)
        builder.add_ingress_rule(guarded, first, Protocol.TCP, 80)

        assert [r.source for r in guarded.rules] == [second, first]
        assert [r.port for r in guarded.rules] == [443, 80]

    def test_mutation_after_finalize_leaves_graph_unchanged(self, builder, database, service):
        graph = builder.finalize()
        snapshot = graph.to_dict()

        with pytest.raises(TopologyStateError):
            builder.add_ordering_constraint(database, service)
        with pytest.raises(TopologyStateError):
            builder.declare_compute_cluster(database.fabric)

        assert builder.finalize() is graph
        assert graph.to_dict() == snapshot
