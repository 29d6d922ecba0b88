"""Tests for finalize-time graph validators."""

from __future__ import annotations

from infragraph.graph.lint import (
    DistributorsHaveListeners,
    GraphContext,
    HasNetworkFabric,
    NoDuplicateTargets,
    NoEmptyComputeClusters,
    NoIdleTaskTemplates,
    NoUnreferencedSecrets,
    Severity,
    default_validators,
    lint_graph,
)
from infragraph.graph.models import DuplicateTargetPolicy


class TestDefaultValidators:
    def test_duplicate_check_only_when_warning(self):
        def names(policy):
            return [v.name for v in default_validators(policy)]

        assert "noDuplicateTargets" in names(DuplicateTargetPolicy.WARN)
        assert "noDuplicateTargets" not in names(DuplicateTargetPolicy.ALLOW)
        assert "noDuplicateTargets" not in names(DuplicateTargetPolicy.ERROR)

    def test_errors_come_first(self):
        validators = default_validators()
        assert validators[0].name == "hasNetworkFabric"


class TestLintGraph:
    def test_clean_graph(self, builder, database, service):
        result = lint_graph(builder.nodes)
        assert result.passed
        assert result.errors == []

    def test_empty_graph(self):
        result = lint_graph([])
        assert not result.passed
        assert [str(i) for i in result.errors] == ["<graph>: no network fabric declared"]

    def test_custom_validator_list(self, builder, fabric):
        result = lint_graph(builder.nodes, [HasNetworkFabric()])
        assert result.issues == []


class TestWarningValidators:
    def test_unreferenced_secret(self, builder, fabric, credentials):
        issues = NoUnreferencedSecrets().validate(GraphContext.from_nodes(builder.nodes))
        assert [(i.node_id, i.severity) for i in issues] == [("Credentials", Severity.WARNING)]

    def test_idle_template_and_empty_cluster(self, builder, fabric):
        builder.declare_compute_cluster(fabric, name="Idle")
        builder.declare_task_template(image="nginx", cpu=256, memory_mib=512, name="Unused")
        context = GraphContext.from_nodes(builder.nodes)

        assert [i.node_id for i in NoEmptyComputeClusters().validate(context)] == ["Idle"]
        assert [i.node_id for i in NoIdleTaskTemplates().validate(context)] == ["Unused"]

    def test_distributor_without_listener(self, builder, fabric):
        builder.declare_distributor(fabric, internet_facing=False, name="Internal")
        issues = DistributorsHaveListeners().validate(GraphContext.from_nodes(builder.nodes))
        assert [i.is_warning for i in issues] == [True]

    def test_duplicate_targets(self, builder, fabric, service):
        distributor = builder.declare_distributor(fabric, internet_facing=True)
        listener = builder.add_listener(distributor, 8080)
        builder.duplicate_targets = DuplicateTargetPolicy.ALLOW
        builder.add_targets(listener, [service, service, service])

        issues = NoDuplicateTargets().validate(GraphContext.from_nodes(builder.nodes))

        assert len(issues) == 2
        assert all(i.node_id == listener.node_id for i in issues)
