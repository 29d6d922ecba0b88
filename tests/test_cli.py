"""Tests for the synth, graph and validate commands."""

from __future__ import annotations

import json

import pytest
import yaml

from infragraph.cli import ux
from infragraph.cli.graph import graph_command
from infragraph.cli.synth import synth_command
from infragraph.cli.validate import validate_command
from infragraph.core.errors import ExitCode
from infragraph.main import build_parser, main


@pytest.fixture
def bad_task_size(tmp_path):
    path = tmp_path / "stack.yaml"
    path.write_text("service:\n  cpu: 256\n  memory_mib: 8192\n")
    return str(path)


class TestSynthCommand:
    def test_writes_json_file(self, tmp_path):
        out = tmp_path / "template.json"

        assert synth_command(output_file=str(out)) == 0

        template = json.loads(out.read_text())
        assert template["Description"] == "AwsCdkDocdbStack"
        assert "DocDB" in template["Resources"]

    def test_yaml_to_stdout(self, capsys):
        assert synth_command(output_format="yaml") == 0
        template = yaml.safe_load(capsys.readouterr().out)
        assert template["Resources"]["ECSCluster"]["Type"] == "AWS::ECS::Cluster"

    def test_account_and_region_flags(self, tmp_path):
        out = tmp_path / "template.json"
        synth_command(output_file=str(out), account="111122223333", region="eu-west-1")
        outputs = json.loads(out.read_text())["Outputs"]
        assert outputs["StackAccount"] == {"Value": "111122223333"}
        assert outputs["StackRegion"] == {"Value": "eu-west-1"}

    def test_settings_supply_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CDK_DEFAULT_ACCOUNT", "444455556666")
        out = tmp_path / "template.json"
        synth_command(output_file=str(out))
        outputs = json.loads(out.read_text())["Outputs"]
        assert outputs["StackAccount"] == {"Value": "444455556666"}
        assert outputs["StackRegion"] == {"Value": {"Ref": "AWS::Region"}}

    def test_missing_config_file(self, tmp_path):
        result = synth_command(config_file=str(tmp_path / "missing.yaml"))
        assert result == ExitCode.VALIDATION_ERROR

    def test_topology_error_exit_code(self, bad_task_size, tmp_path):
        out = tmp_path / "template.json"
        assert synth_command(config_file=bad_task_size, output_file=str(out)) == ExitCode.CONFIG_ERROR
        assert not out.exists()


class TestGraphCommand:
    def test_json(self, capsys):
        assert graph_command() == 0
        data = json.loads(capsys.readouterr().out)
        assert data["creation_order"][0] == "VPC"

    def test_mermaid_file(self, tmp_path):
        out = tmp_path / "graph.mmd"
        assert graph_command(output_format="mermaid", output_file=str(out)) == 0
        assert out.read_text().startswith("graph LR")

    def test_order_only(self, capsys):
        assert graph_command(order_only=True) == 0
        lines = capsys.readouterr().out.split()
        assert lines.index("DocDB") < lines.index("ECSService")

    def test_unknown_format(self):
        assert graph_command(output_format="svg") == 2


class TestValidateCommand:
    def test_reference_stack_is_clean(self, capsys):
        assert validate_command() == ExitCode.SUCCESS
        assert "All checks passed" in capsys.readouterr().out

    def test_declaration_error(self, bad_task_size):
        assert validate_command(config_file=bad_task_size) == ExitCode.CONFIG_ERROR


class TestMain:
    def test_parser_commands(self):
        args = build_parser().parse_args(["synth", "--format", "yaml", "--region", "us-east-1"])
        assert args.command == "synth"
        assert args.output_format == "yaml"
        assert args.region == "us-east-1"

    def test_main_exits_with_command_code(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["graph", "--order"])
        assert exc_info.value.code == 0
        assert "VPC" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1
        assert "usage: infragraph" in capsys.readouterr().out


class TestConsole:
    def test_force_color_forces_terminal(self, monkeypatch):
        monkeypatch.setenv("FORCE_COLOR", "1")
        assert ux._force_terminal() is True

    def test_detection_left_to_rich(self, monkeypatch):
        monkeypatch.delenv("FORCE_COLOR", raising=False)
        assert ux._force_terminal() is None
