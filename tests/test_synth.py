"""Tests for CloudFormation template synthesis."""

from __future__ import annotations

import ipaddress
import json

import pytest
import yaml

from infragraph.graph.builder import TopologyBuilder
from infragraph.graph.models import (
    DeploymentEnvironment,
    PartitionSpec,
    Protocol,
    ReachabilityClass,
)
from infragraph.stacks.docdb import build_docdb_graph
from infragraph.synth.template import logical_id, render_template, synthesize


@pytest.fixture
def template():
    return synthesize(build_docdb_graph(), description="AwsCdkDocdbStack")


class TestLogicalId:
    def test_strips_separators(self):
        assert logical_id("LoadBalancer/Listener80") == "LoadBalancerListener80"
        assert logical_id("VPC/public") == "VPCpublic"

    def test_never_empty(self):
        assert logical_id("///") == "Resource"


class TestSynthesize:
    def test_header(self, template):
        assert template["AWSTemplateFormatVersion"] == "2010-09-09"
        assert template["Description"] == "AwsCdkDocdbStack"

    def test_resource_types(self, template):
        types = {name: r["Type"] for name, r in template["Resources"].items()}
        assert types["VPC"] == "AWS::EC2::VPC"
        assert types["VPCprivateSubnet1"] == "AWS::EC2::Subnet"
        assert types["VPCInternetGateway"] == "AWS::EC2::InternetGateway"
        assert types["VPCGatewayAttachment"] == "AWS::EC2::VPCGatewayAttachment"
        assert types["DocDB"] == "AWS::DocDB::DBCluster"
        assert types["DocDBInstance1"] == "AWS::DocDB::DBInstance"
        assert types["DocDBSubnetGroup"] == "AWS::DocDB::DBSubnetGroup"
        assert types["ECSService"] == "AWS::ECS::Service"
        assert types["TaskDefinition"] == "AWS::ECS::TaskDefinition"
        assert types["LoadBalancerListener80"] == "AWS::ElasticLoadBalancingV2::Listener"
        assert types["LoadBalancerListener80TargetGroup"] == (
            "AWS::ElasticLoadBalancingV2::TargetGroup"
        )
        assert types["TaskRoleSecretAccess"] == "AWS::IAM::Policy"

    def test_subnet_reachability(self, template):
        resources = template["Resources"]
        assert resources["VPCpublicSubnet1"]["Properties"]["MapPublicIpOnLaunch"] is True
        assert resources["VPCprivateSubnet2"]["Properties"]["MapPublicIpOnLaunch"] is False

    def test_secret_is_a_recipe(self, template):
        secret = template["Resources"]["DocumentDBCredentials"]["Properties"]
        generate = secret["GenerateSecretString"]
        assert json.loads(generate["SecretStringTemplate"]) == {"username": "awsdemo"}
        assert generate["GenerateStringKey"] == "password"
        assert generate["PasswordLength"] == 16
        assert generate["ExcludePunctuation"] is True

    def test_cluster_credentials_are_dynamic_references(self, template):
        cluster = template["Resources"]["DocDB"]
        parts = cluster["Properties"]["MasterUserPassword"]["Fn::Join"][1]
        assert parts[0] == "{{resolve:secretsmanager:"
        assert parts[1] == {"Ref": "DocumentDBCredentials"}
        assert parts[2] == ":SecretString:password::}}"
        assert cluster["DeletionPolicy"] == "Delete"

    def test_ingress_references_source_group(self, template):
        ingress = template["Resources"]["DocumentDBSecurityGroup"]["Properties"][
            "SecurityGroupIngress"
        ]
        assert ingress == [
            {
                "IpProtocol": "tcp",
                "FromPort": 27017,
                "ToPort": 27017,
                "SourceSecurityGroupId": {"Fn::GetAtt": ["ECSSecurityGroup", "GroupId"]},
                "Description": "Allow MongoDB traffic from ECS",
            }
        ]

    def test_service_depends_on_database_and_listener(self, template):
        service = template["Resources"]["ECSService"]
        assert sorted(service["DependsOn"]) == ["DocDB", "LoadBalancerListener80"]
        network = service["Properties"]["NetworkConfiguration"]["AwsvpcConfiguration"]
        assert network["AssignPublicIp"] == "ENABLED"
        assert network["Subnets"] == [{"Ref": "VPCpublicSubnet1"}, {"Ref": "VPCpublicSubnet2"}]
        assert service["Properties"]["LoadBalancers"][0]["ContainerPort"] == 80

    def test_container_secrets(self, template):
        container = template["Resources"]["TaskDefinition"]["Properties"]["ContainerDefinitions"][0]
        names = [s["Name"] for s in container["Secrets"]]
        assert names == ["DOCDB_USERNAME", "DOCDB_PASSWORD", "PAYLOAD_SECRET"]
        assert "Environment" not in container

    def test_grant_attached_to_task_role(self, template):
        policy = template["Resources"]["TaskRoleSecretAccess"]["Properties"]
        assert policy["Roles"] == [{"Ref": "TaskDefinitionTaskRole"}]
        statement = policy["PolicyDocument"]["Statement"][0]
        assert statement["Action"] == ["secretsmanager:GetSecretValue"]
        assert statement["Resource"] == [{"Ref": "DocumentDBCredentials"}]

    def test_unset_environment_uses_pseudo_parameters(self, template):
        assert template["Outputs"]["StackAccount"] == {"Value": {"Ref": "AWS::AccountId"}}
        assert template["Outputs"]["StackRegion"] == {"Value": {"Ref": "AWS::Region"}}

    def test_resolved_environment(self):
        env = DeploymentEnvironment(account="111122223333", region="eu-central-1")
        template = synthesize(build_docdb_graph(environment=env))
        assert template["Outputs"]["StackAccount"] == {"Value": "111122223333"}
        assert "Description" not in template

    def test_no_generated_value_in_output(self, template):
        rendered = render_template(template)
        assert "awsdemo" in rendered
        assert '"password":' not in rendered


class TestRenderTemplate:
    def test_json(self, template):
        assert json.loads(render_template(template, "json")) == template

    def test_yaml(self, template):
        assert yaml.safe_load(render_template(template, "yaml")) == template

    def test_unknown_format(self, template):
        with pytest.raises(ValueError, match="Unknown format"):
            render_template(template, "toml")


class TestNetworkSynthesis:
    def test_subnets_span_zones(self, template):
        resources = template["Resources"]
        for zone, block in enumerate(["10.0.0.0/24", "10.0.1.0/24"]):
            subnet = resources[f"VPCpublicSubnet{zone + 1}"]["Properties"]
            assert subnet["CidrBlock"] == block
            assert subnet["AvailabilityZone"] == {"Fn::Select": [zone, {"Fn::GetAZs": ""}]}
        assert resources["VPCprivateSubnet1"]["Properties"]["CidrBlock"] == "10.0.2.0/24"

    def test_public_subnets_route_through_gateway(self, template):
        resources = template["Resources"]
        route = resources["VPCpublicSubnet1DefaultRoute"]
        assert route["Type"] == "AWS::EC2::Route"
        assert route["Properties"] == {
            "RouteTableId": {"Ref": "VPCpublicSubnet1RouteTable"},
            "DestinationCidrBlock": "0.0.0.0/0",
            "GatewayId": {"Ref": "VPCInternetGateway"},
        }
        assert route["DependsOn"] == ["VPCGatewayAttachment"]
        association = resources["VPCpublicSubnet2RouteTableAssociation"]["Properties"]
        assert association == {
            "RouteTableId": {"Ref": "VPCpublicSubnet2RouteTable"},
            "SubnetId": {"Ref": "VPCpublicSubnet2"},
        }
        attachment = resources["VPCGatewayAttachment"]["Properties"]
        assert attachment["InternetGatewayId"] == {"Ref": "VPCInternetGateway"}

    def test_isolated_subnets_have_no_default_route(self, template):
        resources = template["Resources"]
        assert "VPCprivateSubnet1RouteTableAssociation" in resources
        assert "VPCprivateSubnet1DefaultRoute" not in resources
        assert "VPCprivateSubnet2DefaultRoute" not in resources

    def test_load_balancer_and_database_span_zones(self, template):
        resources = template["Resources"]
        alb = resources["LoadBalancer"]
        assert alb["Properties"]["Subnets"] == [
            {"Ref": "VPCpublicSubnet1"},
            {"Ref": "VPCpublicSubnet2"},
        ]
        assert alb["DependsOn"] == [
            "VPCpublicSubnet1DefaultRoute",
            "VPCpublicSubnet2DefaultRoute",
        ]
        assert resources["DocDBSubnetGroup"]["Properties"]["SubnetIds"] == [
            {"Ref": "VPCprivateSubnet1"},
            {"Ref": "VPCprivateSubnet2"},
        ]

    def test_mixed_masks_give_disjoint_subnets(self):
        builder = TopologyBuilder()
        builder.declare_network(
            [
                PartitionSpec("public", 20, ReachabilityClass.EXTERNALLY_REACHABLE),
                PartitionSpec("private", 24, ReachabilityClass.ISOLATED),
            ],
            name="Net",
        )
        resources = synthesize(builder.finalize())["Resources"]
        blocks = [
            ipaddress.ip_network(r["Properties"]["CidrBlock"])
            for r in resources.values()
            if r["Type"] == "AWS::EC2::Subnet"
        ]
        assert [str(b) for b in blocks] == [
            "10.0.0.0/20",
            "10.0.16.0/20",
            "10.0.32.0/24",
            "10.0.33.0/24",
        ]
        for index, block in enumerate(blocks):
            assert not any(block.overlaps(other) for other in blocks[index + 1 :])


class TestSelfReferencingIngress:
    def test_rule_becomes_separate_resource(self):
        builder = TopologyBuilder()
        fabric = builder.declare_network(
            [
                PartitionSpec("public", 24, ReachabilityClass.EXTERNALLY_REACHABLE),
                PartitionSpec("private", 24, ReachabilityClass.ISOLATED),
            ]
        )
        sg = builder.declare_traffic_filter("cluster", fabric, name="SG")
        peer = builder.declare_traffic_filter("peer", fabric, name="PeerSG")
        builder.declare_distributor(fabric, internet_facing=False, traffic_filter=sg, name="LB")
        builder.declare_distributor(fabric, internet_facing=False, traffic_filter=peer, name="LB2")
        builder.add_ingress_rule(sg, sg, Protocol.TCP, 80, "gossip")
        builder.add_ingress_rule(sg, peer, Protocol.TCP, 443)

        resources = synthesize(builder.finalize())["Resources"]

        inline = resources["SG"]["Properties"]["SecurityGroupIngress"]
        assert [rule["SourceSecurityGroupId"] for rule in inline] == [
            {"Fn::GetAtt": ["PeerSG", "GroupId"]}
        ]
        assert resources["SGSelfIngress1"] == {
            "Type": "AWS::EC2::SecurityGroupIngress",
            "Properties": {
                "GroupId": {"Fn::GetAtt": ["SG", "GroupId"]},
                "IpProtocol": "tcp",
                "FromPort": 80,
                "ToPort": 80,
                "SourceSecurityGroupId": {"Fn::GetAtt": ["SG", "GroupId"]},
                "Description": "gossip",
            },
        }
