"""
CloudFormation template synthesis.

Translates a finalized ResourceGraph into a CloudFormation-shaped template.
Reference edges become ``Ref``/``Fn::GetAtt`` expressions; only explicit
ordering constraints become ``DependsOn``. Secret values never appear: the
template carries ``GenerateSecretString`` recipes and
``{{resolve:secretsmanager:...}}`` dynamic references.

A partition expands to one subnet per availability zone, each with its own
route table. Externally reachable subnets route ``0.0.0.0/0`` through the
fabric's internet gateway; isolated subnets get no default route.

Example:
    graph = build_docdb_graph()
    template = synthesize(graph, description="DocumentDB on Fargate")
    print(render_template(template, "yaml"))
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable

import structlog
import yaml

from infragraph.graph.models import (
    AddressPartition,
    ComputeCluster,
    EdgeKind,
    Listener,
    NetworkFabric,
    NodeKind,
    PermissionGrant,
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

logger = structlog.get_logger()

TEMPLATE_FORMAT_VERSION = "2010-09-09"
ECS_EXECUTION_POLICY_ARN = (
    "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy"
)
UNKNOWN_ACCOUNT = {"Ref": "AWS::AccountId"}
UNKNOWN_REGION = {"Ref": "AWS::Region"}
DEFAULT_ROUTE = "0.0.0.0/0"

_DELETION_POLICY = {
    RemovalPolicy.DESTROY: "Delete",
    RemovalPolicy.RETAIN: "Retain",
    RemovalPolicy.SNAPSHOT: "Snapshot",
}


def logical_id(node_id: str) -> str:
    """CloudFormation logical id for a node id (alphanumerics only)."""
    cleaned = re.sub(r"[^A-Za-z0-9]", "", node_id)
    return cleaned or "Resource"


def ref(logical: str) -> dict[str, Any]:
    return {"Ref": logical}


def get_att(logical: str, attribute: str) -> dict[str, Any]:
    return {"Fn::GetAtt": [logical, attribute]}


class TemplateSynthesizer:
    """Builds one template from one graph. Not reusable across graphs."""

    def __init__(self, graph: ResourceGraph):
        self.graph = graph
        self.resources: dict[str, dict[str, Any]] = {}
        self.outputs: dict[str, dict[str, Any]] = {}
        self._ids = self._assign_ids(graph.nodes)
        # Logical ids of the resources each node expands to, for DependsOn
        self._members: dict[str, list[str]] = {}
        self._handlers: dict[NodeKind, Callable[[Any], None]] = {
            NodeKind.NETWORK: self._network,
            NodeKind.PARTITION: self._partition,
            NodeKind.TRAFFIC_FILTER: self._traffic_filter,
            NodeKind.SECRET: self._secret,
            NodeKind.STATEFUL_CLUSTER: self._stateful_cluster,
            NodeKind.COMPUTE_CLUSTER: self._compute_cluster,
            NodeKind.TASK_TEMPLATE: self._task_template,
            NodeKind.SERVICE_INSTANCE: self._service_instance,
            NodeKind.DISTRIBUTOR: self._distributor,
            NodeKind.LISTENER: self._listener,
            NodeKind.PERMISSION_GRANT: self._permission_grant,
        }

    def synthesize(self, description: str | None = None) -> dict[str, Any]:
        for node_id in self.graph.creation_order:
            node = self.graph.get(node_id)
            if node is not None:
                self._handlers[node.kind](node)

        self._apply_ordering_constraints()

        env = self.graph.environment
        self.outputs["StackAccount"] = {"Value": env.account or UNKNOWN_ACCOUNT}
        self.outputs["StackRegion"] = {"Value": env.region or UNKNOWN_REGION}

        template: dict[str, Any] = {"AWSTemplateFormatVersion": TEMPLATE_FORMAT_VERSION}
        if description:
            template["Description"] = description
        template["Resources"] = self.resources
        template["Outputs"] = self.outputs

        logger.debug(
            "template_synthesized",
            resources=len(self.resources),
            outputs=len(self.outputs),
        )
        return template

    # ------------------------------------------------------------------
    # Node handlers
    # ------------------------------------------------------------------

    def _network(self, fabric: NetworkFabric) -> None:
        vpc = self._ids[fabric.node_id]
        self._add(
            fabric,
            "AWS::EC2::VPC",
            {
                "CidrBlock": fabric.cidr,
                "EnableDnsHostnames": True,
                "EnableDnsSupport": True,
                "Tags": self._name_tag(fabric.node_id),
            },
        )
        if not fabric.partitions_of(ReachabilityClass.EXTERNALLY_REACHABLE):
            return

        self.resources[f"{vpc}InternetGateway"] = {
            "Type": "AWS::EC2::InternetGateway",
            "Properties": {"Tags": self._name_tag(fabric.node_id)},
        }
        self.resources[f"{vpc}GatewayAttachment"] = {
            "Type": "AWS::EC2::VPCGatewayAttachment",
            "Properties": {
                "VpcId": ref(vpc),
                "InternetGatewayId": ref(f"{vpc}InternetGateway"),
            },
        }
        self._members[vpc].extend([f"{vpc}InternetGateway", f"{vpc}GatewayAttachment"])

    def _partition(self, partition: AddressPartition) -> None:
        fabric = partition.fabric
        assert fabric is not None
        vpc = self._ids[fabric.node_id]
        externally_reachable = partition.reachability is ReachabilityClass.EXTERNALLY_REACHABLE

        members: list[str] = []
        for zone, (subnet, block) in enumerate(
            zip(self._subnet_ids(partition), partition.cidr_blocks)
        ):
            self.resources[subnet] = {
                "Type": "AWS::EC2::Subnet",
                "Properties": {
                    "VpcId": ref(vpc),
                    "CidrBlock": block,
                    "AvailabilityZone": {"Fn::Select": [zone, {"Fn::GetAZs": ""}]},
                    "MapPublicIpOnLaunch": externally_reachable,
                    "Tags": self._name_tag(f"{partition.name}-{zone + 1}"),
                },
            }
            self.resources[f"{subnet}RouteTable"] = {
                "Type": "AWS::EC2::RouteTable",
                "Properties": {"VpcId": ref(vpc)},
            }
            self.resources[f"{subnet}RouteTableAssociation"] = {
                "Type": "AWS::EC2::SubnetRouteTableAssociation",
                "Properties": {
                    "RouteTableId": ref(f"{subnet}RouteTable"),
                    "SubnetId": ref(subnet),
                },
            }
            members.extend([subnet, f"{subnet}RouteTable", f"{subnet}RouteTableAssociation"])
            if externally_reachable:
                self.resources[f"{subnet}DefaultRoute"] = {
                    "Type": "AWS::EC2::Route",
                    "Properties": {
                        "RouteTableId": ref(f"{subnet}RouteTable"),
                        "DestinationCidrBlock": DEFAULT_ROUTE,
                        "GatewayId": ref(f"{vpc}InternetGateway"),
                    },
                    "DependsOn": [f"{vpc}GatewayAttachment"],
                }
                members.append(f"{subnet}DefaultRoute")
        self._members[self._ids[partition.node_id]] = members

    def _traffic_filter(self, traffic_filter: TrafficFilter) -> None:
        assert traffic_filter.fabric is not None
        logical = self._ids[traffic_filter.node_id]
        ingress = []
        self_rules = []
        for rule in traffic_filter.rules:
            entry = {
                "IpProtocol": rule.protocol.value,
                "FromPort": rule.port,
                "ToPort": rule.port,
                "SourceSecurityGroupId": get_att(self._ids[rule.source.node_id], "GroupId"),
                "Description": rule.description,
            }
            if rule.source is traffic_filter:
                self_rules.append(entry)
            else:
                ingress.append(entry)

        properties: dict[str, Any] = {
            "GroupDescription": f"{traffic_filter.node_id} ({traffic_filter.owner})",
            "VpcId": ref(self._ids[traffic_filter.fabric.node_id]),
        }
        if ingress:
            properties["SecurityGroupIngress"] = ingress
        self._add(traffic_filter, "AWS::EC2::SecurityGroup", properties)

        # A group cannot reference its own id inline
        for number, entry in enumerate(self_rules, start=1):
            ingress_id = f"{logical}SelfIngress{number}"
            self.resources[ingress_id] = {
                "Type": "AWS::EC2::SecurityGroupIngress",
                "Properties": {"GroupId": get_att(logical, "GroupId"), **entry},
            }
            self._members[logical].append(ingress_id)

    def _secret(self, secret: SecretMaterial) -> None:
        recipe = secret.generated
        generate: dict[str, Any] = {
            "SecretStringTemplate": json.dumps(dict(secret.template)),
            "GenerateStringKey": recipe.name,
            "PasswordLength": recipe.length,
        }
        if recipe.exclude_characters:
            generate["ExcludeCharacters"] = recipe.exclude_characters
        if recipe.exclude_punctuation:
            generate["ExcludePunctuation"] = True
        self._add(secret, "AWS::SecretsManager::Secret", {"GenerateSecretString": generate})

    def _stateful_cluster(self, cluster: StatefulServiceCluster) -> None:
        assert cluster.partition and cluster.secret and cluster.traffic_filter
        logical = self._ids[cluster.node_id]
        subnet_group = f"{logical}SubnetGroup"
        self.resources[subnet_group] = {
            "Type": "AWS::DocDB::DBSubnetGroup",
            "Properties": {
                "DBSubnetGroupDescription": f"Subnets for {cluster.node_id}",
                "SubnetIds": self._subnet_refs(cluster.partition),
            },
        }

        deletion = _DELETION_POLICY[cluster.removal_policy]
        secret_field_names = cluster.secret.field_names
        username_field = "username" if "username" in secret_field_names else secret_field_names[0]
        self._add(
            cluster,
            "AWS::DocDB::DBCluster",
            {
                "MasterUsername": self._resolve(cluster.secret.field(username_field)),
                "MasterUserPassword": self._resolve(
                    cluster.secret.field(cluster.secret.generated.name)
                ),
                "DBSubnetGroupName": ref(subnet_group),
                "VpcSecurityGroupIds": [get_att(self._ids[cluster.traffic_filter.node_id], "GroupId")],
                "Port": cluster.port,
                "StorageEncrypted": True,
            },
            DeletionPolicy=deletion,
            UpdateReplacePolicy=deletion,
        )

        for number in range(1, cluster.instance_count + 1):
            self.resources[f"{logical}Instance{number}"] = {
                "Type": "AWS::DocDB::DBInstance",
                "Properties": {
                    "DBClusterIdentifier": ref(logical),
                    "DBInstanceClass": f"db.{cluster.instance_type}",
                },
                "DeletionPolicy": deletion,
                "UpdateReplacePolicy": deletion,
            }

        self.outputs[f"{logical}Endpoint"] = {"Value": get_att(logical, "Endpoint")}

    def _compute_cluster(self, cluster: ComputeCluster) -> None:
        self._add(cluster, "AWS::ECS::Cluster", {})

    def _task_template(self, template: TaskTemplate) -> None:
        logical = self._ids[template.node_id]
        execution_role = f"{logical}ExecutionRole"
        task_role = f"{logical}TaskRole"
        assume = _assume_role_policy("ecs-tasks.amazonaws.com")

        execution_properties: dict[str, Any] = {
            "AssumeRolePolicyDocument": assume,
            "ManagedPolicyArns": [ECS_EXECUTION_POLICY_ARN],
        }
        if template.secrets:
            # The agent pulls bound secrets with the execution role
            execution_properties["Policies"] = [
                {
                    "PolicyName": "SecretEnvironment",
                    "PolicyDocument": _policy_document(
                        ["secretsmanager:DescribeSecret", "secretsmanager:GetSecretValue"],
                        [ref(self._ids[s.node_id]) for s in template.secrets],
                    ),
                }
            ]
        self.resources[execution_role] = {"Type": "AWS::IAM::Role", "Properties": execution_properties}
        self.resources[task_role] = {
            "Type": "AWS::IAM::Role",
            "Properties": {"AssumeRolePolicyDocument": assume},
        }

        container: dict[str, Any] = {
            "Name": template.container_name,
            "Image": template.image,
            "Essential": True,
        }
        if template.ports:
            container["PortMappings"] = [
                {"ContainerPort": p.container_port, "Protocol": p.protocol.value}
                for p in template.ports
            ]
        if template.secret_env:
            container["Secrets"] = [
                {"Name": env_name, "ValueFrom": self._value_from(field_ref)}
                for env_name, field_ref in template.secret_env.items()
            ]

        self._add(
            template,
            "AWS::ECS::TaskDefinition",
            {
                "RequiresCompatibilities": ["FARGATE"],
                "NetworkMode": "awsvpc",
                "Cpu": str(template.cpu),
                "Memory": str(template.memory_mib),
                "ExecutionRoleArn": get_att(execution_role, "Arn"),
                "TaskRoleArn": get_att(task_role, "Arn"),
                "ContainerDefinitions": [container],
            },
        )

    def _service_instance(self, service: ServiceInstance) -> None:
        assert service.compute_cluster and service.task_template
        assert service.traffic_filter and service.partition
        template = service.task_template
        properties: dict[str, Any] = {
            "Cluster": ref(self._ids[service.compute_cluster.node_id]),
            "TaskDefinition": ref(self._ids[template.node_id]),
            "LaunchType": "FARGATE",
            "DesiredCount": service.desired_count,
            "NetworkConfiguration": {
                "AwsvpcConfiguration": {
                    "AssignPublicIp": "ENABLED" if service.assign_public_address else "DISABLED",
                    "SecurityGroups": [get_att(self._ids[service.traffic_filter.node_id], "GroupId")],
                    "Subnets": self._subnet_refs(service.partition),
                }
            },
        }

        load_balancers = []
        depends_on = []
        for listener in self._listeners_targeting(service):
            container_port = template.ports[0].container_port if template.ports else listener.port
            load_balancers.append(
                {
                    "ContainerName": template.container_name,
                    "ContainerPort": container_port,
                    "TargetGroupArn": ref(self._target_group_id(listener)),
                }
            )
            depends_on.append(self._ids[listener.node_id])
        if load_balancers:
            properties["LoadBalancers"] = load_balancers

        # Registering targets requires the listener to exist first
        self._add(service, "AWS::ECS::Service", properties)
        if depends_on:
            self._depends_on(self._ids[service.node_id], depends_on)

    def _distributor(self, distributor: TrafficDistributor) -> None:
        assert distributor.fabric is not None
        wanted = (
            ReachabilityClass.EXTERNALLY_REACHABLE
            if distributor.internet_facing
            else ReachabilityClass.ISOLATED
        )
        partitions = distributor.fabric.partitions_of(wanted)
        properties: dict[str, Any] = {
            "Type": "application",
            "Scheme": "internet-facing" if distributor.internet_facing else "internal",
            "Subnets": [subnet for p in partitions for subnet in self._subnet_refs(p)],
        }
        if distributor.traffic_filter is not None:
            properties["SecurityGroups"] = [
                get_att(self._ids[distributor.traffic_filter.node_id], "GroupId")
            ]
        logical = self._ids[distributor.node_id]
        self._add(distributor, "AWS::ElasticLoadBalancingV2::LoadBalancer", properties)
        if distributor.internet_facing:
            # An internet-facing load balancer needs the gateway routes in place
            self._depends_on(
                logical,
                [
                    f"{subnet}DefaultRoute"
                    for p in partitions
                    for subnet in self._subnet_ids(p)
                ],
            )
        self.outputs[f"{logical}DNSName"] = {"Value": get_att(logical, "DNSName")}

    def _listener(self, listener: Listener) -> None:
        assert listener.distributor is not None and listener.distributor.fabric is not None
        target_group = self._target_group_id(listener)
        self.resources[target_group] = {
            "Type": "AWS::ElasticLoadBalancingV2::TargetGroup",
            "Properties": {
                "Port": listener.port,
                "Protocol": listener.protocol.value,
                "TargetType": "ip",
                "VpcId": ref(self._ids[listener.distributor.fabric.node_id]),
            },
        }
        self._add(
            listener,
            "AWS::ElasticLoadBalancingV2::Listener",
            {
                "LoadBalancerArn": ref(self._ids[listener.distributor.node_id]),
                "Port": listener.port,
                "Protocol": listener.protocol.value,
                "DefaultActions": [{"Type": "forward", "TargetGroupArn": ref(target_group)}],
            },
        )

    def _permission_grant(self, grant: PermissionGrant) -> None:
        assert grant.identity is not None and grant.identity.task_template is not None
        task_role = f"{self._ids[grant.identity.task_template.node_id]}TaskRole"
        self._add(
            grant,
            "AWS::IAM::Policy",
            {
                "PolicyName": self._ids[grant.node_id],
                "PolicyDocument": _policy_document(
                    list(grant.actions),
                    [ref(self._ids[r.node_id]) for r in grant.resources],
                ),
                "Roles": [ref(task_role)],
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _add(self, node: ResourceNode, resource_type: str, properties: dict[str, Any], **extra: Any) -> None:
        resource: dict[str, Any] = {"Type": resource_type, "Properties": properties}
        resource.update(extra)
        logical = self._ids[node.node_id]
        self.resources[logical] = resource
        self._members[logical] = [logical]

    def _depends_on(self, logical: str, dependencies: list[str]) -> None:
        if not dependencies:
            return
        resource = self.resources[logical]
        existing = resource.setdefault("DependsOn", [])
        for dependency in dependencies:
            if dependency not in existing:
                existing.append(dependency)

    def _apply_ordering_constraints(self) -> None:
        for edge in self.graph.edges:
            if edge.kind is EdgeKind.ORDERING:
                before = self._members.get(self._ids[edge.source], [])
                for after in self._members.get(self._ids[edge.target], []):
                    self._depends_on(after, before)

    def _subnet_ids(self, partition: AddressPartition) -> list[str]:
        logical = self._ids[partition.node_id]
        return [f"{logical}Subnet{zone}" for zone in range(1, len(partition.cidr_blocks) + 1)]

    def _subnet_refs(self, partition: AddressPartition) -> list[dict[str, Any]]:
        return [ref(subnet) for subnet in self._subnet_ids(partition)]

    def _listeners_targeting(self, service: ServiceInstance) -> list[Listener]:
        return [
            node
            for node in self.graph.nodes
            if isinstance(node, Listener) and any(t is service for t in node.targets)
        ]

    def _target_group_id(self, listener: Listener) -> str:
        return f"{self._ids[listener.node_id]}TargetGroup"

    def _resolve(self, field_ref: SecretFieldRef) -> dict[str, Any]:
        return {
            "Fn::Join": [
                "",
                [
                    "{{resolve:secretsmanager:",
                    ref(self._ids[field_ref.secret.node_id]),
                    f":SecretString:{field_ref.field_name}::}}}}",
                ],
            ]
        }

    def _value_from(self, field_ref: SecretFieldRef) -> dict[str, Any]:
        return {
            "Fn::Join": [
                "",
                [ref(self._ids[field_ref.secret.node_id]), f":{field_ref.field_name}::"],
            ]
        }

    @staticmethod
    def _name_tag(name: str) -> list[dict[str, str]]:
        return [{"Key": "Name", "Value": name}]

    @staticmethod
    def _assign_ids(nodes: tuple[ResourceNode, ...]) -> dict[str, str]:
        ids: dict[str, str] = {}
        taken: set[str] = set()
        for node in nodes:
            base = logical_id(node.node_id)
            candidate, counter = base, 2
            while candidate in taken:
                candidate = f"{base}{counter}"
                counter += 1
            taken.add(candidate)
            ids[node.node_id] = candidate
        return ids


def synthesize(graph: ResourceGraph, description: str | None = None) -> dict[str, Any]:
    """Translate a finalized graph into a CloudFormation template dict."""
    return TemplateSynthesizer(graph).synthesize(description)


def render_template(template: dict[str, Any], output_format: str = "json") -> str:
    """Serialize a template as ``json`` or ``yaml``."""
    if output_format == "json":
        return json.dumps(template, indent=2, ensure_ascii=False)
    if output_format == "yaml":
        return yaml.safe_dump(template, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Unknown format: {output_format}")


def _assume_role_policy(service_principal: str) -> dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": service_principal},
                "Action": "sts:AssumeRole",
            }
        ],
    }


def _policy_document(actions: list[str], resources: list[Any]) -> dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [{"Effect": "Allow", "Action": actions, "Resource": resources}],
    }
