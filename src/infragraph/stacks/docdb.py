"""
Reference stack: containerized app on Fargate backed by DocumentDB.

    internet -> ALB (public) -> Fargate service (public subnet)
                                   |
                                   v  tcp/27017
                               DocumentDB (private isolated subnet)

Credentials are generated by Secrets Manager at deploy time; the task reads
them through secret environment bindings and a GetSecretValue grant. The
service is created only after the database cluster exists.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from infragraph.config.loader import DocDbStackConfig
from infragraph.graph.builder import TopologyBuilder
from infragraph.graph.models import (
    ComputeCluster,
    DeploymentEnvironment,
    DuplicateTargetPolicy,
    GeneratedSecretField,
    Listener,
    NetworkFabric,
    PartitionSpec,
    PermissionGrant,
    PortMapping,
    Protocol,
    ReachabilityClass,
    ResourceGraph,
    SecretMaterial,
    ServiceInstance,
    StatefulServiceCluster,
    TaskTemplate,
    TrafficDistributor,
    TrafficFilter,
)

logger = structlog.get_logger()

SECRET_READ_ACTIONS = ("secretsmanager:GetSecretValue",)


@dataclass
class DocDbStack:
    """Handles to every resource of the reference stack."""

    vpc: NetworkFabric
    db_filter: TrafficFilter
    db_credentials: SecretMaterial
    db_cluster: StatefulServiceCluster
    ecs_filter: TrafficFilter
    ecs_cluster: ComputeCluster
    payload_secret: SecretMaterial
    task_template: TaskTemplate
    service: ServiceInstance
    lb_filter: TrafficFilter
    load_balancer: TrafficDistributor
    listener: Listener
    secret_grant: PermissionGrant


def declare_docdb_stack(
    builder: TopologyBuilder,
    config: DocDbStackConfig | None = None,
) -> DocDbStack:
    """Declare the reference stack on ``builder`` without finalizing it."""
    config = config or DocDbStackConfig()
    net, db, svc, lb = config.network, config.database, config.service, config.load_balancer

    # Network: public subnet for the app, isolated subnet for the database
    vpc = builder.declare_network(
        [
            PartitionSpec(
                net.public_subnet_name,
                net.public_mask,
                ReachabilityClass.EXTERNALLY_REACHABLE,
            ),
            PartitionSpec(net.private_subnet_name, net.private_mask, ReachabilityClass.ISOLATED),
        ],
        name="VPC",
        cidr=net.cidr,
        availability_zones=net.availability_zones,
    )
    public = vpc.partition(net.public_subnet_name)
    private = vpc.partition(net.private_subnet_name)

    # DocumentDB
    db_filter = builder.declare_traffic_filter("docdb", vpc, name="DocumentDBSecurityGroup")
    db_credentials = builder.declare_secret(
        {"username": db.username},
        GeneratedSecretField(
            name="password",
            length=db.password_length,
            exclude_characters=db.exclude_characters,
            exclude_punctuation=db.exclude_punctuation,
        ),
        name="DocumentDBCredentials",
    )
    db_cluster = builder.declare_stateful_cluster(
        vpc,
        private,
        db_filter,
        db_credentials,
        instance_type=db.instance_type,
        instance_count=db.instance_count,
        port=db.port,
        name="DocDB",
    )

    # ECS
    ecs_filter = builder.declare_traffic_filter("ecs", vpc, name="ECSSecurityGroup")
    ecs_cluster = builder.declare_compute_cluster(vpc, name="ECSCluster")
    payload_secret = builder.declare_secret(
        {},
        GeneratedSecretField(
            name="payloadSecret",
            length=svc.payload_secret_length,
            exclude_characters=svc.payload_secret_exclude_characters,
        ),
        name="PayloadSecret",
    )
    task_template = builder.declare_task_template(
        image=svc.image,
        cpu=svc.cpu,
        memory_mib=svc.memory_mib,
        ports=[PortMapping(container_port=svc.container_port)],
        secret_env_bindings={
            "DOCDB_USERNAME": db_credentials.field("username"),
            "DOCDB_PASSWORD": db_credentials.field("password"),
            "PAYLOAD_SECRET": payload_secret.field("payloadSecret"),
        },
        name="TaskDefinition",
    )
    service = builder.declare_service_instance(
        ecs_cluster,
        task_template,
        ecs_filter,
        public,
        assign_public_address=svc.assign_public_address,
        desired_count=svc.desired_count,
        name="ECSService",
    )

    # Application load balancer
    lb_filter = builder.declare_traffic_filter("alb", vpc, name="LoadBalancerSecurityGroup")
    load_balancer = builder.declare_distributor(
        vpc,
        internet_facing=lb.internet_facing,
        traffic_filter=lb_filter,
        name="LoadBalancer",
    )
    listener = builder.add_listener(load_balancer, lb.port, lb.protocol)
    builder.add_targets(listener, [service])
    builder.add_ingress_rule(
        ecs_filter,
        lb_filter,
        Protocol.TCP,
        svc.container_port,
        "Load balancer to target",
    )

    # ECS <-> DocumentDB
    builder.add_ingress_rule(
        db_filter,
        ecs_filter,
        Protocol.TCP,
        db.port,
        "Allow MongoDB traffic from ECS",
    )
    secret_grant = builder.grant_permission(
        service,
        SECRET_READ_ACTIONS,
        [db_credentials],
        name="TaskRoleSecretAccess",
    )
    builder.add_ordering_constraint(db_cluster, service)

    return DocDbStack(
        vpc=vpc,
        db_filter=db_filter,
        db_credentials=db_credentials,
        db_cluster=db_cluster,
        ecs_filter=ecs_filter,
        ecs_cluster=ecs_cluster,
        payload_secret=payload_secret,
        task_template=task_template,
        service=service,
        lb_filter=lb_filter,
        load_balancer=load_balancer,
        listener=listener,
        secret_grant=secret_grant,
    )


def build_docdb_graph(
    config: DocDbStackConfig | None = None,
    environment: DeploymentEnvironment | None = None,
    duplicate_targets: DuplicateTargetPolicy | str = DuplicateTargetPolicy.WARN,
) -> ResourceGraph:
    """Declare and finalize the reference stack."""
    builder = TopologyBuilder(environment=environment, duplicate_targets=duplicate_targets)
    declare_docdb_stack(builder, config)
    graph = builder.finalize()
    logger.debug("docdb_stack_built", nodes=len(graph.nodes), warnings=len(graph.warnings))
    return graph
