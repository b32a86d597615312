import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from aws_cdk import CfnOutput, Environment, RemovalPolicy, Stack
from aws_cdk import aws_apigatewayv2 as apigwv2
from aws_cdk import aws_apigatewayv2_integrations as integrations
from aws_cdk import aws_cognito as cognito
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_logs as logs
from aws_cdk import aws_servicediscovery as servicediscovery
from constructs import Construct, IConstruct

from saml_federation.domain.models import (
    DeploymentBlueprint,
    IdentityPoolBlueprint,
    NetworkBlueprint,
    OrderingEdge,
    SubnetKind,
    TeardownPolicy,
)
from saml_federation.domain.urls import authorize_url, container_environment, metadata_url

logger = logging.getLogger(__name__)

BUNDLED_IMAGE_DIRECTORY = Path(__file__).resolve().parent / "keycloak"

SUBNET_TYPES = {
    SubnetKind.PUBLIC: ec2.SubnetType.PUBLIC,
    SubnetKind.ISOLATED: ec2.SubnetType.PRIVATE_ISOLATED,
}
REMOVAL_POLICIES = {
    TeardownPolicy.DESTROY: RemovalPolicy.DESTROY,
    TeardownPolicy.RETAIN: RemovalPolicy.RETAIN,
}
OAUTH_SCOPES = {
    "openid": cognito.OAuthScope.OPENID,
    "email": cognito.OAuthScope.EMAIL,
    "phone": cognito.OAuthScope.PHONE,
    "profile": cognito.OAuthScope.PROFILE,
}


@dataclass(frozen=True)
class IdentityPoolHandle:
    user_pool: cognito.UserPool
    domain: cognito.UserPoolDomain

    @property
    def base_url(self) -> str:
        return self.domain.base_url()


@dataclass(frozen=True)
class ProviderHandle:
    """A running broker service and the gateway URL it is reachable at."""
    service: ecs.FargateService
    url: str


class FederationPocStack(Stack):
    """
    Renders a DeploymentBlueprint into CDK constructs, one construct per
    blueprint logical id, bound to the blueprint's account and region.

    Each rendering phase returns the handles later phases need; the only
    shared table is the logical id registry used to apply ordering edges.
    """

    def __init__(
        self,
        scope: Construct,
        blueprint: DeploymentBlueprint,
        image_directory: Optional[Union[str, Path]] = None,
        **kwargs,
    ) -> None:
        super().__init__(
            scope,
            blueprint.stack_name,
            env=Environment(account=blueprint.account, region=blueprint.region),
            **kwargs,
        )
        self.image_directory = Path(image_directory) if image_directory else BUNDLED_IMAGE_DIRECTORY

        registry: Dict[str, IConstruct] = {}
        vpc = self._render_network(blueprint.network, registry)
        pool = self._render_identity_pool(blueprint.identity_pool, registry)
        providers = self._render_provider_services(blueprint, vpc, pool, registry)
        self._render_registrations(blueprint, pool, providers, registry)
        self._apply_ordering(blueprint.ordering, registry)

    def _render_network(self, declared: NetworkBlueprint, registry: Dict[str, IConstruct]) -> ec2.Vpc:
        vpc = ec2.Vpc(
            self,
            declared.logical_id,
            enable_dns_support=declared.enable_dns_support,
            enable_dns_hostnames=declared.enable_dns_hostnames,
            subnet_configuration=[
                ec2.SubnetConfiguration(name=group.name, subnet_type=SUBNET_TYPES[group.kind])
                for group in declared.subnet_groups
            ],
        )
        registry[declared.logical_id] = vpc
        return vpc

    def _render_identity_pool(
        self, declared: IdentityPoolBlueprint, registry: Dict[str, IConstruct]
    ) -> IdentityPoolHandle:
        user_pool = cognito.UserPool(
            self,
            declared.logical_id,
            auto_verify=cognito.AutoVerifiedAttrs(email=declared.auto_verify_email, phone=declared.auto_verify_phone),
            removal_policy=REMOVAL_POLICIES[declared.teardown_policy],
            self_sign_up_enabled=declared.self_sign_up_enabled,
        )
        domain = user_pool.add_domain(
            declared.domain_logical_id,
            cognito_domain=cognito.CognitoDomainOptions(domain_prefix=declared.domain_prefix),
        )
        registry[declared.logical_id] = user_pool
        registry[declared.domain_logical_id] = domain
        return IdentityPoolHandle(user_pool=user_pool, domain=domain)

    def _render_provider_services(
        self,
        blueprint: DeploymentBlueprint,
        vpc: ec2.Vpc,
        pool: IdentityPoolHandle,
        registry: Dict[str, IConstruct],
    ) -> Dict[str, ProviderHandle]:
        platform = blueprint.platform
        cluster = ecs.Cluster(self, platform.cluster_logical_id, vpc=vpc)
        vpc_link = apigwv2.VpcLink(
            self,
            platform.vpc_link_logical_id,
            vpc=vpc,
            subnets=ec2.SubnetSelection(subnet_type=SUBNET_TYPES[platform.vpc_link_subnets]),
        )
        # Wide open unless POC_INGRESS_CIDR narrows it; only the VPC link needs access
        security_group = ec2.SecurityGroup(self, platform.security_group_logical_id, vpc=vpc, allow_all_outbound=True)
        security_group.add_ingress_rule(ec2.Peer.ipv4(platform.ingress_cidr), ec2.Port.all_tcp())
        log_group = logs.LogGroup(self, platform.access_log_group_logical_id)
        namespace = servicediscovery.PrivateDnsNamespace(
            self, platform.namespace_logical_id, name=platform.namespace_name, vpc=vpc
        )
        for logical_id, construct in zip(
            platform.logical_ids(), (cluster, vpc_link, security_group, log_group, namespace)
        ):
            registry[logical_id] = construct

        image = ecs.ContainerImage.from_asset(str(self.image_directory))
        providers: Dict[str, ProviderHandle] = {}
        for declared in blueprint.provider_services:
            dns_service = servicediscovery.Service(
                self,
                declared.registry_entry_logical_id,
                namespace=namespace,
                dns_record_type=servicediscovery.DnsRecordType.SRV,
            )
            api = apigwv2.HttpApi(
                self,
                declared.gateway_logical_id,
                default_integration=integrations.HttpServiceDiscoveryIntegration(
                    f"{declared.gateway_logical_id}Integration",
                    dns_service,
                    vpc_link=vpc_link,
                ),
            )
            stage = api.default_stage.node.default_child
            stage.access_log_settings = apigwv2.CfnStage.AccessLogSettingsProperty(
                destination_arn=log_group.log_group_arn,
                format=platform.access_log_format,
            )
            url = api.url

            task_definition = ecs.FargateTaskDefinition(
                self,
                declared.task_logical_id,
                cpu=declared.cpu,
                memory_limit_mib=declared.memory_limit_mib,
            )
            container = task_definition.add_container(
                declared.container_name,
                image=image,
                port_mappings=[ecs.PortMapping(container_port=declared.container_port, host_port=declared.container_port)],
                environment=container_environment(url, pool.user_pool.user_pool_id, pool.base_url),
                logging=ecs.LogDrivers.aws_logs(stream_prefix=declared.log_stream_prefix),
            )
            service = ecs.FargateService(
                self,
                declared.service_logical_id,
                cluster=cluster,
                task_definition=task_definition,
                assign_public_ip=declared.assign_public_ip,
                vpc_subnets=ec2.SubnetSelection(subnet_type=SUBNET_TYPES[declared.subnets]),
                security_groups=[security_group],
                desired_count=declared.desired_count,
            )
            service.associate_cloud_map_service(
                service=dns_service,
                container=container,
                container_port=declared.container_port,
            )

            registry[declared.registry_entry_logical_id] = dns_service
            registry[declared.gateway_logical_id] = api
            registry[declared.task_logical_id] = task_definition
            registry[declared.service_logical_id] = service
            providers[declared.provider_name] = ProviderHandle(service=service, url=url)

        return providers

    def _render_registrations(
        self,
        blueprint: DeploymentBlueprint,
        pool: IdentityPoolHandle,
        providers: Dict[str, ProviderHandle],
        registry: Dict[str, IConstruct],
    ) -> None:
        for declared in blueprint.federated_providers:
            registry[declared.logical_id] = cognito.CfnUserPoolIdentityProvider(
                self,
                declared.logical_id,
                provider_name=declared.provider_name,
                provider_type=declared.provider_type,
                user_pool_id=pool.user_pool.user_pool_id,
                provider_details={"MetadataURL": metadata_url(providers[declared.provider_name].url, declared.metadata_path)},
            )

        clients: Dict[str, cognito.UserPoolClient] = {}
        for declared in blueprint.clients:
            client = pool.user_pool.add_client(
                declared.logical_id,
                o_auth=cognito.OAuthSettings(
                    flows=cognito.OAuthFlows(implicit_code_grant=declared.implicit_grant),
                    callback_urls=list(declared.callback_urls),
                    scopes=[OAUTH_SCOPES.get(scope) or cognito.OAuthScope.custom(scope) for scope in declared.scopes],
                ),
                generate_secret=declared.generate_secret,
                supported_identity_providers=self._identity_providers(declared.identity_providers),
            )
            registry[declared.logical_id] = client
            clients[declared.logical_id] = client

        for output in blueprint.outputs:
            CfnOutput(
                self,
                output.name,
                value=authorize_url(
                    pool.base_url,
                    clients[output.client_logical_id].user_pool_client_id,
                    output.identity_provider,
                ),
            )

    @staticmethod
    def _identity_providers(names: Sequence[str]):
        if not names:
            return [cognito.UserPoolClientIdentityProvider.COGNITO]
        return [cognito.UserPoolClientIdentityProvider.custom(name) for name in names]

    @staticmethod
    def _apply_ordering(ordering: Sequence[OrderingEdge], registry: Dict[str, IConstruct]) -> None:
        for edge in ordering:
            registry[edge.dependent].node.add_dependency(registry[edge.prerequisite])
            logger.debug(f"'{edge.dependent}' happens after '{edge.prerequisite}'.")
