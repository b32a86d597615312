import re
from collections import Counter
from enum import Enum
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from saml_federation.domain.exceptions import BlueprintIntegrityException
from saml_federation.domain.urls import CALLBACK_URL, METADATA_PATH, OAUTH_SCOPE

ACCESS_LOG_FORMAT = (
    '$context.identity.sourceIp - - [$context.requestTime] '
    '"$context.httpMethod $context.routeKey $context.protocol" '
    '$context.status $context.responseLength $context.requestId '
    '$context.integrationErrorMessage'
)

_DOMAIN_PREFIX_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")



class SubnetKind(str, Enum):
    PUBLIC = "public"
    ISOLATED = "isolated"


class TeardownPolicy(str, Enum):
    DESTROY = "destroy"
    RETAIN = "retain"


class SubnetGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: SubnetKind


class NetworkBlueprint(BaseModel):
    """The single isolated network every other resource is placed in."""
    model_config = ConfigDict(frozen=True)

    logical_id: str = "Vpc"
    enable_dns_support: bool = True
    enable_dns_hostnames: bool = True
    subnet_groups: Tuple[SubnetGroup, ...] = Field(..., min_length=1)

    def has_subnet_kind(self, kind: SubnetKind) -> bool:
        return any(group.kind == kind for group in self.subnet_groups)


class IdentityPoolBlueprint(BaseModel):
    """Hosted user pool and the domain alias its hosted UI is served from."""
    model_config = ConfigDict(frozen=True)

    logical_id: str = "UserPool"
    domain_logical_id: str = "UserPoolDomain"
    domain_prefix: str = Field(..., description="Globally unique hosted UI domain prefix")
    auto_verify_email: bool = False
    auto_verify_phone: bool = False
    self_sign_up_enabled: bool = False
    teardown_policy: TeardownPolicy = TeardownPolicy.DESTROY

    @field_validator("domain_prefix")
    @classmethod
    def _check_domain_prefix(cls, value: str) -> str:
        if not _DOMAIN_PREFIX_PATTERN.match(value):
            raise ValueError(f"'{value}' is not a valid hosted UI domain prefix")
        return value


class ProviderPlatformBlueprint(BaseModel):
    """Plumbing shared by all provider services of one deployment."""
    model_config = ConfigDict(frozen=True)

    cluster_logical_id: str = "EcsCluster"
    vpc_link_logical_id: str = "VpcLink"
    vpc_link_subnets: SubnetKind = SubnetKind.PUBLIC
    security_group_logical_id: str = "EcsTaskSecurityGroup"
    ingress_cidr: str = "0.0.0.0/0"
    access_log_group_logical_id: str = "CloudWatchHttpApiLogGroup"
    access_log_format: str = ACCESS_LOG_FORMAT
    namespace_logical_id: str = "CloudMapNamespace"
    namespace_name: str = "P1PocCognitoSaml"

    def logical_ids(self) -> List[str]:
        return [
            self.cluster_logical_id,
            self.vpc_link_logical_id,
            self.security_group_logical_id,
            self.access_log_group_logical_id,
            self.namespace_logical_id,
        ]


class ProviderServiceBlueprint(BaseModel):
    """The gateway, registry entry and broker container backing one provider."""
    model_config = ConfigDict(frozen=True)

    provider_name: str
    user_pool_logical_id: str = Field(..., description="Pool whose id and hosted UI URL the broker is configured with")
    registry_entry_logical_id: str
    gateway_logical_id: str
    task_logical_id: str
    service_logical_id: str
    cpu: int = Field(512, gt=0, description="Task CPU units")
    memory_limit_mib: int = Field(1024, gt=0, description="Task memory in MiB")
    container_name: str = "Keycloak"
    container_port: int = Field(8080, gt=0, lt=65536)
    desired_count: int = Field(1, ge=1)
    assign_public_ip: bool = True
    subnets: SubnetKind = SubnetKind.PUBLIC
    log_stream_prefix: str = "/ecs/p1-pocs/cognito-saml"

    def logical_ids(self) -> List[str]:
        return [
            self.registry_entry_logical_id,
            self.gateway_logical_id,
            self.task_logical_id,
            self.service_logical_id,
        ]


class FederatedProviderBlueprint(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_name: str
    logical_id: str
    user_pool_logical_id: str = Field(..., description="Pool the provider is registered on")
    provider_type: str = "SAML"
    metadata_path: str = METADATA_PATH


class PoolClientBlueprint(BaseModel):
    """
    App client allowed to request tokens from the pool.
    An empty identity_providers tuple means direct pool login only.
    """
    model_config = ConfigDict(frozen=True)

    logical_id: str
    identity_providers: Tuple[str, ...] = ()
    implicit_grant: bool = True
    callback_urls: Tuple[str, ...] = (CALLBACK_URL,)
    scopes: Tuple[str, ...] = (OAUTH_SCOPE,)
    generate_secret: bool = False

    @property
    def allows_pool_login(self) -> bool:
        return not self.identity_providers


class AuthorizeUrlOutput(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    client_logical_id: str
    identity_provider: Optional[str] = None


class AuthorizeEndpoint(BaseModel):
    """A deployed authorize URL, as reported in the stack outputs."""
    model_config = ConfigDict(frozen=True)

    output_name: str = Field(..., description="Name of the stack output the URL was read from")
    url: str = Field(..., description="Full hosted UI authorize URL")
    client_id: str = Field(..., min_length=1, description="App client id carried in the query string")
    identity_provider: Optional[str] = Field(None, description="Provider requested explicitly, if any")


class OrderingEdge(BaseModel):
    """`dependent` must not be considered ready before `prerequisite` is."""
    model_config = ConfigDict(frozen=True)

    dependent: str
    prerequisite: str


class DeploymentBlueprint(BaseModel):
    """
    Immutable resource graph of one deployment unit.

    Data-flow references between resources are implied by the records themselves;
    `ordering` carries only the happens-after edges that no data reference expresses.
    """
    model_config = ConfigDict(frozen=True)

    stack_name: str
    account: str
    region: str
    network: NetworkBlueprint
    identity_pool: IdentityPoolBlueprint
    platform: ProviderPlatformBlueprint
    provider_services: Tuple[ProviderServiceBlueprint, ...]
    federated_providers: Tuple[FederatedProviderBlueprint, ...]
    clients: Tuple[PoolClientBlueprint, ...]
    outputs: Tuple[AuthorizeUrlOutput, ...]
    ordering: Tuple[OrderingEdge, ...] = ()

    @model_validator(mode="after")
    def _check_integrity(self) -> "DeploymentBlueprint":
        ids = self.logical_ids()
        duplicates = sorted(name for name, count in Counter(ids).items() if count > 1)
        if duplicates:
            raise BlueprintIntegrityException(f"Duplicate logical ids: {duplicates}")

        declared = set(ids)
        pool_id = self.identity_pool.logical_id
        for record in (*self.provider_services, *self.federated_providers):
            if record.user_pool_logical_id != pool_id:
                raise BlueprintIntegrityException(
                    f"Provider '{record.provider_name}' is bound to pool '{record.user_pool_logical_id}', not '{pool_id}'."
                )

        for edge in self.ordering:
            for logical_id in (edge.dependent, edge.prerequisite):
                if logical_id not in declared:
                    raise BlueprintIntegrityException(f"Ordering edge references unknown id '{logical_id}'.")

        client_ids = {client.logical_id for client in self.clients}
        provider_names = {provider.provider_name for provider in self.federated_providers}
        for output in self.outputs:
            if output.client_logical_id not in client_ids:
                raise BlueprintIntegrityException(
                    f"Output '{output.name}' references unknown client '{output.client_logical_id}'."
                )
            if output.identity_provider and output.identity_provider not in provider_names:
                raise BlueprintIntegrityException(
                    f"Output '{output.name}' requests unregistered provider '{output.identity_provider}'."
                )
        for client in self.clients:
            unknown = set(client.identity_providers) - provider_names
            if unknown:
                raise BlueprintIntegrityException(
                    f"Client '{client.logical_id}' allows unregistered providers: {sorted(unknown)}"
                )
        return self

    @property
    def provider_names(self) -> Tuple[str, ...]:
        return tuple(service.provider_name for service in self.provider_services)

    def logical_ids(self) -> List[str]:
        """All declared resource ids, in declaration order."""
        ids = [
            self.network.logical_id,
            self.identity_pool.logical_id,
            self.identity_pool.domain_logical_id,
            *self.platform.logical_ids(),
        ]
        for service in self.provider_services:
            ids.extend(service.logical_ids())
        ids.extend(provider.logical_id for provider in self.federated_providers)
        ids.extend(client.logical_id for client in self.clients)
        return ids

    def prerequisites_of(self, logical_id: str) -> Tuple[str, ...]:
        return tuple(edge.prerequisite for edge in self.ordering if edge.dependent == logical_id)

    def client(self, logical_id: str) -> PoolClientBlueprint:
        for client in self.clients:
            if client.logical_id == logical_id:
                return client
        raise KeyError(logical_id)

    def provider_service(self, provider_name: str) -> ProviderServiceBlueprint:
        for service in self.provider_services:
            if service.provider_name == provider_name:
                return service
        raise KeyError(provider_name)
