import logging
import re
from typing import Iterable, List, Sequence, Tuple

from saml_federation.config import DeploymentSettings
from saml_federation.domain.exceptions import BlueprintIntegrityException, InvalidProviderListException
from saml_federation.domain.models import (
    AuthorizeUrlOutput,
    DeploymentBlueprint,
    FederatedProviderBlueprint,
    IdentityPoolBlueprint,
    NetworkBlueprint,
    OrderingEdge,
    PoolClientBlueprint,
    ProviderPlatformBlueprint,
    ProviderServiceBlueprint,
    SubnetGroup,
    SubnetKind,
)

logger = logging.getLogger(__name__)

DOMAIN_PREFIX = "poc-two-ups-"
ALL_PROVIDERS_CLIENT_ID = "CognitoAppClientForAll"
NO_PROVIDER_CLIENT_ID = "CognitoAppClientForNone"

# Names end up in logical ids and as identity provider names on the pool
PROVIDER_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9]{0,31}$")
RESERVED_PROVIDER_NAMES = {"cognito"}


def validate_provider_names(provider_names: Sequence[str]) -> Tuple[str, ...]:
    """
    Rejects provider lists that would produce an ambiguous or undeployable graph.

    Raises:
        InvalidProviderListException: If the list is empty, has duplicates, or holds an invalid name.
    """
    names = tuple(provider_names)
    if not names:
        raise InvalidProviderListException(names, "At least one SAML provider is required.")

    for name in names:
        if not PROVIDER_NAME_PATTERN.match(name):
            raise InvalidProviderListException(
                names, f"Provider name '{name}' must be alphanumeric, start with a letter and be at most 32 characters."
            )
        if name.lower() in RESERVED_PROVIDER_NAMES:
            raise InvalidProviderListException(names, f"Provider name '{name}' is reserved by the user pool.")

    if len(set(names)) != len(names):
        raise InvalidProviderListException(names, "Provider names must be unique.")

    return names


def build_network() -> NetworkBlueprint:
    return NetworkBlueprint(
        subnet_groups=(
            SubnetGroup(name="Public", kind=SubnetKind.PUBLIC),
            SubnetGroup(name="Isolated", kind=SubnetKind.ISOLATED),
        ),
    )


def build_identity_pool(settings: DeploymentSettings) -> IdentityPoolBlueprint:
    # The account id keeps the hosted UI prefix globally unique
    return IdentityPoolBlueprint(domain_prefix=DOMAIN_PREFIX + settings.account)


def build_provider_services(
    settings: DeploymentSettings,
    network: NetworkBlueprint,
    identity_pool: IdentityPoolBlueprint,
) -> Tuple[ProviderPlatformBlueprint, Tuple[ProviderServiceBlueprint, ...]]:
    """
    Declares the shared provider plumbing and one broker service per provider.

    The broker containers read the pool id and hosted UI URL of `identity_pool`
    at render time; they never depend on the provider registrations.
    """
    platform = ProviderPlatformBlueprint(ingress_cidr=settings.ingress_cidr)
    if not network.has_subnet_kind(platform.vpc_link_subnets):
        raise BlueprintIntegrityException(f"Network '{network.logical_id}' has no {platform.vpc_link_subnets.value} subnets.")

    services = tuple(
        ProviderServiceBlueprint(
            provider_name=name,
            user_pool_logical_id=identity_pool.logical_id,
            registry_entry_logical_id=f"CloudMap{name}Service",
            gateway_logical_id=f"Http{name}ProviderApi",
            task_logical_id=f"Ecs{name}SamlProviderTask",
            service_logical_id=f"Ecs{name}ProviderService",
        )
        for name in settings.provider_names
    )
    logger.debug(f"Declared {len(services)} provider services federating into '{identity_pool.logical_id}'.")
    return platform, services


def _client_for(logical_id: str, identity_providers: Iterable[str]) -> PoolClientBlueprint:
    return PoolClientBlueprint(logical_id=logical_id, identity_providers=tuple(identity_providers))


def build_registrations(
    identity_pool: IdentityPoolBlueprint,
    provider_services: Sequence[ProviderServiceBlueprint],
) -> Tuple[
    Tuple[FederatedProviderBlueprint, ...],
    Tuple[PoolClientBlueprint, ...],
    Tuple[AuthorizeUrlOutput, ...],
    Tuple[OrderingEdge, ...],
]:
    """
    Registers every provider service as a federated identity source and declares
    the app clients and authorize URL outputs that use them.

    Returns:
        Tuple of (federated providers, clients, outputs, ordering edges).
    """
    providers: List[FederatedProviderBlueprint] = []
    clients: List[PoolClientBlueprint] = []
    outputs: List[AuthorizeUrlOutput] = []
    ordering: List[OrderingEdge] = []

    for service in provider_services:
        name = service.provider_name
        provider = FederatedProviderBlueprint(
            provider_name=name,
            logical_id=f"Cognito{name}SamlIdp",
            user_pool_logical_id=identity_pool.logical_id,
        )
        providers.append(provider)
        # The metadata URL is only served once the broker container is running
        ordering.append(OrderingEdge(dependent=provider.logical_id, prerequisite=service.service_logical_id))

        client = _client_for(f"Cognito{name}AppClient", [name])
        clients.append(client)
        ordering.append(OrderingEdge(dependent=client.logical_id, prerequisite=provider.logical_id))
        outputs.append(AuthorizeUrlOutput(name=f"AuthorizeUrlFor{name}", client_logical_id=client.logical_id))

    names = [provider.provider_name for provider in providers]
    all_client = _client_for(ALL_PROVIDERS_CLIENT_ID, names)
    clients.append(all_client)
    ordering.extend(
        OrderingEdge(dependent=all_client.logical_id, prerequisite=provider.logical_id) for provider in providers
    )
    outputs.append(AuthorizeUrlOutput(name="AuthorizeUrlAll", client_logical_id=all_client.logical_id))
    outputs.append(
        AuthorizeUrlOutput(
            name="AuthorizeUrlWithExplicitChoice",
            client_logical_id=all_client.logical_id,
            identity_provider=names[0],
        )
    )

    # Pool login only; needs nothing but the pool itself
    none_client = _client_for(NO_PROVIDER_CLIENT_ID, [])
    clients.append(none_client)
    outputs.append(AuthorizeUrlOutput(name="AuthorizeUrlNone", client_logical_id=none_client.logical_id))

    logger.debug(f"Registered {len(providers)} providers on '{identity_pool.logical_id}'.")
    return tuple(providers), tuple(clients), tuple(outputs), tuple(ordering)


def build_blueprint(settings: DeploymentSettings) -> DeploymentBlueprint:
    """
    Compiles deployment settings into the complete resource graph.

    Validation runs before anything is declared, so a bad provider list never
    yields a partial graph.
    """
    provider_names = validate_provider_names(settings.provider_names)

    network = build_network()
    identity_pool = build_identity_pool(settings)
    platform, services = build_provider_services(settings, network, identity_pool)
    providers, clients, outputs, ordering = build_registrations(identity_pool, services)

    blueprint = DeploymentBlueprint(
        stack_name=settings.stack_name,
        account=settings.account,
        region=settings.region,
        network=network,
        identity_pool=identity_pool,
        platform=platform,
        provider_services=services,
        federated_providers=providers,
        clients=clients,
        outputs=outputs,
        ordering=ordering,
    )

    logger.info(
        f"Blueprint '{blueprint.stack_name}' declares {len(blueprint.logical_ids())} resources "
        f"for providers {list(provider_names)}, {len(blueprint.ordering)} ordering edges "
        f"and {len(blueprint.outputs)} outputs."
    )
    return blueprint
