from typing import Dict, Optional

# Path at which the Keycloak broker image serves the SAML descriptor of its "test" realm.
METADATA_PATH = "auth/realms/test/protocol/saml/descriptor"
CALLBACK_URL = "https://jwt.io"
OAUTH_SCOPE = "openid"
COGNITO_SP_URN_PREFIX = "urn:amazon:cognito:sp:"

# Environment contract honoured by the broker image
FRONTEND_URL_VARIABLE = "KEYCLOAK_FRONTEND_URL"
COGNITO_URN_VARIABLE = "COGNITO_URN"
COGNITO_URL_VARIABLE = "COGNITO_URL"

# All helpers below use plain concatenation so they also work on
# unresolved deploy-time tokens, which must not be parsed or re-encoded.


def metadata_url(service_url: str, metadata_path: str = METADATA_PATH) -> str:
    return service_url + metadata_path


def frontend_url(service_url: str) -> str:
    return service_url + "auth"


def cognito_urn(user_pool_id: str) -> str:
    return COGNITO_SP_URN_PREFIX + user_pool_id


def saml_callback_url(pool_base_url: str) -> str:
    return pool_base_url + "/saml2/idpresponse"


def container_environment(service_url: str, user_pool_id: str, pool_base_url: str) -> Dict[str, str]:
    """
    Builds the environment a broker container needs to present itself as a
    SAML identity provider for the user pool.

    Args:
        service_url (str): Externally reachable URL of the provider's gateway, with trailing slash.
        user_pool_id (str): Identifier of the user pool the provider federates into.
        pool_base_url (str): Hosted UI base URL of the user pool domain.

    Returns:
        Dict[str, str]: Environment variables keyed by name.
    """
    return {
        FRONTEND_URL_VARIABLE: frontend_url(service_url),
        COGNITO_URN_VARIABLE: cognito_urn(user_pool_id),
        COGNITO_URL_VARIABLE: saml_callback_url(pool_base_url),
    }


def authorize_url(pool_base_url: str, client_id: str, identity_provider: Optional[str] = None) -> str:
    """
    Builds the hosted UI implicit-grant authorize URL for an app client.

    When identity_provider is given, the hosted UI skips the provider choice
    page and redirects straight to that provider.
    """
    url = (
        f"{pool_base_url}/authorize?client_id={client_id}"
        f"&response_type=token&scope={OAUTH_SCOPE}&redirect_uri={CALLBACK_URL}"
    )
    if identity_provider:
        url += f"&identity_provider={identity_provider}"
    return url
