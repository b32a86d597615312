import unittest
from urllib.parse import parse_qs, urlsplit

from saml_federation.domain.urls import (
    authorize_url,
    container_environment,
    metadata_url,
)

SERVICE_URL = "https://abc123.execute-api.us-east-1.amazonaws.com/"
POOL_URL = "https://poc-two-ups-162174280605.auth.us-east-1.amazoncognito.com"


class TestMetadataUrl(unittest.TestCase):
    def test_appends_descriptor_path(self) -> None:
        url = metadata_url(SERVICE_URL)

        self.assertEqual(url, SERVICE_URL + "auth/realms/test/protocol/saml/descriptor")
        self.assertNotIn("//", urlsplit(url).path)


class TestContainerEnvironment(unittest.TestCase):
    def test_environment_contract(self) -> None:
        env = container_environment(SERVICE_URL, "us-east-1_AbCdEf", POOL_URL)

        self.assertEqual(
            env,
            {
                "KEYCLOAK_FRONTEND_URL": SERVICE_URL + "auth",
                "COGNITO_URN": "urn:amazon:cognito:sp:us-east-1_AbCdEf",
                "COGNITO_URL": POOL_URL + "/saml2/idpresponse",
            },
        )


class TestAuthorizeUrl(unittest.TestCase):
    def test_url_is_well_formed(self) -> None:
        url = authorize_url(POOL_URL, "client123")
        parts = urlsplit(url)
        query = parse_qs(parts.query)

        self.assertEqual(parts.scheme, "https")
        self.assertEqual(parts.path, "/authorize")
        self.assertEqual(query["client_id"], ["client123"])
        self.assertEqual(query["response_type"], ["token"])
        self.assertEqual(query["scope"], ["openid"])
        self.assertEqual(query["redirect_uri"], ["https://jwt.io"])
        self.assertNotIn("identity_provider", query)

    def test_explicit_provider_is_appended_last(self) -> None:
        url = authorize_url(POOL_URL, "client123", "First")

        self.assertTrue(url.endswith("&identity_provider=First"))
        self.assertEqual(
            url,
            f"{POOL_URL}/authorize?client_id=client123&response_type=token"
            "&scope=openid&redirect_uri=https://jwt.io&identity_provider=First",
        )
