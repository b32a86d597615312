import unittest

from saml_federation.infrastructure.acl import StackOutputsTranslator

POOL_URL = "https://poc-two-ups-162174280605.auth.us-east-1.amazoncognito.com"
STACK = "P1PoCCognitoTwoSamlProvidersStack"


def _url(client_id: str, suffix: str = "") -> str:
    return (
        f"{POOL_URL}/authorize?client_id={client_id}&response_type=token"
        f"&scope=openid&redirect_uri=https://jwt.io{suffix}"
    )


def _stack_outputs() -> dict:
    return {
        "AuthorizeUrlForFirst": _url("first"),
        "AuthorizeUrlForSecond": _url("second"),
        "AuthorizeUrlAll": _url("all"),
        "AuthorizeUrlWithExplicitChoice": _url("all", "&identity_provider=First"),
        "AuthorizeUrlNone": _url("none"),
    }


class TestStackOutputsTranslator(unittest.TestCase):
    def test_to_domain_reads_authorize_outputs(self) -> None:
        raw_outputs = {
            STACK: {**_stack_outputs(), "UnrelatedOutput": "vpc-123"},
            "OtherStack": {"AuthorizeUrlNone": _url("other")},
        }

        endpoints = {endpoint.output_name: endpoint for endpoint in StackOutputsTranslator.to_domain(raw_outputs, STACK)}

        self.assertEqual(
            list(endpoints),
            [
                "AuthorizeUrlAll",
                "AuthorizeUrlForFirst",
                "AuthorizeUrlForSecond",
                "AuthorizeUrlNone",
                "AuthorizeUrlWithExplicitChoice",
            ],
        )
        self.assertEqual(endpoints["AuthorizeUrlForFirst"].client_id, "first")
        self.assertIsNone(endpoints["AuthorizeUrlForFirst"].identity_provider)
        self.assertEqual(endpoints["AuthorizeUrlWithExplicitChoice"].identity_provider, "First")

    def test_missing_stack_raises(self) -> None:
        with self.assertRaises(ValueError):
            StackOutputsTranslator.to_domain({}, STACK)

    def test_partial_outputs_raise(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            StackOutputsTranslator.to_domain({STACK: {"AuthorizeUrlNone": _url("none")}}, STACK)

        self.assertIn("AuthorizeUrlAll", str(ctx.exception))
        self.assertIn("AuthorizeUrlWithExplicitChoice", str(ctx.exception))

    def test_each_required_output_is_checked(self) -> None:
        for name in ("AuthorizeUrlAll", "AuthorizeUrlWithExplicitChoice", "AuthorizeUrlNone"):
            with self.subTest(output=name):
                outputs = _stack_outputs()
                del outputs[name]

                with self.assertRaises(ValueError):
                    StackOutputsTranslator.to_domain({STACK: outputs}, STACK)

    def test_outputs_without_any_provider_raise(self) -> None:
        outputs = {name: url for name, url in _stack_outputs().items() if not name.startswith("AuthorizeUrlFor")}

        with self.assertRaises(ValueError):
            StackOutputsTranslator.to_domain({STACK: outputs}, STACK)

    def test_malformed_urls_raise(self) -> None:
        bad_urls = [
            "http://example.com/authorize?client_id=a&response_type=token&scope=openid&redirect_uri=https://jwt.io",
            f"{POOL_URL}/login?client_id=a&response_type=token&scope=openid&redirect_uri=https://jwt.io",
            f"{POOL_URL}/authorize?client_id=a&response_type=code&scope=openid&redirect_uri=https://jwt.io",
            f"{POOL_URL}/authorize?response_type=token&scope=openid&redirect_uri=https://jwt.io",
            f"{POOL_URL}/authorize?client_id=a&response_type=token&scope=openid&redirect_uri=https://evil.example",
        ]
        for url in bad_urls:
            with self.subTest(url=url):
                with self.assertRaises(ValueError):
                    StackOutputsTranslator.to_endpoint("AuthorizeUrlAll", url)
