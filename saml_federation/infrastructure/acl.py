from typing import Any, Dict, List
from urllib.parse import parse_qs, urlsplit

from saml_federation.domain.models import AuthorizeEndpoint
from saml_federation.domain.urls import CALLBACK_URL, OAUTH_SCOPE

AUTHORIZE_OUTPUT_PREFIX = "AuthorizeUrl"
PER_PROVIDER_OUTPUT_PREFIX = "AuthorizeUrlFor"
REQUIRED_OUTPUTS = ("AuthorizeUrlAll", "AuthorizeUrlWithExplicitChoice", "AuthorizeUrlNone")


class StackOutputsTranslator:
    """
    Anti-corruption layer that translates the CDK outputs file into AuthorizeEndpoint instances.
    """

    @staticmethod
    def to_domain(raw_outputs: Dict[str, Any], stack_name: str) -> List[AuthorizeEndpoint]:
        """
        Extracts the authorize URL outputs of one stack.

        Args:
            raw_outputs (Dict[str, Any]): Parsed `cdk deploy --outputs-file` JSON, keyed by stack name.
            stack_name (str): The stack whose outputs should be read.

        Returns:
            List[AuthorizeEndpoint]: One endpoint per authorize URL output, sorted by output name.

        Raises:
            ValueError: If a required authorize output is missing or a URL is malformed.
        """
        stack_outputs = raw_outputs.get(stack_name)
        if not stack_outputs:
            raise ValueError(f"No outputs recorded for stack '{stack_name}'.")

        authorize_outputs = {
            name: url for name, url in stack_outputs.items() if name.startswith(AUTHORIZE_OUTPUT_PREFIX)
        }
        missing = [name for name in REQUIRED_OUTPUTS if name not in authorize_outputs]
        if not any(name.startswith(PER_PROVIDER_OUTPUT_PREFIX) for name in authorize_outputs):
            missing.append(f"{PER_PROVIDER_OUTPUT_PREFIX}<provider>")
        if missing:
            raise ValueError(f"Stack '{stack_name}' is missing authorize outputs: {missing}")

        return [
            StackOutputsTranslator.to_endpoint(name, url)
            for name, url in sorted(authorize_outputs.items())
        ]

    @staticmethod
    def to_endpoint(output_name: str, url: str) -> AuthorizeEndpoint:
        parts = urlsplit(url)
        if parts.scheme != "https" or not parts.netloc or not parts.path.endswith("/authorize"):
            raise ValueError(f"Output '{output_name}' is not a hosted UI authorize URL: {url}")

        query = parse_qs(parts.query)
        if query.get("response_type") != ["token"] or query.get("scope") != [OAUTH_SCOPE]:
            raise ValueError(f"Output '{output_name}' does not request an implicit openid token: {url}")
        if query.get("redirect_uri") != [CALLBACK_URL]:
            raise ValueError(f"Output '{output_name}' has an unexpected redirect_uri: {url}")

        client_id = query.get("client_id", [""])[0]
        if not client_id:
            raise ValueError(f"Output '{output_name}' has no client_id: {url}")

        return AuthorizeEndpoint(
            output_name=output_name,
            url=url,
            client_id=client_id,
            identity_provider=query.get("identity_provider", [None])[0],
        )
