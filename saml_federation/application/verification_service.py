import asyncio
import logging
from typing import Dict, List, Optional

import aiohttp

from saml_federation.domain.exceptions import EndpointUnavailableException
from saml_federation.domain.models import AuthorizeEndpoint
from saml_federation.infrastructure.hosted_ui_client import HostedUiClient

logger = logging.getLogger(__name__)

# Limit concurrent connections to the hosted UI
CONNECTOR_LIMIT = 5
# The hosted UI reports a rejected authorize request by redirecting here
ERROR_PAGE_PATH = "/error"


class VerificationService:
    """
    Service responsible for checking that every deployed authorize URL is
    accepted by the hosted UI, i.e. that its client, callback and provider
    settings were provisioned as declared.
    """

    def __init__(self, hosted_ui_client: HostedUiClient):
        self.hosted_ui_client = hosted_ui_client

    @staticmethod
    def is_accepted(status: int, location: Optional[str]) -> bool:
        if status >= 400:
            return False
        return not (location and ERROR_PAGE_PATH in location)

    async def verify(self, endpoints: List[AuthorizeEndpoint]) -> Dict[str, bool]:
        """
        Requests all endpoints concurrently.

        Returns:
            Dict[str, bool]: Whether each endpoint was accepted, keyed by output name.
        """
        if not endpoints:
            raise ValueError("No authorize endpoints to verify.")

        logger.info(f"Verifying {len(endpoints)} authorize endpoints.")

        async with aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=CONNECTOR_LIMIT),
        ) as session:
            tasks = [self._verify_endpoint(session, endpoint) for endpoint in endpoints]
            results = await asyncio.gather(*tasks, return_exceptions=True)

        outcome: Dict[str, bool] = {}
        for endpoint, result in zip(endpoints, results):
            if isinstance(result, EndpointUnavailableException):
                logger.error(f"{endpoint.output_name}: {result}")
                outcome[endpoint.output_name] = False
            elif isinstance(result, Exception):
                logger.error(f"Unexpected error verifying {endpoint.output_name}: {result}")
                outcome[endpoint.output_name] = False
            else:
                outcome[endpoint.output_name] = result

        accepted = sum(outcome.values())
        logger.info(f"Verification completed. {accepted}/{len(outcome)} endpoints accepted.")
        return outcome

    async def _verify_endpoint(self, session, endpoint: AuthorizeEndpoint) -> bool:
        status, location = await self.hosted_ui_client.fetch_authorize(session, endpoint.url)
        accepted = self.is_accepted(status, location)
        if accepted:
            logger.info(f"[{endpoint.output_name}] client {endpoint.client_id} accepted ({status}).")
        else:
            logger.warning(
                f"[{endpoint.output_name}] client {endpoint.client_id} rejected "
                f"({status}, location={location})."
            )
        return accepted
