import aiohttp
import asyncio
import logging
import random
from typing import Optional, Tuple

from saml_federation.domain.exceptions import EndpointUnavailableException

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=30, connect=10)
MAX_RETRIES = 5
RETRYABLE_STATUSES = {500, 502, 503, 504}

class HostedUiClient:
    """
    Client for probing the user pool hosted UI authorize endpoint.
    Redirects are never followed: the hosted UI answers a valid authorize
    request with a redirect to its login page or to the requested provider.
    """

    def __init__(self, user_agent: str = "cognito-saml-poc-verifier"):
        self.headers = {
            "Accept": "text/html",
            "User-Agent": user_agent,
        }

    async def fetch_authorize(self, session: aiohttp.ClientSession, url: str) -> Tuple[int, Optional[str]]:
        """
        Requests an authorize URL once the endpoint stops failing.

        Returns:
            Tuple of (status, location header or None).

        Raises:
            EndpointUnavailableException: If the endpoint keeps failing after MAX_RETRIES attempts.
        """
        for attempt in range(MAX_RETRIES):
          try:
            async with session.get(url, headers=self.headers, allow_redirects=False, timeout=REQUEST_TIMEOUT) as response:
                if response.status in RETRYABLE_STATUSES:
                  # Freshly created domains answer 5xx until CloudFront has propagated
                  sleep_time = (2 ** attempt) + random.uniform(0, 1)
                  logger.warning(
                      f"Server error ({response.status}) from {url}, "
                      f"retrying in {sleep_time:.1f}s (attempt {attempt + 1}/{MAX_RETRIES})..."
                  )
                  await asyncio.sleep(sleep_time)
                  continue

                return response.status, response.headers.get("Location")

          except (aiohttp.ClientError, asyncio.TimeoutError) as e:
              sleep_time = (2 ** attempt) + random.uniform(0, 1)
              logger.warning(
                  f"Request to {url} failed (attempt {attempt + 1}/{MAX_RETRIES}): {e}. "
                  f"Retrying in {sleep_time:.1f}s..."
              )
              await asyncio.sleep(sleep_time)

        raise EndpointUnavailableException(url=url)
