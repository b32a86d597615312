import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp

from saml_federation.domain.exceptions import EndpointUnavailableException
from saml_federation.infrastructure.hosted_ui_client import MAX_RETRIES, HostedUiClient

URL = "https://poc.auth.us-east-1.amazoncognito.com/authorize?client_id=abc"


def _response(status: int, headers=None) -> AsyncMock:
    response = AsyncMock()
    response.status = status
    response.headers = headers or {}
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=False)
    return response


class TestHostedUiClient(unittest.TestCase):
    def test_headers_include_user_agent(self) -> None:
        client = HostedUiClient(user_agent="verifier")

        self.assertIsInstance(client.headers, dict)
        self.assertEqual(client.headers["User-Agent"], "verifier")


class TestFetchAuthorize(unittest.IsolatedAsyncioTestCase):
    async def test_redirect_is_returned_without_following(self) -> None:
        client = HostedUiClient()
        session = AsyncMock()
        session.get = MagicMock(return_value=_response(302, {"Location": "/login?client_id=abc"}))

        status, location = await client.fetch_authorize(session, URL)

        self.assertEqual(status, 302)
        self.assertEqual(location, "/login?client_id=abc")
        _, kwargs = session.get.call_args
        self.assertFalse(kwargs["allow_redirects"])

    async def test_server_error_is_retried(self) -> None:
        """A 503 from a freshly created domain is retried after a backoff."""
        client = HostedUiClient()
        session = AsyncMock()
        session.get = MagicMock(side_effect=[_response(503), _response(200)])

        with patch("saml_federation.infrastructure.hosted_ui_client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            status, location = await client.fetch_authorize(session, URL)

        self.assertEqual(status, 200)
        self.assertIsNone(location)
        mock_sleep.assert_awaited_once()

    async def test_client_error_is_not_retried(self) -> None:
        client = HostedUiClient()
        session = AsyncMock()
        session.get = MagicMock(return_value=_response(400))

        status, _ = await client.fetch_authorize(session, URL)

        self.assertEqual(status, 400)
        self.assertEqual(session.get.call_count, 1)

    async def test_persistent_failure_raises(self) -> None:
        client = HostedUiClient()
        session = AsyncMock()
        session.get = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with patch("saml_federation.infrastructure.hosted_ui_client.asyncio.sleep", new_callable=AsyncMock):
            with self.assertRaises(EndpointUnavailableException) as ctx:
                await client.fetch_authorize(session, URL)

        self.assertEqual(ctx.exception.url, URL)
        self.assertEqual(session.get.call_count, MAX_RETRIES)
