"""Base class for async HTTP clients."""

import logging

import httpx

from .. import __version__
from .config_models import TransferPolicy
from .decorators import TRANSIENT_STATUS_CODES, retry_on_network_error

USER_AGENT = f"zim-backup/{__version__}"


def build_http_client(policy: TransferPolicy) -> httpx.AsyncClient:
    """Creates the shared client with the policy's timeouts."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(policy.read_timeout, connect=policy.connect_timeout),
        headers={"User-Agent": USER_AGENT},
    )


class BaseClient:
    """A base client that handles an async client and the transfer policy."""

    def __init__(self, client: httpx.AsyncClient, policy: TransferPolicy):
        """
        Initializes the base client.

        Args:
            client: An instance of httpx.AsyncClient.
            policy: Retry and timeout settings applied to every request.
        """

        self.client = client
        self.policy = policy
        self.retrying = retry_on_network_error(policy)
        self.logger = logging.getLogger(self.__class__.__name__)

    async def _request(
        self, method: str, url: str, follow_redirects: bool
    ) -> httpx.Response:
        """
        Issues a single request, raising only for transient status codes.

        Callers interpret every other status themselves.
        """
        response = await self.client.request(
            method, url, follow_redirects=follow_redirects
        )
        if response.status_code in TRANSIENT_STATUS_CODES:
            response.raise_for_status()
        return response

    async def request(
        self, method: str, url: str, follow_redirects: bool = False
    ) -> httpx.Response:
        """Like `_request`, retried per the transfer policy."""
        return await self.retrying(self._request)(method, url, follow_redirects)
