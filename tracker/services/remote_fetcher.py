"""
Remote fetcher for player data.

The sync core depends only on the RemoteFetcher protocol. HttpRemoteFetcher
is the production implementation on top of an async httpx client.
"""

from typing import Optional, Protocol

import httpx

from tracker.config import Config
from tracker.data_models.player import PlayerRankings, PlayerSnapshot
from tracker.utils.exceptions import (
    BadTagError, DecodeError, NetworkError, PlayerNotFoundError, ServerError
)
from tracker.utils.logger import setup_logger
from tracker.utils.tags import encode_tag, normalize_tag

logger = setup_logger(__name__)


class RemoteFetcher(Protocol):
    """Capability the sync core needs from the network layer."""

    async def fetch(self, tag: str) -> PlayerSnapshot:
        """
        Fetch a full player snapshot.

        Raises:
            BadTagError, PlayerNotFoundError, ServerError, NetworkError, DecodeError
        """
        ...

    async def fetch_rankings(self, tag: str) -> PlayerRankings:
        """Fetch rankings, returning PlayerRankings.unranked(tag) on any failure."""
        ...


class HttpRemoteFetcher:
    """RemoteFetcher backed by the player stats HTTP API."""

    def __init__(self, base_url: str = None, api_token: str = None, timeout: float = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or Config.API_BASE_URL).rstrip('/')
        self.api_token = api_token if api_token is not None else Config.API_TOKEN
        self.timeout = timeout or Config.HTTP_TIMEOUT_SECONDS
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {'Accept': 'application/json'}
            if self.api_token:
                headers['Authorization'] = f'Bearer {self.api_token}'
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def aclose(self):
        """Release the underlying HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str, tag: str):
        try:
            response = await self._get_client().get(path)
        except httpx.RequestError as e:
            logger.warning(f"Request for {tag} failed: {e}")
            raise NetworkError(str(e)) from e

        if response.status_code == 400:
            raise BadTagError(tag, "rejected by server")
        if response.status_code == 404:
            raise PlayerNotFoundError(tag)
        if response.status_code != 200:
            message = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    message = body.get('message') or body.get('reason')
            except ValueError:
                message = response.text[:200] or None
            logger.warning(f"Server returned {response.status_code} for {tag}: {message}")
            raise ServerError(response.status_code, message)

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"response is not JSON: {e}") from e

    async def fetch(self, tag: str) -> PlayerSnapshot:
        tag = normalize_tag(tag)
        data = await self._get_json(f"/players/{encode_tag(tag)}", tag)
        snapshot = PlayerSnapshot.from_api(data)
        logger.debug(f"Fetched {snapshot.tag} ({snapshot.name})")
        return snapshot

    async def fetch_rankings(self, tag: str) -> PlayerRankings:
        try:
            tag = normalize_tag(tag)
            data = await self._get_json(f"/players/{encode_tag(tag)}/rankings", tag)
            return PlayerRankings.from_api(data)
        except (BadTagError, PlayerNotFoundError, ServerError, NetworkError, DecodeError) as e:
            logger.info(f"Rankings unavailable for {tag}, using unranked fallback: {e}")
            return PlayerRankings.unranked(tag)
