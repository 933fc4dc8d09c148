"""Bearer token resolution against the external identity provider."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from cardscout.config import settings
from cardscout.errors import IdentityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Owner:
    id: str
    email: Optional[str] = None


class IdentityClient:
    """Resolves a bearer token to the owner it was issued to."""

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = settings.identity_url if url is None else url
        self.api_key = settings.identity_api_key if api_key is None else api_key
        self.timeout = timeout or settings.identity_timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def resolve(self, token: str) -> Optional[Owner]:
        """
        Look up the owner for a token.

        Returns:
            The owner, or None if the provider rejects the token

        Raises:
            IdentityError: provider not configured, unreachable or misbehaving
        """
        if not self.url:
            raise IdentityError("Identity provider not configured")

        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        client = await self._get_client()
        try:
            response = await client.get(self.url, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Identity provider unreachable: {e}")
            raise IdentityError(f"Identity provider unreachable: {e}") from e

        if response.status_code in (401, 403):
            return None
        if response.status_code != 200:
            raise IdentityError(f"Identity provider returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise IdentityError("Identity provider returned invalid JSON") from e

        owner_id = data.get("id") if isinstance(data, dict) else None
        if not owner_id:
            return None
        return Owner(id=str(owner_id), email=data.get("email"))
