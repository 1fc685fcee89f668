"""
Whop API client
Optional enrichment of webhook data with the full membership record
"""

from typing import Any, Dict, Optional

import httpx
import structlog

from member_directory.core.exceptions import WhopAPIError

logger = structlog.get_logger(__name__)


class WhopAPIClient:
    """Client for the Whop REST API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.whop.com/api/v2",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Whop API client

        Args:
            api_key: Default API key, used when a tenant has none stored
            base_url: Base URL for the Whop API
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    @staticmethod
    def _authorization(api_key: str) -> str:
        return api_key if api_key.startswith("Bearer ") else f"Bearer {api_key}"

    async def _request(self, method: str, path: str, api_key: str) -> Dict[str, Any]:
        try:
            response = await self._client.request(
                method,
                path,
                headers={
                    "Authorization": self._authorization(api_key),
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise WhopAPIError(f"Whop API request failed: {e.__class__.__name__}") from e

        if response.status_code < 200 or response.status_code >= 300:
            raise WhopAPIError(f"Whop API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise WhopAPIError("Whop API returned invalid JSON") from e

        if not isinstance(data, dict):
            raise WhopAPIError("Whop API returned a non-object body")
        return data

    async def get_membership(
        self,
        membership_id: str,
        api_key: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Fetch a membership record

        Returns None when no key is configured or the lookup fails for any
        reason; callers continue with webhook data alone.
        """
        key = api_key or self.api_key
        if not key:
            logger.debug("No Whop API key available, skipping enrichment")
            return None
        if not membership_id:
            return None

        try:
            return await self._request("GET", f"/memberships/{membership_id}", key)
        except WhopAPIError as e:
            logger.warning("Whop enrichment unavailable", membership_id=membership_id, error=str(e))
            return None

    async def aclose(self) -> None:
        await self._client.aclose()
