"""Pinata IPFS client for uploading token metadata."""

from typing import Any

import httpx

from vaultmint.services.exceptions import (
    IPFSAuthError,
    IPFSNetworkError,
    IPFSRateLimitError,
    IPFSValidationError,
    TransientError,
)


class PinataClient:
    """Metadata upload client using Pinata pinning service."""

    def __init__(
        self,
        jwt_token: str,
        base_url: str = "https://api.pinata.cloud",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Pinata client.

        Args:
            jwt_token: Pinata API JWT token (from PINATA_JWT env var)
            base_url: Pinata API endpoint (from PINATA_API_URL env var)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (mock transports in tests)
        """
        self.jwt_token = jwt_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {jwt_token}",
            "Content-Type": "application/json",
        }

    async def upload_metadata(self, metadata: dict[str, Any], name: str) -> str:
        """Upload metadata JSON to IPFS via Pinata.

        Args:
            metadata: Token metadata document (name, symbol, image, ...)
            name: Human-readable pin name shown in the Pinata dashboard

        Returns:
            IPFS CID (Content Identifier) as string (CIDv1 format)

        Raises:
            TransientError: Network timeout, rate limit (429), service unavailable (503)
            PermanentError: Invalid API key (401), forbidden (403), bad request (400)
        """
        payload = {
            "pinataContent": metadata,
            "pinataOptions": {"cidVersion": 1},
            "pinataMetadata": {"name": name},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/pinning/pinJSONToIPFS",
                    headers=self.headers,
                    json=payload,
                )
        except httpx.TimeoutException as e:
            raise IPFSNetworkError(f"Request timeout after {self.timeout}s: {str(e)}")
        except httpx.HTTPError as e:
            raise IPFSNetworkError(f"Network error: {str(e)}")

        # Error classification
        if response.status_code == 429:
            raise IPFSRateLimitError(f"Rate limit exceeded: {response.text}")
        elif response.status_code in (500, 502, 503):
            raise TransientError(f"Service unavailable ({response.status_code}): {response.text}")
        elif response.status_code == 401:
            raise IPFSAuthError(
                "Unauthorized: Invalid API key. "
                "Check PINATA_JWT configuration in .env file. "
                "Verify JWT token is active at https://app.pinata.cloud/developers/api-keys"
            )
        elif response.status_code == 403:
            raise IPFSAuthError(
                "Forbidden: Access denied. "
                "Check PINATA_JWT permissions (requires pinJSONToIPFS access)."
            )
        elif response.status_code == 400:
            raise IPFSValidationError(f"Bad request: {response.text}")
        elif response.is_error:
            raise IPFSNetworkError(f"Unexpected response ({response.status_code}): {response.text}")

        return response.json()["IpfsHash"]
