"""Fast Accounting HTTP Gateway.

Low-level HTTP client for the Fast accounting API.
Handles authentication headers, the one-shot re-authentication on 401/403,
response parsing and error handling.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from connectors.base import (
    AuthorizationExpiredError,
    DocumentType,
    ExternalGateway,
    ExternalServiceError,
    GatewayResponse,
)
from connectors.fast_accounting.fast_auth import FastAuthConfig, FastAuthProvider

logger = logging.getLogger(__name__)


ENDPOINTS: Dict[DocumentType, str] = {
    DocumentType.CUSTOMER: "Customer",
    DocumentType.SALES_ORDER: "salesOrder",
    DocumentType.SALES_INVOICE: "salesInvoice",
    DocumentType.SALES_RETURN: "salesReturn",
    DocumentType.GXT_TRANSFER: "gxtInvoice",
    DocumentType.CASH_RECEIPT: "cashReceipt",
    DocumentType.CREDIT_ADVICE: "creditAdvice",
}

AUTH_FAILURE_STATUSES = (401, 403)


@dataclass
class FastApiConfig:
    """Configuration for the Fast API gateway."""
    base_url: str
    timeout_seconds: int = 30

    def url_for(self, document_type: DocumentType) -> str:
        return f"{self.base_url.rstrip('/')}/{ENDPOINTS[document_type]}"


class FastGateway(ExternalGateway):
    """HTTP gateway for the Fast accounting API.

    Provides:
    - Authenticated document submission
    - Exactly one re-authentication and retry on 401/403
    - Normalized GatewayResponse parsing

    Usage:
        gateway = FastGateway(auth_provider, FastApiConfig(base_url))
        async with gateway:
            response = await gateway.submit(DocumentType.SALES_ORDER, payload)
    """

    def __init__(self, auth_provider: FastAuthProvider, api_config: FastApiConfig):
        """Initialize gateway.

        Args:
            auth_provider: Shared FastAuthProvider
            api_config: API configuration
        """
        self.auth_provider = auth_provider
        self.api_config = api_config
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_settings(cls, settings) -> "FastGateway":
        """Build a gateway from core.config.Settings.

        Raises:
            ValueError: If the accounting URL or credentials are missing
        """
        if not settings.fast_base_url:
            raise ValueError("FAST_API_BASE_URL environment variable not set")
        if not settings.fast_username or not settings.fast_password:
            raise ValueError("FAST_API_USERNAME / FAST_API_PASSWORD environment variables not set")

        auth = FastAuthProvider(FastAuthConfig(
            base_url=settings.fast_base_url,
            username=settings.fast_username,
            password=settings.fast_password,
            timeout_seconds=settings.http_timeout_seconds,
        ))
        return cls(auth, FastApiConfig(
            base_url=settings.fast_base_url,
            timeout_seconds=settings.http_timeout_seconds,
        ))

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def disconnect(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "FastGateway":
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.disconnect()

    async def submit(self, document_type: DocumentType, payload: Dict[str, Any]) -> GatewayResponse:
        """Submit a document.

        Args:
            document_type: Which document endpoint to call
            payload: Document body

        Returns:
            GatewayResponse parsed from the body

        Raises:
            AuthorizationExpiredError: 401/403 after one refresh and retry
            ExternalServiceError: Other non-2xx status or transport failure
        """
        if self._session is None:
            await self.connect()

        url = self.api_config.url_for(document_type)
        token = await self.auth_provider.get_token()

        for attempt in range(2):
            status, body = await self._post(url, token.authorization_header, payload, document_type)

            if status in AUTH_FAILURE_STATUSES:
                if attempt == 0:
                    logger.warning("Got %d from %s, re-authenticating once", status, url)
                    token = await self.auth_provider.refresh(stale=token)
                    continue
                raise AuthorizationExpiredError(
                    f"Authorization failed after refresh: {body}",
                    status,
                    document_type,
                    body,
                )

            if status >= 400:
                raise ExternalServiceError(
                    f"API error {status}: {body}",
                    status,
                    document_type,
                    body,
                )

            response = GatewayResponse.from_raw(self._decode(body))
            logger.info(
                "%s submitted: status=%s guid=%s",
                document_type.value, response.status, response.correlation_id,
            )
            return response

        raise ExternalServiceError("Request failed", document_type=document_type)

    async def _post(
        self,
        url: str,
        authorization: str,
        payload: Dict[str, Any],
        document_type: DocumentType,
    ):
        """POST and return (status, text)."""
        timeout = aiohttp.ClientTimeout(total=self.api_config.timeout_seconds)
        headers = {
            "Authorization": authorization,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            async with self._session.post(url, json=payload, headers=headers, timeout=timeout) as response:
                return response.status, await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExternalServiceError(
                f"Request to {url} failed: {type(e).__name__}: {e}",
                document_type=document_type,
            ) from e

    @staticmethod
    def _decode(body: str) -> Any:
        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError:
            return body


def gateway_from_env() -> FastGateway:
    """Build a gateway from environment variables (see core.config)."""
    from core.config import load_settings

    return FastGateway.from_settings(load_settings())
