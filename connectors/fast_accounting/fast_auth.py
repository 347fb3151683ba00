"""Fast Accounting Authentication Provider.

Handles username/password login against the Fast accounting API and keeps
one shared, time-boxed token for all concurrent submissions.

Refresh is single-flight: an asyncio.Lock guards login, so callers that
arrive while a refresh is running wait for it and reuse its token.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import aiohttp

from connectors.base import ExternalServiceError

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_MINUTES = 180


@dataclass
class FastAuthConfig:
    """Configuration for Fast authentication.

    Attributes:
        base_url: API base URL (e.g. http://host:6688/Fast)
        username: Login user name
        password: Login password
        timeout_seconds: Login request timeout
    """
    base_url: str
    username: str
    password: str
    timeout_seconds: int = 30

    @property
    def login_endpoint(self) -> str:
        """Get the login endpoint."""
        return f"{self.base_url.rstrip('/')}/Login"


@dataclass
class FastToken:
    """Login token with expiration tracking."""
    token: str
    expires_minutes: int = DEFAULT_EXPIRES_MINUTES
    obtained_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def expires_at(self) -> datetime:
        """When the token expires."""
        return self.obtained_at + timedelta(minutes=self.expires_minutes)

    @property
    def is_expired(self) -> bool:
        """Check if token is expired (with 10-minute buffer)."""
        buffer = timedelta(minutes=10)
        return datetime.utcnow() >= (self.expires_at - buffer)

    @property
    def authorization_header(self) -> str:
        """Get the Authorization header value."""
        return f"Bearer {self.token}"


class FastAuthProvider:
    """Authentication provider for the Fast accounting API.

    Lifecycle: acquire (get_token) -> refresh (on expiry or invalidate)
    -> expire. Only one login runs at a time.

    Usage:
        auth = FastAuthProvider(FastAuthConfig(base_url, "user", "secret"))
        header = await auth.get_authorization_header()
    """

    def __init__(self, config: FastAuthConfig, session: Optional[aiohttp.ClientSession] = None):
        """Initialize auth provider.

        Args:
            config: Authentication configuration
            session: Optional shared aiohttp session
        """
        self.config = config
        self._session = session
        self._token: Optional[FastToken] = None
        self._lock = asyncio.Lock()
        self.login_count = 0

    @property
    def token(self) -> Optional[FastToken]:
        return self._token

    async def get_token(self) -> FastToken:
        """Get a valid token, logging in if needed.

        Returns:
            A non-expired FastToken

        Raises:
            ExternalServiceError: If login fails
        """
        token = self._token
        if token and not token.is_expired:
            return token

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self._token and not self._token.is_expired:
                return self._token
            self._token = await self._login()
            return self._token

    async def refresh(self, stale: Optional[FastToken] = None) -> FastToken:
        """Force a new login unless someone already replaced the stale token.

        Args:
            stale: The token that was rejected; if the current token differs,
                it is returned without another login
        """
        async with self._lock:
            if self._token is not None and self._token is not stale and not self._token.is_expired:
                return self._token
            self._token = await self._login()
            return self._token

    def invalidate(self) -> None:
        """Drop the cached token."""
        self._token = None

    async def get_authorization_header(self) -> str:
        token = await self.get_token()
        return token.authorization_header

    async def _login(self) -> FastToken:
        """POST credentials to /Login and build a token."""
        self.login_count += 1
        body = {"UserName": self.config.username, "Password": self.config.password}
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)

        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        try:
            async with session.post(self.config.login_endpoint, json=body, timeout=timeout) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ExternalServiceError(
                        f"Login failed: {response.status} - {error_text}",
                        response.status,
                        raw=error_text,
                    )
                data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise ExternalServiceError(f"Login request failed: {e}") from e
        finally:
            if owns_session:
                await session.close()

        if not isinstance(data, dict):
            data = {}
        token = data.get("token")
        if not token:
            raise ExternalServiceError("Login response carried no token", raw=data)

        expires = int(data.get("expires_minute") or DEFAULT_EXPIRES_MINUTES)
        logger.info("Fast token refreshed, valid for %d minutes", expires)
        return FastToken(token=token, expires_minutes=expires)
