"""Temporal client factory.

Creates connections to a Temporal server using settings from the environment
(see core.config).
"""

import os
from typing import Optional

from temporalio.client import Client

from core.config import Settings, load_settings


async def get_temporal_client(settings: Optional[Settings] = None) -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables:
    - TEMPORAL_ADDRESS: Server address (default "localhost:7233")
    - TEMPORAL_NAMESPACE: Namespace (default "default")
    - TEMPORAL_API_KEY: API key for a hosted namespace (optional; enables TLS)

    Returns:
        Connected Temporal client

    Raises:
        ValueError: If the address is empty
    """
    settings = settings or load_settings()
    if not settings.temporal_address:
        raise ValueError(
            "TEMPORAL_ADDRESS environment variable is empty. "
            "Set it to your Temporal server address (e.g., 'localhost:7233')"
        )

    api_key = os.getenv("TEMPORAL_API_KEY")
    if api_key:
        return await Client.connect(
            target_host=settings.temporal_address,
            namespace=settings.temporal_namespace,
            tls=True,
            api_key=api_key,
        )

    return await Client.connect(
        target_host=settings.temporal_address,
        namespace=settings.temporal_namespace,
    )
