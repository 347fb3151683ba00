"""Fast Accounting Connector Package.

Implements the ExternalGateway interface for the Fast accounting API.
"""

from connectors.fast_accounting.fast_auth import FastAuthProvider, FastAuthConfig, FastToken
from connectors.fast_accounting.fast_client import FastGateway, FastApiConfig, gateway_from_env

__all__ = [
    # Auth
    "FastAuthProvider",
    "FastAuthConfig",
    "FastToken",
    # Gateway
    "FastGateway",
    "FastApiConfig",
    "gateway_from_env",
]
