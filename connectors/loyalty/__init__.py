"""Loyalty API Connector Package.

Implements CatalogLookup and DepartmentLookup against the loyalty API.
"""

from connectors.loyalty.loyalty_client import LoyaltyClient, LoyaltyApiConfig

__all__ = [
    "LoyaltyClient",
    "LoyaltyApiConfig",
]
