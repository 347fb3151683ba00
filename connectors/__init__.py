"""Connectors - Pluggable collaborator integrations.

This package contains the abstract collaborator interfaces and concrete
implementations for the external systems the order engine talks to.

The order engine is gateway-neutral. This package handles:
- Accounting gateway authentication
- Document submission and response parsing
- Reference data lookups (catalog, departments)
- Payment record sources

Key Design Principle:
- The submission orchestrator depends ONLY on the interfaces in base.py
- Lookups return canonical models (CatalogItem, Department, ...)
- No Fast/loyalty-specific types leak through the interfaces
"""

from connectors.base import (
    # Interfaces
    CatalogLookup,
    DepartmentLookup,
    ExternalGateway,
    PaymentRecordSource,
    
    # Types
    DocumentType,
    GatewayResponse,
    SubmittedDocument,
    is_duplicate_message,
    
    # Errors
    ExternalServiceError,
    AuthorizationExpiredError,
    DuplicateSubmissionError,
    ReferenceNotFoundError,
)

__all__ = [
    # Interfaces
    "CatalogLookup",
    "DepartmentLookup",
    "ExternalGateway",
    "PaymentRecordSource",
    
    # Types
    "DocumentType",
    "GatewayResponse",
    "SubmittedDocument",
    "is_duplicate_message",
    
    # Errors
    "ExternalServiceError",
    "AuthorizationExpiredError",
    "DuplicateSubmissionError",
    "ReferenceNotFoundError",
]
