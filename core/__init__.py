"""Core module - accounting-neutral models, audit, observability and config.

This module contains the canonical data models, the audit store, logging and
metrics, and settings. It is intentionally independent of the accounting
system; gateway-specific logic belongs in /connectors/.
"""

__version__ = "1.0.0"
