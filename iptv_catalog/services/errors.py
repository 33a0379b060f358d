"""
Exception hierarchy for the catalog service.

Only ConfigTokenError ever reaches an HTTP caller; everything else is
handled at the ingestion or enrichment boundary.
"""


class CatalogError(Exception):
    """Base class for catalog service errors."""


class ProviderError(CatalogError):
    """Raised when an upstream provider cannot be fetched or returns garbage."""


class ConfigTokenError(CatalogError):
    """Raised when a per-user configuration token cannot be decoded."""


__all__ = ["CatalogError", "ProviderError", "ConfigTokenError"]
