"""
Providers package

Upstream ingestion sources, selected by the user configuration.
"""
from iptv_catalog.providers.base import CatalogProvider
from iptv_catalog.providers.direct_provider import DirectProvider
from iptv_catalog.providers.xtream_provider import XtreamProvider
from iptv_catalog.schemas import AddonConfig


def create_provider(config: AddonConfig, **kwargs) -> CatalogProvider:
    """Pick the provider variant for a configuration"""
    if config.provider == "xtream":
        return XtreamProvider(config, **kwargs)
    return DirectProvider(config, **kwargs)


__all__ = [
    'CatalogProvider',
    'DirectProvider',
    'XtreamProvider',
    'create_provider',
]
