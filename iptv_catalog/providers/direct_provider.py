import logging

from iptv_catalog.providers.base import CatalogProvider
from iptv_catalog.services.errors import ProviderError
from iptv_catalog.services.m3u_parser_service import playlist_epg_url
from iptv_catalog.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)


class DirectProvider(CatalogProvider):
    """Plain playlist URL plus an optional XMLTV URL."""

    name = "direct"

    _header_epg_url: str | None = None

    async def fetch_playlist_text(self) -> str:
        if not self.config.m3u_url:
            raise ProviderError("No playlist URL configured")

        logger.info(f"Fetching playlist: {sanitize_url_for_logging(self.config.m3u_url)}")
        content = await self._fetch_text(self.config.m3u_url)
        self._header_epg_url = playlist_epg_url(content)
        return content

    async def fetch_schedule_document(self) -> bytes | None:
        if not self.config.enable_epg:
            return None

        url = self.config.epg_url or self._header_epg_url
        if not url:
            logger.info("Schedule enabled but no XMLTV URL configured or advertised")
            return None

        logger.info(f"Fetching schedule: {sanitize_url_for_logging(url)}")
        return await self._fetch_document(url)
