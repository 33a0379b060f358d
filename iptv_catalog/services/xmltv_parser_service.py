import asyncio
import logging
from typing import Optional

from lxml import etree # type: ignore

from iptv_catalog.services.fetch_types import ProgramEntry
from iptv_catalog.utils.timezone import DateFormatError, parse_xmltv_time

logger = logging.getLogger(__name__)

_XML_PARSER_OPTIONS = dict(huge_tree=True, resolve_entities=False, no_network=True)


def parse_xmltv(content: str | bytes, offset_hours: float = 0.0) -> dict[str, list[ProgramEntry]]:
    """
    Parse an XMLTV document into per-channel programme lists

    A document that cannot be parsed yields an empty schedule rather than a
    partial one. Individual programmes with missing channel or unusable
    timestamps are skipped.

    Args:
        content: Raw XMLTV document, or already-decoded text
        offset_hours: Normalized hour offset added to every timestamp

    Returns:
        Mapping of channel id -> programmes in document order
    """
    if not content:
        return {}

    # Bytes keep the document's own encoding declaration; decoded text is re-encoded as UTF-8
    parser_options = dict(_XML_PARSER_OPTIONS)
    if isinstance(content, str):
        content = content.encode('utf-8')
        parser_options['encoding'] = 'utf-8'

    try:
        logger.debug("  Loading XML document...")
        root = etree.fromstring(content, parser=etree.XMLParser(**parser_options))
    except (etree.XMLSyntaxError, ValueError) as e:
        logger.error(f"  XML parsing error, schedule discarded: {e}")
        return {}

    if root is None:
        return {}

    schedule: dict[str, list[ProgramEntry]] = {}
    skipped = 0

    for programme in root.iter('programme'):
        program = _parse_single_program(programme, offset_hours)
        if program is None:
            skipped += 1
            continue
        schedule.setdefault(program.channel_id, []).append(program)

    total = sum(len(programs) for programs in schedule.values())
    logger.info(f"XMLTV parsing complete: {len(schedule)} channels, {total} programs ({skipped} skipped)")

    return schedule


def _parse_single_program(programme: etree._Element, offset_hours: float) -> Optional[ProgramEntry]:
    """Parse single programme element"""
    channel_id = programme.get('channel')
    start_str = programme.get('start')
    stop_str = programme.get('stop')

    if not channel_id or not start_str or not stop_str:
        return None

    try:
        start_time = parse_xmltv_time(start_str, offset_hours)
        stop_time = parse_xmltv_time(stop_str, offset_hours)
    except DateFormatError:
        return None

    return ProgramEntry(
        channel_id=channel_id,
        start=start_time,
        stop=stop_time,
        title=_get_text(programme, 'title', default='Unknown'),
        description=_get_text(programme, 'desc', default=''),
    )


def _get_text(element: etree._Element, tag: str, default: str = '') -> str:
    """Safely extract text from XML element"""
    child = element.find(tag)
    if child is None or not child.text:
        return default
    return child.text.strip()


async def parse_xmltv_async(
    content: str | bytes,
    offset_hours: float = 0.0,
    *,
    parse_timeout_seconds: int | None = None
) -> dict[str, list[ProgramEntry]]:
    """
    Parse an XMLTV document off the event loop with timeout protection.

    A timeout is treated like any other parse failure: the schedule is empty.

    Keyword Args:
        parse_timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)
    """
    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None

    loop = asyncio.get_running_loop()
    parse_task = loop.run_in_executor(None, parse_xmltv, content, offset_hours)
    try:
        if effective_timeout:
            return await asyncio.wait_for(parse_task, timeout=effective_timeout)
        return await parse_task
    except asyncio.TimeoutError:
        logger.error("XML parsing timed out after %ss, schedule discarded", effective_timeout)
        return {}
