"""
Schedule Index

Per-channel programme lists answering "what's on now" and "what's next".
Lists are kept in source order: nothing here assumes they are sorted or
non-overlapping.
"""
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from iptv_catalog.services.fetch_types import ProgramEntry
from iptv_catalog.utils.timezone import utc_now


class ScheduleIndex:
    """Read-only view over channel id -> programme list."""

    def __init__(self, programs: Mapping[str, list[ProgramEntry]] | None = None) -> None:
        self._programs: dict[str, list[ProgramEntry]] = dict(programs or {})

    def __len__(self) -> int:
        return len(self._programs)

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._programs

    @property
    def programs(self) -> dict[str, list[ProgramEntry]]:
        return self._programs

    def current_program(self, channel_id: str | None, now: datetime | None = None) -> ProgramEntry | None:
        """
        Return the first programme whose [start, stop] window contains now.

        Overlapping windows resolve to whichever comes first in list order.
        """
        if not channel_id:
            return None
        now = now or utc_now()
        for program in self._programs.get(channel_id, ()):
            if program.start <= now <= program.stop:
                return program
        return None

    def upcoming_programs(
        self,
        channel_id: str | None,
        now: datetime | None = None,
        limit: int = 5
    ) -> list[ProgramEntry]:
        """Programmes starting after now, ascending by start, at most limit"""
        if not channel_id or limit <= 0:
            return []
        now = now or utc_now()
        upcoming = [program for program in self._programs.get(channel_id, ()) if program.start > now]
        upcoming.sort(key=lambda program: program.start)
        return upcoming[:limit]
