"""In-memory session store for viewing activity."""

from __future__ import annotations

import logging
import math
import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from coview.config import EXPORT_COLUMNS
from coview.errors import EmptyDatasetError, MalformedRowError

logger = logging.getLogger(__name__)

_CLOCK_DURATION = re.compile(r"^(?:(\d+):)?(\d{1,2}):(\d{2})$")


class RawRow(BaseModel):
    """Raw viewing row as handed over by the export loader."""

    profile_name: str
    title: str
    start_time: str
    duration: int | float | str | None = None
    supplemental_video_type: str | None = None


class Session(BaseModel):
    """One viewing session over the half-open interval [start, end)."""

    model_config = ConfigDict(frozen=True)

    id: int
    actor: str
    title: str
    start: datetime
    duration: int = Field(default=0, ge=0)

    @property
    def end(self) -> datetime:
        return self.start + timedelta(seconds=self.duration)


def _parse_timestamp(ts: str) -> datetime:
    """Parse an ISO 8601-like timestamp; naive values are taken as UTC."""
    dt = datetime.fromisoformat(ts.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_duration(value: Any) -> int:
    """Convert a raw duration to whole seconds.

    Accepts seconds as a number or numeric string, and clock strings like
    "0:45:12" or "12:05". Missing or unreadable values become 0. Negative
    values are returned as-is so the caller can reject the row.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return int(value)

    text = str(value).strip()
    if not text:
        return 0
    match = _CLOCK_DURATION.match(text)
    if match:
        hours, minutes, seconds = match.groups()
        return int(hours or 0) * 3600 + int(minutes) * 60 + int(seconds)
    try:
        number = float(text)
    except ValueError:
        return 0
    if not math.isfinite(number):
        return 0
    return int(number)


def _to_session(index: int, session_id: int, row: RawRow) -> Session:
    try:
        start = _parse_timestamp(row.start_time)
    except ValueError as e:
        raise MalformedRowError(index, f"unparsable start_time {row.start_time!r}") from e

    duration = parse_duration(row.duration)
    if duration < 0:
        raise MalformedRowError(index, f"negative duration {duration}")

    return Session(
        id=session_id,
        actor=row.profile_name,
        title=row.title,
        start=start,
        duration=duration,
    )


class SessionStore:
    """Normalized viewing sessions held in memory.

    Rows are loaded once per run; every analysis reads from `sessions`.
    """

    def __init__(self, sessions: Iterable[Session] = ()) -> None:
        self.sessions: list[Session] = list(sessions)
        self.rejected: list[MalformedRowError] = []

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Mapping[str, Any] | RawRow],
        *,
        primary_only: bool = True,
    ) -> SessionStore:
        """Create a store and load the given rows into it."""
        store = cls()
        store.load(rows, primary_only=primary_only)
        return store

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, *, primary_only: bool = True) -> SessionStore:
        """Create a store from a DataFrame with row or raw export column names."""
        frame = frame.rename(columns=EXPORT_COLUMNS)
        frame = frame.astype(object).where(frame.notna(), None)
        return cls.from_rows(frame.to_dict(orient="records"), primary_only=primary_only)

    def load(
        self,
        rows: Iterable[Mapping[str, Any] | RawRow],
        *,
        primary_only: bool = True,
    ) -> list[Session]:
        """Normalize raw rows into sessions, appending them to the store.

        Rows that fail validation or have an unparsable timestamp or a negative
        duration are skipped and kept in `rejected`. Returns the new sessions.

        Args:
            rows: Mappings with the RawRow fields, or RawRow instances.
            primary_only: Skip rows tagged with a supplemental video type.
        """
        loaded: list[Session] = []
        skipped_supplemental = 0

        for index, raw in enumerate(rows):
            try:
                row = raw if isinstance(raw, RawRow) else RawRow.model_validate(raw)
            except ValidationError as e:
                self._reject(MalformedRowError(index, f"validation error: {e.error_count()} field(s)"))
                continue

            if primary_only and row.supplemental_video_type:
                skipped_supplemental += 1
                continue

            try:
                session = _to_session(index, len(self.sessions), row)
            except MalformedRowError as e:
                self._reject(e)
                continue

            self.sessions.append(session)
            loaded.append(session)

        if skipped_supplemental:
            logger.debug("Skipped %d supplemental rows", skipped_supplemental)
        if not self.sessions:
            logger.warning("Session store is empty after load")
        return loaded

    def _reject(self, error: MalformedRowError) -> None:
        logger.warning("Skipping malformed %s", error)
        self.rejected.append(error)

    def require_sessions(self) -> list[Session]:
        """Return the sessions, raising EmptyDatasetError if there are none."""
        if not self.sessions:
            raise EmptyDatasetError()
        return self.sessions

    def actors(self) -> set[str]:
        return {s.actor for s in self.sessions}

    def titles_by_actor(self) -> dict[str, set[str]]:
        """Map each actor to the set of titles they viewed."""
        result: defaultdict[str, set[str]] = defaultdict(set)
        for session in self.sessions:
            result[session.actor].add(session.title)
        return dict(result)

    def __len__(self) -> int:
        return len(self.sessions)
