"""Aggregation helpers and tabular views shared by the analyses."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING, Hashable, Iterable, Mapping, TypeVar

import pandas as pd
from pydantic import BaseModel

if TYPE_CHECKING:
    from coview.sessions import Session

K = TypeVar("K", bound=Hashable)

WEEKDAY_LABELS = {
    "en": ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"),
    "ru": ("Пн", "Вт", "Ср", "Чт", "Пт", "Сб", "Вс"),
}


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0.0 when the denominator is zero."""
    if denominator == 0:
        return 0.0
    return numerator / denominator


def seconds_to_hours(seconds: float) -> float:
    return seconds / 3600


def hours_by_actor(sessions: Iterable[Session]) -> dict[str, float]:
    """Total viewing hours per actor."""
    seconds: defaultdict[str, int] = defaultdict(int)
    for session in sessions:
        seconds[session.actor] += session.duration
    return {actor: seconds_to_hours(total) for actor, total in seconds.items()}


def percentage_of_total(values: Mapping[K, float]) -> dict[K, float]:
    """Each value as a fraction of the sum of all values."""
    total = sum(values.values())
    return {key: safe_ratio(value, total) for key, value in values.items()}


def to_frame(records: Iterable[BaseModel]) -> pd.DataFrame:
    """Build a DataFrame with one row per output record."""
    return pd.DataFrame([record.model_dump() for record in records])


def pair_matrix(
    stats: Iterable[BaseModel],
    value: str = "pct",
    *,
    row: str = "actor_a",
    column: str = "actor_b",
) -> pd.DataFrame:
    """Pivot ordered-pair records into a square actor x actor matrix.

    Missing pairs are filled with 0. Used for chord and heatmap views.
    """
    frame = to_frame(stats)
    if frame.empty:
        return pd.DataFrame()
    matrix = frame.pivot(index=row, columns=column, values=value)
    actors = sorted(set(matrix.index) | set(matrix.columns))
    matrix = matrix.reindex(index=actors, columns=actors).fillna(0.0)
    matrix.index.name = None
    matrix.columns.name = None
    return matrix


def weekday_label(dt: datetime, locale: str = "en") -> str:
    """Short weekday name of dt in the given locale ("en" or "ru").

    Raises:
        ValueError: If the locale is not supported.
    """
    try:
        labels = WEEKDAY_LABELS[locale]
    except KeyError:
        raise ValueError(
            f"Unsupported locale '{locale}'. Use one of: {', '.join(sorted(WEEKDAY_LABELS))}"
        ) from None
    return labels[dt.weekday()]


def format_hours(hours: float) -> str:
    """Format fractional hours as 'Xh Ym', 'Ym', or '<1m'."""
    total_minutes = int(round(hours * 60))
    if total_minutes == 0:
        return "<1m" if hours > 0 else "0m"
    h, m = divmod(total_minutes, 60)
    if h > 0:
        return f"{h}h {m:2d}m"
    return f"{m}m"


def format_pct(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"
