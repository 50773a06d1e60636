"""Interval concurrence between viewing sessions of different actors."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from concurrent.futures import ProcessPoolExecutor
from datetime import datetime, time, timedelta, timezone
from itertools import repeat
from typing import Sequence

from pydantic import BaseModel

from coview.config import DEFAULT_BUCKET_MINUTES, DEFAULT_WORKERS
from coview.reporting import safe_ratio, seconds_to_hours
from coview.sessions import Session

logger = logging.getLogger(__name__)

# Endpoint kinds. Ends sort before starts at the same instant, so intervals
# that only touch never count as overlapping.
_END = 0
_START = 1


class ActorOverlap(BaseModel):
    """Concurrent viewing time of one actor against everyone else."""

    actor: str
    concurrent_hours: float
    total_hours: float
    pct: float


class PairOverlapStat(BaseModel):
    """Share of actor_a's viewing that ran alongside actor_b."""

    actor_a: str
    actor_b: str
    concurrent_hours: float
    total_hours: float
    pct: float


def overlaps(a: Session, b: Session) -> bool:
    """True if the half-open intervals of a and b intersect.

    A zero-length interval is empty and intersects nothing, even when its
    instant falls inside the other interval.
    """
    if a.duration <= 0 or b.duration <= 0:
        return False
    return a.start < b.end and b.start < a.end


def _naive_flags_for(chunk: Sequence[Session], sessions: Sequence[Session]) -> dict[int, bool]:
    flags: dict[int, bool] = {}
    for session in chunk:
        hit = any(
            other.actor != session.actor and overlaps(session, other)
            for other in sessions
        )
        flags[session.id] = flags.get(session.id, False) or hit
    return flags


def compute_overlap_flags_naive(sessions: Sequence[Session]) -> dict[int, bool]:
    """Flag sessions overlapping another actor's session by testing every pair.

    Quadratic in the number of sessions. Kept as the reference for the sweep.
    """
    return _naive_flags_for(sessions, sessions)


def compute_overlap_flags(sessions: Sequence[Session]) -> dict[int, bool]:
    """Flag sessions overlapping another actor's session with a sweep line.

    Interval endpoints are sorted once. While sweeping, the number of active
    sessions per actor is tracked, along with the active sessions that are not
    flagged yet. When a session starts and any other actor has something
    active, the new session is flagged and so is every unflagged active
    session of the other actors. Each session is flagged at most once, so the
    cost is the sort plus O(actors) per endpoint.

    Endpoints refer to sessions by position, so actors are attributed
    correctly even for repeated ids. Flags are keyed by session id, which
    should be unique; a repeated id is flagged if any of its sessions is.
    """
    flags = {s.id: False for s in sessions}
    points: list[tuple[datetime, int, int]] = []
    for index, session in enumerate(sessions):
        # Zero-length intervals overlap nothing
        if session.duration <= 0:
            continue
        points.append((session.start, _START, index))
        points.append((session.end, _END, index))
    points.sort()

    active: Counter[str] = Counter()
    total_active = 0
    unflagged: defaultdict[str, set[int]] = defaultdict(set)

    for _, kind, index in points:
        session = sessions[index]
        actor = session.actor

        if kind == _END:
            active[actor] -= 1
            total_active -= 1
            unflagged[actor].discard(index)
            continue

        if total_active - active[actor] > 0:
            flags[session.id] = True
            for other_actor, pending in unflagged.items():
                if other_actor == actor or not pending:
                    continue
                for pending_index in pending:
                    flags[sessions[pending_index].id] = True
                pending.clear()
        else:
            unflagged[actor].add(index)

        active[actor] += 1
        total_active += 1

    logger.debug("Sweep over %d endpoints flagged %d sessions", len(points), sum(flags.values()))
    return flags


def compute_overlap_flags_sharded(
    sessions: Sequence[Session],
    workers: int = DEFAULT_WORKERS,
) -> dict[int, bool]:
    """Pairwise overlap test split across worker processes.

    Sessions are cut into disjoint chunks; each chunk is tested against the
    whole set in a process pool and the resulting flag maps are merged. A
    session lives in one chunk only, so merging is a union of flags. With one
    worker or one chunk the test runs in-process.
    """
    if not sessions:
        return {}
    sessions = list(sessions)
    workers = max(1, workers)
    chunk_size = -(-len(sessions) // workers)
    chunks = [sessions[i : i + chunk_size] for i in range(0, len(sessions), chunk_size)]

    if len(chunks) == 1:
        return _naive_flags_for(sessions, sessions)

    flags: dict[int, bool] = {}
    with ProcessPoolExecutor(max_workers=len(chunks)) as executor:
        for partial in executor.map(_naive_flags_for, chunks, repeat(sessions)):
            for session_id, hit in partial.items():
                flags[session_id] = flags.get(session_id, False) or hit
    return flags


def aggregate_by_actor(
    sessions: Sequence[Session],
    flags: dict[int, bool],
) -> dict[str, ActorOverlap]:
    """Sum concurrent and total viewing hours per actor."""
    concurrent_s: defaultdict[str, int] = defaultdict(int)
    total_s: defaultdict[str, int] = defaultdict(int)

    for session in sessions:
        total_s[session.actor] += session.duration
        if flags.get(session.id, False):
            concurrent_s[session.actor] += session.duration

    result: dict[str, ActorOverlap] = {}
    for actor, seconds in total_s.items():
        result[actor] = ActorOverlap(
            actor=actor,
            concurrent_hours=seconds_to_hours(concurrent_s[actor]),
            total_hours=seconds_to_hours(seconds),
            pct=safe_ratio(concurrent_s[actor], seconds),
        )
    return result


def pairwise_overlap(
    sessions: Sequence[Session],
    actor_a: str,
    actor_b: str,
) -> PairOverlapStat:
    """Share of actor_a's hours concurrent with at least one session of actor_b.

    Flags are recomputed on the sessions of the two actors alone. A session of
    actor_a that only overlaps a third actor does not count here.
    """
    own = [s for s in sessions if s.actor == actor_a]
    total_seconds = sum(s.duration for s in own)

    if actor_a == actor_b:
        return PairOverlapStat(
            actor_a=actor_a,
            actor_b=actor_b,
            concurrent_hours=0.0,
            total_hours=seconds_to_hours(total_seconds),
            pct=0.0,
        )

    subset = [s for s in sessions if s.actor in (actor_a, actor_b)]
    flags = compute_overlap_flags(subset)
    concurrent_seconds = sum(s.duration for s in own if flags[s.id])

    return PairOverlapStat(
        actor_a=actor_a,
        actor_b=actor_b,
        concurrent_hours=seconds_to_hours(concurrent_seconds),
        total_hours=seconds_to_hours(total_seconds),
        pct=safe_ratio(concurrent_seconds, total_seconds),
    )


def pairwise_overlap_table(sessions: Sequence[Session]) -> list[PairOverlapStat]:
    """Pairwise overlap for every ordered pair of actors, diagonal included."""
    actors = sorted({s.actor for s in sessions})
    return [pairwise_overlap(sessions, a, b) for a in actors for b in actors]


def time_bucket(t: time, minutes: int = DEFAULT_BUCKET_MINUTES) -> time:
    """Map a time of day to its right-labelled bucket.

    The time is shifted forward by one bucket width and floored to the bucket
    grid, so each label marks the end of its bucket: 20:10 -> 20:30 and
    20:30 -> 21:00 with 30-minute buckets. Labels wrap past midnight.
    """
    of_day = t.hour * 60 + t.minute + minutes
    floored = (of_day // minutes) * minutes % (24 * 60)
    return time(floored // 60, floored % 60)


def time_of_day_overlap_distribution(
    sessions: Sequence[Session],
    flags: dict[int, bool],
    *,
    bucket_minutes: int = DEFAULT_BUCKET_MINUTES,
    utc_offset: timedelta = timedelta(0),
) -> dict[time, float]:
    """Share of overlapping sessions starting in each time-of-day bucket.

    Only the clock time of each start is used; the date is discarded.

    Args:
        sessions: Sessions to project.
        flags: Overlap flags keyed by session id.
        bucket_minutes: Bucket width (default 30 minutes).
        utc_offset: Shift applied to the UTC start before projecting, for
            viewers in another timezone.

    Returns:
        Dict mapping bucket label (bucket end) to a fraction of all flagged
        sessions, ordered by label. Empty when nothing overlaps.
    """
    counts: Counter[time] = Counter()
    for session in sessions:
        if flags.get(session.id, False):
            local = session.start.astimezone(timezone.utc) + utc_offset
            counts[time_bucket(local.time(), bucket_minutes)] += 1

    total = sum(counts.values())
    return {label: safe_ratio(counts[label], total) for label in sorted(counts)}
