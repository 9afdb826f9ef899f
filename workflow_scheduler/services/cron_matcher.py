"""
Cron evaluation for the dispatcher and executor.

A schedule fires when its most recent occurrence (at or before ``now``, in the
schedule's own timezone) falls inside the trailing dispatch window. Matching is
a property of "did a tick happen in the window just evaluated", so a dispatcher
that runs a few seconds late still picks the tick up.

Six-field expressions carry a leading seconds field:
``sec min hour day-of-month month day-of-week``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from croniter import CroniterError, croniter

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(seconds=60)

# Everything croniter/zoneinfo raise for a bad expression or timezone name.
# ZoneInfoNotFoundError is a KeyError.
CRON_INPUT_ERRORS = (CroniterError, ValueError, KeyError, TypeError, AttributeError)


@dataclass(frozen=True)
class CronMatch:
    triggered: bool
    occurrence: datetime | None = None
    error: str | None = None


def build_croniter(cron_expression: str, start: datetime) -> croniter:
    return croniter(cron_expression, start, second_at_beginning=True)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _wall_clock(moment: datetime, tz: ZoneInfo) -> tuple[datetime, timedelta]:
    """
    Return the naive local time of ``moment`` and the length of the repeated
    wall-clock span it falls in (zero outside a DST fall-back hour).
    """
    local = _as_utc(moment).astimezone(tz)
    repeated = local.replace(fold=0).utcoffset() - local.replace(fold=1).utcoffset()
    return local.replace(tzinfo=None), max(repeated, timedelta(0))


def _instants(wall: datetime, tz: ZoneInfo) -> list[datetime]:
    """
    UTC instants a wall-clock time denotes: two in a repeated hour, one
    otherwise. A time skipped by a spring-forward jump is pushed forward by the
    size of the jump.
    """
    candidates = {_as_utc(wall.replace(tzinfo=tz, fold=fold)) for fold in (0, 1)}
    existing = sorted(c for c in candidates if c.astimezone(tz).replace(tzinfo=None) == wall)
    return existing or [_as_utc(wall.replace(tzinfo=tz, fold=0))]


def _wall_at_or_before(cron_expression: str, wall: datetime) -> datetime:
    # get_prev is strictly-before; step forward once to catch a tick exactly on ``wall``.
    itr = build_croniter(cron_expression, wall)
    previous = itr.get_prev(datetime)
    following = itr.get_next(datetime)
    return following if following <= wall else previous


def previous_occurrence(cron_expression: str, tz_name: str, now: datetime) -> datetime:
    """
    Return the most recent occurrence at or before ``now`` in UTC.

    Ticks are matched on naive wall-clock time and then mapped to every UTC
    instant that wall time denotes, so the repeated hour of a fall-back day
    fires in both passes and the result is never after ``now``.
    Raises on malformed input.
    """
    tz = ZoneInfo(tz_name)
    now_utc = _as_utc(now)
    wall_now, repeated = _wall_clock(now_utc, tz)

    # During the second pass of a repeated hour, later wall times may still
    # denote earlier instants (their first pass).
    wall = _wall_at_or_before(cron_expression, wall_now + repeated)
    best: datetime | None = None
    while True:
        instants = _instants(wall, tz)
        reached = [instant for instant in instants if instant <= now_utc]
        if reached and (best is None or reached[-1] > best):
            best = reached[-1]
        if len(reached) == len(instants):
            return best
        wall = build_croniter(cron_expression, wall).get_prev(datetime)


def evaluate_trigger(
    cron_expression: str,
    tz_name: str,
    now: datetime,
    window: timedelta = DEFAULT_WINDOW,
) -> CronMatch:
    """Decide whether a tick fired in ``[now - window, now]``. Never raises."""
    try:
        occurrence = previous_occurrence(cron_expression, tz_name, now)
    except CRON_INPUT_ERRORS as exc:
        return CronMatch(triggered=False, error=f"Invalid cron expression: {cron_expression} ({exc})")

    elapsed = _as_utc(now) - occurrence
    triggered = timedelta(0) <= elapsed < window
    return CronMatch(triggered=triggered, occurrence=occurrence)


def should_trigger(
    cron_expression: str,
    tz_name: str,
    now: datetime,
    window: timedelta = DEFAULT_WINDOW,
) -> bool:
    match = evaluate_trigger(cron_expression, tz_name, now, window)
    if match.error:
        logger.warning(match.error)
    return match.triggered


def _following_occurrence(cron_expression: str, tz_name: str, from_time: datetime) -> datetime:
    tz = ZoneInfo(tz_name)
    from_utc = _as_utc(from_time)
    wall_from, repeated = _wall_clock(from_utc, tz)

    # During the first pass of a repeated hour, earlier wall times may still
    # denote later instants (their second pass).
    wall = build_croniter(cron_expression, wall_from - repeated).get_next(datetime)
    best: datetime | None = None
    while True:
        instants = _instants(wall, tz)
        ahead = [instant for instant in instants if instant > from_utc]
        if ahead and (best is None or ahead[0] < best):
            best = ahead[0]
        if len(ahead) == len(instants):
            return best
        wall = build_croniter(cron_expression, wall).get_next(datetime)


def next_occurrence(cron_expression: str, tz_name: str, from_time: datetime) -> datetime | None:
    """
    Return the first occurrence strictly after ``from_time`` in UTC, or None when
    the expression or timezone is invalid.

    Pass the current time, not the trigger time of the run being recorded, so a
    delayed dispatch never schedules a recurrence that is already in the past.
    """
    try:
        return _following_occurrence(cron_expression, tz_name, from_time)
    except CRON_INPUT_ERRORS as exc:
        logger.error("Invalid cron expression: %s (%s)", cron_expression, exc)
        return None
