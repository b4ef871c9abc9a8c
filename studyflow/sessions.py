"""Study session inputs: dataclasses, tolerant parsing, and a tabular view.

Sessions and aggregate stats come from the surrounding application and are
read-only here.  Numeric fields are coerced on the way in so that missing,
``None`` or malformed values count as zero instead of raising.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from enum import StrEnum

import numpy as np
import pandas as pd


class StudyType(StrEnum):
    """Session types as stored by the session backend."""

    THEORY = "teoria"
    QUESTIONS = "questoes"
    REVIEW = "revisao"


@dataclass(frozen=True)
class StudySession:
    """A single logged study session."""

    subject_id: str
    type: str
    hours: float = 0.0
    minutes: float = 0.0
    seconds: float = 0.0
    correct: int = 0
    wrong: int = 0
    blank: int = 0
    pages: int = 0
    date: str = ""  # YYYY-MM-DD day key
    timestamp: datetime | None = None

    @property
    def total_minutes(self) -> float:
        """Session duration in (fractional) minutes."""
        return self.hours * 60 + self.minutes + self.seconds / 60

    @property
    def total_hours(self) -> float:
        """Session duration in (fractional) hours."""
        return self.hours + self.minutes / 60 + self.seconds / 3600

    @property
    def goal_minutes(self) -> float:
        """Minutes credited towards the daily goal (seconds truncated to whole minutes)."""
        return self.hours * 60 + self.minutes + math.floor(self.seconds / 60)

    @property
    def answered(self) -> int:
        """Total questions answered (correct + wrong + blank)."""
        return self.correct + self.wrong + self.blank


@dataclass(frozen=True)
class AggregateStats:
    """Server-computed running totals.

    Each field is optional on its own: ``None`` means the total is unknown and
    the matching metric falls back to summing the session list.
    """

    total_minutes: float | None = None
    total_correct: int | None = None
    total_questions: int | None = None
    total_pages: int | None = None
    total_logs: int | None = None


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def coerce_number(value: object) -> float:
    """Coerce *value* to a non-negative finite float, defaulting to 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def coerce_int(value: object) -> int:
    """Coerce *value* to a non-negative int, defaulting to 0."""
    return int(coerce_number(value))


def _pick(d: Mapping[str, object], *keys: str) -> object:
    """Return the first present key's value (accepts camelCase and snake_case)."""
    for key in keys:
        if key in d:
            return d[key]
    return None


def parse_timestamp(value: object) -> datetime | None:
    """Parse an epoch-milliseconds number or ISO-8601 string into a datetime.

    Epoch values become UTC-aware datetimes.  Unparseable input yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            return datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
        except ValueError:
            pass
        try:
            return parse_timestamp(float(cleaned))
        except ValueError:
            return None
    return None


def to_local(ts: datetime, tz: tzinfo | None = None) -> datetime:
    """Express *ts* in the local zone *tz* (system local time when None).

    Naive datetimes are assumed to already be local.
    """
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(tz)


def session_from_dict(d: Mapping[str, object], tz: tzinfo | None = None) -> StudySession:
    """Build a StudySession from a plain dict, coercing numeric fields."""
    timestamp = parse_timestamp(_pick(d, "timestamp"))
    raw_date = _pick(d, "date")
    date = str(raw_date) if raw_date else ""
    if not date and timestamp is not None:
        date = to_local(timestamp, tz).date().isoformat()
    return StudySession(
        subject_id=str(_pick(d, "subject_id", "subjectId") or ""),
        type=str(_pick(d, "type") or ""),
        hours=coerce_number(_pick(d, "hours")),
        minutes=coerce_number(_pick(d, "minutes")),
        seconds=coerce_number(_pick(d, "seconds")),
        correct=coerce_int(_pick(d, "correct")),
        wrong=coerce_int(_pick(d, "wrong")),
        blank=coerce_int(_pick(d, "blank")),
        pages=coerce_int(_pick(d, "pages")),
        date=date,
        timestamp=timestamp,
    )


def _opt_number(d: Mapping[str, object], key: str) -> float | None:
    """Coerce an optional aggregate field; absent or None stays None."""
    v = d.get(key)
    return None if v is None else coerce_number(v)


def _opt_count(d: Mapping[str, object], key: str) -> int | None:
    v = d.get(key)
    return None if v is None else coerce_int(v)


def stats_from_dict(d: Mapping[str, object] | None) -> AggregateStats | None:
    """Build AggregateStats from a plain dict (None passes through)."""
    if d is None:
        return None
    return AggregateStats(
        total_minutes=_opt_number(d, "total_minutes"),
        total_correct=_opt_count(d, "total_correct"),
        total_questions=_opt_count(d, "total_questions"),
        total_pages=_opt_count(d, "total_pages"),
        total_logs=_opt_count(d, "total_logs"),
    )


# ---------------------------------------------------------------------------
# Tabular view
# ---------------------------------------------------------------------------


def _weekend_key(local_ts: datetime) -> str | None:
    """ISO date of the Saturday opening the weekend containing *local_ts*."""
    weekday = local_ts.weekday()  # Mon=0 .. Sat=5, Sun=6
    if weekday == 5:
        return local_ts.date().isoformat()
    if weekday == 6:
        return (local_ts.date() - timedelta(days=1)).isoformat()
    return None


def sessions_frame(sessions: Sequence[StudySession], tz: tzinfo | None = None) -> pd.DataFrame:
    """One row per session with the derived columns the calculators group on.

    ``hour`` and ``weekday`` are NaN for sessions without a timestamp;
    ``weekend_key`` is None outside Saturday/Sunday.
    """
    hours: list[float] = []
    weekdays: list[float] = []
    weekend_keys: list[str | None] = []
    for s in sessions:
        if s.timestamp is None:
            hours.append(np.nan)
            weekdays.append(np.nan)
            weekend_keys.append(None)
            continue
        local = to_local(s.timestamp, tz)
        hours.append(float(local.hour))
        weekdays.append(float(local.weekday()))
        weekend_keys.append(_weekend_key(local))

    return pd.DataFrame(
        {
            "subject_id": pd.Series([s.subject_id for s in sessions], dtype="object"),
            "type": pd.Series([str(s.type) for s in sessions], dtype="object"),
            "date": pd.Series([s.date for s in sessions], dtype="object"),
            "total_minutes": pd.Series([s.total_minutes for s in sessions], dtype="float64"),
            "total_hours": pd.Series([s.total_hours for s in sessions], dtype="float64"),
            "goal_minutes": pd.Series([s.goal_minutes for s in sessions], dtype="float64"),
            "correct": pd.Series([s.correct for s in sessions], dtype="int64"),
            "answered": pd.Series([s.answered for s in sessions], dtype="int64"),
            "pages": pd.Series([s.pages for s in sessions], dtype="int64"),
            "hour": pd.Series(hours, dtype="float64"),
            "weekday": pd.Series(weekdays, dtype="float64"),
            "weekend_key": pd.Series(weekend_keys, dtype="object"),
        }
    )


def dated_rows(frame: pd.DataFrame) -> pd.DataFrame:
    """Rows that carry a day key (required for any per-day metric)."""
    return frame[frame["date"] != ""]
