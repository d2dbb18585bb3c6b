"""
Aggregate statistics and export rendering shared by every storage backend.
"""

import csv
import io
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import MetricResponse, SessionResponse, StatsResponse

WEEK = timedelta(days=7)

CSV_HEADERS = [
    "Session ID",
    "Start Time",
    "End Time",
    "Duration (s)",
    "Average Attention",
    "Peak Attention",
    "Lowest Attention",
    "Total Blinks",
    "Average Eye Openness",
]


@dataclass
class MetricSummary:
    """Aggregates over the metrics of a single session."""
    average_attention: float = 0.0
    peak_attention: float = 0.0
    lowest_attention: float = 0.0
    total_blinks: int = 0
    average_eye_openness: float = 0.0


def _mean_attention(sessions: Iterable[SessionResponse]) -> float:
    scores = [s.average_attention for s in sessions if s.average_attention is not None]
    return sum(scores) / len(scores) if scores else 0.0


def compute_session_stats(sessions: Sequence[SessionResponse], now: Optional[datetime] = None) -> StatsResponse:
    """
    Dashboard statistics over all sessions.

    Study time covers sessions started in the last 7 days; the weekly trend
    compares their mean attention with the 7 days before that.
    """
    now = now or datetime.now(timezone.utc)
    one_week_ago = now - WEEK
    two_weeks_ago = now - 2 * WEEK

    this_week = [s for s in sessions if s.start_time >= one_week_ago]
    last_week = [s for s in sessions if two_weeks_ago <= s.start_time < one_week_ago]

    total_study_time = sum(s.duration or 0 for s in this_week) / 60

    this_week_avg = _mean_attention(this_week)
    last_week_avg = _mean_attention(last_week)
    weekly_trend = ((this_week_avg - last_week_avg) / last_week_avg) * 100 if last_week_avg > 0 else 0.0

    return StatsResponse(
        total_sessions=len(sessions),
        average_attention=_mean_attention(sessions),
        total_study_time=total_study_time,
        weekly_trend=weekly_trend,
    )


def summarize_metrics(metrics: Sequence[MetricResponse]) -> MetricSummary:
    if not metrics:
        return MetricSummary()

    scores = [m.attention_score for m in metrics]
    return MetricSummary(
        average_attention=sum(scores) / len(scores),
        peak_attention=max(scores),
        lowest_attention=min(scores),
        total_blinks=sum(1 if m.blink_detected else 0 for m in metrics),
        average_eye_openness=sum(m.eye_openness for m in metrics) / len(metrics),
    )


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_number(value: float) -> str:
    # Whole numbers render without a trailing ".0"
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def session_csv_row(session: SessionResponse, metrics: Sequence[MetricResponse]) -> List[str]:
    summary = summarize_metrics(metrics)
    return [
        session.id,
        format_timestamp(session.start_time),
        format_timestamp(session.end_time) if session.end_time else "",
        str(session.duration) if session.duration is not None else "",
        f"{summary.average_attention:.2f}",
        format_number(summary.peak_attention),
        format_number(summary.lowest_attention),
        str(summary.total_blinks),
        f"{summary.average_eye_openness:.4f}",
    ]


def render_sessions_csv(rows: Iterable[Tuple[SessionResponse, Sequence[MetricResponse]]]) -> str:
    """Render the session export; every cell is quoted and rows end with a bare newline."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for session, metrics in rows:
        writer.writerow(session_csv_row(session, metrics))
    return buffer.getvalue().rstrip("\n")
