"""
Startup report metrics: duration parsing, formatting and severity.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List

import orjson

from app.utils.time import parse_timestamp_ms

logger = logging.getLogger(__name__)

_ISO_SECONDS_RE = re.compile(r"PT([\d.]+)S", re.IGNORECASE)


@dataclass
class StartupMetrics:
    total_duration: float = 0.0
    total_steps: int = 0
    slow_steps: int = 0
    critical_steps: int = 0
    avg_duration: float = 0.0


def load_report(report: Any) -> Dict[str, Any]:
    """Decode a report given as text; invalid JSON becomes an empty report."""
    if isinstance(report, (str, bytes)):
        try:
            report = orjson.loads(report)
        except orjson.JSONDecodeError as e:
            logger.debug(f"Report is not valid JSON: {e}")
            return {}
    return report if isinstance(report, dict) else {}


def get_events(report: Any) -> List[Dict[str, Any]]:
    """The ``timeline.events`` list of a startup report (empty when absent)."""
    timeline = load_report(report).get("timeline")
    events = timeline.get("events") if isinstance(timeline, dict) else None
    if not isinstance(events, list):
        return []
    return [e if isinstance(e, dict) else {} for e in events]


def parse_duration(duration: Any) -> float:
    """Milliseconds from a number (already ms) or an ISO-8601 ``PT<seconds>S`` string."""
    if duration is None or isinstance(duration, bool):
        return 0.0
    if isinstance(duration, (int, float)):
        return float(duration)
    match = _ISO_SECONDS_RE.search(str(duration))
    if not match:
        return 0.0
    try:
        return float(match.group(1)) * 1000
    except ValueError:
        return 0.0


def format_duration(ms: float) -> str:
    if ms < 1000:
        return f"{ms:.0f}ms"
    return f"{ms / 1000:.2f}s"


def get_severity(duration: float, avg_duration: float) -> str:
    if duration > avg_duration * 3:
        return "critical"
    if duration > avg_duration * 2:
        return "slow"
    if duration > 1000:
        return "normal"
    return "fast"


def step_name(event: Dict[str, Any]) -> str:
    step = event.get("startupStep") or {}
    if not isinstance(step, dict):
        step = {}
    if step.get("name"):
        return str(step["name"])
    step_id = step.get("id")
    return f"Step {step_id if step_id is not None else 'N/A'}"


def calculate_metrics(events: List[Dict[str, Any]]) -> StartupMetrics:
    """Totals, average and slow/critical counts for a list of events."""
    events = events if isinstance(events, list) else []
    total_duration = 0.0
    if events:
        first_start = parse_timestamp_ms(events[0].get("startTime"))
        last_end = parse_timestamp_ms(events[-1].get("endTime"))
        total_duration = max(0.0, last_end - first_start)

    durations = [parse_duration(e.get("duration")) for e in events]
    avg_duration = sum(durations) / max(1, len(events))

    return StartupMetrics(
        total_duration=total_duration,
        total_steps=len(events),
        slow_steps=sum(1 for d in durations if d > avg_duration * 2),
        critical_steps=sum(1 for d in durations if d > avg_duration * 3),
        avg_duration=avg_duration,
    )
