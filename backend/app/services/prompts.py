"""
Prompt builders for startup report analysis.

The compact variant sends a metrics summary, the top-N slowest steps and the
report JSON cut to a byte budget. The full variant sends the whole report,
minified, and is only used when the caller opts in.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

import orjson

from app.services.metrics import calculate_metrics, get_events, load_report, parse_duration, step_name

DEFAULT_MAX_BYTES = 100 * 1024
DEFAULT_TOP_N = 10
TRUNCATION_MARKER = "\n... [truncated]"


# =============================================================================
# PROMPTS
# =============================================================================

SYSTEM_PROMPT = (
    "You are an expert Spring Boot performance engineer. Provide a concise analysis with"
    " a brief summary, the top bottlenecks, and actionable optimization steps."
)

FULL_SYSTEM_PROMPT = (
    "You are an expert Spring Boot performance engineer. Analyze startup timeline JSON and"
    " provide: 1) a brief summary, 2) the top bottlenecks (slow/critical), and"
    " 3) actionable optimization suggestions. Keep it concise."
)

PLAIN_TEXT_INSTRUCTION = "Return only plain text, no markdown tables."


@dataclass(frozen=True)
class Prompt:
    system: str
    user: str


# =============================================================================
# HELPERS
# =============================================================================


def utf8_size(text: str) -> int:
    return len(text.encode("utf-8"))


def truncate_bytes(text: str, max_bytes: int) -> str:
    """
    Cut ``text`` to the longest prefix whose UTF-8 size fits ``max_bytes``.

    The budget counts encoded bytes, not characters, so multi-byte text is
    never over budget. A marker is appended when anything was cut.
    """
    if not text or not max_bytes or max_bytes <= 0:
        return ""
    if utf8_size(text) <= max_bytes:
        return text

    low, high, best = 0, len(text), 0
    while low <= high:
        mid = (low + high) // 2
        if utf8_size(text[:mid]) <= max_bytes:
            best = mid
            low = mid + 1
        else:
            high = mid - 1
    return text[:best] + TRUNCATION_MARKER


def get_top_steps(events: List[Dict[str, Any]], top_n: int = DEFAULT_TOP_N) -> List[Dict[str, Any]]:
    """Events ranked by duration, slowest first."""
    steps = [
        {"name": step_name(e), "duration_ms": parse_duration(e.get("duration"))}
        for e in events
    ]
    steps.sort(key=lambda s: s["duration_ms"], reverse=True)
    return steps[: max(1, top_n or DEFAULT_TOP_N)]


def _pretty_json(report: Any) -> str:
    try:
        return orjson.dumps(report, option=orjson.OPT_INDENT_2).decode()
    except TypeError:
        return ""


# =============================================================================
# BUILDERS
# =============================================================================


def build_prompt(report: Any, max_bytes: int = DEFAULT_MAX_BYTES, top_n: int = DEFAULT_TOP_N) -> Prompt:
    """Compact prompt: summary, top-N steps and byte-budgeted JSON."""
    data = load_report(report)
    events = get_events(data)
    metrics = calculate_metrics(events)
    top = get_top_steps(events, top_n)

    summary = "\n".join([
        f"Total steps: {metrics.total_steps}",
        f"Total duration: {metrics.total_duration:.0f} ms",
        f"Average step duration: {metrics.avg_duration:.2f} ms",
        f"Slow steps (>2x avg): {metrics.slow_steps}",
        f"Critical steps (>3x avg): {metrics.critical_steps}",
    ])
    top_lines = "\n".join(
        f"{rank}. {step['name']} — {step['duration_ms']:.0f} ms"
        for rank, step in enumerate(top, start=1)
    )
    compact = f"Summary:\n{summary}\n\nTop {len(top)} slowest/critical steps:\n{top_lines}"

    truncated = truncate_bytes(_pretty_json(data), max_bytes)
    user = (
        f"{compact}\n\nTruncated JSON (optional, may omit some details):\n{truncated}"
        f"\n\n{PLAIN_TEXT_INSTRUCTION}"
    )
    return Prompt(system=SYSTEM_PROMPT, user=user)


def build_full_prompt(report: Any) -> Prompt:
    """Whole report, minified, with no truncation."""
    if isinstance(report, bytes):
        json_text = report.decode("utf-8", errors="replace")
    elif isinstance(report, str):
        json_text = report
    else:
        json_text = orjson.dumps(report).decode()
    user = f"Here is the /actuator/startup JSON to analyze:\n\n{json_text}\n\n{PLAIN_TEXT_INSTRUCTION}"
    return Prompt(system=FULL_SYSTEM_PROMPT, user=user)
