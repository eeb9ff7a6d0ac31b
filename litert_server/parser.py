"""
Output parsing for the LiteRT-LM binary.

This module handles:
- Skipping initialization log lines
- Isolating the generated text (marker-guided, with an unguided fallback)
- Stripping trailing benchmark output
- Extracting performance metrics from the raw output
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .markers import (
    NO_RESPONSE,
    PERFORMANCE_PREFIXES,
    contains_end_marker,
    find_response_marker,
    is_blank,
    is_body_line,
)

_TRAILING_PERFORMANCE = [
    re.compile(r"\n" + re.escape(prefix) + r".*$", re.DOTALL)
    for prefix in PERFORMANCE_PREFIXES
]

_METRIC_PATTERNS = {
    "prefill_tokens_per_sec": re.compile(
        r"Prefill:.*?(\d+\.?\d*)\s*tokens/sec", re.IGNORECASE
    ),
    "decode_tokens_per_sec": re.compile(
        r"Decode:.*?(\d+\.?\d*)\s*tokens/sec", re.IGNORECASE
    ),
    "peak_memory_mb": re.compile(r"Peak memory.*?(\d+\.?\d*)\s*MB", re.IGNORECASE),
}


@dataclass
class OutputMetrics:
    """Performance numbers reported by the binary (each optional)."""

    prefill_tokens_per_sec: Optional[float] = None
    decode_tokens_per_sec: Optional[float] = None
    peak_memory_mb: Optional[float] = None

    def to_dict(self) -> Dict[str, float]:
        return {
            name: value for name, value in vars(self).items() if value is not None
        }

    def __bool__(self) -> bool:
        return bool(self.to_dict())


@dataclass
class ExtractionResult:
    """Extracted answer plus any metrics found in the same output."""

    answer: str
    metrics: OutputMetrics = field(default_factory=OutputMetrics)


def _split_lines(text: str) -> List[str]:
    return text.replace("\r\n", "\n").split("\n")


def find_body_start(lines: List[str]) -> int:
    """
    Index of the first non-blank, non-log line.

    Returns len(lines) when every line is blank or a log line.
    """
    for index, line in enumerate(lines):
        if is_body_line(line):
            return index
    return len(lines)


def _append(buffer: List[str], line: str) -> None:
    # Leading blank lines are dropped, interior ones kept as empty lines
    if is_blank(line):
        if buffer:
            buffer.append("")
        return
    buffer.append(line)


def _scan_with_markers(lines: List[str], start: int) -> Optional[List[str]]:
    """Collect text following a response marker; None if no marker was seen."""
    buffer: List[str] = []
    found_marker = False
    in_response = False

    for line in lines[start:]:
        if in_response and contains_end_marker(line):
            break

        marker = find_response_marker(line)
        if marker is not None:
            found_marker = True
            in_response = True
            after_marker = line[line.index(marker) + len(marker):].strip()
            if after_marker:
                buffer = [after_marker]
            continue

        if in_response:
            _append(buffer, line)

    return buffer if found_marker else None


def _scan_unguided(lines: List[str], start: int) -> List[str]:
    """Collect everything after the logs up to the first end marker."""
    buffer: List[str] = []
    for line in lines[start:]:
        if contains_end_marker(line):
            break
        _append(buffer, line)
    return buffer


def _strip_performance(response: str) -> str:
    response = response.strip()
    for pattern in _TRAILING_PERFORMANCE:
        response = pattern.sub("", response, count=1).strip()
    return response


def extract_response(output: str) -> str:
    """
    Extract the generated text from raw LiteRT-LM output.

    Args:
        output: Raw stdout or stderr text of one run

    Returns:
        The generated text, or "No response generated" if nothing was found
    """
    lines = _split_lines(output)
    start = find_body_start(lines)

    buffer = _scan_with_markers(lines, start)
    if buffer is None:
        buffer = _scan_unguided(lines, start)

    response = _strip_performance("\n".join(buffer))
    return response or NO_RESPONSE


def extract_metrics(output: str) -> OutputMetrics:
    """
    Extract performance metrics from raw LiteRT-LM output.

    The first matching line wins for each metric. Metrics that are not
    reported stay None.
    """
    found: Dict[str, float] = {}
    for line in _split_lines(output):
        for name, pattern in _METRIC_PATTERNS.items():
            if name in found:
                continue
            match = pattern.search(line)
            if match:
                found[name] = float(match.group(1))
    return OutputMetrics(**found)

