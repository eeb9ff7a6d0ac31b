"""
Marker catalog for LiteRT-LM output.

Literal markers and line patterns used to find the generated text inside
the binary's log-interleaved output, plus single-line predicates over them.
"""

import re
from typing import Optional

# Lines whose content signals the start of generated text
RESPONSE_MARKERS = (
    "Response:",
    "Generated text:",
    "Output:",
    "Assistant:",
    "Model output:",
    "Generation:",
)

# Lines that end the generated text (benchmark output, separators, log lines)
END_MARKERS = (
    "Prefill:",
    "Decode:",
    "Peak memory",
    "Tokens/sec",
    "Performance:",
    "Benchmark results:",
    "---",
    "===",
    "I0000",
    "W0000",
    "E0000",
    "F0000",
)

# Process log lines: glog severity letter + four digits, or python-style prefixes
LOG_LINE_PATTERNS = (
    re.compile(r"^[IWEF]\d{4}"),
    re.compile(r"INFO:"),
    re.compile(r"WARNING:"),
)

# Benchmark lines that may trail the answer
PERFORMANCE_PREFIXES = ("Prefill:", "Decode:", "Peak memory", "Tokens/sec")

# stderr content meaning the binary crashed
FATAL_SIGNATURES = ("Check failure", "F0000")

NO_RESPONSE = "No response generated"
FALLBACK_GREETING = "Hello! How can I help you today?"


def is_blank(line: str) -> bool:
    return not line.strip()


def is_log_line(line: str) -> bool:
    """True if the line carries a process log prefix."""
    return any(pattern.search(line) for pattern in LOG_LINE_PATTERNS)


def is_body_line(line: str) -> bool:
    """True if the line could be the first line of generated output."""
    return not is_blank(line) and not is_log_line(line)


def find_response_marker(line: str) -> Optional[str]:
    """
    Find the first response marker contained in a line.

    Args:
        line: A single output line

    Returns:
        The matching marker, or None
    """
    for marker in RESPONSE_MARKERS:
        if marker in line:
            return marker
    return None


def contains_end_marker(line: str) -> bool:
    return any(marker in line for marker in END_MARKERS)


def contains_fatal_signature(line: str) -> bool:
    return any(signature in line for signature in FATAL_SIGNATURES)
