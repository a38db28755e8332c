import math
import re
from typing import NamedTuple, Optional, Union

PERCENT = "percent"
PHASE = "phase"

EXTRACTING = "extracting"

_PERCENT_RE = re.compile(r"(\d{1,3}(?:\.\d+)?)%")
_PHASE_KEYWORDS = {
    "extracting audio": EXTRACTING,
}


class Signal(NamedTuple):
    kind: str
    value: Union[float, str]


def parse_percent(line: str) -> Optional[float]:
    """Return the percentage found in ``line`` clamped to [0, 100], or None"""
    match = _PERCENT_RE.search(line)
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    if math.isnan(value):
        return None
    return min(100.0, max(0.0, value))


def parse_phase(line: str) -> Optional[str]:
    lowered = line.lower()
    for keyword, phase in _PHASE_KEYWORDS.items():
        if keyword in lowered:
            return phase
    return None


def parse_line(line: str) -> Optional[Signal]:
    """Extract a progress signal from one line of yt-dlp output.

    Best effort: a line with a percentage yields a ``percent`` signal, a line
    announcing a known phase yields a ``phase`` signal, anything else yields
    None. Never raises.
    """
    if not line:
        return None

    percent = parse_percent(line)
    if percent is not None:
        return Signal(PERCENT, percent)

    phase = parse_phase(line)
    if phase is not None:
        return Signal(PHASE, phase)

    return None
