"""
Parsing of the extraction tool's line-oriented progress output.

Example line with ``--newline``:
    [download]  25.5% of 10.00MiB at  5.00MiB/s ETA 00:05
"""

import re
from dataclasses import dataclass
from typing import Optional

from config import POSTPROCESSOR_TAGS

PERCENT_RE: re.Pattern[str] = re.compile(r"(\d+(?:\.\d+)?)%")
SPEED_RE: re.Pattern[str] = re.compile(r"at\s+([0-9.]+\w+/s)")
ETA_RE: re.Pattern[str] = re.compile(r"ETA\s+(\d{2}:\d{2}(?::\d{2})?)")
POSTPROCESS_RE: re.Pattern[str] = re.compile(
    r"^\s*\[(?:%s)\]" % "|".join(re.escape(tag) for tag in POSTPROCESSOR_TAGS)
)


@dataclass(frozen=True)
class ProgressSample:
    progress: float
    speed: str = ""
    eta: str = ""


def parse_progress_line(line: str) -> Optional[ProgressSample]:
    """Return a sample when the line carries a percentage, else None."""
    if not line:
        return None

    percent = PERCENT_RE.search(line)
    if not percent:
        return None

    speed = SPEED_RE.search(line)
    eta = ETA_RE.search(line)
    return ProgressSample(
        progress=min(float(percent.group(1)), 100.0),
        speed=speed.group(1) if speed else "",
        eta=eta.group(1) if eta else "",
    )


def is_postprocessing_line(line: str) -> bool:
    """Whether the tool moved on to merging or transcoding."""
    return bool(line and POSTPROCESS_RE.match(line))
