"""Time budgets are ISO 8601 durations (PT30S, PT0.5S, PT2M) or "unlimited"."""
from datetime import timedelta
from typing import Union

import isodate  # type: ignore

UNLIMITED = "unlimited"


def iso_to_seconds(iso_duration: str, unlimited: float = float("inf")) -> float:
    if iso_duration == UNLIMITED:
        return unlimited
    parsed: Union[timedelta, isodate.Duration] = isodate.parse_duration(iso_duration)
    # Calendar units have no fixed length, a search budget never needs them
    if isinstance(parsed, isodate.Duration):
        raise ValueError(
            f"Time budget {iso_duration} uses years or months, use days or less"
        )
    seconds = parsed.total_seconds()
    if seconds < 0:
        raise ValueError(f"Time budget {iso_duration} is negative")
    return seconds
