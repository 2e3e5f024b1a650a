"""
Conversions between seconds and ``HH:MM:SS`` timecodes.
"""

from __future__ import annotations

import math
from typing import Union

# An empty requested time means "start of the channel, or the live edge".
UNSPECIFIED = ""

SECONDS_PER_DAY = 86_400

TimeValue = Union[float, str]


def seconds_to_text(seconds: float) -> str:
    """
    Format ``seconds`` as ``HH:MM:SS``.

    Fractions are floored and the value wraps around at 24 hours.
    """

    total = int(math.floor(float(seconds))) % SECONDS_PER_DAY
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def text_to_seconds(value: Union[str, float, int, None]) -> TimeValue:
    """
    Parse a bare number of seconds or a ``[[H:]M:]S`` timecode.

    The empty string (or ``None``/whitespace) is returned as
    :data:`UNSPECIFIED` rather than zero. Raises ``ValueError`` for text that
    is neither form.
    """

    if value is None:
        return UNSPECIFIED
    if isinstance(value, bool):
        raise ValueError(f"Invalid time value {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    if text == "":
        return UNSPECIFIED

    parts = text.split(":")
    if len(parts) > 3:
        raise ValueError(f"Invalid time value {value!r}")

    parts.reverse()
    try:
        total = float(parts[0])
        if len(parts) >= 2:
            total += int(parts[1]) * 60
        if len(parts) == 3:
            total += int(parts[2]) * 3600
    except ValueError:
        raise ValueError(f"Invalid time value {value!r}") from None

    if math.isnan(total) or math.isinf(total):
        raise ValueError(f"Invalid time value {value!r}")
    return total
