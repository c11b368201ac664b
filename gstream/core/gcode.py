"""
G-Code Transformer - Single responsibility: rewriting commands per overrides
"""

import math
from typing import Iterable, Optional

from .logger import log_feed, log_warn
from .types import BED_TEMP_CODES, HOTEND_TEMP_CODES, NO_OVERRIDES, Overrides


def is_transmittable(line: str) -> bool:
    """False for blank lines and ';' comments"""
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith(";")


def count_transmittable(lines: Iterable[str]) -> int:
    """Number of lines that will be sent (no transformation applied)"""
    return sum(1 for line in lines if is_transmittable(line))


def scale_feedrate(value: float, percent: int) -> int:
    """Scale a feedrate by percent, rounding half up"""
    return math.floor(value * percent / 100.0 + 0.5)


def _parse_value(token: str) -> Optional[float]:
    try:
        value = float(token[1:])
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _temperature_override(line: str, overrides: Overrides) -> Optional[int]:
    """Forced S value for a temperature-setting line, if any applies"""
    if overrides.bed_temp is not None and line.startswith(BED_TEMP_CODES):
        return overrides.bed_temp
    if overrides.hotend_temp is not None and line.startswith(HOTEND_TEMP_CODES):
        return overrides.hotend_temp
    return None


def transform(raw: str, overrides: Overrides = NO_OVERRIDES) -> str:
    """
    Apply feedrate and temperature overrides to one command line.

    Blank and comment lines come back untouched, as does any line where
    no token was rewritten. Tokens whose value is not a number are passed
    through with a warning, as are feedrates too large to scale.
    """
    line = raw.strip()
    if not line or line.startswith(";"):
        return raw

    forced_temp = _temperature_override(line, overrides)
    tokens = line.split()
    changed = False

    for i, token in enumerate(tokens):
        if len(token) < 2:
            continue
        code = token[0].upper()

        if code == "F" and overrides.scales_feedrate:
            value = _parse_value(token)
            if value is None:
                log_warn(f"Unparseable feedrate '{token}' left as is", {"line": line})
                continue
            try:
                new_token = f"F{scale_feedrate(value, overrides.feedrate_percent)}"
            except OverflowError:
                log_warn(f"Feedrate '{token}' out of range at {overrides.feedrate_percent}%, left as is",
                         {"line": line})
                continue
            if overrides.debug:
                log_feed(token[1:], new_token[1:])
        elif code == "S" and forced_temp is not None:
            if _parse_value(token) is None:
                log_warn(f"Unparseable temperature '{token}' left as is", {"line": line})
                continue
            new_token = f"S{forced_temp}"
        else:
            continue

        if new_token != token:
            tokens[i] = new_token
            changed = True

    return " ".join(tokens) if changed else raw
