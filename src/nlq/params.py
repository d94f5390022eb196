"""
Loosely-typed parameter values exchanged with the language backend.

The backend hands back JSON, so every value arrives as one of the JSON scalar
kinds.  ``ParamValue`` names that variant; the ``as_*`` converters turn it into
a concrete Python type at the point where it is assigned into a typed field,
returning ``None`` whenever the conversion is not possible.
"""
from __future__ import annotations

import math
from datetime import date, datetime, time, timezone
from typing import Any, Union

ParamValue = Union[str, int, float, bool, None]
Params = dict[str, ParamValue]

_TRUE = {"true", "yes", "y", "1"}
_FALSE = {"false", "no", "n", "0"}


def as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        try:
            return int(text)
        except ValueError:
            as_f = as_float(text)
            if as_f is not None and as_f.is_integer():
                return int(as_f)
    return None


def as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
        return result if math.isfinite(result) else None
    if isinstance(value, str):
        text = value.strip().rstrip("%").strip().replace(",", "")
        try:
            result = float(text)
        except ValueError:
            return None
        return result if math.isfinite(result) else None
    return None


def as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    return None


def as_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def as_datetime(value: Any, end_of_day: bool = False) -> datetime | None:
    """Parse ISO-8601 text (``Z`` suffix allowed) into a naive UTC datetime.

    A bare date becomes midnight, or the last instant of that day when
    *end_of_day* is set so it can act as an inclusive upper bound.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.max if end_of_day else time.min)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            day = date.fromisoformat(text)
        except ValueError:
            pass
        else:
            return datetime.combine(day, time.max if end_of_day else time.min)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def clean_params(raw: Any) -> Params:
    """Keep only scalar JSON values from a decoded parameter object."""
    if not isinstance(raw, dict):
        return {}
    return {
        str(k): v for k, v in raw.items()
        if v is None or isinstance(v, (str, int, float, bool))
    }
