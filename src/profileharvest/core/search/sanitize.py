"""Free-text sanitization applied to every query field before it is sent."""

from __future__ import annotations

import re
import unicodedata
from typing import Any

MAX_FIELD_LENGTH = 200

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_METACHARACTERS = re.compile(r"[<>'\";&|`$()\\]")


def sanitize_input(value: Any) -> str:
    """Normalize and strip a user-supplied search string.

    Non-strings become the empty string. The value is NFC-normalized,
    control characters and markup/SQL/shell metacharacters are removed,
    and the result is cut to 200 characters before trimming.
    """
    if not isinstance(value, str):
        return ""

    cleaned = unicodedata.normalize("NFC", value)
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    cleaned = _METACHARACTERS.sub("", cleaned)
    return cleaned[:MAX_FIELD_LENGTH].strip()
