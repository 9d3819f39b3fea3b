"""Value coercions handed to extensions as ``api.Cast``.

Block arguments arrive as whatever the host produced (strings typed into a
field, numbers from reporters, booleans from predicates); extensions use
these helpers to read them uniformly.
"""

import math
from typing import Any


class Cast:
    """Host-compatible value coercions."""

    @staticmethod
    def to_number(value: Any) -> float:
        """Convert to a number; anything unparsable or NaN becomes 0."""
        if isinstance(value, bool):
            return 1 if value else 0
        if isinstance(value, (int, float)):
            return 0 if isinstance(value, float) and math.isnan(value) else value

        text = str(value).strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return 0
        return 0 if math.isnan(number) else number

    @staticmethod
    def to_boolean(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value not in ("", "0") and value.lower() != "false"
        return bool(value)

    @staticmethod
    def to_string(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    @staticmethod
    def is_whitespace(value: Any) -> bool:
        return value is None or (isinstance(value, str) and value.strip() == "")

    @classmethod
    def compare(cls, left: Any, right: Any) -> float:
        """Compare numerically when both sides are numbers, else as case-insensitive text.

        Returns a negative number, zero or a positive number.
        """
        try:
            n1 = float(left) if not cls.is_whitespace(left) else math.nan
            n2 = float(right) if not cls.is_whitespace(right) else math.nan
        except (TypeError, ValueError):
            n1 = n2 = math.nan

        if math.isnan(n1) or math.isnan(n2):
            s1 = cls.to_string(left).lower()
            s2 = cls.to_string(right).lower()
            return (s1 > s2) - (s1 < s2)
        if math.isinf(n1) and math.isinf(n2) and n1 == n2:
            return 0
        return n1 - n2
