"""Utility functions for the dashboard core."""

import math
from typing import Any


def is_finite_number(value: Any) -> bool:
    """Check that value is a real number other than NaN or infinity."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)
