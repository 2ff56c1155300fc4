"""JSON column helpers."""

from __future__ import annotations

import json
from typing import Any


def jsonable(value: Any) -> Any:
    """Round-trip through JSON so datetimes and other objects become plain values."""
    return json.loads(json.dumps(value, default=str))
