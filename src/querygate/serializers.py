"""JSON encoding of projected result sets.

Scalar columns are already JSON-safe after projection. Columns of other
engine types pass through projection untouched, so the encoder renders the
common ones:

- date, time, datetime: ISO 8601
- Decimal: exact decimal text
- UUID: canonical text
- bytes: base64
- timedelta: seconds
"""

from __future__ import annotations

import base64
import datetime
import decimal
import json
import uuid
from collections.abc import Sequence
from typing import Any

from querygate.types import ProjectedRow


def encode_rows(rows: Sequence[ProjectedRow]) -> bytes:
    """Encode a result set as a JSON array.

    Raises:
        TypeError: A value has no JSON rendering
        ValueError: A float is NaN or infinite
    """
    return json.dumps(
        list(rows), default=json_default, allow_nan=False, separators=(",", ":")
    ).encode("utf-8")


def json_default(value: Any) -> Any:
    """Render pass-through engine values that ``json`` cannot encode."""
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
