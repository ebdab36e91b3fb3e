"""
JSON serialization utilities for ispflow types.

Handles the types that show up in event payloads and outbox rows but are not
natively JSON-serializable: UUIDs, datetimes, dates and Decimals.

Example:
    >>> from ispflow.serialization import json_dumps, json_loads
    >>> from decimal import Decimal
    >>>
    >>> json_str = json_dumps({"amount": Decimal("12.99")})
    >>> json_loads(json_str)
    {'amount': '12.99'}
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class IspFlowJSONEncoder(json.JSONEncoder):
    """
    JSON encoder that handles UUID, datetime, date, Decimal and Enum values.

    Decimals are written as strings so that monetary amounts survive a round
    trip without float rounding.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime | date):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    """Serialize object to JSON string using IspFlowJSONEncoder."""
    return json.dumps(obj, cls=IspFlowJSONEncoder)


def json_loads(s: str) -> Any:
    """
    Deserialize JSON string to Python object.

    UUID, datetime and Decimal strings are NOT converted back; event classes
    do that through pydantic validation.
    """
    return json.loads(s)


__all__ = [
    "IspFlowJSONEncoder",
    "json_dumps",
    "json_loads",
]
