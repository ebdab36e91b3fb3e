"""
Serialization utilities for ispflow.

Example:
    >>> from ispflow.serialization import json_dumps
    >>> from uuid import uuid4
    >>>
    >>> json_str = json_dumps({"id": uuid4()})
"""

from ispflow.serialization.json import (
    IspFlowJSONEncoder,
    json_dumps,
    json_loads,
)

__all__ = [
    "IspFlowJSONEncoder",
    "json_dumps",
    "json_loads",
]
