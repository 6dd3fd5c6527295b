"""orjson helpers for snapshot records.

Snapshot dicts are already JSON-shaped; the fallback only has to cope with
values that slip through as enums, dataclasses or timestamps.
"""

from dataclasses import asdict, is_dataclass
from datetime import date
from enum import Enum
from typing import Any

import orjson

SNAPSHOT_OPTIONS = orjson.OPT_UTC_Z | orjson.OPT_NON_STR_KEYS | orjson.OPT_SORT_KEYS


def _fallback(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def json_dumps_bytes(data: Any) -> bytes:
    """Serialize to JSON bytes with sorted keys, so equal snapshots hash equally."""
    return orjson.dumps(data, default=_fallback, option=SNAPSHOT_OPTIONS)


def json_loads(data: str | bytes) -> Any:
    return orjson.loads(data)
