import dataclasses
import json
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from userbackend.data.pageable import Page


class UserBackendJSONEncoder(json.JSONEncoder):
    """JSON encoder for the types handlers commonly return."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, Page):
            return obj.to_dict()
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
        if isinstance(obj, (set, frozenset)):
            return list(obj)
        if isinstance(obj, bytes):
            return obj.decode("utf-8", errors="replace")
        return super().default(obj)


def serialize_json(data: Any) -> bytes:
    """Serialize to compact UTF-8 JSON."""
    return json.dumps(
        data, cls=UserBackendJSONEncoder, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")
