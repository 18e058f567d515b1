from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def serialize_fanout(room: str, event: str, payload: dict[str, Any]) -> str:
    envelope = {"room": room, "event": event, "data": payload}
    return json.dumps(envelope, cls=_Encoder)


def deserialize_fanout(raw: str | bytes) -> tuple[str, str, dict[str, Any]]:
    data = json.loads(raw)
    return data["room"], data["event"], data["data"]
