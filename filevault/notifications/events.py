from dataclasses import dataclass, field
from typing import Any, Dict
import json


class EventType:
    FILE_UPLOADED = "FILE_UPLOADED"
    FILE_DELETED = "FILE_DELETED"
    FILE_SHARED_WITH_YOU = "FILE_SHARED_WITH_YOU"
    SHARE_REVOKED = "SHARE_REVOKED"

    # control frames
    AUTHENTICATE = "AUTHENTICATE"
    AUTHENTICATED = "AUTHENTICATED"
    PING = "PING"
    PONG = "PONG"


@dataclass(frozen=True)
class Message:
    """One frame on the wire: {"type": ..., "data": {...}}."""

    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({"type": self.type, "data": self.data}, default=str)

    @classmethod
    def from_json(cls, raw: str) -> "Message":
        """Parse an inbound frame. Raises ValueError on anything malformed."""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        obj = json.loads(raw)
        if not isinstance(obj, dict) or not isinstance(obj.get("type"), str):
            raise ValueError("frame must be an object with a string 'type'")
        data = obj.get("data")
        if not isinstance(data, dict):
            # clients may put fields at top level, e.g. {"type": "AUTHENTICATE", "userId": 1}
            data = {k: v for k, v in obj.items() if k != "type"}
        return cls(type=obj["type"], data=data)
