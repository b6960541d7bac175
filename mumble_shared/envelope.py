from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict
import json

from mumble_shared.errors import CodecError


@dataclass
class Envelope:
    """
    Every control frame on the websocket is one JSON object:
    {
    "type":    "STRING (message type name, e.g. \"UserState\")",
    "payload": { ... }
    }

    Type names that this client does not know are still valid envelopes;
    they decode to an UnknownMessage further up.
    """
    type: str                 # Message type name, case-sensitive
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, json_str: str) -> 'Envelope':
        """Parse JSON string into Envelope, validating structure"""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise CodecError(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise CodecError("Envelope must be a JSON object")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Envelope':
        """Create Envelope from dictionary, validating required fields"""
        missing = {'type', 'payload'} - set(data.keys())
        if missing:
            raise CodecError(f"Missing required fields: {sorted(missing)}")

        if not isinstance(data['type'], str) or not data['type']:
            raise CodecError("'type' must be a non-empty string")
        if not isinstance(data['payload'], dict):
            raise CodecError("'payload' must be a dictionary")

        return cls(type=data['type'], payload=data['payload'])

    def to_dict(self) -> Dict[str, Any]:
        """Convert Envelope back to dictionary"""
        return {
            'type': self.type,
            'payload': self.payload,
        }

    def to_json(self) -> str:
        """Convert Envelope to JSON string"""
        return json.dumps(self.to_dict(), separators=(',', ':'), sort_keys=True)


def create_envelope(msg_type: str, payload: Dict[str, Any]) -> Envelope:
    """Helper to create a new envelope"""
    return Envelope(type=msg_type, payload=payload)
