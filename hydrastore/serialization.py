"""Serializers for persisted state payloads."""

import json
from datetime import datetime
from typing import Any, Protocol, Union, runtime_checkable

from .exceptions import SerializationError

Payload = Union[str, bytes]


@runtime_checkable
class Serializer(Protocol):
    """Converts state dicts to storable payloads and back."""

    def serialize(self, state: Any) -> Payload:
        ...

    def deserialize(self, payload: Payload) -> Any:
        ...


class JSONSerializer:
    """Serialize state dicts to JSON text.

    datetime values are stored as {"__datetime__": iso} markers and
    restored on load. Tuples and sets become lists.

    Example:
        serializer = JSONSerializer()
        payload = serializer.serialize({"theme": "dark"})   # '{"theme": "dark"}'
        serializer.deserialize(payload)                     # {'theme': 'dark'}
    """

    def __init__(self, indent: Any = None, sort_keys: bool = False):
        self.indent = indent
        self.sort_keys = sort_keys

    def serialize(self, state: Any) -> str:
        """Serialize state to a JSON string.

        Raises:
            SerializationError: If the state holds unsupported values
        """
        try:
            return json.dumps(
                self._to_json_compatible(state),
                indent=self.indent,
                sort_keys=self.sort_keys,
            )
        except SerializationError:
            raise
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to serialize state: {e}") from e

    def deserialize(self, payload: Payload) -> Any:
        """Parse a JSON payload back into state.

        Raises:
            SerializationError: If the payload is not valid JSON
        """
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to deserialize state: {e}") from e
        return self._from_json_compatible(data)

    def _to_json_compatible(self, value: Any) -> Any:
        """Convert a value to JSON-compatible format."""
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, datetime):
            return {"__datetime__": value.isoformat()}
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self._to_json_compatible(v) for v in value]
        if isinstance(value, dict):
            return {str(k): self._to_json_compatible(v) for k, v in value.items()}
        raise SerializationError(f"Cannot serialize type: {type(value).__name__}")

    def _from_json_compatible(self, value: Any) -> Any:
        """Convert a value from JSON-compatible format."""
        if isinstance(value, list):
            return [self._from_json_compatible(v) for v in value]
        if isinstance(value, dict):
            if "__datetime__" in value and len(value) == 1:
                try:
                    return datetime.fromisoformat(value["__datetime__"])
                except (TypeError, ValueError) as e:
                    raise SerializationError(f"Failed to deserialize state: {e}") from e
            return {k: self._from_json_compatible(v) for k, v in value.items()}
        return value
