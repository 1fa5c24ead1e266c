"""Session payload serializers.

The core never looks inside a payload; it only needs a reversible text form.
``deserialize`` must raise ``ValueError`` on input it cannot parse.
"""
from __future__ import annotations

import json
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)


class SessionSerializer(Protocol[T]):
    def serialize(self, payload: T) -> str: ...

    def deserialize(self, data: str) -> T: ...


class StringSerializer:
    """Plain text payloads (e.g. a user name)."""

    def serialize(self, payload: str) -> str:
        if not isinstance(payload, str):
            raise TypeError(f"expected str payload, got {type(payload).__name__}")
        return payload

    def deserialize(self, data: str) -> str:
        return data


class JsonSerializer:
    """JSON-compatible payloads (dicts, lists, scalars)."""

    def serialize(self, payload: Any) -> str:
        return json.dumps(payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False)

    def deserialize(self, data: str) -> Any:
        # json.JSONDecodeError is a ValueError
        return json.loads(data)


class ModelSerializer(Generic[ModelT]):
    """pydantic model payloads."""

    def __init__(self, model: type[ModelT]):
        self._model = model

    def serialize(self, payload: ModelT) -> str:
        return payload.model_dump_json()

    def deserialize(self, data: str) -> ModelT:
        # pydantic.ValidationError is a ValueError
        return self._model.model_validate_json(data)
