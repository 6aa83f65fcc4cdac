"""Object mappers for request and response bodies.

Mappers are registered explicitly per Parser. Nothing is probed for at import
time: if a body needs a mapper that was never registered, the lookup fails
with a clear error instead of silently picking whatever library is installed.
"""

import json
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel

from restchain.pipeline.parsing import Parser

T = TypeVar("T")


class ObjectMapper(Protocol):
    """Serializes objects to bytes and back."""

    def serialize(self, obj: Any) -> bytes: ...

    def deserialize(self, content: bytes, target: type[T]) -> T: ...


class JsonObjectMapper:
    """JSON mapper backed by the standard json module.

    Pydantic models are dumped with model_dump(mode="json") so dates and
    other rich types survive serialization.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    def serialize(self, obj: Any) -> bytes:
        if isinstance(obj, BaseModel):
            obj = obj.model_dump(mode="json")
        return json.dumps(obj).encode(self.encoding)

    def deserialize(self, content: bytes, target: type[T]) -> T:
        data = json.loads(content.decode(self.encoding))
        if isinstance(target, type) and issubclass(target, BaseModel):
            return target.model_validate(data)  # type: ignore[return-value]
        return data  # type: ignore[no-any-return]


class PydanticObjectMapper:
    """Mapper that only handles pydantic models, using their JSON codec."""

    def serialize(self, obj: Any) -> bytes:
        if not isinstance(obj, BaseModel):
            raise TypeError(
                f"PydanticObjectMapper cannot serialize {type(obj).__name__}"
            )
        return obj.model_dump_json().encode("utf-8")

    def deserialize(self, content: bytes, target: type[T]) -> T:
        if not (isinstance(target, type) and issubclass(target, BaseModel)):
            raise TypeError(
                f"PydanticObjectMapper cannot deserialize into {target!r}"
            )
        return target.model_validate_json(content)  # type: ignore[return-value]


class ObjectMapperRegistry:
    """Explicit Parser -> ObjectMapper registrations."""

    def __init__(self) -> None:
        self._mappers: dict[Parser, ObjectMapper] = {}

    def register(self, parser: Parser, mapper: ObjectMapper) -> None:
        self._mappers[parser] = mapper

    def unregister(self, parser: Parser) -> None:
        self._mappers.pop(parser, None)

    def has_mapper(self, parser: Parser) -> bool:
        return parser in self._mappers

    def mapper_for(self, parser: Parser | None) -> ObjectMapper:
        """Return the mapper registered for parser.

        Raises:
            ValueError: If parser is None or has no registered mapper.
        """
        if parser is None:
            raise ValueError(
                "Cannot map body: content type does not resolve to a parser"
            )
        try:
            return self._mappers[parser]
        except KeyError:
            raise ValueError(
                f"No object mapper registered for {parser.name} bodies"
            ) from None


def default_object_mappers() -> ObjectMapperRegistry:
    """Registry with the JSON mapper registered, which is all the stack ships."""
    registry = ObjectMapperRegistry()
    registry.register(Parser.JSON, JsonObjectMapper())
    return registry
