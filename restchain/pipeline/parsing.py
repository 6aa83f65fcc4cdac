"""Content-type negotiation for response bodies.

Maps a response content type to the Parser that knows how to read the body.

Resolution rules, in order:

1. A missing or blank content type resolves to nothing.
2. Parameters (``; charset=utf-8`` and the like) are stripped and the media
   type is lower-cased.
3. Exact matches are tried against each parser's content types, in
   PARSER_PRIORITY order.
4. Suffix rules (``+xml``, ``+json``, ``+html``) are tried in the same order.
   TEXT has no suffix rule.
5. Anything else resolves to nothing. A miss is not an error: the caller
   decides whether an unknown body format matters.

The strict lookups (Parser.from_name, Parser.from_content_type) are for
callers that demand a particular parser and raise ValueError instead.
"""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class Parser(Enum):
    """Body formats the pipeline can auto-detect.

    Each member's value is (primary content type, additional exact matches,
    suffix rule or None).
    """

    XML = (
        "application/xml",
        ("text/xml", "application/xhtml+xml"),
        "+xml",
    )
    TEXT = ("text/plain", ("*/*",), None)
    JSON = (
        "application/json",
        ("application/javascript", "text/javascript", "text/json"),
        "+json",
    )
    HTML = ("text/html", (), "+html")

    @property
    def content_type(self) -> str:
        return self.value[0]

    @property
    def content_types(self) -> tuple[str, ...]:
        """The primary content type followed by the additional exact matches."""
        return (self.value[0], *self.value[1])

    @property
    def suffix(self) -> str | None:
        return self.value[2]

    def matches_exactly(self, media_type: str) -> bool:
        return media_type in self.content_types

    def matches_suffix(self, media_type: str) -> bool:
        return self.suffix is not None and media_type.endswith(self.suffix)

    @classmethod
    def from_name(cls, name: str) -> Parser:
        """Look up a parser by its name ("json", "XML", ...).

        Raises:
            ValueError: If no parser has that name.
        """
        if name is None or not name.strip():
            raise ValueError("Parser name cannot be blank")
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(
                f"Unknown parser {name!r}, expected one of "
                f"{', '.join(p.name for p in PARSER_PRIORITY)}"
            ) from None

    @classmethod
    def from_content_type(cls, content_type: str) -> Parser:
        """Strict form of resolve() for callers that require a parser.

        Raises:
            ValueError: If the content type does not resolve to a parser.
        """
        parser = resolve(content_type)
        if parser is None:
            raise ValueError(
                f"Cannot find a parser for content type {content_type!r}"
            )
        return parser


# Precedence when more than one parser could claim a content type.
PARSER_PRIORITY: tuple[Parser, ...] = (
    Parser.XML,
    Parser.JSON,
    Parser.TEXT,
    Parser.HTML,
)


def media_type_of(content_type: str | None) -> str:
    """Return the lower-cased media type with any parameters removed.

    ``"Application/JSON; charset=UTF-8"`` becomes ``"application/json"``.
    """
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def resolve(content_type: str | None) -> Parser | None:
    """Resolve a content type to a Parser, or None if nothing matches."""
    media_type = media_type_of(content_type)
    if not media_type:
        return None

    for parser in PARSER_PRIORITY:
        if parser.matches_exactly(media_type):
            return parser

    for parser in PARSER_PRIORITY:
        if parser.matches_suffix(media_type):
            return parser

    return None


# Vendor types that neither the exact table nor the suffix rules cover,
# either because they lack the leading "application/" or because they are
# common enough to pin explicitly.
BUILTIN_ADDITIONAL_MAPPINGS: dict[str, Parser] = {
    "application/rss+xml": Parser.XML,
    "atom+xml": Parser.XML,
    "xop+xml": Parser.XML,
    "xslt+xml": Parser.XML,
    "rdf+xml": Parser.XML,
    "atomcat+xml": Parser.XML,
    "atomsvc+xml": Parser.XML,
    "auth-policy+xml": Parser.XML,
}


class ParserRegistry:
    """Per-configuration parser overrides on top of resolve().

    Lookup order for get_parser():
    1. Explicit registrations (register_parser) and built-in mappings.
    2. The standard resolution rules.
    3. The default parser, if one was registered.

    Example:
        registry = ParserRegistry()
        registry.register_parser("application/custom", Parser.JSON)
        registry.get_parser("application/custom; charset=utf-8")  # Parser.JSON
    """

    def __init__(self, other: ParserRegistry | None = None) -> None:
        self._additional: dict[str, Parser] = dict(BUILTIN_ADDITIONAL_MAPPINGS)
        self._default_parser: Parser | None = None
        if other is not None:
            self._additional.update(other._additional)
            self._default_parser = other._default_parser

    @property
    def default_parser(self) -> Parser | None:
        return self._default_parser

    def get_parser(self, content_type: str | None) -> Parser | None:
        parser = self.get_non_default_parser(content_type)
        if parser is None:
            parser = resolve(content_type)
        return parser if parser is not None else self._default_parser

    def get_non_default_parser(self, content_type: str | None) -> Parser | None:
        """Return the explicitly registered parser, ignoring standard rules."""
        return self._additional.get(media_type_of(content_type))

    def register_parser(self, content_type: str, parser: Parser) -> None:
        if content_type is None or not content_type.strip():
            raise ValueError("contentType cannot be blank")
        if not isinstance(parser, Parser):
            raise ValueError(f"Parser must be a Parser, got {parser!r}")
        media_type = media_type_of(content_type)
        logger.debug(f"Registering parser {parser.name} for {media_type}")
        self._additional[media_type] = parser

    def register_default_parser(self, parser: Parser) -> None:
        if not isinstance(parser, Parser):
            raise ValueError(f"Parser must be a Parser, got {parser!r}")
        self._default_parser = parser

    def unregister_parser(self, content_type: str) -> None:
        if content_type is None:
            raise ValueError("contentType cannot be None")
        self._additional.pop(media_type_of(content_type), None)

    def has_custom_parser(self, content_type: str | None) -> bool:
        if self._default_parser is not None:
            return True
        return self.get_non_default_parser(content_type) is not None

    def copy(self) -> ParserRegistry:
        return ParserRegistry(self)
