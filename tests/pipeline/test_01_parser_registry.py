"""Tests for Step 1: Content-type parser registry.

Key behaviors tested:
- Exact matches for every content type in the parser table
- Suffix rules for vendor types (+json, +xml, +html)
- Charset and other parameters are stripped before matching
- Matching is case-insensitive
- Unknown or missing content types resolve to None, not an error
- Explicitly demanded parsers raise ValueError when they don't exist
- ParserRegistry overrides, built-in mappings and default parser
"""

import pytest

from restchain.pipeline.parsing import (
    PARSER_PRIORITY,
    Parser,
    ParserRegistry,
    media_type_of,
    resolve,
)

PARSER_TABLE = [
    ("application/xml", Parser.XML),
    ("text/xml", Parser.XML),
    ("application/xhtml+xml", Parser.XML),
    ("text/plain", Parser.TEXT),
    ("*/*", Parser.TEXT),
    ("application/json", Parser.JSON),
    ("application/javascript", Parser.JSON),
    ("text/javascript", Parser.JSON),
    ("text/json", Parser.JSON),
    ("text/html", Parser.HTML),
]


class TestExactMatches:
    """Tests for the exact content-type table."""

    @pytest.mark.parametrize(("content_type", "expected"), PARSER_TABLE)
    def test_table_entries_resolve(self, content_type: str, expected: Parser) -> None:
        """Every content type in the parser table shall resolve to its parser."""
        assert resolve(content_type) is expected

    @pytest.mark.parametrize(("content_type", "expected"), PARSER_TABLE)
    def test_charset_is_ignored(self, content_type: str, expected: Parser) -> None:
        """resolve(t + '; charset=utf-8') shall equal resolve(t)."""
        assert resolve(f"{content_type}; charset=utf-8") is resolve(content_type)
        assert resolve(f"{content_type};charset=ISO-8859-1") is expected

    def test_matching_is_case_insensitive(self) -> None:
        """Content types shall match regardless of case."""
        assert resolve("Application/JSON") is Parser.JSON
        assert resolve("TEXT/HTML; Charset=UTF-8") is Parser.HTML

    def test_xhtml_is_xml_not_html(self) -> None:
        """application/xhtml+xml shall resolve to XML through the exact table."""
        assert resolve("application/xhtml+xml") is Parser.XML


class TestSuffixMatches:
    """Tests for +suffix fallback rules."""

    def test_json_patch_resolves_to_json(self) -> None:
        """application/json-patch+json shall resolve to JSON."""
        assert resolve("application/json-patch+json") is Parser.JSON

    def test_vendor_json_resolves_to_json(self) -> None:
        """Vendor +json types shall resolve to JSON."""
        assert resolve("application/vnd.api+json") is Parser.JSON
        assert resolve("application/vnd.api+json; charset=utf-8") is Parser.JSON

    def test_vendor_xml_resolves_to_xml(self) -> None:
        """Vendor +xml types shall resolve to XML."""
        assert resolve("application/atom+xml") is Parser.XML
        assert resolve("application/soap+xml") is Parser.XML

    def test_vendor_html_resolves_to_html(self) -> None:
        """Vendor +html types shall resolve to HTML."""
        assert resolve("application/vnd.custom+html") is Parser.HTML

    def test_text_has_no_suffix_rule(self) -> None:
        """TEXT shall never be selected by a suffix."""
        assert Parser.TEXT.suffix is None
        assert resolve("application/vnd.custom+plain") is None


class TestMisses:
    """Tests for content types that resolve to nothing."""

    @pytest.mark.parametrize("content_type", [None, "", "   ", "; charset=utf-8"])
    def test_missing_content_type_is_none(self, content_type: str | None) -> None:
        """A missing content type shall resolve to None without raising."""
        assert resolve(content_type) is None

    def test_unknown_content_type_is_none(self) -> None:
        """An unknown content type shall resolve to None without raising."""
        assert resolve("application/octet-stream") is None
        assert resolve("image/png") is None


class TestPriority:
    """Tests for the explicit parser precedence."""

    def test_priority_order(self) -> None:
        """The precedence shall be XML, JSON, TEXT, HTML."""
        assert PARSER_PRIORITY == (Parser.XML, Parser.JSON, Parser.TEXT, Parser.HTML)

    def test_media_type_of_strips_parameters(self) -> None:
        """media_type_of shall drop parameters and lower-case the type."""
        assert media_type_of("Application/Json ; charset=UTF-8") == "application/json"
        assert media_type_of(None) == ""


class TestStrictLookups:
    """Tests for callers that demand a specific parser."""

    def test_from_name(self) -> None:
        """Parser.from_name shall accept names in any case."""
        assert Parser.from_name("json") is Parser.JSON
        assert Parser.from_name(" Xml ") is Parser.XML

    def test_from_name_unknown_is_user_error(self) -> None:
        """An unknown parser name shall raise ValueError."""
        with pytest.raises(ValueError, match="Unknown parser 'yaml'"):
            Parser.from_name("yaml")

    def test_from_content_type_miss_is_user_error(self) -> None:
        """A demanded parser that can't be resolved shall raise ValueError."""
        assert Parser.from_content_type("text/json") is Parser.JSON
        with pytest.raises(ValueError, match="Cannot find a parser"):
            Parser.from_content_type("application/octet-stream")


class TestParserRegistry:
    """Tests for per-configuration parser registrations."""

    def test_falls_back_to_standard_rules(self) -> None:
        """Without registrations the registry shall behave like resolve()."""
        registry = ParserRegistry()
        assert registry.get_parser("application/json") is Parser.JSON
        assert registry.get_parser("application/octet-stream") is None

    def test_builtin_mappings(self) -> None:
        """Suffix-only types without an application/ prefix shall map to XML."""
        registry = ParserRegistry()
        assert registry.get_parser("atom+xml") is Parser.XML
        assert registry.get_parser("application/rss+xml") is Parser.XML

    def test_registered_parser_wins(self) -> None:
        """A registered parser shall override standard resolution."""
        registry = ParserRegistry()
        registry.register_parser("text/plain", Parser.JSON)
        registry.register_parser("application/custom", Parser.XML)

        assert registry.get_parser("text/plain; charset=utf-8") is Parser.JSON
        assert registry.get_parser("application/custom") is Parser.XML
        assert registry.has_custom_parser("application/custom")

        registry.unregister_parser("application/custom")
        assert registry.get_parser("application/custom") is None

    def test_default_parser(self) -> None:
        """The default parser shall be used when nothing else resolves."""
        registry = ParserRegistry()
        registry.register_default_parser(Parser.TEXT)

        assert registry.get_parser("application/octet-stream") is Parser.TEXT
        assert registry.get_parser(None) is Parser.TEXT
        assert registry.get_parser("application/json") is Parser.JSON
        assert registry.has_custom_parser("anything")

    def test_register_rejects_invalid_arguments(self) -> None:
        """Registering a blank content type or a non-parser shall raise ValueError."""
        registry = ParserRegistry()
        with pytest.raises(ValueError):
            registry.register_parser("  ", Parser.JSON)
        with pytest.raises(ValueError):
            registry.register_parser("application/x", "json")  # type: ignore[arg-type]

    def test_copy_is_independent(self) -> None:
        """A copied registry shall not see later registrations on the original."""
        original = ParserRegistry()
        copy = original.copy()
        original.register_parser("application/custom", Parser.JSON)
        assert copy.get_parser("application/custom") is None
