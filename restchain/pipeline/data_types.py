"""Data types passed through the interception pipeline.

This module defines the objects that flow through a filter chain:

1. RequestSpecification - mutable, built once per logical call and mutated in
   place by filters before the terminal sender consumes it.
2. ResponseSpecification - the expectations to check against the eventual
   response, plus the configuration filters consult.
3. Response - the immutable result of one exchange.

Headers and Cookies are small collection types shared by all three.
Headers keep insertion order, compare names case-insensitively and allow
duplicates. Cookies are keyed by name and the most recently added entry for
a name wins.
"""

from __future__ import annotations

import http.cookiejar
import json
from collections.abc import Callable, Iterable, Iterator
from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import urlencode, urlsplit, urlunsplit

from lxml import etree
from lxml import html as lxml_html
from typing_extensions import assert_never

from restchain.pipeline.common.assert_bridge import run_with_unwrap
from restchain.pipeline.common.exceptions import (
    EvaluationRuntimeException,
    InvocationTargetException,
    UnresolvedParserException,
)
from restchain.pipeline.config import CsrfPrioritization, RestConfig
from restchain.pipeline.parsing import Parser, ParserRegistry, resolve

if TYPE_CHECKING:
    from restchain.pipeline.common.mapping import ObjectMapperRegistry

T = TypeVar("T")


class HttpMethod(Enum):
    """HTTP methods supported by the pipeline."""

    GET = "GET"
    OPTIONS = "OPTIONS"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"


# =============================================================================
# Headers
# =============================================================================


@dataclass(frozen=True)
class Header:
    name: str
    value: str

    def has_same_name_as(self, name: str) -> bool:
        return self.name.lower() == name.lower()


class Headers:
    """Ordered, case-insensitive, multi-valued header collection."""

    def __init__(
        self, headers: Iterable[Header | tuple[str, str]] | None = None
    ) -> None:
        self._headers: list[Header] = []
        for item in headers or ():
            if isinstance(item, Header):
                self._headers.append(item)
            else:
                self.add(*item)

    @classmethod
    def from_dict(cls, headers: dict[str, str] | None) -> Headers:
        return cls((name, value) for name, value in (headers or {}).items())

    def add(self, name: str, value: str) -> None:
        self._headers.append(Header(name, str(value)))

    def replace(self, name: str, value: str) -> None:
        """Remove every header called name, then add a single one."""
        self.remove(name)
        self.add(name, value)

    def remove(self, name: str) -> bool:
        before = len(self._headers)
        self._headers = [h for h in self._headers if not h.has_same_name_as(name)]
        return len(self._headers) != before

    def has_header_with_name(self, name: str) -> bool:
        return any(h.has_same_name_as(name) for h in self._headers)

    def get(self, name: str) -> str | None:
        """Return the value of the last header called name, or None."""
        values = self.get_list(name)
        return values[-1] if values else None

    def get_list(self, name: str) -> list[str]:
        return [h.value for h in self._headers if h.has_same_name_as(name)]

    def as_list(self) -> list[tuple[str, str]]:
        return [(h.name, h.value) for h in self._headers]

    def as_dict(self) -> dict[str, str]:
        """Collapse to a dict; later duplicates win."""
        return {h.name: h.value for h in self._headers}

    def copy(self) -> Headers:
        return Headers(self._headers)

    def __iter__(self) -> Iterator[Header]:
        return iter(list(self._headers))

    def __len__(self) -> int:
        return len(self._headers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has_header_with_name(name)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Headers) and self._headers == other._headers

    def __repr__(self) -> str:
        return f"Headers({self.as_list()!r})"


# =============================================================================
# Cookies
# =============================================================================


@dataclass(frozen=True)
class Cookie:
    """A single HTTP cookie with its optional attributes.

    expiry is in seconds since the epoch; a Max-Age attribute is folded into
    it when the cookie is received.
    """

    name: str
    value: str
    domain: str | None = None
    path: str | None = None
    expiry: int | None = None
    version: int | None = None
    secure: bool = False
    http_only: bool = False
    comment: str | None = None

    @classmethod
    def from_jar_cookie(cls, jar_cookie: http.cookiejar.Cookie) -> Cookie:
        """Build a Cookie from an entry of an httpx response's cookie jar.

        Attributes the server did not send (domain, path) stay None rather
        than taking the defaults the jar fills in from the request URL.
        """
        domain = jar_cookie.domain.lstrip(".") if jar_cookie.domain_specified else None
        return cls(
            name=jar_cookie.name,
            value=jar_cookie.value or "",
            domain=domain,
            path=jar_cookie.path if jar_cookie.path_specified else None,
            expiry=jar_cookie.expires,
            version=jar_cookie.version or None,
            secure=jar_cookie.secure,
            http_only=any(
                jar_cookie.has_nonstandard_attr(spelling)
                for spelling in ("HttpOnly", "httponly", "HTTPONLY")
            ),
            comment=jar_cookie.comment,
        )


class Cookies:
    """Cookies keyed by name; adding a cookie replaces any earlier one."""

    def __init__(self, cookies: Iterable[Cookie] | None = None) -> None:
        self._cookies: dict[str, Cookie] = {}
        for cookie in cookies or ():
            self.add(cookie)

    @classmethod
    def from_dict(cls, cookies: dict[str, str] | None) -> Cookies:
        return cls(Cookie(name, value) for name, value in (cookies or {}).items())

    def add(self, cookie: Cookie) -> None:
        # Re-insert so iteration order follows the most recent write.
        self._cookies.pop(cookie.name, None)
        self._cookies[cookie.name] = cookie

    def remove(self, name: str) -> bool:
        return self._cookies.pop(name, None) is not None

    def has_cookie_with_name(self, name: str) -> bool:
        return name in self._cookies

    def get(self, name: str) -> Cookie | None:
        return self._cookies.get(name)

    def value(self, name: str) -> str | None:
        cookie = self._cookies.get(name)
        return cookie.value if cookie else None

    def as_dict(self) -> dict[str, str]:
        return {name: cookie.value for name, cookie in self._cookies.items()}

    def copy(self) -> Cookies:
        return Cookies(self._cookies.values())

    def __iter__(self) -> Iterator[Cookie]:
        return iter(list(self._cookies.values()))

    def __len__(self) -> int:
        return len(self._cookies)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._cookies

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Cookies) and self._cookies == other._cookies

    def __repr__(self) -> str:
        return f"Cookies({self.as_dict()!r})"


# =============================================================================
# Request specification
# =============================================================================


MultiValueParams = dict[str, list[str]]


def _add_param(params: MultiValueParams, name: str, values: tuple[Any, ...]) -> None:
    bucket = params.setdefault(name, [])
    if not values:
        bucket.append("")
    else:
        bucket.extend(str(v) for v in values)


@dataclass
class RequestSpecification:
    """The request being built for one exchange.

    Filters mutate this object in place. A fresh specification is built for
    every call; filter instances, not specifications, are what get reused.

    Attributes:
        method: HTTP method.
        url: Absolute URL without the query parameters in query_params.
        headers: Outgoing headers.
        cookies: Outgoing cookies.
        query_params: Query parameters appended to url when sending.
        form_params: Form fields, sent url-encoded when there is no body.
        body: Raw body (bytes or str) or an object for the object mapper.
        content_type: Content type of the body, if any.
        config: Configuration in effect for this exchange.
    """

    method: HttpMethod
    url: str
    headers: Headers = field(default_factory=Headers)
    cookies: Cookies = field(default_factory=Cookies)
    query_params: MultiValueParams = field(default_factory=dict)
    form_params: MultiValueParams = field(default_factory=dict)
    body: Any = None
    content_type: str | None = None
    config: RestConfig = field(default_factory=RestConfig)

    def header(self, name: str, value: str) -> RequestSpecification:
        self.headers.add(name, value)
        return self

    def replace_header(self, name: str, value: str) -> RequestSpecification:
        self.headers.replace(name, value)
        return self

    def remove_header(self, name: str) -> RequestSpecification:
        self.headers.remove(name)
        return self

    def cookie(self, name: str, value: str) -> RequestSpecification:
        self.cookies.add(Cookie(name, value))
        return self

    def remove_cookie(self, name: str) -> RequestSpecification:
        self.cookies.remove(name)
        return self

    def session_id(self, value: str) -> RequestSpecification:
        """Set the session cookie named by the session config."""
        return self.cookie(self.config.session.session_id_name, value)

    def query_param(self, name: str, *values: Any) -> RequestSpecification:
        _add_param(self.query_params, name, values)
        return self

    def form_param(self, name: str, *values: Any) -> RequestSpecification:
        _add_param(self.form_params, name, values)
        return self

    def has_form_param(self, name: str) -> bool:
        return name in self.form_params

    def set_body(
        self, body: Any, content_type: str | None = None
    ) -> RequestSpecification:
        self.body = body
        if content_type is not None:
            self.content_type = content_type
        return self

    @property
    def uri(self) -> str:
        """The URL including query_params."""
        if not self.query_params:
            return self.url
        scheme, netloc, path, query, fragment = urlsplit(self.url)
        extra = urlencode(
            [(k, v) for k, values in self.query_params.items() for v in values]
        )
        query = f"{query}&{extra}" if query else extra
        return urlunsplit((scheme, netloc, path, query, fragment))

    def copy(self) -> RequestSpecification:
        return RequestSpecification(
            method=self.method,
            url=self.url,
            headers=self.headers.copy(),
            cookies=self.cookies.copy(),
            query_params=deepcopy(self.query_params),
            form_params=deepcopy(self.form_params),
            body=self.body,
            content_type=self.content_type,
            config=self.config,
        )


# =============================================================================
# Response
# =============================================================================


def _charset_of(content_type: str | None) -> str:
    for param in (content_type or "").split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            return value.strip().strip('"')
    return "utf-8"


@dataclass(frozen=True)
class Response:
    """Result of one exchange.

    Owned by the caller once returned. Filters read it but never mutate it;
    a filter that needs a field for its own state copies the value.

    Attributes:
        status_code: HTTP status code.
        status_line: Status line as sent by the server ("HTTP/1.1 200 OK").
        headers: Response headers.
        cookies: Cookies set by the response; one entry per name.
        content: Raw body bytes.
        content_type: Value of the Content-Type header, if any.
        url: URL the response was received from.
        elapsed_ms: Time spent in the terminal sender.
        parser_registry: Registry used to resolve the body parser.
    """

    status_code: int
    headers: Headers = field(default_factory=Headers)
    cookies: Cookies = field(default_factory=Cookies)
    content: bytes = b""
    content_type: str | None = None
    url: str = ""
    status_line: str = ""
    elapsed_ms: float = 0.0
    parser_registry: ParserRegistry | None = None

    @property
    def text(self) -> str:
        return self.content.decode(_charset_of(self.content_type), errors="replace")

    def header(self, name: str) -> str | None:
        return self.headers.get(name)

    def cookie(self, name: str) -> str | None:
        return self.cookies.value(name)

    def session_id(self, session_id_name: str) -> str | None:
        return self.cookies.value(session_id_name)

    @property
    def parser(self) -> Parser | None:
        """The parser for this body, or None if the content type is unknown."""
        if self.parser_registry is not None:
            return self.parser_registry.get_parser(self.content_type)
        return resolve(self.content_type)

    def parsed_body(self, parser: Parser | str | None = None) -> Any:
        """Parse the body with parser, or with the resolved parser.

        JSON bodies become Python objects, XML and HTML bodies become lxml
        elements and TEXT bodies are returned as str.

        Raises:
            ValueError: If parser is a name that matches no Parser.
            UnresolvedParserException: If no parser was given and none resolves.
        """
        if isinstance(parser, str):
            parser = Parser.from_name(parser)
        if parser is None:
            parser = self.parser
        if parser is None:
            raise UnresolvedParserException(self.content_type, self.url)

        match parser:
            case Parser.JSON:
                return json.loads(self.text)
            case Parser.XML:
                return etree.fromstring(self.content)
            case Parser.HTML:
                return lxml_html.fromstring(self.content)
            case Parser.TEXT:
                return self.text
            case _:
                assert_never(parser)

    def as_(
        self, target: type[T], mappers: ObjectMapperRegistry | None = None
    ) -> T:
        """Deserialize the body into target with the mapper for its parser."""
        from restchain.pipeline.common.mapping import default_object_mappers

        registry = mappers or default_object_mappers()
        return registry.mapper_for(self.parser).deserialize(self.content, target)


# =============================================================================
# Response specification
# =============================================================================

BodyExpectation = Callable[[Response], Any]


def _invoke_expectation(expectation: BodyExpectation, response: Response) -> None:
    name = getattr(expectation, "__name__", repr(expectation))
    try:
        result = expectation(response)
    except Exception as e:
        raise InvocationTargetException(
            f"Expectation {name} raised {type(e).__name__}",
            context={"expectation": name},
        ) from e
    if result is False:
        raise AssertionError(f"Expectation {name} was not satisfied.")


@dataclass
class ResponseSpecification:
    """Expectations for the eventual response.

    Filters treat this object as read only; they consult config (for
    example the session cookie name) and otherwise pass it along.

    Body expectations are callables receiving the Response. An expectation
    fails by raising, or by returning False.

    Attributes:
        status_code: Expected status code, or None to accept any.
        headers: Expected header values (case-insensitive names).
        cookies: Expected cookie values.
        content_type: Expected content type; parameters on the actual
            content type are ignored unless the expectation has some too.
        body_expectations: Callables checked in order after the above.
        parser: Parser the caller demands for the body, overriding content
            type resolution.
        config: Configuration consulted by filters.
    """

    status_code: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    content_type: str | None = None
    body_expectations: list[BodyExpectation] = field(default_factory=list)
    parser: Parser | None = None
    config: RestConfig = field(default_factory=RestConfig)

    def expect_body(self, expectation: BodyExpectation) -> ResponseSpecification:
        self.body_expectations.append(expectation)
        return self

    def using_parser(self, parser: Parser | str) -> ResponseSpecification:
        """Demand a parser; an unknown name is a ValueError."""
        self.parser = Parser.from_name(parser) if isinstance(parser, str) else parser
        return self

    def parsed_body(self, response: Response) -> Any:
        """Parse the body of response with the demanded parser, if any.

        Without a demanded parser the response's content type decides, as in
        Response.parsed_body().
        """
        return response.parsed_body(self.parser)

    def validate(self, response: Response) -> Response:
        """Check every expectation against response.

        Raises:
            AssertionError: If any expectation does not hold. Exceptions raised
                by body expectations surface with their original type.
        """
        run_with_unwrap(lambda: self._evaluate(response))
        return response

    def _evaluate(self, response: Response) -> None:
        try:
            self._check(response)
        except AssertionError:
            raise
        except Exception as e:
            raise EvaluationRuntimeException(
                f"Failed to evaluate response expectations: {e}",
                context={"url": response.url},
            ) from e

    def _check(self, response: Response) -> None:
        errors: list[str] = []
        if self.status_code is not None and response.status_code != self.status_code:
            errors.append(
                f"Expected status code <{self.status_code}> but was "
                f"<{response.status_code}>."
            )
        for name, expected in self.headers.items():
            actual = response.header(name)
            if actual != expected:
                errors.append(
                    f"Expected header {name!r} to be {expected!r} but was {actual!r}."
                )
        for name, expected in self.cookies.items():
            actual = response.cookie(name)
            if actual != expected:
                errors.append(
                    f"Expected cookie {name!r} to be {expected!r} but was {actual!r}."
                )
        if self.content_type is not None and not _content_type_matches(
            self.content_type, response.content_type
        ):
            errors.append(
                f"Expected content-type {self.content_type!r} doesn't match "
                f"actual content-type {response.content_type!r}."
            )
        if errors:
            count = len(errors)
            noun = "expectation" if count == 1 else "expectations"
            raise AssertionError(f"{count} {noun} failed.\n" + "\n".join(errors))

        for expectation in self.body_expectations:
            _invoke_expectation(expectation, response)


def _content_type_matches(expected: str, actual: str | None) -> bool:
    if actual is None:
        return False
    if ";" in expected:
        return expected.replace(" ", "").lower() == actual.replace(" ", "").lower()
    return actual.split(";", 1)[0].strip().lower() == expected.strip().lower()


# =============================================================================
# CSRF
# =============================================================================


@dataclass(frozen=True)
class CsrfData:
    """A discovered CSRF token and where it has to go.

    Attributes:
        name: Input field name (FORM_PARAMETER) or header name (HEADER).
        token: The token value.
        prioritization: Injection target for the next request.
    """

    name: str
    token: str
    prioritization: CsrfPrioritization

    @property
    def should_send_as_header(self) -> bool:
        return self.prioritization is CsrfPrioritization.HEADER
