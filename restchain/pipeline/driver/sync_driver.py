"""Synchronous terminal sender backed by httpx.

HttpxSender is the last link of every filter chain: it turns a
RequestSpecification into an httpx.Request, sends it, and converts the
httpx.Response back into an immutable pipeline Response.

Transport errors (httpx.ConnectError, httpx.TimeoutException, ...) are not
converted; they propagate through the filter chain exactly as httpx raised
them.
"""

import logging
import time
from io import BytesIO
from urllib.parse import urlencode

import httpx

from restchain.pipeline.common.log_repository import LogRepository
from restchain.pipeline.common.mapping import (
    ObjectMapperRegistry,
    default_object_mappers,
)
from restchain.pipeline.common.printer import wire_request, wire_response
from restchain.pipeline.data_types import (
    Cookie,
    Cookies,
    Headers,
    HttpMethod,
    RequestSpecification,
    Response,
)
from restchain.pipeline.parsing import Parser, resolve

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _charset_or_default(content_type: str | None) -> str:
    for param in (content_type or "").split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            return value.strip()
    return "utf-8"


class HttpxSender:
    """Send request specifications with an httpx.Client.

    The client's own cookie jar is never consulted: cookies come from the
    request specification only, so that cookie and session handling stay in
    the filters that own them.

    Example usage:
        sender = HttpxSender(log_repository=LogRepository())
        chain = FilterChain([CookieFilter()], sender)
        response = chain.execute(RequestSpecification(HttpMethod.GET, url))
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        log_repository: LogRepository | None = None,
        object_mappers: ObjectMapperRegistry | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
        follow_redirects: bool = False,
    ) -> None:
        """Initialize the sender.

        Args:
            client: httpx.Client to reuse. A new one is created when omitted.
            log_repository: Optional sink for raw request/response traces.
            object_mappers: Mappers used to serialize non-bytes bodies.
            timeout: Per-request timeout in seconds (None disables it).
            follow_redirects: Whether httpx follows redirects.
        """
        self._client = client or httpx.Client()
        self._owns_client = client is None
        self.log_repository = log_repository
        self.object_mappers = object_mappers or default_object_mappers()
        self.timeout = timeout
        self.follow_redirects = follow_redirects

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpxSender":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def send(self, request_spec: RequestSpecification) -> Response:
        """Perform the exchange described by request_spec.

        Raises:
            httpx.HTTPError: On connection, protocol or timeout errors.
        """
        self._apply_default_session_id(request_spec)
        http_request = self.build_request(request_spec)

        start = time.monotonic()
        http_response = self._client.send(
            http_request, follow_redirects=self.follow_redirects
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        response = self.to_response(http_response, request_spec, elapsed_ms)
        self._record(http_request, response)
        logger.debug(
            f"{request_spec.method.value} {request_spec.uri} -> "
            f"{response.status_code} in {elapsed_ms:.1f}ms"
        )
        return response

    def build_request(self, request_spec: RequestSpecification) -> httpx.Request:
        """Translate a RequestSpecification into an httpx.Request."""
        headers = Headers(request_spec.headers)
        content = self._encode_body(request_spec, headers)

        if len(request_spec.cookies):
            headers.replace(
                "Cookie",
                "; ".join(f"{c.name}={c.value}" for c in request_spec.cookies),
            )

        extensions = {}
        if self.timeout is not None:
            extensions["timeout"] = httpx.Timeout(self.timeout).as_dict()

        return httpx.Request(
            method=request_spec.method.value,
            url=request_spec.uri,
            headers=headers.as_list(),
            content=content,
            extensions=extensions,
        )

    def _encode_body(
        self, request_spec: RequestSpecification, headers: Headers
    ) -> bytes | None:
        body = request_spec.body
        content_type = request_spec.content_type or headers.get("Content-Type")

        if body is None:
            if request_spec.form_params and request_spec.method is not HttpMethod.GET:
                if not headers.has_header_with_name("Content-Type"):
                    headers.add("Content-Type", FORM_CONTENT_TYPE)
                return urlencode(
                    [
                        (name, value)
                        for name, values in request_spec.form_params.items()
                        for value in values
                    ]
                ).encode("utf-8")
            return None

        if content_type and not headers.has_header_with_name("Content-Type"):
            headers.add("Content-Type", content_type)

        match body:
            case bytes():
                return body
            case str():
                return body.encode(_charset_or_default(content_type))
            case _:
                parser = resolve(content_type) if content_type else Parser.JSON
                if not headers.has_header_with_name("Content-Type"):
                    headers.add("Content-Type", "application/json")
                return self.object_mappers.mapper_for(parser).serialize(body)

    def to_response(
        self,
        http_response: httpx.Response,
        request_spec: RequestSpecification,
        elapsed_ms: float = 0.0,
    ) -> Response:
        """Convert an httpx.Response into a pipeline Response.

        Set-Cookie headers are read through httpx's cookie jar, so cookies
        the jar's policy rejects (a foreign Domain, an expiry in the past)
        are not part of the response.
        """
        cookies = Cookies(
            Cookie.from_jar_cookie(jar_cookie)
            for jar_cookie in http_response.cookies.jar
        )

        return Response(
            status_code=http_response.status_code,
            status_line=(
                f"{http_response.http_version} {http_response.status_code} "
                f"{http_response.reason_phrase}"
            ).strip(),
            headers=Headers(http_response.headers.multi_items()),
            cookies=cookies,
            content=http_response.read(),
            content_type=http_response.headers.get("content-type"),
            url=str(http_response.request.url),
            elapsed_ms=elapsed_ms,
            parser_registry=request_spec.config.parser_registry,
        )

    def _apply_default_session_id(self, request_spec: RequestSpecification) -> None:
        session = request_spec.config.session
        if session.is_session_id_value_defined() and not (
            request_spec.cookies.has_cookie_with_name(session.session_id_name)
        ):
            request_spec.cookie(session.session_id_name, session.session_id_value or "")

    def _record(self, http_request: httpx.Request, response: Response) -> None:
        if self.log_repository is None:
            return
        self.log_repository.register_request_log(
            BytesIO(
                wire_request(
                    http_request.method,
                    str(http_request.url),
                    http_request.headers.multi_items(),
                    http_request.content,
                )
            )
        )
        self.log_repository.register_response_log(
            BytesIO(
                wire_response(
                    response.status_line,
                    response.headers.as_list(),
                    response.content,
                )
            )
        )
