"""Text renderings of requests and responses.

Used by the logging filters (human-readable summaries) and by the terminal
sender (raw wire traces for the LogRepository).
"""

import json

from restchain.pipeline.config import LogConfig, LogDetail
from restchain.pipeline.data_types import (
    Headers,
    RequestSpecification,
    Response,
)
from restchain.pipeline.parsing import Parser, resolve

NONE = "<none>"
BLACKLISTED = "[ BLACKLISTED ]"


def _format_params(params: dict[str, list[str]]) -> str:
    if not params:
        return NONE
    lines = []
    for name, values in params.items():
        value = values[0] if len(values) == 1 else f"[{', '.join(values)}]"
        lines.append(f"{name}={value}")
    return "\n\t\t\t\t".join(lines)


def _format_headers(headers: Headers, log_config: LogConfig) -> str:
    if not len(headers):
        return NONE
    lines = []
    for header in headers:
        value = BLACKLISTED if log_config.is_blacklisted(header.name) else header.value
        lines.append(f"{header.name}={value}")
    return "\n\t\t\t\t".join(lines)


def _format_cookies(cookies: dict[str, str]) -> str:
    if not cookies:
        return NONE
    return "\n\t\t\t\t".join(f"{name}={value}" for name, value in cookies.items())


def _pretty(text: str, content_type: str | None, pretty_print: bool) -> str:
    if not pretty_print or not text:
        return text
    if resolve(content_type) is Parser.JSON:
        try:
            return json.dumps(json.loads(text), indent=4)
        except ValueError:
            return text
    return text


def _request_body(request_spec: RequestSpecification, pretty_print: bool) -> str:
    body = request_spec.body
    if body is None:
        return NONE
    if isinstance(body, bytes):
        text = body.decode("utf-8", errors="replace")
    elif isinstance(body, str):
        text = body
    else:
        text = repr(body)
    return _pretty(text, request_spec.content_type, pretty_print)


def format_request(
    request_spec: RequestSpecification,
    log_detail: LogDetail = LogDetail.ALL,
    log_config: LogConfig | None = None,
    uri: str | None = None,
) -> str:
    """Render the parts of request_spec selected by log_detail."""
    log_config = log_config or request_spec.config.log
    uri = uri if uri is not None else request_spec.uri
    show_all = log_detail is LogDetail.ALL
    lines: list[str] = []

    if show_all or log_detail is LogDetail.METHOD:
        lines.append(f"Request method:\t{request_spec.method.value}")
    if show_all or log_detail is LogDetail.URI:
        lines.append(f"Request URI:\t{uri}")
    if show_all or log_detail is LogDetail.PARAMS:
        lines.append(f"Query params:\t{_format_params(request_spec.query_params)}")
        lines.append(f"Form params:\t{_format_params(request_spec.form_params)}")
    if show_all or log_detail is LogDetail.HEADERS:
        lines.append(
            f"Headers:\t\t{_format_headers(request_spec.headers, log_config)}"
        )
    if show_all or log_detail is LogDetail.COOKIES:
        lines.append(f"Cookies:\t\t{_format_cookies(request_spec.cookies.as_dict())}")
    if show_all or log_detail is LogDetail.BODY:
        body = _request_body(request_spec, log_config.pretty_print)
        lines.append("Body:" if body != NONE else f"Body:\t\t\t{NONE}")
        if body != NONE:
            lines.append(body)
    return "\n".join(lines) + "\n"


def format_response(
    response: Response,
    log_detail: LogDetail = LogDetail.ALL,
    log_config: LogConfig | None = None,
) -> str:
    """Render the parts of response selected by log_detail."""
    log_config = log_config or LogConfig()
    show_all = log_detail is LogDetail.ALL
    lines: list[str] = []

    if show_all or log_detail is LogDetail.STATUS:
        lines.append(response.status_line or str(response.status_code))
    if show_all or log_detail is LogDetail.HEADERS:
        for header in response.headers:
            value = (
                BLACKLISTED
                if log_config.is_blacklisted(header.name)
                else header.value
            )
            lines.append(f"{header.name}: {value}")
    elif log_detail is LogDetail.COOKIES:
        for cookie in response.cookies:
            lines.append(f"{cookie.name}={cookie.value}")
    if show_all or log_detail is LogDetail.BODY:
        if show_all:
            lines.append("")
        lines.append(
            _pretty(response.text, response.content_type, log_config.pretty_print)
        )
    return "\n".join(lines) + "\n"


def wire_request(
    method: str, url: str, headers: list[tuple[str, str]], body: bytes
) -> bytes:
    """Raw HTTP/1.1-style rendering of a request as it went on the wire."""
    head = [f"{method} {url} HTTP/1.1"]
    head.extend(f"{name}: {value}" for name, value in headers)
    return ("\r\n".join(head) + "\r\n\r\n").encode("utf-8") + body


def wire_response(
    status_line: str, headers: list[tuple[str, str]], body: bytes
) -> bytes:
    """Raw HTTP/1.1-style rendering of a response as it came off the wire."""
    head = [status_line]
    head.extend(f"{name}: {value}" for name, value in headers)
    return ("\r\n".join(head) + "\r\n\r\n").encode("utf-8") + body
