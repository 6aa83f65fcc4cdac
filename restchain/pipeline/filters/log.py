"""Filters that print requests and responses.

Output goes to the supplied text stream, or to this module's logger at INFO
level when no stream is given.
"""

import logging
from collections.abc import Callable
from typing import TextIO
from urllib.parse import unquote

from restchain.pipeline.common.filter import FilterContext
from restchain.pipeline.common.printer import format_request, format_response
from restchain.pipeline.config import LogConfig, LogDetail
from restchain.pipeline.data_types import (
    RequestSpecification,
    Response,
    ResponseSpecification,
)

logger = logging.getLogger(__name__)

_INVALID_FOR_RESPONSE = frozenset({LogDetail.METHOD, LogDetail.URI, LogDetail.PARAMS})


def _emit(stream: TextIO | None, text: str) -> None:
    if stream is None:
        logger.info(text.rstrip("\n"))
    else:
        stream.write(text)
        stream.flush()


class RequestLoggingFilter:
    """Log the request right before it is handed to the rest of the chain.

    Place it last in the filter list to see the request exactly as other
    filters left it.
    """

    def __init__(
        self,
        log_detail: LogDetail = LogDetail.ALL,
        stream: TextIO | None = None,
        log_config: LogConfig | None = None,
    ) -> None:
        """Initialize the request logging filter.

        Args:
            log_detail: Which parts of the request to print.
            stream: Where to write. Defaults to the module logger.
            log_config: Overrides the request's config.log.

        Raises:
            ValueError: If log_detail is STATUS, which a request does not have.
        """
        if log_detail is LogDetail.STATUS:
            raise ValueError(
                f"{log_detail.name} is not a valid {LogDetail.__name__} for a request."
            )
        self.log_detail = log_detail
        self.stream = stream
        self.log_config = log_config

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        log_config = self.log_config or request_spec.config.log
        uri = request_spec.uri
        if not log_config.show_url_encoded_uri:
            uri = unquote(uri)
        _emit(self.stream, format_request(request_spec, self.log_detail, log_config, uri))
        return ctx.next(request_spec, response_spec)


class ResponseLoggingFilter:
    """Log the response once the rest of the chain has produced it.

    Example:
        # Only log responses that are not 2xx
        ResponseLoggingFilter(status_predicate=lambda code: not 200 <= code < 300)
    """

    def __init__(
        self,
        log_detail: LogDetail = LogDetail.ALL,
        stream: TextIO | None = None,
        status_predicate: Callable[[int], bool] | None = None,
        log_config: LogConfig | None = None,
    ) -> None:
        """Initialize the response logging filter.

        Args:
            log_detail: Which parts of the response to print.
            stream: Where to write. Defaults to the module logger.
            status_predicate: Only log when this returns True for the status
                code. Logs every response when omitted.
            log_config: Overrides the response spec's config.log.

        Raises:
            ValueError: If log_detail is METHOD, URI or PARAMS.
        """
        if log_detail in _INVALID_FOR_RESPONSE:
            raise ValueError(
                f"{log_detail.name} is not a valid {LogDetail.__name__} for a response."
            )
        self.log_detail = log_detail
        self.stream = stream
        self.status_predicate = status_predicate
        self.log_config = log_config

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        response = ctx.next(request_spec, response_spec)
        if self.status_predicate is None or self.status_predicate(response.status_code):
            log_config = self.log_config or response_spec.config.log
            _emit(self.stream, format_response(response, self.log_detail, log_config))
        return response


class ErrorLoggingFilter(ResponseLoggingFilter):
    """Log responses with a 4xx or 5xx status code."""

    def __init__(
        self,
        log_detail: LogDetail = LogDetail.ALL,
        stream: TextIO | None = None,
        log_config: LogConfig | None = None,
    ) -> None:
        super().__init__(
            log_detail,
            stream,
            status_predicate=lambda code: 400 <= code <= 599,
            log_config=log_config,
        )
