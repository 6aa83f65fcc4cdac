"""Filter protocol and chain executor.

Filters implement the middleware pattern with an explicit continuation: a
filter receives the request specification, the response specification and a
FilterContext, and decides when (and whether) to call ``ctx.next()``.

Key behaviors:
- Filters run in list order on the way out and in reverse order on the way
  back ("onion" ordering): the first filter sees the request first and the
  response last.
- A filter may short-circuit by returning its own Response without calling
  next(). Calling next() twice on the same context is a contract violation.
- Exceptions are never caught by the chain. Whatever a filter or the
  terminal sender raises reaches the caller unchanged; a filter that wants
  retries wraps its own next() call.
- The scratch store (set_value/get_value) is shared by every filter in one
  chain execution and discarded afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

from restchain.pipeline.common.exceptions import FilterContractException
from restchain.pipeline.data_types import (
    HttpMethod,
    RequestSpecification,
    Response,
    ResponseSpecification,
)

logger = logging.getLogger(__name__)


class Filter(Protocol):
    """Protocol for request/response filters.

    Example:
        class AcceptJsonFilter:
            def filter(self, request_spec, response_spec, ctx):
                if not request_spec.headers.has_header_with_name("Accept"):
                    request_spec.header("Accept", "application/json")
                return ctx.next(request_spec, response_spec)
    """

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        """Intercept one exchange.

        Args:
            request_spec: The outgoing request. Mutate it in place before
                calling ctx.next().
            response_spec: Expectations and configuration for the exchange.
            ctx: Continuation, scratch store and auxiliary sender.

        Returns:
            The Response from ctx.next(), or one produced by the filter
            itself when short-circuiting.
        """
        ...


class RequestSender(Protocol):
    """The terminal capability: actually perform the HTTP exchange."""

    def send(self, request_spec: RequestSpecification) -> Response: ...


class FilterContext:
    """Continuation for one position in a filter chain.

    Each filter receives the context for its own position; next() creates the
    context for the following position, so the chain is walked by index and
    never by consuming a shared iterator.
    """

    def __init__(
        self,
        filters: tuple[Filter, ...],
        position: int,
        sender: RequestSender,
        values: dict[str, Any],
    ) -> None:
        self._filters = filters
        self._position = position
        self._sender = sender
        self._values = values
        self._consumed = False
        self.request_spec: RequestSpecification | None = None

    @property
    def request_uri(self) -> str:
        return self.request_spec.uri if self.request_spec else ""

    @property
    def request_method(self) -> HttpMethod | None:
        return self.request_spec.method if self.request_spec else None

    def next(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
    ) -> Response:
        """Run the rest of the chain and the terminal sender.

        Raises:
            FilterContractException: If called twice on the same context, or if
                a downstream filter returns None.
        """
        if self._consumed:
            raise FilterContractException(
                self._filter_name(self._position - 1),
                "ctx.next() was called more than once",
            )
        self._consumed = True
        return self._invoke(request_spec, response_spec)

    def _invoke(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
    ) -> Response:
        self.request_spec = request_spec
        if self._position >= len(self._filters):
            logger.debug(
                f"Sending {request_spec.method.value} {request_spec.uri}"
            )
            return self._sender.send(request_spec)

        current = self._filters[self._position]
        downstream = FilterContext(
            self._filters, self._position + 1, self._sender, self._values
        )
        downstream.request_spec = request_spec
        response = current.filter(request_spec, response_spec, downstream)
        if response is None:
            raise FilterContractException(
                self._filter_name(self._position), "filter returned None"
            )
        return response

    def send(self, request_spec: RequestSpecification) -> Response:
        """Send an auxiliary request straight to the terminal sender.

        The remaining filters are bypassed. Useful for probes such as fetching
        a CSRF token or logging in before the real request.
        """
        logger.debug(
            f"Auxiliary {request_spec.method.value} {request_spec.uri}"
        )
        return self._sender.send(request_spec)

    def set_value(self, name: str, value: Any) -> None:
        self._values[name] = value

    def get_value(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def has_value(self, name: str) -> bool:
        return name in self._values

    @property
    def values(self) -> dict[str, Any]:
        """A snapshot of the scratch store."""
        return dict(self._values)

    def _filter_name(self, position: int) -> str:
        if 0 <= position < len(self._filters):
            return type(self._filters[position]).__name__
        return "<chain>"


class FilterChain:
    """Composes an ordered sequence of filters with a terminal sender.

    Example:
        chain = FilterChain([CookieFilter(), SessionFilter()], HttpxSender())
        response = chain.execute(request_spec, response_spec)

    A chain holds no per-exchange state and may be executed from several
    threads at once. Filter instances shared this way must be thread safe
    themselves, as CookieFilter and SessionFilter are.
    """

    def __init__(
        self, filters: Sequence[Filter], sender: RequestSender
    ) -> None:
        self.filters: tuple[Filter, ...] = tuple(filters)
        self.sender = sender

    def with_filters(self, *filters: Filter) -> FilterChain:
        """Return a new chain with filters appended."""
        return FilterChain((*self.filters, *filters), self.sender)

    def execute(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification | None = None,
        values: dict[str, Any] | None = None,
    ) -> Response:
        """Run one exchange through every filter and the sender.

        Args:
            request_spec: The request to send.
            response_spec: Expectations for the response. A default one
                sharing the request's config is created when omitted.
            values: Optional scratch store to use. Passing a dict lets the
                caller inspect what filters stored during the exchange.

        Returns:
            The Response returned by the outermost filter.
        """
        if response_spec is None:
            response_spec = ResponseSpecification(config=request_spec.config)
        ctx = FilterContext(
            self.filters, 0, self.sender, values if values is not None else {}
        )
        return ctx.next(request_spec, response_spec)
