"""Exception hierarchy for the interception pipeline.

All exceptions raised by the pipeline itself derive from RestChainException.
Transport errors (httpx.HTTPError and friends) and errors raised by user
filters are never wrapped; they travel through the chain untouched.

The three *wrapper* kinds at the bottom of this module model the containers
that evaluation machinery puts around a real failure. They carry the real
failure as ``__cause__`` and are peeled off again by
:func:`restchain.pipeline.common.assert_bridge.unwrap`.
"""

from typing import Any


class RestChainException(Exception):
    """Base class for all pipeline exceptions.

    Attributes:
        message: Human-readable description of the failure.
        context: Additional structured data about the failure.
    """

    def __init__(
        self, message: str, context: dict[str, Any] | None = None
    ) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)


class FilterContractException(RestChainException):
    """Raised when a filter breaks the filter contract.

    A filter must either delegate to ``ctx.next()`` exactly once or produce
    its own Response. Delegating twice or returning nothing is a bug in the
    filter, not a transport failure.
    """

    def __init__(self, filter_name: str, reason: str) -> None:
        self.filter_name = filter_name
        self.reason = reason
        super().__init__(
            f"Filter {filter_name} violated the filter contract: {reason}",
            context={"filter": filter_name, "reason": reason},
        )


class UnresolvedParserException(RestChainException):
    """Raised when a response body must be parsed but no parser matches.

    Resolving a parser is allowed to fail silently; asking for a parsed body
    is not.
    """

    def __init__(self, content_type: str | None, url: str = "") -> None:
        self.content_type = content_type
        self.url = url
        super().__init__(
            f"Cannot parse response body from {url or '<unknown url>'}: "
            f"no parser registered for content type {content_type!r}",
            context={"content_type": content_type, "url": url},
        )


class EvaluationRuntimeException(RestChainException):
    """Wrapper raised by the expectation evaluator around a real failure."""


class InvocationTargetException(RestChainException):
    """Wrapper for a failure raised by a dynamically invoked callable."""


class UndeclaredThrowableException(RestChainException):
    """Wrapper for a failure a proxy raised that its interface did not declare."""
