"""Request/response interception pipeline for HTTP tests.

Filters are composed around a single exchange by FilterChain; HttpxSender
performs the exchange itself.
"""

from restchain.pipeline.common.filter import (
    Filter,
    FilterChain,
    FilterContext,
    RequestSender,
)
from restchain.pipeline.config import (
    CsrfConfig,
    CsrfPrioritization,
    LogConfig,
    LogDetail,
    RestConfig,
    SessionConfig,
)
from restchain.pipeline.data_types import (
    Cookie,
    Cookies,
    Header,
    Headers,
    HttpMethod,
    RequestSpecification,
    Response,
    ResponseSpecification,
)
from restchain.pipeline.parsing import Parser, ParserRegistry, resolve

__all__ = [
    "Cookie",
    "Cookies",
    "CsrfConfig",
    "CsrfPrioritization",
    "Filter",
    "FilterChain",
    "FilterContext",
    "Header",
    "Headers",
    "HttpMethod",
    "LogConfig",
    "LogDetail",
    "Parser",
    "ParserRegistry",
    "RequestSender",
    "RequestSpecification",
    "Response",
    "ResponseSpecification",
    "RestConfig",
    "SessionConfig",
    "resolve",
]
