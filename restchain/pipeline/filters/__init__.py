from restchain.pipeline.filters.auth import (
    FormAuthFilter,
    OAuth2BearerFilter,
    PreemptiveBasicAuthFilter,
)
from restchain.pipeline.filters.cookie import CookieFilter
from restchain.pipeline.filters.csrf import CsrfFilter
from restchain.pipeline.filters.log import (
    ErrorLoggingFilter,
    RequestLoggingFilter,
    ResponseLoggingFilter,
)
from restchain.pipeline.filters.session import SessionFilter
from restchain.pipeline.filters.timing import TimingFilter

__all__ = [
    "CookieFilter",
    "CsrfFilter",
    "ErrorLoggingFilter",
    "FormAuthFilter",
    "OAuth2BearerFilter",
    "PreemptiveBasicAuthFilter",
    "RequestLoggingFilter",
    "ResponseLoggingFilter",
    "SessionFilter",
    "TimingFilter",
]
