"""Cookie jar scoped to a filter instance.

Cookies returned by one exchange are sent with every later exchange that goes
through the same CookieFilter, unless the request sets a cookie of the same
name itself.
"""

import logging
from threading import Lock

from restchain.pipeline.common.filter import FilterContext
from restchain.pipeline.data_types import (
    RequestSpecification,
    Response,
    ResponseSpecification,
)

logger = logging.getLogger(__name__)


class CookieFilter:
    """Filter that stores response cookies and replays them on later requests.

    One instance may be shared by exchanges running on several threads; that
    is how a test suite simulates one client session from a thread pool. The
    jar is guarded by a lock, and each response's cookies are merged in one
    step, so the jar always equals some sequence of whole merges. Which
    concurrent response merges last is not defined.

    Example:
        cookies = CookieFilter()
        chain = FilterChain([cookies], sender)
        chain.execute(login_request)    # server sets "sid"
        chain.execute(profile_request)  # "sid" is sent automatically
    """

    def __init__(self) -> None:
        self._cookies: dict[str, str] = {}
        self._lock = Lock()

    @property
    def cookies(self) -> dict[str, str]:
        """A snapshot of the stored cookies."""
        with self._lock:
            return dict(self._cookies)

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        # Cookies set explicitly on the request always win over stored ones.
        for name, value in self.cookies.items():
            if not request_spec.cookies.has_cookie_with_name(name):
                request_spec.cookie(name, value)

        response = ctx.next(request_spec, response_spec)

        received = response.cookies.as_dict()
        if received:
            with self._lock:
                self._cookies.update(received)
            logger.debug(
                f"Stored {len(received)} cookie(s) from {response.url}",
                extra={"cookie_names": sorted(received)},
            )
        return response
