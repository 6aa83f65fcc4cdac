"""Session id propagation."""

import logging
from threading import Lock

from restchain.pipeline.common.filter import FilterContext
from restchain.pipeline.data_types import (
    RequestSpecification,
    Response,
    ResponseSpecification,
)

logger = logging.getLogger(__name__)


class SessionFilter:
    """Filter that captures the session id and sends it with later requests.

    The session cookie name is read from ``response_spec.config.session`` on
    every call, so a config change between calls takes effect immediately.
    The stored id is a single value replaced atomically; session_id and
    has_session_id() are safe to call while the filter runs on other threads.

    Example:
        session = SessionFilter()
        chain = FilterChain([session], sender)
        chain.execute(login_request)
        assert session.has_session_id()
    """

    def __init__(self) -> None:
        self._session_id: str | None = None
        self._lock = Lock()

    @property
    def session_id(self) -> str | None:
        """The last session id received, or None."""
        with self._lock:
            return self._session_id

    def has_session_id(self) -> bool:
        session_id = self.session_id
        return session_id is not None and bool(session_id.strip())

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        session_id_name = response_spec.config.session.session_id_name
        stored = self.session_id

        if stored is not None and not request_spec.cookies.has_cookie_with_name(
            session_id_name
        ):
            request_spec.cookie(session_id_name, stored)

        response = ctx.next(request_spec, response_spec)

        received = response.session_id(session_id_name)
        if received is None:
            return response
        if not received.strip():
            logger.warning(
                f"Ignoring blank {session_id_name} set by {response.url}",
                extra={"session_id_name": session_id_name},
            )
            return response
        with self._lock:
            self._session_id = received
        logger.debug(f"Captured {session_id_name} from {response.url}")
        return response
