"""Authentication handshakes expressed as filters.

Credentials are validated when the filter is built: a missing or blank value
is a configuration error and raises ValueError straight away instead of
producing a confusing 401 later.
"""

import base64
import logging
from urllib.parse import urljoin

from restchain.pipeline.common.filter import FilterContext
from restchain.pipeline.config import CsrfConfig
from restchain.pipeline.data_types import (
    Headers,
    HttpMethod,
    RequestSpecification,
    Response,
    ResponseSpecification,
)
from restchain.pipeline.filters.csrf import find_csrf_data, inject_csrf_data

logger = logging.getLogger(__name__)

AUTHORIZATION = "Authorization"


def _not_blank(value: str | None, what: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{what} cannot be null or blank")
    return value


class PreemptiveBasicAuthFilter:
    """Send HTTP basic credentials without waiting for a 401 challenge.

    An Authorization header already present on the request is left alone.
    """

    def __init__(self, username: str, password: str) -> None:
        self.username = _not_blank(username, "Username")
        if password is None:
            raise ValueError("Password cannot be null")
        self.password = password

    @property
    def header_value(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode(
            "ascii"
        )
        return f"Basic {token}"

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        if not request_spec.headers.has_header_with_name(AUTHORIZATION):
            request_spec.header(AUTHORIZATION, self.header_value)
        return ctx.next(request_spec, response_spec)


class OAuth2BearerFilter:
    """Send an OAuth2 bearer token with every request."""

    def __init__(self, access_token: str) -> None:
        self.access_token = _not_blank(access_token, "Access token")

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        if not request_spec.headers.has_header_with_name(AUTHORIZATION):
            request_spec.header(AUTHORIZATION, f"Bearer {self.access_token}")
        return ctx.next(request_spec, response_spec)


class FormAuthFilter:
    """Log in through an HTML form before the real request.

    The filter posts the credentials to form_action with ctx.send(), then
    copies the cookies the login response set (typically the session id)
    onto the real request. When csrf is given, the login page at
    csrf.csrf_token_path is fetched first and its token is posted along with
    the credentials.

    The login is skipped when the request already carries the configured
    session cookie, for example one set with RequestSpecification.session_id().
    """

    def __init__(
        self,
        username: str,
        password: str,
        form_action: str = "/j_spring_security_check",
        username_field: str = "j_username",
        password_field: str = "j_password",
        csrf: CsrfConfig | None = None,
    ) -> None:
        self.username = _not_blank(username, "Username")
        if password is None:
            raise ValueError("Password cannot be null")
        self.password = password
        self.form_action = _not_blank(form_action, "Form action")
        self.username_field = _not_blank(username_field, "Username input field name")
        self.password_field = _not_blank(password_field, "Password input field name")
        self.csrf = csrf

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        session_id_name = response_spec.config.session.session_id_name
        if not request_spec.cookies.has_cookie_with_name(session_id_name):
            login_response = ctx.send(self._login_request(request_spec, ctx))
            logger.debug(
                f"Form login to {self.form_action} returned {login_response.status_code}"
            )
            for cookie in login_response.cookies:
                if not request_spec.cookies.has_cookie_with_name(cookie.name):
                    request_spec.cookie(cookie.name, cookie.value)
        return ctx.next(request_spec, response_spec)

    def _login_request(
        self, request_spec: RequestSpecification, ctx: FilterContext
    ) -> RequestSpecification:
        login = RequestSpecification(
            method=HttpMethod.POST,
            url=urljoin(request_spec.url, self.form_action),
            headers=Headers([("Accept", "*/*")]),
            cookies=request_spec.cookies.copy(),
            config=request_spec.config,
        )
        login.form_param(self.username_field, self.username)
        login.form_param(self.password_field, self.password)

        if self.csrf is not None and self.csrf.is_csrf_enabled:
            page = ctx.send(
                RequestSpecification(
                    method=HttpMethod.GET,
                    url=urljoin(request_spec.url, self.csrf.csrf_token_path),
                    cookies=login.cookies.copy(),
                    config=request_spec.config,
                )
            )
            for cookie in page.cookies:
                login.cookie(cookie.name, cookie.value)
            data = find_csrf_data(page.text, self.csrf)
            if data is None:
                field = self.csrf.csrf_input_field_name or "[]"
                raise ValueError(
                    f"Couldn't find the CSRF input field with name {field} in "
                    f"response. Response was:\n{page.text}"
                )
            inject_csrf_data(login, data)
        return login
