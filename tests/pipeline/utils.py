"""Helpers shared by the pipeline tests."""

from collections.abc import Callable
from http.cookies import SimpleCookie
from threading import Lock
from urllib.parse import parse_qs

import httpx

from restchain.pipeline.common.filter import FilterContext
from restchain.pipeline.data_types import (
    HttpMethod,
    RequestSpecification,
    Response,
    ResponseSpecification,
)

BASE_URL = "http://testserver"

CSRF_TOKEN = "8adf2ea1-b246-40aa-8e13-a85fb7914341"

LOGIN_PAGE = f"""<html>
<head><title>Login</title></head>
<body>
<form action="/login" method="POST">
    <table>
        <tr><td>User:&nbsp;</td><td><input type="text" name="j_username"></td></tr>
        <tr><td>Password:</td><td><input type="password" name="j_password"></td></tr>
        <tr><td colspan="2"><input name="submit" type="submit"/></td></tr>
    </table>
    <input type="hidden" name="_csrf" value="{CSRF_TOKEN}"/>
</form>
</body>
</html>"""

Handler = Callable[[httpx.Request], httpx.Response]


def request_cookies(request: httpx.Request) -> dict[str, str]:
    """Cookies the client sent with request."""
    jar: SimpleCookie = SimpleCookie()
    jar.load(request.headers.get("cookie", ""))
    return {name: morsel.value for name, morsel in jar.items()}


def request_form(request: httpx.Request) -> dict[str, str]:
    """Url-encoded form fields of request, first value per name."""
    parsed = parse_qs(request.content.decode("utf-8"), keep_blank_values=True)
    return {name: values[0] for name, values in parsed.items()}


class FakeServer:
    """In-memory HTTP server for httpx.MockTransport.

    Records every request it receives and dispatches on (method, path).
    Unknown routes answer 404.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Handler] = {}
        self._lock = Lock()

    def route(self, method: str, path: str, handler: Handler) -> None:
        self._routes[(method.upper(), path)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        with self._lock:
            self.requests.append(request)
        handler = self._routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, text="Not Found")
        return handler(request)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


def install_default_routes(server: FakeServer) -> None:
    def echo(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "method": request.method,
                "cookies": request_cookies(request),
                "headers": dict(request.headers),
                "form": request_form(request),
            },
        )

    def set_cookie(request: httpx.Request) -> httpx.Response:
        value = request.url.params.get("value", "bar")
        return httpx.Response(
            200,
            headers={"Set-Cookie": f"foo={value}; Path=/"},
            json={"cookies": request_cookies(request)},
        )

    def session(request: httpx.Request) -> httpx.Response:
        value = request.url.params.get("id", "1234")
        return httpx.Response(
            200,
            headers={"Set-Cookie": f"JSESSIONID={value}; Path=/; HttpOnly"},
            text="session",
        )

    def login_page(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={
                "Content-Type": "text/html;charset=utf-8",
                "Set-Cookie": "JSESSIONID=csrf-session; Path=/",
            },
            text=LOGIN_PAGE,
        )

    def login_post(request: httpx.Request) -> httpx.Response:
        form = request_form(request)
        header = request.headers.get("x-csrf-token")
        if form.get("_csrf") != CSRF_TOKEN and header != CSRF_TOKEN:
            return httpx.Response(403, text="Forbidden")
        return httpx.Response(
            200,
            headers={"Set-Cookie": "JSESSIONID=logged-in; Path=/"},
            json={"form": form, "csrf_header": header},
        )

    server.route("GET", "/echo", echo)
    server.route("POST", "/echo", echo)
    server.route("GET", "/cookie", set_cookie)
    server.route("GET", "/session", session)
    server.route("GET", "/login", login_page)
    server.route("POST", "/login", login_post)


def get(path: str, **kwargs) -> RequestSpecification:
    return RequestSpecification(HttpMethod.GET, f"{BASE_URL}{path}", **kwargs)


def post(path: str, **kwargs) -> RequestSpecification:
    return RequestSpecification(HttpMethod.POST, f"{BASE_URL}{path}", **kwargs)


class OrderTrackingFilter:
    """Filter that records when it sees the request and the response."""

    def __init__(self, name: str) -> None:
        self.name = name

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        order = ctx.get_value("order", [])
        ctx.set_value("order", [*order, f"request:{self.name}"])
        response = ctx.next(request_spec, response_spec)
        ctx.set_value("order", [*ctx.get_value("order"), f"response:{self.name}"])
        return response


class StubSender:
    """Terminal sender that returns canned responses and records requests."""

    def __init__(self, *responses: Response) -> None:
        self.responses = list(responses) or [Response(status_code=200)]
        self.sent: list[RequestSpecification] = []

    def send(self, request_spec: RequestSpecification) -> Response:
        self.sent.append(request_spec.copy())
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]
