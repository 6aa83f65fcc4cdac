"""Tests for Step 3: Cookie filter.

Key behaviors tested:
- Cookies set by one response are sent with the next request
- Cookies set explicitly on a request win over stored ones
- Stored cookies are not changed by explicitly sent ones
- A shared filter instance survives concurrent use without lost updates
"""

from concurrent.futures import ThreadPoolExecutor

import httpx

from restchain.pipeline.common.filter import FilterChain
from restchain.pipeline.data_types import Cookie, Cookies, Response
from restchain.pipeline.driver.sync_driver import HttpxSender
from restchain.pipeline.filters.cookie import CookieFilter
from tests.pipeline.utils import FakeServer, StubSender, get, request_cookies


class TestCookiePropagation:
    """Tests for replaying stored cookies."""

    def test_response_cookies_are_sent_with_next_request(
        self, server: FakeServer, sender: HttpxSender
    ) -> None:
        """A cookie set by the first response shall be sent with the second request."""
        cookie_filter = CookieFilter()
        chain = FilterChain([cookie_filter], sender)

        first = chain.execute(get("/cookie"))
        assert first.cookie("foo") == "bar"
        assert request_cookies(server.last_request) == {}

        second = chain.execute(get("/echo"))

        assert second.parsed_body()["cookies"] == {"foo": "bar"}
        assert cookie_filter.cookies == {"foo": "bar"}

    def test_explicit_cookie_wins(
        self, server: FakeServer, sender: HttpxSender
    ) -> None:
        """An explicitly set cookie shall be sent instead of the stored one."""
        cookie_filter = CookieFilter()
        chain = FilterChain([cookie_filter], sender)
        chain.execute(get("/cookie"))

        chain.execute(get("/echo").cookie("foo", "baz"))

        assert request_cookies(server.last_request) == {"foo": "baz"}
        assert cookie_filter.cookies == {"foo": "bar"}

    def test_later_responses_overwrite_stored_values(self, sender: HttpxSender) -> None:
        """The most recent value received for a name shall be stored."""
        cookie_filter = CookieFilter()
        chain = FilterChain([cookie_filter], sender)

        chain.execute(get("/cookie").query_param("value", "one"))
        chain.execute(get("/cookie").query_param("value", "two"))

        assert cookie_filter.cookies == {"foo": "two"}

    def test_stored_cookies_are_merged_with_request_cookies(self) -> None:
        """Stored cookies shall be added alongside unrelated request cookies."""
        cookie_filter = CookieFilter()
        sender = StubSender(
            Response(status_code=200, cookies=Cookies([Cookie("sid", "abc")])),
            Response(status_code=200),
        )
        chain = FilterChain([cookie_filter], sender)

        chain.execute(get("/a"))
        chain.execute(get("/b").cookie("lang", "en"))

        assert sender.sent[1].cookies.as_dict() == {"lang": "en", "sid": "abc"}

    def test_cookies_snapshot_is_a_copy(self) -> None:
        """Mutating the returned snapshot shall not change the store."""
        cookie_filter = CookieFilter()
        snapshot = cookie_filter.cookies
        snapshot["foo"] = "bar"
        assert cookie_filter.cookies == {}


class TestCookieFilterConcurrency:
    """Tests for sharing one CookieFilter between threads."""

    def test_concurrent_merges_lose_no_cookies(self, server: FakeServer) -> None:
        """Cookies with distinct names from concurrent responses shall all be stored."""

        def named(request: httpx.Request) -> httpx.Response:
            name = request.url.params["name"]
            return httpx.Response(200, headers={"Set-Cookie": f"{name}=v"})

        server.route("GET", "/named", named)
        cookie_filter = CookieFilter()
        thread_count = 16

        with httpx.Client(transport=httpx.MockTransport(server)) as client:
            chain = FilterChain([cookie_filter], HttpxSender(client=client))
            with ThreadPoolExecutor(max_workers=8) as pool:
                responses = list(
                    pool.map(
                        lambda i: chain.execute(
                            get("/named").query_param("name", f"c{i}")
                        ),
                        range(thread_count),
                    )
                )

        assert all(r.status_code == 200 for r in responses)
        assert cookie_filter.cookies == {f"c{i}": "v" for i in range(thread_count)}

    def test_concurrent_writes_to_one_name_keep_a_received_value(
        self, server: FakeServer
    ) -> None:
        """Concurrent writes to one name shall leave one of the received values."""
        cookie_filter = CookieFilter()
        values = {f"v{i}" for i in range(8)}

        with httpx.Client(transport=httpx.MockTransport(server)) as client:
            chain = FilterChain([cookie_filter], HttpxSender(client=client))
            with ThreadPoolExecutor(max_workers=8) as pool:
                list(
                    pool.map(
                        lambda v: chain.execute(
                            get("/cookie").query_param("value", v)
                        ),
                        sorted(values),
                    )
                )

        assert set(cookie_filter.cookies) == {"foo"}
        assert cookie_filter.cookies["foo"] in values
