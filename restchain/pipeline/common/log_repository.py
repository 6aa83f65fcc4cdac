"""Side channel for request/response wire traces.

The terminal sender registers one buffer per direction; reporting code reads
them later, typically when an assertion fails and the traffic has to be shown.
The repository is not a filter and never sits in the chain.
"""

from io import BytesIO
from threading import Lock


class LogRepository:
    """A pair of append-only byte sinks, one per direction.

    Reading before anything was registered returns an empty string.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding
        self._lock = Lock()
        self._request_logs: list[BytesIO] = []
        self._response_logs: list[BytesIO] = []

    def register_request_log(self, buffer: BytesIO) -> None:
        with self._lock:
            self._request_logs.append(buffer)

    def register_response_log(self, buffer: BytesIO) -> None:
        with self._lock:
            self._response_logs.append(buffer)

    @property
    def request_log(self) -> str:
        return self._read(self._request_logs)

    @property
    def response_log(self) -> str:
        return self._read(self._response_logs)

    def clear(self) -> None:
        with self._lock:
            self._request_logs.clear()
            self._response_logs.clear()

    def _read(self, buffers: list[BytesIO]) -> str:
        with self._lock:
            content = b"".join(buffer.getvalue() for buffer in buffers)
        return content.decode(self.encoding, errors="replace")
