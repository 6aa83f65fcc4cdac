from collections.abc import Generator

import httpx
import pytest

from restchain.pipeline.common.log_repository import LogRepository
from restchain.pipeline.driver.sync_driver import HttpxSender
from tests.pipeline.utils import FakeServer, install_default_routes


@pytest.fixture
def server() -> FakeServer:
    fake = FakeServer()
    install_default_routes(fake)
    return fake


@pytest.fixture
def log_repository() -> LogRepository:
    return LogRepository()


@pytest.fixture
def sender(
    server: FakeServer, log_repository: LogRepository
) -> Generator[HttpxSender, None, None]:
    client = httpx.Client(transport=httpx.MockTransport(server))
    with client:
        yield HttpxSender(client=client, log_repository=log_repository)
