"""Response time measurement."""

import time

from restchain.pipeline.common.filter import FilterContext
from restchain.pipeline.data_types import (
    RequestSpecification,
    Response,
    ResponseSpecification,
)

# Scratch-store key holding the measured time in milliseconds.
RESPONSE_TIME_MILLISECONDS = "RESPONSE_TIME_MILLIS"


class TimingFilter:
    """Measure how long the rest of the chain takes.

    The elapsed time covers every filter after this one plus the terminal
    send, and is published in the scratch store under
    RESPONSE_TIME_MILLISECONDS as an int.
    """

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        start = time.monotonic()
        response = ctx.next(request_spec, response_spec)
        ctx.set_value(
            RESPONSE_TIME_MILLISECONDS, int((time.monotonic() - start) * 1000)
        )
        return response
