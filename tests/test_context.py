from __future__ import annotations

import time

import pytest

from identity_service.context import RequestContext
from identity_service.errors import OperationCancelledError


def test_unbounded_context_never_expires():
    ctx = RequestContext()
    assert ctx.remaining() is None
    ctx.check("anything")


def test_deadline_and_cancellation_stop_the_request():
    ctx = RequestContext.with_timeout(30, request_id="req-1")
    assert ctx.request_id == "req-1"
    assert 0 < ctx.remaining() <= 30
    ctx.check("store call")

    ctx.cancel()
    with pytest.raises(OperationCancelledError) as excinfo:
        ctx.check("store call")
    assert excinfo.value.step == "store call"

    expired = RequestContext(deadline=time.monotonic() - 0.1)
    assert expired.remaining() == 0.0
    with pytest.raises(OperationCancelledError):
        expired.check("bus publish")


def test_logger_carries_request_id():
    ctx = RequestContext(request_id="req-2")
    assert ctx.logger.extra == {"request_id": "req-2"}
