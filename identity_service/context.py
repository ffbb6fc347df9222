"""Per-request context threaded through every lifecycle operation."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field

from .errors import OperationCancelledError

logger = logging.getLogger("identity_service")


@dataclass(slots=True)
class RequestContext:
    """Deadline, cancellation signal and logging handle for one request.

    ``deadline`` is expressed on the ``time.monotonic`` clock; ``None`` means
    the operation is unbounded.
    """

    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    deadline: float | None = None
    cancelled: threading.Event = field(default_factory=threading.Event)
    logger: logging.LoggerAdapter = field(init=False)

    def __post_init__(self) -> None:
        self.logger = logging.LoggerAdapter(logger, {"request_id": self.request_id})

    @classmethod
    def with_timeout(cls, seconds: float | None, request_id: str | None = None) -> "RequestContext":
        """Build a context whose deadline is ``seconds`` from now."""
        deadline = time.monotonic() + seconds if seconds is not None else None
        if request_id:
            return cls(request_id=request_id, deadline=deadline)
        return cls(deadline=deadline)

    def cancel(self) -> None:
        self.cancelled.set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, never negative."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self, step: str) -> None:
        """Raise ``OperationCancelledError`` when the request must stop before ``step``."""
        if self.cancelled.is_set():
            raise OperationCancelledError(step)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise OperationCancelledError(step)


def ensure_context(ctx: RequestContext | None) -> RequestContext:
    return ctx if ctx is not None else RequestContext()
