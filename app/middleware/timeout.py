"""
Pure ASGI request timeout middleware

Bounds the wall-clock time of selected routes. When the budget runs out
before the application has started a response, a single 408 is sent and
anything the application tries to send afterwards is dropped.
"""
import asyncio
import logging
import time
from typing import Iterable, Optional

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import settings

logger = logging.getLogger(__name__)


class RequestTimeoutMiddleware:
    """Apply a hard timeout to requests whose path starts with one of ``paths``"""

    def __init__(
        self,
        app: ASGIApp,
        paths: Iterable[str],
        timeout_seconds: Optional[float] = None,
        code: str = "BOOKING_TIMEOUT",
        message: str = "Booking request took too long. Please try again."
    ) -> None:
        self.app = app
        self.paths = tuple(paths)
        self.timeout_seconds = timeout_seconds
        self.code = code
        self.message = message

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope.get("path", "").startswith(self.paths):
            await self.app(scope, receive, send)
            return

        timeout = self.timeout_seconds or settings.BOOKING_REQUEST_TIMEOUT_SECONDS
        path = scope.get("path", "")
        state = {"response_started": False, "timed_out": False}
        start_time = time.monotonic()

        async def send_wrapper(message: Message) -> None:
            if state["timed_out"]:
                # Late output from the application after the 408 went out
                return
            if message["type"] == "http.response.start":
                state["response_started"] = True
            await send(message)

        task = asyncio.ensure_future(self.app(scope, receive, send_wrapper))
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if task in done:
            await task
            return

        elapsed = (time.monotonic() - start_time) * 1000
        if state["response_started"]:
            logger.warning(f"[TIMEOUT] {path} exceeded {timeout:g}s after response started ({elapsed:.0f}ms)")
            await task
            return

        # The handler keeps running (threadpool work cannot be interrupted);
        # its result is discarded
        state["timed_out"] = True
        task.add_done_callback(self._log_abandoned)
        task.cancel()
        logger.error(f"[TIMEOUT] {path} exceeded {timeout:g}s ({elapsed:.0f}ms); sending 408")
        response = JSONResponse(
            status_code=408,
            content={
                "error": "Request Timeout",
                "message": self.message,
                "code": self.code,
            },
        )
        await response(scope, receive, send)

    @staticmethod
    def _log_abandoned(task: asyncio.Future) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[TIMEOUT] Abandoned request failed: {exc}")
