"""
Post-commit side channel

Email dispatch and cache invalidation run on a dedicated executor so they
outlive the request that scheduled them: a timed-out or finished response
never cancels them, and their failures are only ever logged.
"""
from concurrent.futures import Future, ThreadPoolExecutor
import logging
from typing import Any, Callable, Dict, List

from app.config import settings
from app.services.cache_service import CacheService
from app.services.email_service import EmailService

logger = logging.getLogger(__name__)


class SideEffectDispatcher:
    """Fire-and-forget task runner for non-critical work"""

    def __init__(
        self,
        email_service: EmailService,
        cache: CacheService,
        max_workers: int = None,
    ):
        self.email_service = email_service
        self.cache = cache
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.SIDE_EFFECT_WORKERS,
            thread_name_prefix="side-effects",
        )

    def submit(self, name: str, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """Schedule ``fn``; the returned future is for tests, callers ignore it"""
        future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(lambda f: self._log_outcome(name, f))
        return future

    @staticmethod
    def _log_outcome(name: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error(f"Side effect '{name}' failed (non-blocking): {exc}", exc_info=exc)
        else:
            logger.debug(f"Side effect '{name}' completed")

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _send_session_confirmation(self, data: Dict[str, Any]) -> None:
        if not self.email_service.send_session_confirmation_email(data):
            raise RuntimeError(f"confirmation email to {data.get('client_email')} was not sent")
        logger.info(f"Confirmation email sent for session {data.get('session_id')}")

    def _send_payment_confirmation(self, data: Dict[str, Any]) -> None:
        if not self.email_service.send_payment_confirmation_email(data):
            raise RuntimeError(f"payment email to {data.get('client_email')} was not sent")

    def _send_refund_notification(self, data: Dict[str, Any]) -> None:
        if not self.email_service.send_refund_notification_email(data):
            raise RuntimeError(f"refund email to {data.get('client_email')} was not sent")

    def _clear_patterns(self, patterns: List[str]) -> int:
        cleared = sum(self.cache.clear_pattern(pattern) for pattern in patterns)
        logger.info(f"Caches cleared: {cleared} keys across {len(patterns)} patterns")
        return cleared

    def send_session_confirmation(self, data: Dict[str, Any]) -> Future:
        return self.submit("session-confirmation-email", self._send_session_confirmation, data)

    def send_payment_confirmation(self, data: Dict[str, Any]) -> Future:
        return self.submit("payment-confirmation-email", self._send_payment_confirmation, data)

    def send_refund_notification(self, data: Dict[str, Any]) -> Future:
        return self.submit("refund-notification-email", self._send_refund_notification, data)

    def invalidate_cache(self, patterns: List[str]) -> Future:
        return self.submit("cache-invalidation", self._clear_patterns, list(patterns))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
