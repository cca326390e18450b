"""
Dispatcher collaborator: delivers a due reminder's payload.

Delivery is best effort. ``deliver`` reports failure through its result and
never raises into the sweep.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import requests

from bangs.utils.timezone import to_local
from .config import ReminderSettings, settings as reminder_settings
from .metrics import reminders_dispatch_success_total, reminders_dispatch_failed_total
from .schemas import DispatchPayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "DispatchResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "DispatchResult":
        return cls(ok=False, error=reason)


class Dispatcher(Protocol):
    def deliver(self, payload: DispatchPayload) -> DispatchResult: ...


class LoggingDispatcher:
    """Writes the notification to the log. Used when no transport is configured."""

    def deliver(self, payload: DispatchPayload) -> DispatchResult:
        logger.info(
            f"🔔 [Dispatch] reminder={payload.reminder_id} user={payload.user_id} "
            f"title={payload.title!r} url={payload.url} due_at={to_local(payload.due_at).isoformat()}"
        )
        return DispatchResult.success()


class WebhookDispatcher:
    """POSTs the payload as JSON to a webhook endpoint."""

    def __init__(self, url: str, timeout: float = 10, secret: Optional[str] = None):
        self.url = url
        self.timeout = timeout
        self.secret = secret

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.secret:
            headers["X-Reminder-Secret"] = self.secret
        return headers

    def deliver(self, payload: DispatchPayload) -> DispatchResult:
        try:
            r = requests.post(
                self.url,
                json=payload.model_dump(mode="json"),
                headers=self._build_headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return DispatchResult.failure(f"webhook request failed: {e!r}")
        if r.status_code >= 400:
            return DispatchResult.failure(f"webhook returned HTTP {r.status_code}")
        return DispatchResult.success()


class TimeoutDispatcher:
    """Bounds any dispatcher by a hard deadline.

    A call that overruns is reported as a failure and cancelled if it has not
    started; a call already running is left to finish on its own and keeps its
    worker slot until it does. While every slot is taken, deliveries fail
    immediately instead of queueing behind a hung transport.
    """

    def __init__(self, inner: Dispatcher, timeout_seconds: float, max_workers: int = 4):
        self.inner = inner
        self.timeout_seconds = timeout_seconds
        self.max_workers = max_workers
        self._slots = threading.BoundedSemaphore(max_workers)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="reminder-dispatch")

    def deliver(self, payload: DispatchPayload) -> DispatchResult:
        if not self._slots.acquire(blocking=False):
            logger.warning(f"⚠️  [Dispatch] All {self.max_workers} workers busy; reminder={payload.reminder_id} not sent")
            reminders_dispatch_failed_total.inc()
            return DispatchResult.failure(f"dispatcher busy: all {self.max_workers} workers in use")

        future = self._executor.submit(self.inner.deliver, payload)
        # Runs on completion and on cancel, so the slot is returned exactly once
        future.add_done_callback(lambda _: self._slots.release())
        try:
            result = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            result = DispatchResult.failure(f"dispatch timed out after {self.timeout_seconds}s")
        except Exception as e:
            logger.exception(f"❌ [Dispatch] Dispatcher raised for reminder={payload.reminder_id}")
            result = DispatchResult.failure(f"dispatcher raised: {e!r}")

        if result.ok:
            reminders_dispatch_success_total.inc()
        else:
            reminders_dispatch_failed_total.inc()
        return result

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)


def build_dispatcher(settings: ReminderSettings = reminder_settings) -> TimeoutDispatcher:
    if settings.WEBHOOK_URL:
        logger.info(f"🔍 [Dispatch] Using webhook dispatcher: {settings.WEBHOOK_URL}")
        inner: Dispatcher = WebhookDispatcher(
            settings.WEBHOOK_URL,
            timeout=settings.DISPATCH_TIMEOUT_SECONDS,
            secret=settings.WEBHOOK_SECRET,
        )
    else:
        logger.info("⚠️  [Dispatch] No webhook configured - notifications go to the log only")
        inner = LoggingDispatcher()
    # At least one slot per sweep worker thread
    return TimeoutDispatcher(
        inner,
        timeout_seconds=settings.DISPATCH_TIMEOUT_SECONDS,
        max_workers=max(4, settings.SWEEP_MAX_WORKERS),
    )
