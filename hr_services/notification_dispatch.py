"""
NotificationDispatcher -- Bounded in-process notification queue.

Contract:
    ``submit()`` hands a message to a bounded queue and returns at once.
    A single background worker drains the queue and calls the
    ``NotificationSender``.  Delivery is best effort: failures are logged
    and never retried.  A message submitted while no worker is running,
    or while the queue is full, is dropped with a warning.

Invariants enforced:
    - Callers never block on delivery and never see a delivery error.
    - Every accepted message is handled by a live worker; nothing is
      queued without one.
    - ``stop()`` drains what is already queued, up to its timeout.
    - At most one worker per dispatcher.
"""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from hr_kernel.domain.approval import NotificationSender
from hr_kernel.logging_config import get_logger

logger = get_logger("services.notification_dispatch")


@dataclass(frozen=True)
class NotificationMessage:
    """One queued notification."""

    event_type: str
    recipient_user_id: UUID
    payload: dict[str, Any] = field(default_factory=dict)
    options: dict[str, Any] = field(default_factory=dict)


_STOP = object()


class NotificationDispatcher:
    """Background delivery of notifications through a bounded queue.

    Contract:
        - ``start()`` / ``stop()`` manage the worker thread.
        - ``submit()`` returns False when the message was dropped.
        - ``flush()`` waits until every accepted message was handled.
        - ``delivered`` / ``failed`` / ``dropped`` are updated under the
          dispatcher lock.

    Non-goals:
        - No retries, no persistence of undelivered messages.
    """

    def __init__(
        self,
        sender: NotificationSender,
        queue_size: int = 1000,
        shutdown_timeout_seconds: float = 5.0,
    ):
        self._sender = sender
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=queue_size)
        self._shutdown_timeout = shutdown_timeout_seconds
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self.delivered = 0
        self.failed = 0
        self.dropped = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the delivery worker (no-op when one is alive)."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(
                target=self._run_loop,
                name="notification-dispatcher",
                daemon=True,
            )
            self._thread.start()
        logger.info(
            "notification_dispatcher_started",
            extra={"queue_size": self._queue.maxsize},
        )

    def stop(self, timeout: float | None = None) -> None:
        """Drain queued messages and stop the worker.

        A worker that is still busy when ``timeout`` expires stays
        registered, so a later ``start()`` does not put a second worker on
        the same queue.

        Args:
            timeout: Max seconds to wait; defaults to the configured
                shutdown timeout.
        """
        timeout = self._shutdown_timeout if timeout is None else timeout
        with self._lock:
            thread = self._thread
        if thread is None or not thread.is_alive():
            return
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("notification_dispatcher_stop_signal_dropped")
        thread.join(timeout=timeout)

        if thread.is_alive():
            logger.warning(
                "notification_dispatcher_stop_timed_out",
                extra={"timeout_seconds": timeout, "pending": self._queue.qsize()},
            )
            return

        with self._lock:
            if self._thread is thread:
                self._thread = None
            counts = {
                "delivered": self.delivered,
                "failed": self.failed,
                "dropped": self.dropped,
            }
        logger.info(
            "notification_dispatcher_stopped",
            extra={**counts, "pending": self._queue.qsize()},
        )

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def submit(self, message: NotificationMessage) -> bool:
        """Queue a message for delivery.  Never blocks.

        Returns:
            False when the message was dropped because no worker is
            running or the queue is full.
        """
        if not self.is_running:
            self._drop(message, "notification_dropped_not_running")
            return False
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self._drop(
                message,
                "notification_dropped_queue_full",
                queue_size=self._queue.maxsize,
            )
            return False
        return True

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until every accepted message has been handled.

        Returns:
            True when the queue drained within ``timeout``.
        """
        deadline = time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _drop(self, message: NotificationMessage, event: str, **extra: Any) -> None:
        with self._lock:
            self.dropped += 1
        logger.warning(
            event,
            extra={
                "event_type": message.event_type,
                "recipient_user_id": str(message.recipient_user_id),
                **extra,
            },
        )

    def _run_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(item)
            finally:
                self._queue.task_done()

    def _deliver(self, message: NotificationMessage) -> None:
        try:
            self._sender.send(
                message.event_type,
                message.recipient_user_id,
                message.payload,
                message.options,
            )
        except Exception:
            with self._lock:
                self.failed += 1
            logger.exception(
                "notification_delivery_failed",
                extra={
                    "event_type": message.event_type,
                    "recipient_user_id": str(message.recipient_user_id),
                },
            )
            return
        with self._lock:
            self.delivered += 1
        logger.debug(
            "notification_delivered",
            extra={
                "event_type": message.event_type,
                "recipient_user_id": str(message.recipient_user_id),
            },
        )
