"""
Asynchronous writer for the token usage log.

Audit writes never fail the operation that produced them. Entries are
queued and written by a single worker task; when the queue is full or a
write fails, the entry goes to the fallback logger instead.

Usage:
    dispatcher = AuditDispatcher(store, max_queue_size=1000)
    dispatcher.start()              # inside a running event loop
    await dispatcher.submit(entry)
    await dispatcher.stop()         # drains then stops the worker
"""

import asyncio
import json
import logging
from typing import Optional

from token_vault.credentials.store import CredentialStore, UsageLogEntry

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("audit.fallback")

DEFAULT_QUEUE_SIZE = 1000


def _write_fallback_log(entry: UsageLogEntry, error_reason: str) -> None:
    """Write an audit entry to the fallback logger when it cannot be persisted."""
    fallback_entry = {
        "account_id": entry.account_id,
        "action": entry.action,
        "success": entry.success,
        "error_message": entry.error_message,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
        "fallback_reason": error_reason,
    }
    fallback_logger.error(
        "Audit log fallback",
        extra={"audit_entry": json.dumps(fallback_entry)},
    )


class AuditDispatcher:
    """
    Bounded queue of usage log entries drained by one worker task.

    Without a running worker, submit() writes inline. Counters expose
    what happened to submitted entries: written, failed (write raised),
    dropped (queue full).
    """

    def __init__(self, store: CredentialStore, max_queue_size: int = DEFAULT_QUEUE_SIZE):
        self._store = store
        self._max_queue_size = max_queue_size
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self.written = 0
        self.failed = 0
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker task. Must be called from a running event loop."""
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._worker = asyncio.create_task(self._run(), name="audit-dispatcher")
        logger.info("Audit dispatcher started", extra={"max_queue_size": self._max_queue_size})

    async def submit(self, entry: UsageLogEntry) -> None:
        """Queue an entry for writing. Never raises on write failure."""
        if not self.running:
            await self._write(entry)
            return

        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Audit queue full, entry sent to fallback log",
                extra={"account_id": entry.account_id, "action": entry.action}
            )
            _write_fallback_log(entry, "audit queue full")

    async def _write(self, entry: UsageLogEntry) -> None:
        try:
            await self._store.append_audit(entry)
            self.written += 1
        except Exception as e:
            self.failed += 1
            logger.warning(
                "Audit write failed",
                extra={
                    "account_id": entry.account_id,
                    "action": entry.action,
                    "error_type": type(e).__name__,
                }
            )
            _write_fallback_log(entry, type(e).__name__)

    async def _run(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                await self._write(entry)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued entry has been processed."""
        if self.running:
            await self._queue.join()

    async def stop(self) -> None:
        """Drain the queue, then stop the worker."""
        if self._worker is None:
            return
        await self.drain()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info(
            "Audit dispatcher stopped",
            extra={"written": self.written, "failed": self.failed, "dropped": self.dropped}
        )
