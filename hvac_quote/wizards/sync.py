"""Best-effort lead patching for the quote wizard.

Survey, qualification and utility answers are saved in the background so
navigation never waits on the network. Each lead gets one worker task, which
sends patches in submission order. Patches that pile up while a send is in
flight are merged into a single batch, latest value per field winning.

A batch that still fails after ``max_attempts``, or that the server rejects
outright, is logged as ``lead_patch_degraded`` and dropped. The wizard's
in-memory form stays the source of truth for the session.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from hvac_quote.errors import PersistenceDegraded

logger = structlog.get_logger()

Sender = Callable[[str, dict[str, Any]], Awaitable[object]]


class PatchQueue:
    def __init__(
        self,
        send: Sender,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._send = send
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_seconds
        self._sleep = sleep
        self._pending: dict[str, dict[str, Any]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self.degraded: list[PersistenceDegraded] = []

    def submit(self, lead_id: str, fields: dict[str, Any]) -> None:
        """Queue a patch; returns immediately."""
        if not fields:
            return
        self._pending.setdefault(lead_id, {}).update(fields)
        worker = self._workers.get(lead_id)
        if worker is None or worker.done():
            self._workers[lead_id] = asyncio.create_task(self._run(lead_id))

    async def drain(self) -> None:
        """Wait until every patch submitted so far has been attempted."""
        while True:
            running = [task for task in self._workers.values() if not task.done()]
            if not running:
                return
            await asyncio.gather(*running)

    async def _run(self, lead_id: str) -> None:
        while batch := self._pending.pop(lead_id, None):
            await self._deliver(lead_id, batch)

    def _give_up(self, lead_id: str, batch: dict[str, Any], attempts: int, exc: Exception) -> None:
        logger.warning(
            "lead_patch_degraded",
            lead_id=lead_id,
            fields=sorted(batch),
            attempts=attempts,
            error_type=type(exc).__name__,
        )
        self.degraded.append(PersistenceDegraded(lead_id, batch))

    async def _deliver(self, lead_id: str, batch: dict[str, Any]) -> None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._send(lead_id, batch)
            except Exception as exc:
                # A rejected patch (4xx) fails the same way every time.
                if attempt == self._max_attempts or not getattr(exc, "retryable", True):
                    self._give_up(lead_id, batch, attempt, exc)
                    return
                logger.info(
                    "lead_patch_retry",
                    lead_id=lead_id,
                    attempt=attempt,
                    error_type=type(exc).__name__,
                )
                await self._sleep(self._backoff * 2 ** (attempt - 1))
            else:
                logger.debug("lead_patch_sent", lead_id=lead_id, fields=sorted(batch))
                return
