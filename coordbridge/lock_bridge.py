"""File lock operations relayed to the coordinator.

The coordinator owns the lock table and serializes competing
acquire attempts; this side only keeps bookkeeping of the locks it
was granted so they can be released on shutdown. Acquisition polls:
a denial or a transport failure is followed by a fixed sleep and
another attempt, with no attempt cap and no backoff.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from .errors import CoordinatorError
from .link import CoordinatorLink
from .models import LockAction, LockHandle, failure_result, lock_request

logger = logging.getLogger(__name__)


class LockBridge:
    """Lock tools for one issue session.

    Round trips go through an asyncio.Lock so concurrent tool calls
    queue for the link's single pending slot instead of colliding.
    The lock is held for one round trip only, never across a retry
    sleep.
    """

    def __init__(
        self,
        link: CoordinatorLink,
        issue_id: str,
        retry_interval: float = 10.0,
        request_timeout: float = 30.0,
    ) -> None:
        self._link = link
        self._issue_id = issue_id
        self._retry_interval = retry_interval
        self._request_timeout = request_timeout
        self._held: dict[str, str] = {}
        self._round_trip = asyncio.Lock()

    @property
    def issue_id(self) -> str:
        return self._issue_id

    @property
    def held_locks(self) -> list[LockHandle]:
        return [LockHandle(path, lock_id) for path, lock_id in self._held.items()]

    def is_held(self, file_path: str) -> bool:
        return file_path in self._held

    async def _send(self, request: dict[str, Any]) -> dict[str, Any]:
        async with self._round_trip:
            return await self._link.request(request, timeout=self._request_timeout)

    async def acquire(self, file_path: str) -> dict[str, Any]:
        """Block until the coordinator grants the lock."""
        logger.info("Attempting to acquire lock for: %s", file_path)
        request = lock_request(LockAction.ACQUIRE, self._issue_id, file_path)
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._send(request)
            except CoordinatorError as exc:
                logger.warning(
                    "Error acquiring lock for %s (attempt %d): %s, retrying in %.1fs",
                    file_path, attempt, exc, self._retry_interval,
                )
            else:
                if response.get("success"):
                    lock_id = response.get("lockId")
                    self._held[file_path] = str(lock_id) if lock_id is not None else ""
                    logger.info(
                        "Lock acquired for %s (lock_id=%s, attempt %d)",
                        file_path, lock_id, attempt,
                    )
                    return response
                logger.info(
                    "File %s locked by %s, waiting %.1fs...",
                    file_path, response.get("holder") or "another session",
                    self._retry_interval,
                )
            await asyncio.sleep(self._retry_interval)

    async def release(self, file_path: str) -> dict[str, Any]:
        if file_path not in self._held:
            logger.info("No lock to release for %s", file_path)
            return {"success": True, "message": "No lock held"}

        request = lock_request(
            LockAction.RELEASE, self._issue_id, file_path,
            lock_id=self._held[file_path],
        )
        try:
            response = await self._send(request)
        except CoordinatorError as exc:
            logger.error("Error releasing lock for %s: %s", file_path, exc)
            return failure_result(str(exc))

        if response.get("success"):
            self._held.pop(file_path, None)
            logger.info("Lock released for %s", file_path)
        else:
            logger.warning(
                "Coordinator refused release of %s: %s",
                file_path, response.get("message"),
            )
        return response

    async def check(self, file_path: str) -> dict[str, Any]:
        try:
            return await self._send(
                lock_request(LockAction.CHECK, self._issue_id, file_path)
            )
        except CoordinatorError as exc:
            return failure_result(str(exc))

    async def list(self) -> dict[str, Any]:
        """Locks the coordinator attributes to this issue.

        After a coordinator restart this can disagree with local
        bookkeeping; the coordinator's view is returned as-is.
        """
        try:
            return await self._send(lock_request(LockAction.LIST, self._issue_id))
        except CoordinatorError as exc:
            return failure_result(str(exc))

    async def release_all(self) -> dict[str, Any]:
        """Release everything for this issue; local state is cleared regardless."""
        try:
            response = await self._send(
                lock_request(LockAction.RELEASE_ALL, self._issue_id)
            )
        except CoordinatorError as exc:
            logger.warning("release_all failed: %s", exc)
            response = failure_result(str(exc))
        finally:
            if self._held:
                logger.info("Dropping %d local lock record(s)", len(self._held))
            self._held.clear()
        return response
