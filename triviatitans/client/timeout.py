# triviatitans/client/timeout.py
"""
Anchor-driven transitions that any watching client may issue.

Both are first-writer-wins: the operations re-check status inside the
transaction, so a second client firing the same transition commits nothing.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Optional

from triviatitans.domain.common.errors import GameError
from triviatitans.domain.common.validation import can_run_session, deadline_ms
from triviatitans.domain.game import operations
from triviatitans.logging_utils import get_logger
from triviatitans.store.models import Game
from triviatitans.util.timeutil import now_ms

logger = get_logger(__name__)


class _AnchorTrigger:
    """Fire once per anchor, as soon as the local clock reaches it."""

    op = "anchor"

    def __init__(self, repo, pin: str, uid: Optional[str], *, clock: Callable[[], int] = now_ms):
        self.repo = repo
        self.pin = pin
        self.uid = uid
        self._clock = clock
        self._armed_for: Optional[int] = None
        self._fired_for: Optional[int] = None
        self._task: Optional[asyncio.Task] = None      # waiting for the anchor
        self._running: Optional[asyncio.Task] = None   # transition in flight
        self.completed = 0

    def due_at(self, game: Game) -> Optional[int]:
        raise NotImplementedError

    async def run(self) -> None:
        raise NotImplementedError

    @property
    def fired(self) -> bool:
        return self._fired_for is not None

    def observe(self, game: Game) -> None:
        """Call on every snapshot. Arms, re-arms or disarms the pending trigger."""
        due = self.due_at(game)
        if due is None:
            self.cancel()
            return
        if due == self._fired_for or (due == self._armed_for and self._task is not None):
            return
        self.cancel()
        self._armed_for = due
        delay = max(0, due - self._clock()) / 1000
        self._task = asyncio.create_task(self._fire_after(delay, due))

    async def _fire_after(self, delay: float, due: int) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        self._fired_for = due
        # out of cancel()'s reach: the echo of our own commit must not abort it
        self._running, self._task = self._task, None
        try:
            await self.run()
        except GameError as e:
            # someone else moved the game on first; nothing to do
            logger.warning(
                "Anchor transition rejected",
                extra={"op": self.op, "uid": self.uid, "code": e.code, "error": e.message},
            )
        except Exception:
            logger.exception("Anchor transition failed", extra={"op": self.op, "uid": self.uid})
        finally:
            if self._running is asyncio.current_task():
                self._running = None
            self.completed += 1

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._armed_for = None

    async def close(self) -> None:
        """Drop a pending trigger and wait for a transition already in flight."""
        task = self._task
        self.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        running = self._running
        if running is not None and running is not asyncio.current_task():
            await running


class TimeoutEnforcer(_AnchorTrigger):
    """Eligible watchers (admin, individual participant) end the game at the deadline."""

    op = "end_game"

    def due_at(self, game: Game) -> Optional[int]:
        if game.status != "playing" or not can_run_session(game, self.uid):
            return None
        return deadline_ms(game)

    async def run(self) -> None:
        snap = await operations.end_game(self.repo, self.pin, uid=self.uid, now=self._clock())
        logger.info(
            "Game ended on timeout",
            extra={"op": self.op, "uid": self.uid, "status": snap.game.status, "rev": snap.rev},
        )


class StartPromoter(_AnchorTrigger):
    """Any watcher promotes starting -> playing once the countdown anchor is reached."""

    op = "promote_start"

    def due_at(self, game: Game) -> Optional[int]:
        if game.status != "starting":
            return None
        return game.game_started_at

    async def run(self) -> None:
        await operations.promote_start(self.repo, self.pin, now=self._clock())
