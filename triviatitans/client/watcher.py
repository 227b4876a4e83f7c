# triviatitans/client/watcher.py
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from triviatitans.client.view import GameView, derive_view
from triviatitans.logging_utils import get_logger
from triviatitans.store.models import Game
from triviatitans.store.redis_repo import OnError, Snapshot, Subscription
from triviatitans.util.timeutil import now_ms

logger = get_logger(__name__)

OnView = Callable[[Snapshot, GameView], Awaitable[None]]
OnNotFound = Callable[[], Awaitable[None]]


class GameWatcher:
    """
    One live subscription to one Game on behalf of one identity.

    Recomputes the view from every snapshot. Resolves "not found" (terminal)
    when no document shows up within `not_found_wait_sec`, or when a document
    that was seen gets deleted.
    """

    def __init__(
        self,
        repo,
        pin: str,
        uid: Optional[str],
        *,
        on_view: OnView,
        on_not_found: OnNotFound,
        on_error: Optional[OnError] = None,
        not_found_wait_sec: float = 3.0,
        clock: Callable[[], int] = now_ms,
    ):
        self.repo = repo
        self.pin = pin
        self.uid = uid
        self._on_view = on_view
        self._on_not_found = on_not_found
        self._on_error = on_error
        self._wait = not_found_wait_sec
        self._clock = clock

        self.game: Optional[Game] = None
        self.rev = 0
        self.view: Optional[GameView] = None
        self.not_found = False

        self._sub: Optional[Subscription] = None
        self._not_found_task: Optional[asyncio.Task] = None

    async def start(self) -> "GameWatcher":
        self._sub = await self.repo.subscribe(self.pin, self._handle_snapshot, self._on_error)
        if self.game is None:
            self._not_found_task = asyncio.create_task(self._not_found_after(self._wait))
        return self

    def refresh(self) -> Optional[GameView]:
        """Recompute the view against the local clock (countdown ticks)."""
        if self.game is None or self.not_found:
            return None
        self.view = derive_view(self.game, self.uid, self._clock())
        return self.view

    async def _handle_snapshot(self, snap: Snapshot) -> None:
        if self.not_found:
            return
        if snap.game is None:
            if self.game is not None:
                # deleted while we were watching
                await self._resolve_not_found()
            return

        self._cancel_not_found()
        self.game = snap.game
        self.rev = snap.rev
        self.view = derive_view(snap.game, self.uid, self._clock())
        await self._on_view(snap, self.view)

    async def _not_found_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._not_found_task = None
        if self.game is None:
            await self._resolve_not_found()

    async def _resolve_not_found(self) -> None:
        if self.not_found:
            return
        self.not_found = True
        self.game = None
        self.view = None
        logger.info("Game not found", extra={"event": "game_not_found", "uid": self.uid})
        await self._on_not_found()

    def _cancel_not_found(self) -> None:
        if self._not_found_task is not None:
            self._not_found_task.cancel()
            self._not_found_task = None

    async def close(self) -> None:
        self._cancel_not_found()
        if self._sub is not None:
            await self._sub.close()
            self._sub = None

    async def __aenter__(self) -> "GameWatcher":
        return await self.start()

    async def __aexit__(self, *exc) -> None:
        await self.close()
