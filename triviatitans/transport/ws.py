# triviatitans/transport/ws.py
from __future__ import annotations

import asyncio
import ipaddress
from typing import Any, Dict, Optional, Set
from urllib.parse import urlparse

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from triviatitans.client.phases import PlayerPhaseMachine
from triviatitans.client.timeout import StartPromoter, TimeoutEnforcer
from triviatitans.client.view import GameView, redact_for
from triviatitans.client.watcher import GameWatcher
from triviatitans.logging_utils import game_pin_ctx, get_logger
from triviatitans.settings import get_settings
from triviatitans.store.models import normalize_pin
from triviatitans.store.redis_repo import Snapshot
from triviatitans.transport.dispatcher import dispatch_message
from triviatitans.transport.protocols import OutError, OutGameNotFound, OutGameSnapshot, OutPhase, OutView

router = APIRouter()
logger = get_logger(__name__)


def _is_private_ip(host: str) -> bool:
    """Return True if host is a private IP (192.168.x.x, 10.x.x.x, 172.16-31.x.x)."""
    try:
        ip = ipaddress.ip_address(host)
        return ip.is_private
    except ValueError:
        return False


async def _check_origin_or_close(websocket: WebSocket) -> bool:
    settings = get_settings()
    allowed = {o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()}

    origin = websocket.headers.get("origin")
    if origin is None or origin in allowed:
        return True
    if settings.WS_ALLOW_LAN_ORIGINS:
        o = urlparse(origin)
        if _is_private_ip(o.hostname or "") and o.port == 3000:
            return True
    await websocket.close(code=1008)
    return False


class _Connection:
    """
    Server-side stand-in for one browser client: one watcher, its triggers,
    the player's local pacing, a clock tick, one socket.
    """

    def __init__(self, websocket: WebSocket, pin: str, uid: Optional[str]):
        app = websocket.app
        settings = app.state.settings
        self.ws = websocket
        self.pin = pin
        self.uid = uid
        self.closed = False
        self._send_lock = asyncio.Lock()
        self._tick_sec = settings.CLOCK_TICK_SEC
        self._ticker: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self.timeout = TimeoutEnforcer(app.state.repo, pin, uid)
        self.promoter = StartPromoter(app.state.repo, pin, uid)
        self.phases = PlayerPhaseMachine(
            feedback_sec=settings.FEEDBACK_SEC,
            coloring_sec=settings.COLORING_SEC,
            on_change=self.on_phase,
        )
        self.watcher = GameWatcher(
            app.state.repo,
            pin,
            uid,
            on_view=self.on_view,
            on_not_found=self.on_not_found,
            on_error=self.on_error,
            not_found_wait_sec=settings.NOT_FOUND_WAIT_SEC,
        )

    async def send(self, event: Dict[str, Any]) -> None:
        if self.closed:
            return
        async with self._send_lock:
            await self.ws.send_json(event)

    async def on_view(self, snap: Snapshot, view: GameView) -> None:
        game = snap.game
        await self.send(OutGameSnapshot(rev=snap.rev, game=redact_for(game, self.uid)).model_dump())
        await self.send(OutView(view=view.model_dump(mode="json")).model_dump())
        self.phases.sync(view)
        self.timeout.observe(game)
        self.promoter.observe(game)
        if self._ticker is None and not self.closed:
            self._ticker = asyncio.create_task(self._tick())

    def on_phase(self, phase: str) -> None:
        # timer callbacks are synchronous; the send is queued behind the lock
        event = OutPhase(phase=phase, question_index=self.phases.question_index).model_dump()
        task = asyncio.create_task(self.send(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def after_reply(self, event: Dict[str, Any]) -> None:
        """Feed this player's own acks into the local pacing."""
        if event.get("type") != "ack":
            return
        if event["op"] == "submit_answer":
            self.phases.answered(event.get("correct"))
        elif event["op"] in ("claim_territory", "skip_claim"):
            self.phases.claimed()

    async def _tick(self) -> None:
        # countdowns move between commits; re-derive against the local clock
        while not self.closed:
            await asyncio.sleep(self._tick_sec)
            game = self.watcher.game
            if game is None or game.status not in ("starting", "playing"):
                continue
            before = self.watcher.view
            view = self.watcher.refresh()
            if view is not None and view != before:
                await self.send(OutView(view=view.model_dump(mode="json")).model_dump())

    async def on_not_found(self) -> None:
        self.timeout.cancel()
        self.promoter.cancel()
        await self.send(OutGameNotFound(pin=self.pin).model_dump())

    async def on_error(self, e: Exception) -> None:
        await self.send(OutError(code="SUBSCRIPTION_LOST", message=str(e), retryable=True).model_dump())

    async def close(self) -> None:
        self.closed = True
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
        self.phases.close()
        for task in list(self._pending):
            task.cancel()
        await self.watcher.close()
        await self.timeout.close()
        await self.promoter.close()


@router.websocket("/ws/{pin}")
async def ws_game(websocket: WebSocket, pin: str):
    if not await _check_origin_or_close(websocket):
        return

    await websocket.accept()

    pin = normalize_pin(pin)
    game_pin_ctx.set(pin)
    uid = websocket.query_params.get("uid") or None
    conn = _Connection(websocket, pin, uid)
    logger.info("Client connected", extra={"event": "ws_connect", "uid": uid})

    try:
        await conn.watcher.start()
        while True:
            raw = await websocket.receive_json()
            for e in await dispatch_message(app=websocket.app, pin=pin, uid=uid, raw=raw):
                await conn.send(e)
                conn.after_reply(e)
    except WebSocketDisconnect:
        logger.info("Client disconnected", extra={"event": "ws_disconnect", "uid": uid})
    finally:
        await conn.close()
