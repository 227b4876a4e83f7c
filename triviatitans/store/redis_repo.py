# triviatitans/store/redis_repo.py
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from redis.asyncio import Redis
from redis.exceptions import WatchError

from triviatitans.domain.common.errors import GameNotFound, InvalidDocument, TransactionAborted
from triviatitans.logging_utils import get_logger
from triviatitans.store.models import Game, normalize_pin, validate_successor
from triviatitans.store.redis_keys import GK, admin_games

logger = get_logger(__name__)

# Fields that may be written outside the Game operations (admin metadata only)
METADATA_FIELDS = ("title", "description")


@dataclass(frozen=True)
class Snapshot:
    """Full document value at a revision. `game is None` means the document does not exist."""
    rev: int
    game: Optional[Game]


OnSnapshot = Callable[[Snapshot], Awaitable[None]]
OnError = Callable[[Exception], Awaitable[None]]
Mutator = Callable[[Game], Game]


def _dec(x):
    """Decode redis bytes -> str; pass through str/int/None safely."""
    if x is None:
        return None
    if isinstance(x, bytes):
        return x.decode("utf-8")
    return x


def _load_game(raw: Any) -> Game:
    try:
        return Game.model_validate_json(_dec(raw))
    except ValueError as e:
        raise InvalidDocument(f"Stored game does not match schema: {e}") from e


def _envelope(rev: int, game: Optional[Game]) -> str:
    return json.dumps({"rev": rev, "game": game.to_doc() if game is not None else None})


class Subscription:
    """
    Cancellable handle for one live subscription to one Game document.
    Teardown is mandatory: `await sub.close()` or use `async with`.
    """

    def __init__(self, pin: str, pubsub, on_snapshot: OnSnapshot, on_error: Optional[OnError] = None):
        self.pin = pin
        self._pubsub = pubsub
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._last_rev = -1
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _start(self, initial: Snapshot) -> None:
        self._task = asyncio.create_task(self._run(initial))

    async def _deliver(self, snap: Snapshot) -> None:
        if snap.game is None:
            # tombstone: allow a later re-creation (rev restarts at 1) through
            if self._last_rev == 0:
                return
            self._last_rev = 0
        elif snap.rev <= self._last_rev:
            # stale: pub/sub may replay something the initial read already covered
            return
        else:
            self._last_rev = snap.rev
        await self._on_snapshot(snap)

    async def _run(self, initial: Snapshot) -> None:
        try:
            await self._deliver(initial)
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                body = json.loads(_dec(message["data"]))
                raw_game = body.get("game")
                game = Game.model_validate(raw_game) if raw_game is not None else None
                await self._deliver(Snapshot(rev=int(body.get("rev", 0)), game=game))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Subscription failed", extra={"event": "subscription_error"})
            if self._on_error is not None:
                await self._on_error(e)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await self._pubsub.unsubscribe()
        await self._pubsub.aclose()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


class RedisRepo:
    """
    Document store adapter: one Game document per key, optimistic transactions
    via WATCH/MULTI/EXEC, change notification via pub/sub.
    Knows the schema, not the game rules.
    """

    def __init__(self, r: Redis, max_retries: int = 5):
        self.r = r
        self.max_retries = max_retries

    # ----------------------------
    # Reads
    # ----------------------------
    async def exists(self, pin: str) -> bool:
        return bool(await self.r.exists(GK(normalize_pin(pin)).game()))

    async def get(self, pin: str) -> Game:
        pin = normalize_pin(pin)
        raw = await self.r.get(GK(pin).game())
        if raw is None:
            raise GameNotFound(f"Game {pin} not found")
        return _load_game(raw)

    async def get_snapshot(self, pin: str) -> Snapshot:
        gk = GK(normalize_pin(pin))
        # one MGET so the document and its revision come from the same moment
        raw, rev = await self.r.mget(gk.game(), gk.rev())
        if raw is None:
            return Snapshot(rev=0, game=None)
        return Snapshot(rev=int(_dec(rev) or 0), game=_load_game(raw))

    async def list_admin_games(self, admin_id: str) -> list[Game]:
        pins = sorted(_dec(p) for p in await self.r.smembers(admin_games(admin_id)))
        games: list[Game] = []
        for pin in pins:
            raw = await self.r.get(GK(pin).game())
            if raw is None:
                # expired or deleted elsewhere
                await self.r.srem(admin_games(admin_id), pin)
                continue
            games.append(_load_game(raw))
        return games

    # ----------------------------
    # Writes
    # ----------------------------
    async def create(self, game: Game, ttl_sec: Optional[int] = None, index: bool = True) -> bool:
        """
        Create a new document. Returns False if the PIN is already taken.
        `index=False` keeps it out of the admin's session list.
        """
        game = self._validated(game)
        gk = GK(game.id)
        async with self.r.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(gk.game())
                if await pipe.exists(gk.game()):
                    return False
                pipe.multi()
                pipe.set(gk.game(), game.model_dump_json(by_alias=True), ex=ttl_sec or None)
                pipe.set(gk.rev(), 1, ex=ttl_sec or None)
                pipe.publish(gk.updates(), _envelope(1, game))
                if index and game.admin_id:
                    pipe.sadd(admin_games(game.admin_id), game.id)
                await pipe.execute()
            except WatchError:
                return False
        logger.info("Game created", extra={"op": "create", "rev": 1})
        return True

    async def delete(self, pin: str) -> bool:
        pin = normalize_pin(pin)
        gk = GK(pin)
        snap = await self.get_snapshot(pin)
        if snap.game is None:
            return False
        pipe = self.r.pipeline(transaction=True)
        pipe.delete(*gk.all_game_keys())
        if snap.game.admin_id:
            pipe.srem(admin_games(snap.game.admin_id), pin)
        pipe.publish(gk.updates(), _envelope(snap.rev + 1, None))
        await pipe.execute()
        logger.info("Game deleted", extra={"op": "delete"})
        return True

    async def update_fields(self, pin: str, **fields: Any) -> Game:
        """
        Admin metadata write (title/description). Skips every status rule, but
        still goes through the revision check so it cannot clobber a
        concurrent transaction.
        """
        bad = [k for k in fields if k not in METADATA_FIELDS]
        if bad:
            raise InvalidDocument(f"Fields not writable outside game operations: {', '.join(bad)}")
        return await self.transact(pin, lambda g: g.model_copy(update=fields), op="update_fields")

    async def transact(self, pin: str, fn: Mutator, *, op: str = "transact") -> Game:
        return (await self.transact_snapshot(pin, fn, op=op)).game

    async def transact_snapshot(self, pin: str, fn: Mutator, *, op: str = "transact") -> Snapshot:
        """
        Atomic read-modify-write of one Game document; returns the resulting
        document with its revision.

        `fn` must be a pure function of the document it is given: it can be
        re-run on a fresher read after a conflict. Returning the document
        unchanged commits nothing (no revision bump, no notification) and the
        revision that was read is returned.
        Raises whatever `fn` raises, GameNotFound, InvalidDocument, or
        TransactionAborted once `max_retries` conflicts have been seen.
        """
        pin = normalize_pin(pin)
        gk = GK(pin)
        for attempt in range(1, self.max_retries + 1):
            async with self.r.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(gk.game(), gk.rev())
                    raw = await pipe.get(gk.game())
                    if raw is None:
                        raise GameNotFound(f"Game {pin} not found")
                    current = _load_game(raw)
                    rev = int(_dec(await pipe.get(gk.rev())) or 0)

                    new = fn(current)
                    if new is current or new == current:
                        return Snapshot(rev=rev, game=current)
                    new = self._validated(new, prev=current)

                    pipe.multi()
                    pipe.set(gk.game(), new.model_dump_json(by_alias=True), keepttl=True)
                    pipe.incr(gk.rev())
                    pipe.publish(gk.updates(), _envelope(rev + 1, new))
                    await pipe.execute()
                except WatchError:
                    logger.warning(
                        "Transaction conflict, retrying",
                        extra={"op": op, "attempt": attempt},
                    )
                    continue
            logger.info("Transaction committed", extra={"op": op, "rev": rev + 1})
            return Snapshot(rev=rev + 1, game=new)

        logger.error("Transaction retries exhausted", extra={"op": op, "attempt": self.max_retries})
        raise TransactionAborted(f"{op} on {pin} conflicted {self.max_retries} times")

    # ----------------------------
    # Subscriptions
    # ----------------------------
    async def subscribe(self, pin: str, on_snapshot: OnSnapshot, on_error: Optional[OnError] = None) -> Subscription:
        """
        Deliver the current snapshot, then every committed snapshot, to `on_snapshot`.
        The channel is joined before the initial read so no commit can fall in between.
        """
        pin = normalize_pin(pin)
        ps = self.r.pubsub()
        await ps.subscribe(GK(pin).updates())
        sub = Subscription(pin, ps, on_snapshot, on_error)
        try:
            initial = await self.get_snapshot(pin)
        except Exception:
            await ps.unsubscribe()
            await ps.aclose()
            raise
        sub._start(initial)
        return sub

    # ----------------------------
    # Helpers
    # ----------------------------
    def _validated(self, game: Game, prev: Optional[Game] = None) -> Game:
        # model_copy() skips validation; round-trip through the wire shape
        try:
            checked = Game.model_validate(game.to_doc())
            if prev is not None:
                validate_successor(prev, checked)
        except ValueError as e:
            raise InvalidDocument(str(e)) from e
        return checked
