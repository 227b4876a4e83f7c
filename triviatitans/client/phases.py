# triviatitans/client/phases.py
"""
Client-local player flow: question -> feedback -> coloring -> question (or done).

One pending timer at most. Every timer carries the generation it was armed in;
any transition bumps the generation, so a timer from a superseded phase fires
into nothing instead of advancing the newer one.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Optional

from triviatitans.client.view import GameView
from triviatitans.domain.common.types import PlayerPhase
from triviatitans.logging_utils import get_logger

logger = get_logger(__name__)

OnPhase = Callable[[PlayerPhase], None]


class PlayerPhaseMachine:
    def __init__(
        self,
        *,
        feedback_sec: float = 2.0,
        coloring_sec: float = 15.0,
        on_change: Optional[OnPhase] = None,
        on_coloring_expired: Optional[Callable[[], None]] = None,
    ):
        self.feedback_sec = feedback_sec
        self.coloring_sec = coloring_sec
        self._on_change = on_change
        self._on_coloring_expired = on_coloring_expired

        self.phase: PlayerPhase = "waiting"
        self.question_index: Optional[int] = None
        self.last_correct: Optional[bool] = None
        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None

        # what the latest snapshot says, applied whenever local pacing ends
        self._view_phase: PlayerPhase = "waiting"
        self._view_index: Optional[int] = None
        self._credits = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None

    # ----------------------------
    # Inputs
    # ----------------------------
    def sync(self, view: GameView) -> None:
        """Apply the latest derived view."""
        self._view_phase = view.phase
        self._view_index = view.question_index
        self._credits = view.player.coloring_credits if view.player is not None else 0

        if view.status != "playing" or view.phase == "waiting":
            # game not running (or over): local pacing stops immediately
            if self.phase != view.phase:
                self._enter(view.phase)
            return
        if self.phase in ("feedback", "coloring"):
            # let the local timer finish; the next question is picked up on advance
            return
        if view.phase == "done":
            if self.phase != "done":
                self._enter("done")
            return
        if self.phase != "question" or self.question_index != view.question_index:
            self._enter("question", index=view.question_index)

    def answered(self, correct: Optional[bool]) -> None:
        """The player's submission came back. `None` means nothing was applied."""
        if self.phase != "question" or correct is None:
            return
        self.last_correct = correct
        self._enter("feedback")
        self._arm(self.feedback_sec, self._after_feedback)

    def claimed(self) -> None:
        """A claim (or skip) committed; leave coloring now."""
        if self.phase != "coloring":
            return
        self._resume()

    def close(self) -> None:
        self._cancel()
        self._generation += 1

    # ----------------------------
    # Timer callbacks
    # ----------------------------
    def _after_feedback(self) -> None:
        # a credit left over after the last question can still be spent
        if self.last_correct and self._credits > 0 and self._view_phase in ("question", "done"):
            self._enter("coloring")
            self._arm(self.coloring_sec, self._after_coloring)
            return
        self._resume()

    def _after_coloring(self) -> None:
        if self._on_coloring_expired is not None:
            self._on_coloring_expired()
        self._resume()

    # ----------------------------
    # Internals
    # ----------------------------
    def _resume(self) -> None:
        if self._view_phase == "question":
            self._enter("question", index=self._view_index)
        else:
            self._enter(self._view_phase)

    def _enter(self, phase: PlayerPhase, index: Optional[int] = None) -> None:
        self._cancel()
        self._generation += 1
        self.phase = phase
        self.question_index = index if phase == "question" else self.question_index
        logger.debug("Phase change", extra={"event": phase})
        if self._on_change is not None:
            self._on_change(phase)

    def _arm(self, delay: float, fn: Callable[[], None]) -> None:
        self._cancel()
        token = self._generation
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._fire, token, fn)

    def _fire(self, token: int, fn: Callable[[], None]) -> None:
        if token != self._generation:
            return
        self._timer = None
        fn()

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
