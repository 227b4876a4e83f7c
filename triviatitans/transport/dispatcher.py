# triviatitans/transport/dispatcher.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from triviatitans.domain.common.errors import GameError
from triviatitans.domain.game import operations
from triviatitans.logging_utils import get_logger
from triviatitans.transport.protocols import (
    parse_incoming,
    OutAck,
    OutError,
    InJoinTeam,
    InStartGame,
    InScheduleStart,
    InPromoteStart,
    InSubmitAnswer,
    InClaimTerritory,
    InSkipClaim,
    InEndGame,
    InResetGame,
)

logger = get_logger(__name__)


async def dispatch_message(
    *,
    app,
    pin: str,
    uid: Optional[str],
    raw: Dict[str, Any],
) -> List[Dict[str, Any]]:
    """
    Transport layer calls this.
    - Parses + validates raw JSON
    - Runs the matching Game operation
    - Returns events for the sender (ack or error) as JSON dicts

    Everyone else learns about the commit through their own subscription.
    """
    try:
        msg = parse_incoming(raw)
    except (ValidationError, ValueError) as e:
        return [OutError(code="BAD_MESSAGE", message=str(e)).model_dump()]

    if not uid:
        return [OutError(code="NO_IDENTITY", message="Connect with ?uid= to act on a game").model_dump()]

    try:
        ack = await _route(app, pin, uid, msg)
    except GameError as e:
        logger.info(
            "Operation rejected",
            extra={"op": msg.type, "uid": uid, "code": e.code, "error": e.message},
        )
        return [OutError(code=e.code, message=e.message, retryable=e.retryable).model_dump()]
    return [ack.model_dump()]


def _ack(msg, committed, **outcome) -> OutAck:
    return OutAck(op=msg.type, status=committed.game.status, rev=committed.rev, **outcome)


async def _route(app, pin: str, uid: str, msg) -> OutAck:
    repo = app.state.repo
    settings = app.state.settings

    if isinstance(msg, InJoinTeam):
        snap = await operations.join_team(
            repo,
            pin,
            uid=uid,
            name=msg.name,
            player_id=msg.player_id,
            team_name=msg.team_name,
            custom_data=msg.custom_data,
            language=msg.language,
        )
        return _ack(msg, snap)

    if isinstance(msg, (InStartGame, InScheduleStart)):
        countdown = 0
        if isinstance(msg, InScheduleStart):
            countdown = msg.countdown_sec or settings.START_COUNTDOWN_SEC
        snap = await operations.start_game(
            repo,
            app.state.generator,
            pin,
            uid=uid,
            pool_size=settings.QUESTION_POOL_SIZE,
            countdown_sec=countdown,
        )
        return _ack(msg, snap)

    if isinstance(msg, InPromoteStart):
        return _ack(msg, await operations.promote_start(repo, pin))

    if isinstance(msg, InSubmitAnswer):
        res = await operations.submit_answer(
            repo, pin, uid=uid, answer=msg.answer, question_index=msg.question_index
        )
        return _ack(msg, res, correct=res.correct)

    if isinstance(msg, InClaimTerritory):
        res = await operations.claim_territory(repo, pin, uid=uid, square_id=msg.square_id)
        return _ack(msg, res, claimed=res.claimed)

    if isinstance(msg, InSkipClaim):
        res = await operations.skip_claim(repo, pin, uid=uid)
        return _ack(msg, res, claimed=False)

    if isinstance(msg, InEndGame):
        return _ack(msg, await operations.end_game(repo, pin, uid=uid))

    if isinstance(msg, InResetGame):
        return _ack(msg, await operations.reset_game(repo, pin, uid=uid))

    raise GameError(f"Handler not implemented for type={msg.type}")
