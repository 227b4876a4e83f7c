# triviatitans/transport/protocols.py
from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, Field, ValidationError

from triviatitans.domain.common.types import Language


# =========================
# Incoming (Client -> Server)
# =========================

class InBase(BaseModel):
    type: str


# ---- Lobby ----

class InJoinTeam(InBase):
    type: Literal["join_team"] = "join_team"
    team_name: str = Field(min_length=1, max_length=40)
    name: str = Field(min_length=1, max_length=40)
    player_id: str = Field(default="", max_length=40)
    custom_data: Dict[str, str] = Field(default_factory=dict)
    language: Optional[Language] = None


class InStartGame(InBase):
    type: Literal["start_game"] = "start_game"


class InScheduleStart(InBase):
    """Start with a synchronized countdown (lobby -> starting)."""
    type: Literal["schedule_start"] = "schedule_start"
    countdown_sec: Optional[int] = Field(default=None, ge=1, le=30)


class InPromoteStart(InBase):
    type: Literal["promote_start"] = "promote_start"


# ---- Play ----

class InSubmitAnswer(InBase):
    type: Literal["submit_answer"] = "submit_answer"
    answer: str = Field(max_length=200)
    # the question the client was showing; stale indexes are ignored
    question_index: Optional[int] = Field(default=None, ge=0)


class InClaimTerritory(InBase):
    type: Literal["claim_territory"] = "claim_territory"
    square_id: int = Field(ge=0)


class InSkipClaim(InBase):
    type: Literal["skip_claim"] = "skip_claim"


class InEndGame(InBase):
    type: Literal["end_game"] = "end_game"


class InResetGame(InBase):
    type: Literal["reset_game"] = "reset_game"


IncomingMessage = Union[
    InJoinTeam,
    InStartGame,
    InScheduleStart,
    InPromoteStart,
    InSubmitAnswer,
    InClaimTerritory,
    InSkipClaim,
    InEndGame,
    InResetGame,
]


# =========================
# Outgoing (Server -> Client)
# =========================

class OutBase(BaseModel):
    type: str


class OutError(OutBase):
    type: Literal["error"] = "error"
    code: str
    message: str
    retryable: bool = False


class OutAck(OutBase):
    """Reply to one client message once its transaction settled."""
    type: Literal["ack"] = "ack"
    op: str
    status: str
    rev: int                            # revision of the document after this message
    correct: Optional[bool] = None      # submit_answer
    claimed: Optional[bool] = None      # claim_territory / skip_claim


class OutGameSnapshot(OutBase):
    type: Literal["game_snapshot"] = "game_snapshot"
    rev: int
    game: Dict[str, Any]


class OutView(OutBase):
    type: Literal["view"] = "view"
    view: Dict[str, Any]


class OutGameNotFound(OutBase):
    type: Literal["game_not_found"] = "game_not_found"
    pin: str


class OutPhase(OutBase):
    """Local pacing step for this player (feedback and coloring windows)."""
    type: Literal["phase"] = "phase"
    phase: str
    question_index: Optional[int] = None


OutgoingEvent = Union[
    OutError,
    OutAck,
    OutGameSnapshot,
    OutView,
    OutGameNotFound,
    OutPhase,
]


# =========================
# Parser helpers
# =========================

_INCOMING_BY_TYPE = {
    "join_team": InJoinTeam,
    "start_game": InStartGame,
    "schedule_start": InScheduleStart,
    "promote_start": InPromoteStart,
    "submit_answer": InSubmitAnswer,
    "claim_territory": InClaimTerritory,
    "skip_claim": InSkipClaim,
    "end_game": InEndGame,
    "reset_game": InResetGame,
}


def parse_incoming(payload: Dict[str, Any]) -> IncomingMessage:
    """
    Convert raw dict -> validated message model.
    Raises ValidationError if invalid.
    """
    t = payload.get("type") if isinstance(payload, dict) else None
    if not isinstance(t, str):
        raise ValidationError.from_exception_data(
            title="IncomingMessage",
            line_errors=[{"loc": ("type",), "input": payload, "ctx": {"error": "Missing/invalid type"}, "type": "value_error"}],
        )

    cls = _INCOMING_BY_TYPE.get(t)
    if cls is None:
        raise ValidationError.from_exception_data(
            title="IncomingMessage",
            line_errors=[{"loc": ("type",), "input": t, "ctx": {"error": f"Unknown message type: {t}"}, "type": "value_error"}],
        )

    return cls.model_validate(payload)
