# triviatitans/transport/admin.py
from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import BaseModel, Field

from triviatitans.client.view import redact_for
from triviatitans.domain.common.errors import (
    GameError,
    GameNotFound,
    GenerationFailed,
    InvalidDocument,
    MissingPlayerFields,
    NotAdmin,
    TransactionAborted,
)
from triviatitans.domain.common.types import Language, SessionType
from triviatitans.domain.game import operations
from triviatitans.domain.game.results import build_results
from triviatitans.domain.individual.spawn import spawn_individual_session
from triviatitans.domain.lifecycle.sessions import create_game, delete_game, duplicate_game
from triviatitans.store.models import CustomPlayerField, Question, Team

router = APIRouter(prefix="/games", tags=["games"])


# =========================
# Request bodies
# =========================

class CreateGameBody(BaseModel):
    title: str = Field(default="Trivia Titans", min_length=1, max_length=80)
    topic: Optional[str] = Field(default=None, max_length=80)
    session_type: SessionType = "team"
    language: Language = "en"
    required_player_fields: List[CustomPlayerField] = Field(default_factory=list)
    theme: Optional[str] = Field(default=None, max_length=40)


class SettingsBody(BaseModel):
    topic: Optional[str] = Field(default=None, max_length=80)
    difficulty: Optional[str] = None
    timer: Optional[int] = Field(default=None, ge=10, le=3600)
    teams: Optional[List[Team]] = None
    questions: Optional[List[Question]] = None
    required_player_fields: Optional[List[CustomPlayerField]] = None
    language: Optional[Language] = None
    theme: Optional[str] = Field(default=None, max_length=40)


class MetaBody(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=80)
    description: Optional[str] = Field(default=None, max_length=500)


class SpawnBody(BaseModel):
    name: str = Field(min_length=1, max_length=40)
    player_id: str = Field(default="", max_length=40)
    custom_data: Dict[str, str] = Field(default_factory=dict)
    language: Optional[Language] = None


# =========================
# Helpers
# =========================

_STATUS_BY_ERROR = (
    (GameNotFound, 404),
    (MissingPlayerFields, 422),
    (NotAdmin, 403),
    (InvalidDocument, 422),
    (GenerationFailed, 502),
    (TransactionAborted, 503),
)


def _http_error(e: GameError) -> HTTPException:
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(e, cls)), 409)
    return HTTPException(status_code=status, detail={"code": e.code, "message": e.message})


def _require_user(x_user_id: Optional[str]) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail={"code": "NO_IDENTITY", "message": "X-User-Id header required"})
    return x_user_id


# =========================
# Routes
# =========================

@router.post("", status_code=201)
async def create(body: CreateGameBody, request: Request, x_user_id: Optional[str] = Header(default=None)):
    uid = _require_user(x_user_id)
    app = request.app
    try:
        game = await create_game(
            app.state.repo,
            app.state.settings,
            admin_id=uid,
            title=body.title,
            topic=body.topic,
            session_type=body.session_type,
            language=body.language,
            required_player_fields=body.required_player_fields,
            theme=body.theme,
        )
    except GameError as e:
        raise _http_error(e)
    return game.to_doc()


@router.get("")
async def list_games(request: Request, admin_id: str):
    games = await request.app.state.repo.list_admin_games(admin_id)
    return {"games": [g.to_doc() for g in games]}


@router.get("/{pin}")
async def read(pin: str, request: Request, x_user_id: Optional[str] = Header(default=None)):
    try:
        game = await request.app.state.repo.get(pin)
    except GameError as e:
        raise _http_error(e)
    return redact_for(game, x_user_id)


@router.patch("/{pin}")
async def update_settings(pin: str, body: SettingsBody, request: Request, x_user_id: Optional[str] = Header(default=None)):
    uid = _require_user(x_user_id)
    try:
        game = await operations.update_settings(
            request.app.state.repo,
            pin,
            uid=uid,
            topic=body.topic,
            difficulty=body.difficulty,
            timer=body.timer,
            teams=body.teams,
            questions=body.questions,
            required_player_fields=body.required_player_fields,
            language=body.language,
            theme=body.theme,
        )
    except GameError as e:
        raise _http_error(e)
    return game.to_doc()


@router.patch("/{pin}/meta")
async def update_meta(pin: str, body: MetaBody, request: Request, x_user_id: Optional[str] = Header(default=None)):
    uid = _require_user(x_user_id)
    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=422, detail={"code": "BAD_MESSAGE", "message": "Nothing to update"})
    try:
        game = await operations.update_metadata(request.app.state.repo, pin, uid=uid, **fields)
    except GameError as e:
        raise _http_error(e)
    return game.to_doc()


@router.post("/{pin}/duplicate", status_code=201)
async def duplicate(pin: str, request: Request, x_user_id: Optional[str] = Header(default=None)):
    uid = _require_user(x_user_id)
    try:
        game = await duplicate_game(request.app.state.repo, pin, uid=uid)
    except GameError as e:
        raise _http_error(e)
    return game.to_doc()


@router.delete("/{pin}")
async def delete(pin: str, request: Request, x_user_id: Optional[str] = Header(default=None)):
    uid = _require_user(x_user_id)
    try:
        await delete_game(request.app.state.repo, pin, uid=uid)
    except GameError as e:
        raise _http_error(e)
    return {"ok": True, "pin": pin.upper()}


@router.get("/{pin}/results")
async def results(pin: str, request: Request):
    try:
        game = await request.app.state.repo.get(pin)
    except GameError as e:
        raise _http_error(e)
    return build_results(game).model_dump()


@router.post("/{pin}/spawn", status_code=201)
async def spawn(pin: str, body: SpawnBody, request: Request, x_user_id: Optional[str] = Header(default=None)):
    uid = _require_user(x_user_id)
    app = request.app
    try:
        child = await spawn_individual_session(
            app.state.repo,
            app.state.generator,
            app.state.settings,
            pin,
            uid=uid,
            name=body.name,
            player_id=body.player_id,
            custom_data=body.custom_data,
            language=body.language,
        )
    except GameError as e:
        raise _http_error(e)
    return {"pin": child.id, "parent": child.parent_session_id}
