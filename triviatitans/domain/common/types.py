# triviatitans/domain/common/types.py
from __future__ import annotations

from typing import Literal

GameStatus = Literal["lobby", "starting", "playing", "finished"]
SessionType = Literal["team", "individual"]

# Client-local player flow (never persisted)
PlayerPhase = Literal["waiting", "question", "feedback", "coloring", "done"]

Language = Literal["en", "ar"]
PlayerFieldType = Literal["text", "email", "tel"]
