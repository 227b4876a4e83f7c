import json
import logging
import os
import sys
import typing as _t
from contextvars import ContextVar
from typing import Any, Dict, Optional

# Context var to carry the Game PIN through an operation / connection
game_pin_ctx: ContextVar[Optional[str]] = ContextVar("game_pin", default=None)

# Known extra fields added via logger.extra (as attributes on record)
_EXTRA_KEYS = (
    "op",
    "uid",
    "rev",
    "attempt",
    "status",
    "parent",
    "child",
    "event",
    "error",
    "code",
)


class JsonFormatter(logging.Formatter):
    """JSON log formatter suitable for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        pin = game_pin_ctx.get()
        if pin:
            payload["game"] = pin
        for key in _EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                payload[key] = val
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class ColorFormatter(logging.Formatter):
    """Human-friendly, colorized formatter that uses structured fields when present."""

    RESET = "\033[0m"
    COLORS = {
        "DEBUG": "\033[36m",   # cyan
        "INFO": "\033[32m",    # green
        "WARNING": "\033[33m", # yellow
        "ERROR": "\033[31m",   # red
        "CRITICAL": "\033[35m",# magenta
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def _color(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{self.RESET}"

    def _fields_str(self, record: logging.LogRecord) -> Optional[str]:
        ctx: _t.List[str] = []
        for key in _EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                ctx.append(f"{key}={val}")
        return "[" + " ".join(ctx) + "]" if ctx else None

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        ts = self.formatTime(record, datefmt="%H:%M:%S")
        pin = game_pin_ctx.get()

        parts: _t.List[str] = [
            self._color(level, self.COLORS.get(level, "")),
            ts,
        ]
        if pin:
            parts.append(self._color(f"game={pin}", "\033[35m"))
        parts.append(self._color(record.name, "\033[34m"))

        msg = record.getMessage()
        if msg:
            parts.extend(["-", msg])

        fields = self._fields_str(record)
        if fields:
            parts.append(self._color(fields, "\033[90m"))

        if record.exc_info:
            parts.append("\n" + self.formatException(record.exc_info))

        return " ".join(parts)


def _isatty(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except Exception:
        return False


def setup_logging(level: _t.Union[int, str] = logging.INFO, fmt: str = "") -> logging.Logger:
    """Configure root and uvicorn loggers.

    Chooses JSON (default) or colorized pretty format based on `fmt`/env/TTY:
    - fmt/LOG_FORMAT=pretty forces pretty
    - fmt/LOG_FORMAT=json forces JSON
    - otherwise: pretty if stdout is a TTY, else JSON
    - LOG_COLOR=0 disables ANSI colors in pretty mode
    """
    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)

    fmt_env = (fmt or os.getenv("LOG_FORMAT", "")).lower()
    color_env = os.getenv("LOG_COLOR", "1").lower()
    use_pretty = (fmt_env == "pretty") or (fmt_env == "" and _isatty(sys.stdout))
    use_color = use_pretty and color_env not in ("0", "false", "no")

    handler = logging.StreamHandler(sys.stdout)
    if use_pretty:
        handler.setFormatter(ColorFormatter(use_color=use_color))
    else:
        handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.setLevel(level)
        lg.propagate = False

    return root


def get_logger(name: str = "triviatitans") -> logging.Logger:
    return logging.getLogger(name)
