# demoq/parsers/ndjson.py
"""
Decoder for the parser's stdout protocol: one JSON object per line, tagged
by a `type` field.

    {"type":"progress","stage":"parsing","tick":1200,"round":3,"pct":0.12}
    {"type":"log","level":"warn","msg":"..."}
    {"type":"error","msg":"..."}
    {"type":"ready","port":8123}

Anything that is not a JSON object with a `type` is dropped with a debug
diagnostic; unknown types decode to `UnknownEvent` and are ignored
downstream. Decoding never raises.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Iterable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    stage: str | None = None
    tick: int | None = None
    round: int | None = None
    fraction: float | None = None


@dataclass(frozen=True)
class LogEvent:
    level: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class ErrorEvent:
    message: str | None = None


@dataclass(frozen=True)
class ReadyEvent:
    port: int | None = None


@dataclass(frozen=True)
class UnknownEvent:
    type: str
    payload: dict = field(default_factory=dict)


ParserEvent = ProgressEvent | LogEvent | ErrorEvent | ReadyEvent | UnknownEvent


def _reject_constant(name: str):
    raise ValueError(f"non-standard JSON constant {name}")


def _str(v) -> str | None:
    return v if isinstance(v, str) else None


def _int(v) -> int | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return None


def _float(v) -> float | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    return None


def _build(tag: str, obj: dict) -> ParserEvent:
    if tag == "progress":
        return ProgressEvent(
            stage=_str(obj.get("stage")),
            tick=_int(obj.get("tick")),
            round=_int(obj.get("round")),
            fraction=_float(obj.get("pct")),
        )
    if tag == "log":
        return LogEvent(level=_str(obj.get("level")), message=_str(obj.get("msg")))
    if tag == "error":
        return ErrorEvent(message=_str(obj.get("msg")))
    if tag == "ready":
        return ReadyEvent(port=_int(obj.get("port")))
    return UnknownEvent(type=tag, payload=obj)


def decode_line(line: str | bytes) -> ParserEvent | None:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    text = line.strip()
    if not text:
        return None

    try:
        obj = json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        logger.debug("Dropping malformed parser line %r: %s", text, e)
        return None

    if not isinstance(obj, dict) or "type" not in obj:
        logger.debug("Dropping parser line without type field: %r", text)
        return None

    tag = obj["type"]
    return _build(tag if isinstance(tag, str) else str(tag), obj)


def decode_lines(lines: Iterable[str | bytes]) -> list[ParserEvent]:
    return [ev for ev in map(decode_line, lines) if ev is not None]
