"""Interpretation of upstream ``data:`` lines.

Each line becomes at most one event:

* ``TextDelta`` - a fragment of assistant text;
* ``StreamCompleted`` - the ``[DONE]`` sentinel;
* ``StreamError`` - the stream was aborted by a transport or status failure;
* ``ParseFailure`` - a malformed frame, reported and skipped.

Everything else (comments, keep-alives, metadata frames) yields ``None``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from relay.core.models import replace_lone_surrogates


logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class StreamCompleted:
    pass


@dataclass(frozen=True)
class StreamError:
    message: str


@dataclass(frozen=True)
class ParseFailure:
    line: str
    reason: str


StreamEvent = Union[TextDelta, StreamCompleted, StreamError]
ParseResult = Union[TextDelta, StreamCompleted, ParseFailure, None]


class StreamStatus(str, Enum):
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"


def _extract_delta_text(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return replace_lone_surrogates(content)
    return None


def parse_line(line: str) -> ParseResult:
    if not line.startswith(DATA_PREFIX):
        return None

    data = line[len(DATA_PREFIX):].strip()
    if not data:
        return None
    if data == DONE_SENTINEL:
        return StreamCompleted()

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        return ParseFailure(line=line, reason=str(exc))

    text = _extract_delta_text(payload)
    if text is None:
        return None
    return TextDelta(text=text)


class UpstreamEventParser:
    """Stateful wrapper over ``parse_line`` for a single upstream stream."""

    def __init__(self) -> None:
        self.status = StreamStatus.STREAMING
        self.failures = 0

    @property
    def finished(self) -> bool:
        return self.status is not StreamStatus.STREAMING

    def feed(self, line: str) -> Optional[StreamEvent]:
        if self.finished:
            return None

        result = parse_line(line)
        if isinstance(result, ParseFailure):
            self.failures += 1
            logger.warning("Skipping malformed upstream frame %r: %s", result.line[:200], result.reason)
            return None
        if isinstance(result, StreamCompleted):
            self.status = StreamStatus.COMPLETED
        return result

    def abort(self, message: str) -> StreamError:
        self.status = StreamStatus.ABORTED
        return StreamError(message=message)
