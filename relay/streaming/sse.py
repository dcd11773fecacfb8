from __future__ import annotations

import json

from relay.core.models import replace_lone_surrogates


STATUS_STARTED = "started"
STATUS_COMPLETED = "completed"


def escape_sse(text: str) -> str:
    """Escape text for embedding inside a JSON string in an SSE frame.

    Newlines, carriage returns and double quotes become ``\\n``, ``\\r`` and
    ``\\"``; backslashes and other control characters are escaped as well.
    Unpaired surrogates become U+FFFD.
    """
    return json.dumps(replace_lone_surrogates(text), ensure_ascii=False)[1:-1]


def _frame(key: str, value: str) -> str:
    return f'data: {{"{key}": "{escape_sse(value)}"}}\n\n'


def encode_started() -> str:
    return _frame("status", STATUS_STARTED)


def encode_completed() -> str:
    return _frame("status", STATUS_COMPLETED)


def encode_content(text: str) -> str:
    return _frame("content", text)


def encode_error(message: str) -> str:
    return _frame("error", message)
