"""Durable storage for long-term conversation memory."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Union

from pydantic import ValidationError

from relay.core.models import ConversationTurn
from relay.errors import PersistenceError


logger = logging.getLogger(__name__)


class TurnStore(Protocol):
    """Whole-list store: ``load`` returns everything, ``save`` overwrites it."""

    def load(self) -> Optional[List[ConversationTurn]]:
        ...

    def save(self, turns: Sequence[ConversationTurn]) -> None:
        ...


class JsonFileStore:
    """Keeps the long-term list as a single JSON array of ``{role, content}``."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[List[ConversationTurn]]:
        """Return the stored turns, or ``None`` when nothing was persisted yet.

        Raises:
            PersistenceError: if the file exists but cannot be read or parsed.
        """
        if not self.path.exists():
            return None

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot read memory file {self.path}: {exc}") from exc

        if not isinstance(raw, list):
            raise PersistenceError(
                f"Memory file {self.path} must hold a JSON list, got {type(raw).__name__}"
            )

        try:
            return [ConversationTurn.model_validate(item) for item in raw]
        except ValidationError as exc:
            raise PersistenceError(f"Invalid turn in memory file {self.path}: {exc}") from exc

    def save(self, turns: Sequence[ConversationTurn]) -> None:
        payload = json.dumps(
            [turn.model_dump() for turn in turns], ensure_ascii=False, indent=2
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Readers only ever see a complete file.
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, UnicodeError) as exc:
            raise PersistenceError(f"Cannot write memory file {self.path}: {exc}") from exc
        logger.debug("Persisted %s long-term turns to %s", len(turns), self.path)
