from __future__ import annotations

import json
import logging
from pathlib import Path

from reminder_ops.domain.errors import SessionError
from reminder_ops.domain.models import SessionBlob

logger = logging.getLogger(__name__)


class SessionStore:
    """Read and write the persisted browser storage state as one JSON document."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def read(self) -> SessionBlob:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SessionError(f"Could not read session state at {self.path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise SessionError(f"Session state at {self.path} is not a JSON object")
        return payload

    def write(self, state: SessionBlob) -> Path:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(state, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except (OSError, TypeError) as exc:
            raise SessionError(f"Could not write session state to {self.path}: {exc}") from exc
        return self.path

    def load(self) -> SessionBlob | None:
        """Return the saved state, or None when absent or unreadable."""
        if not self.path.exists():
            logger.info("No saved session at %s", self.path)
            return None
        try:
            return self.read()
        except SessionError as exc:
            logger.warning("Ignoring saved session: %s", exc)
            return None

    def save(self, state: SessionBlob) -> Path | None:
        """Persist ``state``; a failure is logged and the run continues."""
        try:
            path = self.write(state)
        except SessionError as exc:
            logger.warning("Session not persisted: %s", exc)
            return None
        logger.info("Saved session state to %s", path)
        return path
