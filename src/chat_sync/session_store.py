"""Persistence of the login session between runs.

The refresh token and identity of the signed-in account are stored in
``session.json`` inside the state directory (``.chat_sync/`` by
default). Short-lived id tokens are never written.

Writes are atomic: ``save()`` writes a temp file in the same directory,
then ``os.replace()`` swaps it in, so readers never see partial data.
``tempfile.mkstemp`` creates the file with owner-only permissions.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chat_sync.sync.models import AuthInfo

logger = logging.getLogger(__name__)


class SessionStore:
    """Load, save, and clear the persisted login session.

    Args:
        state_dir: Directory holding the session file.
        filename: Session file name inside *state_dir*.
    """

    def __init__(self, state_dir: Path, filename: str = "session.json") -> None:
        self._state_dir = Path(state_dir)
        self._filename = filename

    @property
    def path(self) -> Path:
        return self._state_dir / self._filename

    def load(self) -> dict | None:
        """Return the stored session dict, or ``None`` if absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, exc)
            return None
        if not isinstance(data, dict) or not data.get("refresh_token"):
            return None
        return data

    def save(self, auth: AuthInfo) -> None:
        """Persist *auth* atomically. No-op without a refresh token."""
        if not auth.refresh_token:
            return
        self._state_dir.mkdir(parents=True, exist_ok=True)
        state = {
            "version": 1,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "uid": auth.uid,
            "email": auth.email,
            "refresh_token": auth.refresh_token,
        }

        fd, tmp_path = tempfile.mkstemp(dir=str(self._state_dir), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def clear(self) -> None:
        """Remove the session file. No-op if not present."""
        self.path.unlink(missing_ok=True)
