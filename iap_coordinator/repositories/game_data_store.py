"""Game data store - persists the player's entitlements as JSON.

Thread-safe file-backed storage.
"""

import contextlib
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from iap_coordinator.logging_config import get_logger
from iap_coordinator.models import GameData

logger = get_logger(__name__)


class GameDataStoreError(Exception):
    """Raised when persisted game data cannot be read."""

    pass


class GameDataStore:
    """File-backed storage for the player's game data.

    ``game_data`` is loaded on construction (defaults when the file does not
    exist yet) and written back by ``update()``.
    """

    def __init__(self, path: Union[str, Path]):
        """Initialize store and load existing data.

        Args:
            path: JSON file holding the game data

        Raises:
            GameDataStoreError: If the file exists but is not valid game data
        """
        self._path = Path(path)
        self._lock = threading.RLock()
        self.game_data = self._load()

    def _load(self) -> GameData:
        if not self._path.exists():
            logger.info("game_data_initialized", path=str(self._path))
            return GameData()

        try:
            return GameData.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise GameDataStoreError(f"Failed to load game data from {self._path}: {e}") from e

    @property
    def path(self) -> Path:
        return self._path

    def update(self) -> bool:
        """Write the current game data to disk.

        The file is replaced atomically so a crash never leaves half a file.

        Returns:
            True if the data was written, False otherwise
        """
        with self._lock:
            tmp_path = None
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(self.game_data.model_dump_json(indent=2))
                os.replace(tmp_path, self._path)
            except OSError as e:
                if tmp_path is not None:
                    with contextlib.suppress(OSError):
                        os.unlink(tmp_path)
                logger.error(
                    "game_data_write_failed",
                    path=str(self._path),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return False

            logger.debug("game_data_written", path=str(self._path), **self.game_data.model_dump())
            return True

    def reload(self) -> GameData:
        """Re-read game data from disk."""
        with self._lock:
            self.game_data = self._load()
            return self.game_data

    def reset(self) -> None:
        """Reset game data to defaults and persist."""
        with self._lock:
            self.game_data = GameData()
            self.update()

    def __repr__(self) -> str:
        return f"GameDataStore(path={str(self._path)!r})"
