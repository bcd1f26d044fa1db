"""View-model delegate that records UI notifications.

Used by the HTTP surface, where there is no screen to update: clients read
the recorded state back through GET /store/ui-state.
"""

from collections import deque
from threading import RLock
from typing import Optional

from iap_coordinator.logging_config import get_logger

logger = get_logger(__name__)


class UiStateRecorder:
    """Keeps what a store screen would currently display."""

    def __init__(self, max_events: int = 100):
        self._lock = RLock()
        self._events: deque[str] = deque(maxlen=max_events)
        self.overlay_visible = False
        self.long_process_running = False
        self.last_error: Optional[str] = None
        self.last_notification: Optional[str] = None

    def _record(self, event: str) -> None:
        with self._lock:
            self._events.append(event)
            self.last_notification = event
        logger.debug("ui_notification", notification=event)

    def toggle_overlay(self, should_show: bool) -> None:
        with self._lock:
            self.overlay_visible = should_show
        self._record("toggle_overlay")

    def will_start_long_process(self) -> None:
        with self._lock:
            self.long_process_running = True
            self.overlay_visible = True
        self._record("will_start_long_process")

    def did_finish_long_process(self) -> None:
        with self._lock:
            self.long_process_running = False
            self.overlay_visible = False
        self._record("did_finish_long_process")

    def show_iap_related_error(self, error: Exception) -> None:
        with self._lock:
            self.last_error = str(error)
        self._record("show_iap_related_error")

    def should_update_ui(self) -> None:
        self._record("should_update_ui")

    def did_finish_restoring_purchases_with_zero_products(self) -> None:
        self._record("did_finish_restoring_purchases_with_zero_products")

    def did_finish_restoring_purchased_products(self) -> None:
        self._record("did_finish_restoring_purchased_products")

    @property
    def events(self) -> list[str]:
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self.overlay_visible = False
            self.long_process_running = False
            self.last_error = None
            self.last_notification = None


_recorder: Optional[UiStateRecorder] = None


def get_ui_state_recorder() -> UiStateRecorder:
    """Get or create the singleton recorder."""
    global _recorder
    if _recorder is None:
        _recorder = UiStateRecorder()
    return _recorder


def reset_ui_state_recorder() -> None:
    """Drop the singleton recorder (for testing)."""
    global _recorder
    _recorder = None
