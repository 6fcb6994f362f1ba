# src/application/autosave.py

import threading
from typing import Dict, List, Optional

from src.domain.interfaces import HighlightStorePort
from src.domain.models import Highlight


AUTOSAVE_QUIET_PERIOD = 0.4  # seconds


class DebouncedHighlightWriter:
    """
    Coalesces rapid highlight edits into one replace-all write per document.

    Each schedule() restarts that document's quiet-period timer; only the
    state passed last before the timer fires is persisted.
    """

    def __init__(
        self,
        highlight_store: HighlightStorePort,
        quiet_period: float = AUTOSAVE_QUIET_PERIOD,
    ):
        self._store = highlight_store
        self._quiet_period = quiet_period
        self._lock = threading.Lock()
        self._pending: Dict[str, List[Highlight]] = {}
        self._timers: Dict[str, threading.Timer] = {}

    def schedule(self, document_id: str, highlights: List[Highlight]) -> None:
        with self._lock:
            self._pending[document_id] = list(highlights)
            previous = self._timers.pop(document_id, None)
            if previous is not None:
                previous.cancel()
            timer = threading.Timer(self._quiet_period, self.flush, args=(document_id,))
            timer.daemon = True
            self._timers[document_id] = timer
            timer.start()

    def flush(self, document_id: Optional[str] = None) -> None:
        """Write pending state now, for one document or all of them."""
        with self._lock:
            targets = [document_id] if document_id is not None else list(self._pending)
            batch = {}
            for target in targets:
                timer = self._timers.pop(target, None)
                if timer is not None:
                    timer.cancel()
                if target in self._pending:
                    batch[target] = self._pending.pop(target)

        for target, highlights in batch.items():
            try:
                self._store.replace_for_document(target, highlights)
            except Exception as error:
                print(f"[Autosave] ⚠ Saving highlights for '{target}' failed: {error}")

    def cancel(self) -> None:
        """Drop every pending write."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._pending.clear()

    def has_pending(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._pending
