"""
Edit History Store.

Append-only sequence of immutable ApplicationState entries with a cursor.
Committing while the cursor is behind the tail discards the redo branch.
The store is the sole owner of every bitmap referenced by its entries and
releases each one exactly once, when no surviving entry references it.
"""

from typing import Callable, Iterable, List, Optional
import logging

from RS_Libs.constants import ORIGINAL_DESCRIPTION
from RS_Libs.errors import HistoryError
from RS_Libs.ImageEditingLib.image_models import ApplicationState, ImageBitmapRef

logger = logging.getLogger(__name__)

# Event names passed to listeners
EVENT_LOAD = "load"
EVENT_COMMIT = "commit"
EVENT_UNDO = "undo"
EVENT_REDO = "redo"
EVENT_REVERT = "revert"
EVENT_RESET = "reset"
EVENT_CLEAR = "clear"

NAVIGATION_EVENTS = {EVENT_LOAD, EVENT_UNDO, EVENT_REDO, EVENT_REVERT, EVENT_RESET, EVENT_CLEAR}

HistoryListener = Callable[[str], None]


class HistoryStore:
    """Manages the non-destructive edit history."""

    def __init__(self):
        self._entries: List[ApplicationState] = []
        self._index = -1
        self._listeners: List[HistoryListener] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[ApplicationState]:
        return list(self._entries)

    @property
    def index(self) -> int:
        """Cursor position, -1 when no image is loaded."""
        return self._index

    @property
    def is_empty(self) -> bool:
        return not self._entries

    @property
    def current(self) -> Optional[ApplicationState]:
        if not self._entries:
            return None
        return self._entries[self._index]

    @property
    def original(self) -> Optional[ApplicationState]:
        return self._entries[0] if self._entries else None

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    @property
    def redo_count(self) -> int:
        if not self._entries:
            return 0
        return len(self._entries) - 1 - self._index

    def descriptions(self) -> List[str]:
        return [entry.description for entry in self._entries]

    def get_stats(self) -> dict:
        return {
            "length": len(self._entries),
            "index": self._index,
            "undo_count": max(0, self._index),
            "redo_count": self.redo_count,
        }

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, listener: HistoryListener) -> None:
        if not callable(listener):
            raise ValueError(f"listener must be callable, got {type(listener)}")
        self._listeners.append(listener)

    def remove_listener(self, listener: HistoryListener) -> bool:
        if listener in self._listeners:
            self._listeners.remove(listener)
            return True
        return False

    def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            listener(event)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def load(self, image: ImageBitmapRef) -> ApplicationState:
        """
        Start a fresh history from an uploaded image.

        Any previous history is released first.

        Returns:
            The new original entry
        """
        if not isinstance(image, ImageBitmapRef):
            raise TypeError(f"Expected ImageBitmapRef, got {type(image)}")

        self._discard(self._entries, keep=[])
        original = ApplicationState(base_image=image, layers=(), description=ORIGINAL_DESCRIPTION)
        self._entries = [original]
        self._index = 0
        logger.info("Loaded new image into history")
        self._notify(EVENT_LOAD)
        return original

    def commit(self, state: ApplicationState) -> None:
        """
        Append a new state, truncating any redo branch first.

        Raises:
            HistoryError: If no image is loaded
        """
        if not isinstance(state, ApplicationState):
            raise TypeError(f"Expected ApplicationState, got {type(state)}")
        if not self._entries:
            raise HistoryError("Cannot commit an edit before an image is loaded")

        if self.can_redo:
            kept = self._entries[: self._index + 1]
            dropped = self._entries[self._index + 1:]
            self._discard(dropped, keep=kept + [state])
            self._entries = kept
            logger.debug(f"Truncated {len(dropped)} redo entr{'y' if len(dropped) == 1 else 'ies'}")

        self._entries.append(state)
        self._index = len(self._entries) - 1
        logger.info(f"Committed '{state.description}' at index {self._index}")
        self._notify(EVENT_COMMIT)

    def undo(self) -> bool:
        """Step back one entry. Returns False when there is nothing to undo."""
        if not self.can_undo:
            return False
        self._index -= 1
        self._notify(EVENT_UNDO)
        return True

    def redo(self) -> bool:
        """Step forward one entry. Returns False when there is nothing to redo."""
        if not self.can_redo:
            return False
        self._index += 1
        self._notify(EVENT_REDO)
        return True

    def revert(self, index: int) -> None:
        """
        Jump directly to an entry without truncating.

        Raises:
            HistoryError: If index is out of range
        """
        if not (0 <= index < len(self._entries)):
            raise HistoryError(f"History index {index} out of range (length {len(self._entries)})")
        self._index = index
        self._notify(EVENT_REVERT)

    def reset(self) -> None:
        """Return to the original upload, keeping all later entries."""
        if not self._entries:
            return
        self._index = 0
        self._notify(EVENT_RESET)

    def clear(self) -> None:
        """Release every entry and return to the 'no image loaded' state."""
        self._discard(self._entries, keep=[])
        self._entries = []
        self._index = -1
        self._notify(EVENT_CLEAR)

    def _discard(self, dropped: Iterable[ApplicationState], keep: Iterable[ApplicationState]) -> int:
        """
        Release bitmaps referenced by dropped entries but not by kept ones.

        Base images and unchanged layers are shared between consecutive
        entries, so ownership is decided by reachability.

        Returns:
            Number of bitmaps released
        """
        surviving = {id(bitmap) for state in keep for bitmap in state.bitmaps()}
        seen = set()
        released = 0
        for state in dropped:
            for bitmap in state.bitmaps():
                key = id(bitmap)
                if key in surviving or key in seen:
                    continue
                seen.add(key)
                if bitmap.release():
                    released += 1
        if released:
            logger.debug(f"Released {released} bitmap(s) from discarded history")
        return released
