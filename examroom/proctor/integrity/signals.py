"""
Environment Signals - fullscreen, visibility and keyboard events

The exam room never listens to a browser directly. Whatever hosts the exam
(a web client posting events, a kiosk shell, a test) feeds EnvironmentSignals
into a SignalSource, and the IntegrityMonitor subscribes to it.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class SignalKind(str, Enum):
    FULLSCREEN_EXITED = "fullscreen_exited"
    FULLSCREEN_ENTERED = "fullscreen_entered"
    PAGE_HIDDEN = "page_hidden"
    PAGE_VISIBLE = "page_visible"
    KEY_DOWN = "key_down"
    RETURNED_TO_EXAM = "returned_to_exam"


class KeyAction(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"          # suppress the default action, no violation
    VIOLATION = "violation"  # suppress and record a restricted_key violation


@dataclass(frozen=True)
class EnvironmentSignal:
    kind: SignalKind
    key: Optional[str] = None
    ctrl: bool = False
    alt: bool = False
    meta: bool = False


# Keys whose press is itself a violation
VIOLATION_KEYS = {"Escape"}

# Browser shortcuts that would leave the exam window
BLOCKED_SHORTCUTS = {"w", "t", "n"}


def classify_key(key: str, ctrl: bool = False, alt: bool = False, meta: bool = False) -> KeyAction:
    """Decide what to do with a key press during an active exam"""
    if key in VIOLATION_KEYS:
        return KeyAction.VIOLATION
    if (ctrl or meta) and key.lower() in BLOCKED_SHORTCUTS:
        return KeyAction.BLOCK
    if alt and key == "Tab":
        return KeyAction.BLOCK
    if key == "F11":
        return KeyAction.BLOCK
    return KeyAction.ALLOW


SignalHandler = Callable[[EnvironmentSignal], None]


class SignalSource:
    """Fan-out of environment signals to subscribers"""

    def __init__(self):
        self._handlers: List[SignalHandler] = []

    def subscribe(self, handler: SignalHandler) -> Callable[[], None]:
        """Register a handler; returns a function that unsubscribes it"""
        self._handlers.append(handler)

        def unsubscribe():
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def emit(self, signal: EnvironmentSignal):
        for handler in list(self._handlers):
            handler(signal)


class SyntheticEnvironment(SignalSource):
    """
    In-process environment that tracks fullscreen/visibility state.

    Used by the HTTP layer (client events are replayed into it) and by
    tests. ``enter_fullscreen``/``exit_fullscreen`` are commands issued by
    the exam room itself and do not emit signals.
    """

    def __init__(self):
        super().__init__()
        self.is_fullscreen = False
        self.is_hidden = False

    def enter_fullscreen(self):
        self.is_fullscreen = True

    def exit_fullscreen(self):
        self.is_fullscreen = False

    def close(self):
        """Drop all subscribers"""
        self._handlers.clear()

    # Candidate-side events

    def lose_fullscreen(self):
        self.is_fullscreen = False
        self.emit(EnvironmentSignal(SignalKind.FULLSCREEN_EXITED))

    def restore_fullscreen(self):
        self.is_fullscreen = True
        self.emit(EnvironmentSignal(SignalKind.FULLSCREEN_ENTERED))

    def hide_page(self):
        self.is_hidden = True
        self.emit(EnvironmentSignal(SignalKind.PAGE_HIDDEN))

    def show_page(self):
        self.is_hidden = False
        self.emit(EnvironmentSignal(SignalKind.PAGE_VISIBLE))

    def press_key(self, key: str, ctrl: bool = False, alt: bool = False, meta: bool = False) -> KeyAction:
        """Emit a key press; returns whether the host should suppress it"""
        self.emit(EnvironmentSignal(SignalKind.KEY_DOWN, key=key, ctrl=ctrl, alt=alt, meta=meta))
        return classify_key(key, ctrl=ctrl, alt=alt, meta=meta)

    def return_to_exam(self):
        self.is_fullscreen = True
        self.emit(EnvironmentSignal(SignalKind.RETURNED_TO_EXAM))
