from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

logger = logging.getLogger("axe_companion.window_shell")


class CloseAction(str, Enum):
    HIDE = "hide"
    CLOSE = "close"


class Window(Protocol):
    def hide(self) -> None: ...

    def show(self) -> None: ...

    def set_focus(self) -> None: ...


@dataclass
class HeadlessWindow:
    """Window stand-in for the web shell: the browser page is the window."""

    visible: bool = True
    focused: bool = False

    def hide(self) -> None:
        self.visible = False
        self.focused = False

    def show(self) -> None:
        self.visible = True

    def set_focus(self) -> None:
        self.focused = True


@dataclass
class ShellPreferences:
    minimize_to_tray: bool = False


class WindowShell:
    """Owns window visibility and the hide-on-close preference.

    The preference is written only by explicit user action and read when a
    close is requested. ``persist`` is called with the new value so it
    survives restarts; it knows nothing about miners.
    """

    def __init__(
        self,
        preferences: ShellPreferences,
        window: Window,
        persist: Callable[[bool], None] | None = None,
    ) -> None:
        self.preferences = preferences
        self.window = window
        self._persist = persist

    def get_minimize_to_tray(self) -> bool:
        return self.preferences.minimize_to_tray

    def set_minimize_to_tray(self, enabled: bool) -> None:
        self.preferences.minimize_to_tray = enabled
        logger.info("Minimize to tray set to: %s", enabled)
        if self._persist:
            self._persist(enabled)

    def handle_close_requested(self) -> CloseAction:
        if self.preferences.minimize_to_tray:
            self.window.hide()
            return CloseAction.HIDE
        return CloseAction.CLOSE

    def hide_to_tray(self) -> None:
        self.window.hide()

    def show_from_tray(self) -> None:
        self.window.show()
        self.window.set_focus()
