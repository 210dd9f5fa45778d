"""Notification boundary between the daemon layer and whatever presents it.

The daemon layer only asks for an info notice (which can later be hidden)
or an error notice. ``LoggerNotifier`` presents both through the rich
Logger; an editor integration would swap in real popups.
"""

from typing import Protocol

from codeintel_mcp.utils.logging_utils import Logger


class Popup(Protocol):
    def hide(self) -> None: ...


class Notifier(Protocol):
    def show_info(self, message: str) -> Popup: ...

    def show_error(self, message: str) -> None: ...


class LoggedPopup:
    """Info notice that logs when it is hidden."""

    def __init__(self, message: str):
        self.message = message
        self.visible = True

    def hide(self):
        if not self.visible:
            return
        self.visible = False
        Logger.instance().debug(f"notice hidden: {self.message}")


class LoggerNotifier:
    """Notifier that writes notices to the log."""

    def show_info(self, message: str) -> LoggedPopup:
        Logger.instance().info(message)
        return LoggedPopup(message)

    def show_error(self, message: str):
        Logger.instance().error(message)
