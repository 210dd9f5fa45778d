"""Classification of daemon diagnostic lines into health signals.

The daemon reports its state on stderr with lines starting "!!":

  !!Daemon listening               -> LISTENING
  !!Updating indexes for <name>    -> INDEXING_STARTED(name)
  !!Updated indexes                -> INDEXING_FINISHED
  !!<anything else>                -> WARNING(line)

Everything else is ordinary log output and is ignored. Matching is
case-sensitive and the first matching rule wins.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from codeintel_mcp.daemon.notify import Notifier, Popup

SIGNAL_PREFIX = "!!"
LISTENING_MARKER = "!!Daemon listening"
INDEXING_STARTED_PREFIX = "!!Updating indexes for "
INDEXING_FINISHED_MARKER = "!!Updated indexes"

# delay before an indexing notice is shown, so fast updates never flicker
INDEXING_NOTICE_DELAY = 3.0


class SignalKind(Enum):
    LISTENING = "listening"
    INDEXING_STARTED = "indexing_started"
    INDEXING_FINISHED = "indexing_finished"
    WARNING = "warning"


@dataclass(frozen=True)
class HealthSignal:
    kind: SignalKind
    text: str = ""

    @classmethod
    def listening(cls) -> "HealthSignal":
        return cls(SignalKind.LISTENING)

    @classmethod
    def indexing_started(cls, target: str) -> "HealthSignal":
        return cls(SignalKind.INDEXING_STARTED, target)

    @classmethod
    def indexing_finished(cls) -> "HealthSignal":
        return cls(SignalKind.INDEXING_FINISHED)

    @classmethod
    def warning(cls, text: str) -> "HealthSignal":
        return cls(SignalKind.WARNING, text)


# (predicate, extractor) pairs, checked in order
_RULES: List[Tuple[Callable[[str], bool], Callable[[str], HealthSignal]]] = [
    (
        lambda line: line.startswith(LISTENING_MARKER),
        lambda line: HealthSignal.listening(),
    ),
    (
        lambda line: line.startswith(INDEXING_STARTED_PREFIX),
        lambda line: HealthSignal.indexing_started(line[len(INDEXING_STARTED_PREFIX):]),
    ),
    (
        lambda line: line.startswith(INDEXING_FINISHED_MARKER),
        lambda line: HealthSignal.indexing_finished(),
    ),
    (
        lambda line: line.startswith(SIGNAL_PREFIX),
        HealthSignal.warning,
    ),
]


def classify_line(line: str) -> Optional[HealthSignal]:
    """Return the signal carried by one diagnostic line, or None."""
    line = line.rstrip("\r\n")
    for matches, extract in _RULES:
        if matches(line):
            return extract(line)
    return None


class IndexingNotice:
    """Debounced "Updating indexes for <target>" notice."""

    def __init__(self, target: str):
        self.target = target
        self.popup: Optional[Popup] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def message(self) -> str:
        return f"Updating indexes for {self.target}"

    @property
    def pending(self) -> bool:
        return self._timer is not None

    @property
    def shown(self) -> bool:
        return self.popup is not None

    def schedule(self, notifier: Notifier, delay: float):
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._show, notifier)

    def _show(self, notifier: Notifier):
        self._timer = None
        self.popup = notifier.show_info(self.message)

    def cancel(self):
        """Cancel the pending timer and hide the notice if it was shown."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.popup is not None:
            self.popup.hide()
            self.popup = None


class HealthMonitor:
    """Turns a daemon's diagnostic stream into signals and notices.

    ``feed`` applies the notice side effects itself (indexing notices,
    warnings) and returns the signal so the supervisor can drive its own
    state transitions.
    """

    def __init__(self, notifier: Notifier, notice_delay: float = INDEXING_NOTICE_DELAY):
        self.notifier = notifier
        self.notice_delay = notice_delay
        self.notice: Optional[IndexingNotice] = None
        self.listening_seen = False

    def feed(self, line: str) -> Optional[HealthSignal]:
        signal = classify_line(line)
        if signal is None:
            return None

        if signal.kind is SignalKind.LISTENING:
            self.listening_seen = True
        elif signal.kind is SignalKind.INDEXING_STARTED:
            self._cancel_notice()
            self.notice = IndexingNotice(signal.text)
            self.notice.schedule(self.notifier, self.notice_delay)
        elif signal.kind is SignalKind.INDEXING_FINISHED:
            self._cancel_notice()
        else:
            self.notifier.show_error(signal.text)

        return signal

    def _cancel_notice(self):
        if self.notice is not None:
            self.notice.cancel()
            self.notice = None

    def close(self):
        """Drop any notice when the daemon goes away."""
        self._cancel_notice()
