from __future__ import annotations

import logging
import threading
from typing import Callable

from adbmirror.models import ProgressEvent


log = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]


def notify(listener: ProgressListener | None, event: ProgressEvent) -> None:
    """Deliver ``event`` without letting a listener failure stop the run."""
    if listener is None:
        return
    try:
        listener(event)
    except Exception:
        log.exception("Progress listener failed on %s", event)


class ProgressChannel:
    """Fan-out of progress events to listeners that may come and go mid-run.

    Delivery is best effort: a listener removed while an event is being
    dispatched may still receive that event.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[ProgressListener] = []

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            notify(listener, event)

    __call__ = emit
