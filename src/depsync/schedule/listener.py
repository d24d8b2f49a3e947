"""Key-press listener that sets a cancel flag while a countdown runs."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Optional, TextIO

_LOGGER = logging.getLogger(__name__)


class KeyPressListener:
    """
    Watch stdin on a background thread and set `cancel` on input.

    Use as a context manager around a countdown. The thread only polls, so
    it stops cleanly on exit and never swallows input meant for a later
    prompt. On POSIX terminals input is line buffered (press Enter).
    """

    def __init__(
        self,
        cancel: threading.Event,
        *,
        stream: Optional[TextIO] = None,
        poll_interval: float = 0.1,
    ) -> None:
        self._cancel = cancel
        self._stream = stream if stream is not None else sys.stdin
        self._poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def __enter__(self) -> "KeyPressListener":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._watch,
            name="depsync-keypress",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._poll_interval * 5)
            self._thread = None

    def _watch(self) -> None:
        while not self._stop.is_set():
            try:
                pressed = self._poll_key()
            except (OSError, ValueError) as exc:
                _LOGGER.debug("Stopped watching for key presses: %s", exc)
                return
            if pressed is None:
                # stdin closed; nothing can cancel any more.
                return
            if pressed:
                _LOGGER.debug("Key press received, cancelling countdown")
                self._cancel.set()
                return

    def _poll_key(self) -> Optional[bool]:
        """True on a key press, False on timeout, None at end of input."""
        if sys.platform == "win32":
            return self._poll_key_windows()
        return self._poll_key_posix()

    def _poll_key_posix(self) -> Optional[bool]:
        import select

        readable, _, _ = select.select([self._stream], [], [], self._poll_interval)
        if not readable:
            return False
        line = self._stream.readline()
        if line == "":
            return None
        return True

    def _poll_key_windows(self) -> Optional[bool]:
        import msvcrt

        if msvcrt.kbhit():
            msvcrt.getwch()
            return True
        self._stop.wait(self._poll_interval)
        return False
