"""Console capture provider: typed lines stand in for recognized speech."""

import asyncio
import sys
import threading
from typing import Iterable, Optional, TextIO
import structlog

from .base import SpeechCapture, ResultCallback, ErrorCallback, SessionEndCallback
from ...errors import DeviceError


logger = structlog.get_logger()


class ConsoleCapture(SpeechCapture):
    """
    Capture provider that reads lines from a text stream.

    A daemon thread pumps lines into an asyncio queue, so lines typed while
    no session is running (for example while the agent is speaking) are kept
    and delivered when capture resumes. Every non-empty line is reported as a
    final result. End-of-input or one of ``end_commands`` closes the console.
    """

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        end_commands: Iterable[str] = ("/end", "/quit"),
    ):
        self.stream = stream or sys.stdin
        self.end_commands = set(end_commands)
        self.lines_read = 0
        self.is_closed = False
        self._lines: Optional[asyncio.Queue] = None
        self._closed_event: Optional[asyncio.Event] = None
        self._session: Optional[asyncio.Task] = None
        self._pump_thread: Optional[threading.Thread] = None

    def start(
        self,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_session_end: SessionEndCallback,
    ) -> None:
        if self.is_closed:
            raise DeviceError("Console input is closed")
        if self._session and not self._session.done():
            raise DeviceError("Capture session already running")

        loop = asyncio.get_running_loop()
        if self._lines is None:
            self._lines = asyncio.Queue()
            if self._closed_event is None:
                self._closed_event = asyncio.Event()
            self._pump_thread = threading.Thread(
                target=self._pump, args=(loop,), daemon=True, name="Console-Capture"
            )
            self._pump_thread.start()

        self._session = loop.create_task(self._run_session(on_result))
        logger.debug("Console capture started")

    def _pump(self, loop: asyncio.AbstractEventLoop) -> None:
        """Read lines on a background thread and hand them to the loop."""
        while True:
            try:
                line = self.stream.readline()
            except (OSError, ValueError) as e:
                logger.warning("Console read failed", error=str(e))
                line = ""
            try:
                loop.call_soon_threadsafe(self._lines.put_nowait, line or None)
            except RuntimeError:
                # Event loop already closed; nobody is listening any more
                return
            if not line:
                return

    async def _run_session(self, on_result: ResultCallback) -> None:
        while True:
            line = await self._lines.get()
            if line is None:
                self._close("end of input")
                return

            text = line.strip()
            if not text:
                continue
            if text in self.end_commands:
                self._close(text)
                return

            self.lines_read += 1
            on_result(text, True)

    def _close(self, reason: str) -> None:
        logger.info("Console capture closed", reason=reason)
        self.is_closed = True
        if self._closed_event is not None:
            self._closed_event.set()

    async def wait_closed(self) -> None:
        """Wait until the console is closed by end-of-input or an end command."""
        if self.is_closed:
            return
        if self._closed_event is None:
            self._closed_event = asyncio.Event()
        await self._closed_event.wait()

    def stop(self) -> None:
        if self._session and not self._session.done():
            self._session.cancel()
            logger.debug("Console capture stopped")
        self._session = None

    def get_status(self) -> dict:
        return {
            "provider": "console",
            "session_active": self._session is not None and not self._session.done(),
            "lines_read": self.lines_read,
            "closed": self.is_closed,
        }
