"""Raw-mode terminal host.

Owns the raw-mode and alternate-screen lifecycle, decodes keyboard bytes into
``KeyPressed`` events, and renders SelectionState with the text formatter.
The log command runs in the foreground with the TUI suspended.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import shutil
import termios
import tty
from typing import TYPE_CHECKING

import structlog

from branchdeck.core.events import Key, KeyPressed
from branchdeck.git import formatter
from branchdeck.host.base import HostBridge

if TYPE_CHECKING:
    from branchdeck.core.state import SelectionState
    from branchdeck.git.models import LogCommand

logger = structlog.get_logger()

_ENTER_TUI = b"\x1b[?1049h\x1b[?25l"
_LEAVE_TUI = b"\x1b[?25h\x1b[?1049l"
_CLEAR = "\x1b[H\x1b[2J"

_CONTROL_KEYS = {
    "\x03": Key.CREATE,
    "\x12": Key.REFRESH,
    "\x04": Key.DELETE,
    "\x18": Key.FORCE_DELETE,
    "\x0c": Key.OPEN_LOG,
    "\x10": Key.PREVIOUS,
    "\x06": Key.FETCH,
    "\t": Key.TAB,
    "\r": Key.ENTER,
    "\n": Key.ENTER,
    "\x7f": Key.BACKSPACE,
    "\x08": Key.BACKSPACE,
}

_ESCAPE_SEQUENCES = {
    "[A": Key.UP,
    "[B": Key.DOWN,
    "OA": Key.UP,
    "OB": Key.DOWN,
}


def decode_keys(data: bytes) -> list[KeyPressed]:
    """Decode one read from the terminal into key events.

    A lone ESC is the escape key; unknown escape sequences and other control
    bytes are dropped.
    """
    text = data.decode("utf-8", errors="replace")
    events: list[KeyPressed] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\x1b":
            seq = text[i + 1 : i + 3]
            if seq in _ESCAPE_SEQUENCES:
                events.append(KeyPressed(key=_ESCAPE_SEQUENCES[seq]))
                i += 3
                continue
            if seq[:1] in ("[", "O") and len(seq) == 2:
                # Skip the rest of a CSI sequence we don't handle.
                j = i + 2
                while j < len(text) and not ("@" <= text[j] <= "~"):
                    j += 1
                i = j + 1
                continue
            events.append(KeyPressed(key=Key.ESCAPE))
            i += 1
            continue
        key = _CONTROL_KEYS.get(ch)
        if key is not None:
            events.append(KeyPressed(key=key))
        elif ch.isprintable():
            events.append(KeyPressed.character(ch))
        i += 1
    return events


class TerminalHost(HostBridge):
    def __init__(self, stdin_fd: int = 0, stdout_fd: int = 1) -> None:
        super().__init__()
        self.stdin_fd = stdin_fd
        self.stdout_fd = stdout_fd
        self._saved_tty_state: list | None = None
        self._queue: asyncio.Queue[KeyPressed | None] = asyncio.Queue()
        self._pump_task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()
        self._last_state: SelectionState | None = None
        self._suspended = False

    async def start(self) -> None:
        self._saved_tty_state = termios.tcgetattr(self.stdin_fd)
        self._enable_tui_mode()
        self._pump_task = asyncio.create_task(self._pump())

    async def stop(self) -> None:
        self._stop_reading()
        if self._pump_task is not None:
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
            self._pump_task = None
        if self._saved_tty_state is not None:
            self._disable_tui_mode()
            self._saved_tty_state = None

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def render(self, state: SelectionState) -> None:
        self._last_state = state
        if self._suspended:
            return
        size = shutil.get_terminal_size()
        lines = formatter.format_screen(state, width=size.columns, height=size.lines)
        self._write(_CLEAR + "\r\n".join(lines))

    async def open_log(self, command: LogCommand) -> None:
        self._suspended = True
        self._stop_reading()
        self._disable_tui_mode()
        if command.floating:
            self._write(f"--- {' '.join(command.argv)} ---\r\n")
        try:
            proc = await asyncio.create_subprocess_exec(*command.argv, cwd=command.cwd)
            await proc.wait()
        except OSError as e:
            logger.error("log_command_failed", command=command.argv, error=str(e))
        finally:
            self._enable_tui_mode()
            self._suspended = False
            if self._last_state is not None:
                await self.render(self._last_state)

    async def close(self) -> None:
        self._closed.set()

    def _on_readable(self) -> None:
        try:
            data = os.read(self.stdin_fd, 1024)
        except OSError:
            data = b""
        if not data:
            self._queue.put_nowait(None)
            return
        for event in decode_keys(data):
            self._queue.put_nowait(event)

    async def _pump(self) -> None:
        while True:
            event = await self._queue.get()
            if event is None:
                self._closed.set()
                return
            try:
                await self.deliver_key(event)
            except Exception:
                logger.exception("key_handling_failed", key=event.key.value)

    def _enable_tui_mode(self) -> None:
        tty.setraw(self.stdin_fd, termios.TCSAFLUSH)
        os.write(self.stdout_fd, _ENTER_TUI)
        asyncio.get_running_loop().add_reader(self.stdin_fd, self._on_readable)

    def _disable_tui_mode(self) -> None:
        os.write(self.stdout_fd, _LEAVE_TUI)
        if self._saved_tty_state is not None:
            termios.tcsetattr(self.stdin_fd, termios.TCSAFLUSH, self._saved_tty_state)

    def _stop_reading(self) -> None:
        with contextlib.suppress(ValueError, OSError):
            asyncio.get_running_loop().remove_reader(self.stdin_fd)

    def _write(self, text: str) -> None:
        os.write(self.stdout_fd, text.encode("utf-8", errors="replace"))
