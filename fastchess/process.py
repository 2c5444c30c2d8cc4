"""Engine subprocesses with line-based, timeout-bounded reading of their output."""

from __future__ import annotations

import atexit
import logging
import os
import selectors
import shlex
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import Sequence

from fastchess import affinity

log = logging.getLogger(__name__)

_READ_SIZE = 4096


class Standard(Enum):
    INPUT = auto()
    OUTPUT = auto()
    ERR = auto()


class Status(Enum):
    OK = auto()
    ERR = auto()
    TIMEOUT = auto()
    NONE = auto()


@dataclass
class Line:
    """One line read from an engine, with the time it was read."""

    line: str
    time: str = ""
    std: Standard = Standard.OUTPUT


_TERM_SIGNALS = (
    ("SIGABRT", "Abort"),
    ("SIGALRM", "Alarm clock"),
    ("SIGBUS", "Bus error"),
    ("SIGCHLD", "Child stopped or terminated"),
    ("SIGCONT", "Continue executing"),
    ("SIGFPE", "Floating point exception"),
    ("SIGHUP", "Hangup"),
    ("SIGILL", "Illegal instruction"),
    ("SIGINT", "Interrupt"),
    ("SIGKILL", "Kill"),
    ("SIGPIPE", "Broken pipe"),
    ("SIGQUIT", "Quit program"),
    ("SIGSEGV", "Segmentation fault"),
    ("SIGSTOP", "Stop executing"),
    ("SIGTERM", "Termination"),
    ("SIGTRAP", "Trace/breakpoint trap"),
    ("SIGTSTP", "Terminal stop signal"),
    ("SIGTTIN", "Background process attempting read"),
    ("SIGTTOU", "Background process attempting write"),
    ("SIGUSR1", "User-defined signal 1"),
    ("SIGUSR2", "User-defined signal 2"),
    ("SIGPOLL", "Pollable event"),
    ("SIGPROF", "Profiling timer expired"),
    ("SIGSYS", "Bad system call"),
    ("SIGURG", "Urgent condition on socket"),
    ("SIGVTALRM", "Virtual timer expired"),
    ("SIGXCPU", "CPU time limit exceeded"),
    ("SIGXFSZ", "File size limit exceeded"),
)

_STOP_SIGNALS = (
    ("SIGSTOP", "Stop executing"),
    ("SIGTSTP", "Terminal stop signal"),
    ("SIGTTIN", "Background process attempting read"),
    ("SIGTTOU", "Background process attempting write"),
)


def _describe(table: Sequence[tuple[str, str]], signum: int) -> str | None:
    for name, description in table:
        if getattr(signal, name, None) == signum:
            return f"{name} - {description}"
    return None


def signal_to_string(status: int) -> str:
    """Describe a raw wait status as reported by ``waitpid``."""
    low = status & 0x7F
    if low == 0:
        return f"Process exited normally with status {(status >> 8) & 0xFF}"
    if low != 0x7F:
        description = _describe(_TERM_SIGNALS, low) or "Unknown signal"
        text = f"Process terminated by signal {low} ({description})"
        if status & 0x80:
            text += " - Core dumped"
        return text
    if status & 0xFF == 0x7F:
        stop = (status >> 8) & 0xFF
        description = _describe(_STOP_SIGNALS, stop) or "Unknown stop signal"
        return f"Process stopped by signal {stop} ({description})"
    if status == 0xFFFF:
        return "Process continued"
    return f"Unknown status {status}"


def _wait_status(returncode: int) -> int:
    """Turn a subprocess return code back into a raw wait status."""
    if returncode < 0:
        return -returncode & 0x7F
    return (returncode & 0xFF) << 8


def engine_path(directory: str, command: str) -> str:
    """The command joined onto the working directory."""
    return os.path.join(directory, command)


def _timestamp() -> str:
    return datetime.now().isoformat(timespec="microseconds")


# Every running engine, killed at interpreter exit as a last resort.
_running_lock = threading.Lock()
_running: dict[int, subprocess.Popen[bytes]] = {}


def _register(proc: subprocess.Popen[bytes]) -> None:
    with _running_lock:
        _running[proc.pid] = proc


def _unregister(proc: subprocess.Popen[bytes]) -> None:
    with _running_lock:
        _running.pop(proc.pid, None)


@atexit.register
def _kill_running() -> None:
    with _running_lock:
        procs = list(_running.values())
        _running.clear()
    for proc in procs:
        if proc.poll() is None:
            try:
                proc.kill()
                proc.wait(timeout=1)
            except (OSError, subprocess.TimeoutExpired):
                pass


class Process:
    """A child process talked to line by line over its standard streams."""

    def __init__(self, realtime_logging: bool = True) -> None:
        self.realtime_logging = realtime_logging
        self.wd = ""
        self.command = ""
        self.args = ""
        self.log_name = ""
        self._proc: subprocess.Popen[bytes] | None = None
        self._initialized = False
        self._startup_error = False
        self._exit_status: int | None = None
        self._buffers = {Standard.OUTPUT: bytearray(), Standard.ERR: bytearray()}
        self._closed: set[Standard] = set()

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    def _require_init(self) -> None:
        if not self._initialized:
            raise RuntimeError("process is not initialized")

    def init(self, wd: str, command: str, args: str, log_name: str) -> Status:
        """Start ``command`` with ``args`` in directory ``wd``."""
        if self._initialized:
            raise RuntimeError("process is already initialized")

        self.wd, self.command, self.args, self.log_name = wd, command, args, log_name
        self._initialized = True
        self._startup_error = False
        self._exit_status = None
        self._closed.clear()
        for buffer in self._buffers.values():
            buffer.clear()

        try:
            argv = [command, *shlex.split(args)]
            self._proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                cwd=wd or None,
            )
        except (OSError, ValueError) as err:
            self._startup_error = True
            self._proc = None
            log.error("Failed to start process %s: %s", engine_path(wd, command), err)
            return Status.ERR

        _register(self._proc)
        return Status.OK

    def alive(self) -> Status:
        """OK while the process runs, ERR once it has exited."""
        self._require_init()
        if self._proc is None:
            return Status.ERR
        code = self._proc.poll()
        if code is None:
            return Status.OK
        self._exit_status = _wait_status(code)
        return Status.ERR

    def set_affinity(self, cpus: Sequence[int]) -> None:
        """Pin the process to ``cpus``; ignored on macOS."""
        self._require_init()
        if cpus and self._proc is not None and sys.platform != "darwin":
            affinity.set_affinity(cpus, self._proc.pid)

    def terminate(self) -> str | None:
        """Stop the process if it still runs; return how it ended."""
        if self._startup_error:
            self._initialized = False
            return None
        if not self._initialized or self._proc is None:
            return None

        proc = self._proc
        _unregister(proc)

        if self._exit_status is None:
            code = proc.poll()
            if code is None:
                proc.kill()
                code = proc.wait()
            self._exit_status = _wait_status(code)

        for stream in (proc.stdin, proc.stdout, proc.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass

        message = signal_to_string(self._exit_status)
        log.debug("Terminating process with pid %s: %s", proc.pid, message)
        log.debug("<%s> %s", self.log_name, message)
        self._initialized = False
        return message

    def setup_read(self) -> None:
        """Discard any output read but not yet handed out."""
        for buffer in self._buffers.values():
            buffer.clear()

    def _take_lines(self, std: Standard, lines: list[Line], search_word: str) -> bool:
        """Move complete lines of one stream into ``lines``; True on a match."""
        buffer = self._buffers[std]
        while True:
            end = buffer.find(b"\n")
            if end < 0:
                return False
            raw = bytes(buffer[:end])
            del buffer[: end + 1]
            if not raw:
                continue
            text = raw.decode("utf-8", errors="replace")
            lines.append(Line(text, _timestamp(), std))
            if self.realtime_logging:
                log.debug("<%s> %s", self.log_name, text)
            if std is Standard.OUTPUT and search_word and text.startswith(search_word):
                return True

    def _flush_partial(self, lines: list[Line], clear: bool) -> None:
        for std, buffer in self._buffers.items():
            if buffer:
                text = bytes(buffer).decode("utf-8", errors="replace")
                lines.append(Line(text, _timestamp(), std))
                if self.realtime_logging:
                    log.debug("<%s> %s", self.log_name, text)
                if clear:
                    buffer.clear()

    def read_output(self, search_word: str = "", threshold: float = 0) -> tuple[Status, list[Line]]:
        """Read lines until one on stdout starts with ``search_word``.

        ``threshold`` is the longest wait for new output in milliseconds;
        zero or less waits forever. Returns the status and the lines read.
        """
        self._require_init()
        lines: list[Line] = []
        if self._proc is None:
            return Status.ERR, lines

        self._take_lines(Standard.ERR, lines, "")
        if self._take_lines(Standard.OUTPUT, lines, search_word):
            return Status.OK, lines

        timeout = None if threshold <= 0 else threshold / 1000
        streams = {Standard.OUTPUT: self._proc.stdout, Standard.ERR: self._proc.stderr}

        with selectors.DefaultSelector() as selector:
            for std, stream in streams.items():
                if stream is not None and std not in self._closed:
                    selector.register(stream.fileno(), selectors.EVENT_READ, std)

            while True:
                if not selector.get_map():
                    self._flush_partial(lines, clear=True)
                    return Status.ERR, lines

                events = selector.select(timeout)
                if not events:
                    self._flush_partial(lines, clear=False)
                    return Status.TIMEOUT, lines

                events.sort(key=lambda event: event[0].data is not Standard.OUTPUT)
                for key, _ in events:
                    std: Standard = key.data
                    try:
                        chunk = os.read(key.fd, _READ_SIZE)
                    except OSError:
                        return Status.ERR, lines
                    if not chunk:
                        selector.unregister(key.fd)
                        self._closed.add(std)
                        continue
                    self._buffers[std].extend(chunk)
                    word = search_word if std is Standard.OUTPUT else ""
                    if self._take_lines(std, lines, word):
                        return Status.OK, lines

    def write_input(self, data: str) -> Status:
        """Write ``data`` to the process's standard input."""
        self._require_init()
        if self.alive() is not Status.OK or self._proc is None or self._proc.stdin is None:
            return Status.ERR
        view = memoryview(data.encode("utf-8"))
        try:
            fd = self._proc.stdin.fileno()
            while view:
                written = os.write(fd, view)
                view = view[written:]
        except (OSError, ValueError):
            return Status.ERR
        return Status.OK

    def __enter__(self) -> Process:
        return self

    def __exit__(self, *args: object) -> None:
        self.terminate()