"""A chess engine spoken to over the UCI protocol."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Sequence

from fastchess.options import OptionType, UCIOptions, parse_option_line
from fastchess.process import Line, Process, Standard, Status
from fastchess.timecontrol import TimeControl

log = logging.getLogger(__name__)

# Limits how many engines are being started at the same time.
_startup_semaphore = threading.BoundedSemaphore(16)


class ScoreType(Enum):
    CP = auto()
    MATE = auto()
    ERR = auto()


class VariantType(Enum):
    STANDARD = "standard"
    FRC = "fischerandom"


@dataclass
class EngineLimit:
    """Search limits for an engine: its clock and optional node and depth caps."""

    tc: TimeControl = field(default_factory=TimeControl)
    nodes: int = 0
    plies: int = 0


@dataclass
class EngineConfiguration:
    """How to start an engine and which options to give it."""

    name: str = ""
    dir: str = ""
    cmd: str = ""
    args: str = ""
    options: list[tuple[str, str]] = field(default_factory=list)
    limit: EngineLimit = field(default_factory=EngineLimit)
    variant: VariantType = VariantType.STANDARD


def _find_element(tokens: Sequence[str], key: str) -> str | None:
    """The token that follows ``key``, if any."""
    for token, following in zip(tokens, tokens[1:]):
        if token == key:
            return following
    return None


def _find_int(tokens: Sequence[str], key: str) -> int | None:
    value = _find_element(tokens, key)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class UciEngine:
    """An engine process together with the UCI conversation held with it."""

    STARTUP_TIME = 10_000
    UCINEWGAME_TIME = 60_000
    PING_TIME = 60_000

    def __init__(self, config: EngineConfiguration, realtime_logging: bool = False) -> None:
        self.config = config
        self.realtime_logging = realtime_logging
        self.uci_options = UCIOptions()
        self.output: list[Line] = []
        self._process = Process(realtime_logging)
        self._initialized = False

    def _log_lines(self, lines: Sequence[Line]) -> None:
        for line in lines:
            stream = "stderr" if line.std is Standard.ERR else "stdout"
            log.debug("<%s:%s> %s %s", self.config.name, stream, line.time, line.line)

    def start(self) -> bool:
        """Start the engine and wait for uciok; does nothing once started."""
        if self._initialized:
            return True

        with _startup_semaphore:
            log.debug("Starting engine %s at %s", self.config.name, self.config.cmd)
            status = self._process.init(
                self.config.dir, self.config.cmd, self.config.args, self.config.name
            )
            if status is not Status.OK:
                log.error("Warning; Cannot start engine %s;", self.config.name)
                log.error("Cannot execute command: %s", self.config.cmd)
                return False

            if not self.uci():
                log.warning("Couldnt write uci to engine %s", self.config.name)
                return False

            if not self.uciok(self.STARTUP_TIME):
                log.warning(
                    "Engine %s didn't respond to uci with uciok after startup.", self.config.name
                )
                return False

        self._initialized = True
        return True

    def refresh_uci(self) -> bool:
        """Start a new game and send the configured options again."""
        log.debug("Refreshing engine %s", self.config.name)

        if not self.ucinewgame():
            log.warning("Engine %s failed to start/refresh (ucinewgame).", self.config.name)
            return False

        # Threads goes first, which helps multi-threaded configurations.
        options = sorted(self.config.options, key=lambda option: option[0] != "Threads")
        for name, value in options:
            self._send_setoption(name, value)

        if self.config.variant is VariantType.FRC:
            self._send_setoption("UCI_Chess960", "true")

        log.debug("Engine %s refreshed.", self.config.name)
        return True

    def _id_field(self, prefix: str) -> str | None:
        if not self.uci() or not self.uciok():
            log.warning("Warning; Engine %s didn't respond to uci.", self.config.name)
            return None

        for line in self.output:
            position = line.line.find(prefix)
            if position != -1:
                return line.line[position + len(prefix) + 1 :]
        return None

    def id_name(self) -> str | None:
        """The name the engine reports after ``id name``."""
        return self._id_field("id name")

    def id_author(self) -> str | None:
        """The author the engine reports after ``id author``."""
        return self._id_field("id author")

    def uci(self) -> bool:
        log.debug("Sending uci to engine %s", self.config.name)
        if not self.write_engine("uci"):
            log.warning("Failed to send uci to engine %s", self.config.name)
            return False
        return True

    def uciok(self, threshold: int = PING_TIME) -> bool:
        """Wait for uciok and record the options the engine advertised."""
        log.debug("Waiting for uciok from engine %s", self.config.name)
        ok = self.read_engine("uciok", threshold) is Status.OK

        for line in self.output:
            if not self.realtime_logging:
                self._log_lines([line])
            option = parse_option_line(line.line)
            if option is not None:
                self.uci_options.add(option)

        if not ok:
            log.warning("Engine %s did not respond to uciok in time.", self.config.name)
        return ok

    def ucinewgame(self) -> bool:
        log.debug("Sending ucinewgame to engine %s", self.config.name)
        if not self.write_engine("ucinewgame"):
            log.warning("Failed to send ucinewgame to engine %s", self.config.name)
            return False
        return self.isready(self.UCINEWGAME_TIME) is Status.OK

    def isready(self, threshold: int = PING_TIME) -> Status:
        """Ping the engine and wait up to ``threshold`` ms for readyok."""
        alive = self._process.alive()
        if alive is not Status.OK:
            return alive

        log.debug("Pinging engine %s", self.config.name)
        self.write_engine("isready")
        self._process.setup_read()
        status, lines = self._process.read_output("readyok", threshold)

        if not self.realtime_logging:
            self._log_lines(lines)

        if status is not Status.OK:
            log.debug("Engine %s didn't respond to isready", self.config.name)
            log.warning("Warning; Engine %s is not responsive", self.config.name)
            return status

        log.debug("Engine %s is responsive", self.config.name)
        return status

    def position(self, moves: Sequence[str] = (), fen: str = "startpos") -> bool:
        command = "position " + ("startpos" if fen == "startpos" else f"fen {fen}")
        if moves:
            command += " moves " + " ".join(moves)
        return self.write_engine(command)

    def go(self, our_tc: TimeControl, enemy_tc: TimeControl, white_to_move: bool) -> bool:
        """Send ``go`` with the clocks of both sides and the configured limits."""
        parts = ["go"]
        limit = self.config.limit

        if limit.nodes:
            parts += ["nodes", str(limit.nodes)]
        if limit.plies:
            parts += ["depth", str(limit.plies)]

        # A fixed move time cannot be combined with a clock.
        if our_tc.is_fixed_time():
            parts += ["movetime", str(our_tc.fixed_time)]
            return self.write_engine(" ".join(parts))

        white, black = (our_tc, enemy_tc) if white_to_move else (enemy_tc, our_tc)

        if our_tc.is_timed() or our_tc.is_increment():
            for label, tc in (("wtime", white), ("btime", black)):
                if tc.is_timed() or tc.is_increment():
                    parts += [label, str(tc.time_left)]

        if our_tc.is_increment():
            for label, tc in (("winc", white), ("binc", black)):
                if tc.is_increment():
                    parts += [label, str(tc.increment)]

        if our_tc.is_moves():
            parts += ["movestogo", str(our_tc.moves_left)]

        return self.write_engine(" ".join(parts))

    def quit(self) -> None:
        if not self._initialized:
            return
        log.debug("Sending quit to engine %s", self.config.name)
        self.write_engine("quit")

    def _send_setoption(self, name: str, value: str) -> None:
        option = self.uci_options.get(name)
        if option is None:
            log.warning("Warning; %s doesn't have option %s", self.config.name, name)
            return

        if not option.is_valid(value):
            log.warning("Warning; Invalid value for option %s; %s", name, value)
            return

        log.debug("Sending setoption to engine %s %s %s", self.config.name, name, value)

        if option.type is OptionType.BUTTON:
            if value != "true":
                return
            if not self.write_engine(f"setoption name {name}"):
                log.warning("Failed to send setoption to engine %s %s", self.config.name, name)
                return
            option.set_value(value)

        if not self.write_engine(f"setoption name {name} value {value}"):
            log.warning(
                "Failed to send setoption to engine %s %s %s", self.config.name, name, value
            )
            return

        option.set_value(value)

    def write_engine(self, text: str) -> bool:
        """Send one line to the engine."""
        log.debug("<%s> << %s", self.config.name, text)
        return self._process.write_input(text + "\n") is Status.OK

    def read_engine(self, last_word: str, threshold: int = PING_TIME) -> Status:
        """Read output until a line starts with ``last_word`` or ``threshold`` ms pass."""
        self._process.setup_read()
        status, self.output = self._process.read_output(last_word, threshold)
        return status

    def write_log(self) -> None:
        """Log the output of the last read."""
        self._log_lines(self.output)

    def set_cpus(self, cpus: Sequence[int]) -> None:
        self._process.set_affinity(cpus)

    def bestmove(self) -> str | None:
        """The move after ``bestmove`` on the last line read."""
        if not self.output:
            log.warning("Warning; No output from %s", self.config.name)
            return None

        move = _find_element(self.output[-1].line.split(), "bestmove")
        if move is None:
            log.warning("Warning; No bestmove found in the last line from %s", self.config.name)
        return move

    def last_info_line(self, exact: bool = True) -> str:
        """The last info line with a score (and multipv 1, if multipv is given).

        With ``exact``, lowerbound and upperbound lines are skipped.
        """
        for entry in reversed(self.output):
            text = entry.line
            if exact and ("lowerbound" in text or "upperbound" in text):
                continue
            if (
                "info" in text
                and " score " in text
                and (" multipv " not in text or " multipv 1" in text)
            ):
                return text
        return ""

    def last_info(self, exact: bool = True) -> list[str]:
        line = self.last_info_line(exact)
        if not line:
            log.warning(
                "Warning; Last info string with score not found from %s", self.config.name
            )
            return []
        return line.split()

    def last_score_type(self) -> ScoreType:
        score = _find_element(self.last_info(), "score")
        if score == "cp":
            return ScoreType.CP
        if score == "mate":
            return ScoreType.MATE
        return ScoreType.ERR

    def last_time(self) -> int:
        """The search time in milliseconds from the last info line."""
        value = _find_int(self.last_info(False), "time")
        return value if value is not None else 0

    def last_score(self) -> int:
        """The last score; mate scores are in moves, check last_score_type first."""
        score_type = self.last_score_type()
        if score_type is ScoreType.ERR:
            return 0
        key = "cp" if score_type is ScoreType.CP else "mate"
        value = _find_int(self.last_info(), key)
        return value if value is not None else 0

    def output_includes_bestmove(self) -> bool:
        return any("bestmove" in entry.line for entry in self.output)

    def close(self) -> None:
        """Tell the engine to quit and stop its process."""
        self.quit()
        self._process.terminate()
        self._initialized = False

    def __enter__(self) -> UciEngine:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()