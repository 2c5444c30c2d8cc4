"""Checks that an engine speaks enough UCI to take part in a match."""

from __future__ import annotations

import sys
import time
from typing import Callable, Sequence

from fastchess.process import Status
from fastchess.uci_engine import EngineConfiguration, UciEngine

_PASSED = "\033[1;32m Passed\033[0m"
_FAILED = "\033[1;31m Failed\033[0m"

_MIDGAME_FEN = "3r2k1/p5n1/1pq1p2p/2p3p1/2P1P1n1/1P1P2pP/PN1Q2K1/5R2 w - - 0 27"
_BLACK_TO_MOVE_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"


def is_valid_info_line(info_line: str) -> bool:
    """Whether an info line starts with ``info`` and has integer time, nps and score values."""
    tokens = iter(info_line.split())

    if next(tokens, None) != "info":
        print(f"\r\nInvalid info line format: {info_line}", file=sys.stderr)
        return False

    for token in tokens:
        if token in ("time", "nps", "score"):
            value = next(tokens, None)
            if value is None:
                print(f"\r\nNo value after token: {token}", file=sys.stderr)
                return False
            if "." in value:
                print(
                    f"\r\nTime/NPS/Score value is not an integer: {value}",
                    file=sys.stderr,
                )
                return False

    return True


def _steps(engine: UciEngine) -> list[tuple[str, Callable[[], bool]]]:
    def ready() -> bool:
        return engine.isready() is Status.OK

    def send(text: str) -> Callable[[], bool]:
        return lambda: engine.write_engine(text)

    def read_bestmove() -> bool:
        return engine.read_engine("bestmove") is Status.OK

    def read_bestmove_with_move() -> bool:
        return read_bestmove() and engine.bestmove() is not None

    def has_info() -> bool:
        return bool(engine.last_info_line())

    def valid_info() -> bool:
        return is_valid_info_line(engine.last_info_line())

    def info_has_score() -> bool:
        return "score" in engine.last_info_line()

    return [
        ("Start the engine", engine.start),
        ("Check if engine is ready", ready),
        ("Check id name", lambda: engine.id_name() is not None),
        ("Check id author", lambda: engine.id_author() is not None),
        ("Send ucinewgame", engine.ucinewgame),
        ("Set position to startpos", send("position startpos")),
        ("Check if engine is ready after startpos", ready),
        ("Set position to fen", send(f"position fen {_MIDGAME_FEN}")),
        ("Check if engine is ready after fen", ready),
        ("Send go wtime 100", send("go wtime 100")),
        ("Read bestmove", read_bestmove),
        ("Check if engine prints an info line", has_info),
        ("Verify info line format is valid", valid_info),
        ("Verify info line contains score", info_has_score),
        ("Set position to black to move", send(f"position fen {_BLACK_TO_MOVE_FEN}")),
        ("Send go btime 100", send("go btime 100")),
        ("Read bestmove after go btime 100", read_bestmove),
        ("Check if engine prints an info line after go btime 100", has_info),
        ("Verify info line format is valid after go btime 100", valid_info),
        (
            "Check if engine prints an info line with the score after go btime 100",
            info_has_score,
        ),
        (
            "Send go wtime 100 winc 100 btime 100 binc 100",
            send("go wtime 100 winc 100 btime 100 binc 100"),
        ),
        ("Read bestmove after go wtime 100 winc 100 btime 100 binc 100", read_bestmove),
        ("Check if engine prints an info line after go wtime 100 winc 100", has_info),
        ("Verify info line format is valid after go wtime 100 winc 100", valid_info),
        (
            "Check if engine prints an info line with the score after go wtime 100 winc 100",
            info_has_score,
        ),
        (
            "Send go btime 100 binc 100 wtime 100 winc 100",
            send("go btime 100 binc 100 wtime 100 winc 100"),
        ),
        ("Read bestmove after go btime 100 binc 100 wtime 100 winc 100", read_bestmove),
        ("Check if engine prints an info line after go btime 100 binc 100", has_info),
        ("Verify info line format is valid after go btime 100 binc 100", valid_info),
        (
            "Check if engine prints an info line with the score after go btime 100 binc 100",
            info_has_score,
        ),
        ("Check if engine prints an info line after go btime 100 binc 100", info_has_score),
        # A short game
        ("Send ucinewgame", engine.ucinewgame),
        ("Set position to startpos", send("position startpos")),
        ("Send go wtime 100", send("go wtime 100 btime 100")),
        ("Read bestmove after go wtime 100 btime 100", read_bestmove_with_move),
        ("Verify info line format is valid after go wtime 100 btime 100", valid_info),
        ("Set position to startpos moves e2e4 e7e5", send("position startpos moves e2e4 e7e5")),
        ("Send go wtime 100 btime 100", send("go wtime 100 btime 100")),
        ("Read bestmove after position startpos moves e2e4 e7e5", read_bestmove_with_move),
        (
            "Verify info line format is valid after position startpos moves e2e4 e7e5",
            valid_info,
        ),
    ]


def compliant(command: str, args: str = "") -> bool:
    """Run the engine ``command`` with ``args`` through every check, stopping at the first failure."""
    config = EngineConfiguration(cmd=command, args=args)

    with UciEngine(config, False) as engine:
        for number, (description, action) in enumerate(_steps(engine), start=1):
            print(f"Step {number}: {description}...", end="", flush=True)
            if not action():
                print(f"\r{_FAILED} Step {number}: {description}", file=sys.stderr, flush=True)
                return False
            print(f"\r{_PASSED} Step {number}: {description}", flush=True)

    print("Engine passed all compliance checks.", flush=True)
    return True


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry point: ``--compliance <engine> [args]``."""
    arguments = list(sys.argv[1:] if argv is None else argv)

    if len(arguments) < 2 or arguments[0] != "--compliance":
        print("usage: fastchess --compliance <engine> [args]", file=sys.stderr)
        return 2

    started = time.monotonic()
    try:
        passed = compliant(arguments[1], arguments[2] if len(arguments) > 2 else "")
    except Exception as err:  # report anything that went wrong and fail
        print(str(err), file=sys.stderr)
        return 1

    elapsed = int(time.monotonic() - started)
    hours, rest = divmod(elapsed, 3600)
    minutes, seconds = divmod(rest, 60)
    print(f"Total Time: {hours:02}:{minutes:02}:{seconds:02} (hours:minutes:seconds)")
    return 0 if passed else 1