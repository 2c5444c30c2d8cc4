"""Opening books: reading EPD suites and handing out openings to games."""

from __future__ import annotations

import gzip
import logging
import random
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import MutableSequence, TypeVar

log = logging.getLogger(__name__)

STARTPOS = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")

T = TypeVar("T")


@dataclass
class Opening:
    """A starting position and the moves played from it."""

    fen_epd: str = STARTPOS
    moves: list[str] = field(default_factory=list)


class OrderType(Enum):
    RANDOM = "random"
    SEQUENTIAL = "sequential"


def read_epd(path: str | Path) -> list[str]:
    """Return the non-empty lines of an EPD file, which may be gzip compressed.

    Raises RuntimeError if the file cannot be read or holds no openings.
    """
    path = Path(path)
    try:
        if path.name.endswith(".gz"):
            with gzip.open(path, "rb") as stream:
                data = stream.read()
        else:
            data = path.read_bytes()
    except (OSError, EOFError) as err:
        raise RuntimeError(f"Failed to open file: {path}") from err

    text = data.decode("utf-8", errors="surrogateescape")
    openings = [line for line in _LINE_BREAK.split(text) if line]
    if not openings:
        raise RuntimeError(f"No openings found in file: {path}")
    return openings


def shuffle(openings: MutableSequence[T], rng: random.Random) -> None:
    """Shuffle in place (Fisher-Yates)."""
    size = len(openings)
    for i in range(size - 1):
        j = i + rng.randrange(size - i)
        openings[i], openings[j] = openings[j], openings[i]


def rotate(openings: MutableSequence[T], offset: int) -> None:
    """Rotate in place so that the element at ``offset`` comes first."""
    if not openings:
        return
    shift = offset % len(openings)
    openings[:] = list(openings[shift:]) + list(openings[:shift])


def truncate(openings: MutableSequence[T], rounds: int) -> None:
    """Drop every opening beyond the first ``rounds``."""
    if len(openings) > rounds:
        del openings[rounds:]


class OpeningBook:
    """Openings for a tournament, one per round, in the configured order."""

    def __init__(
        self,
        file: str | Path | None = None,
        order: OrderType = OrderType.SEQUENTIAL,
        start: int = 1,
        games: int = 2,
        rounds: int | None = None,
        initial_matchcount: int = 0,
        rng: random.Random | None = None,
    ) -> None:
        self._openings: list[str] = []
        self._opening_index = 0
        # start counts from 1 in the opening options
        self.offset = start - 1 + initial_matchcount // games

        if not file:
            return

        self._openings = read_epd(file)

        if order is OrderType.RANDOM:
            log.info("Indexing opening suite...")
            shuffle(self._openings, rng if rng is not None else random.Random())

        if self.offset > 0:
            log.info("Offsetting the opening book by %d openings...", self.offset)
            rotate(self._openings, self.offset)

        if rounds is not None:
            truncate(self._openings, rounds)

    def fetch_id(self) -> int | None:
        """Index of the next opening, cycling through the book; None if empty."""
        idx = self._opening_index
        self._opening_index += 1
        if not self._openings:
            return None
        return idx % len(self._openings)

    def __getitem__(self, idx: int | None) -> Opening:
        if idx is None:
            return Opening()
        return Opening(self._openings[idx])

    def __len__(self) -> int:
        return len(self._openings)