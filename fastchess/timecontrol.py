"""Chess clock bookkeeping for a single engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any, Mapping


@dataclass
class Limits:
    """Time limits in milliseconds; ``moves`` is the number of moves per period."""

    increment: int = 0
    fixed_time: int = 0
    time: int = 0
    moves: int = 0
    timemargin: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> Limits:
        return Limits(
            increment=int(data.get("increment", 0)),
            fixed_time=int(data.get("fixed_time", 0)),
            time=int(data.get("time", 0)),
            moves=int(data.get("moves", 0)),
            timemargin=int(data.get("timemargin", 0)),
        )


def _seconds(millis: int, precision: int) -> str:
    return f"{millis / 1000.0:.{precision}g}"


class TimeControl:
    """Tracks the remaining time and moves of one side."""

    MARGIN = 100

    def __init__(self, limits: Limits | None = None) -> None:
        self.limits = replace(limits) if limits is not None else Limits()
        if self.limits.fixed_time != 0:
            self.time_left = self.limits.fixed_time
        else:
            self.time_left = self.limits.time + self.limits.increment
        self.moves_left = self.limits.moves

    @property
    def fixed_time(self) -> int:
        return self.limits.fixed_time

    @property
    def increment(self) -> int:
        return self.limits.increment

    def timeout_threshold(self) -> int:
        """Milliseconds to wait for a move before declaring a time loss."""
        return self.time_left + self.limits.timemargin + self.MARGIN

    def update_time(self, elapsed_millis: int) -> bool:
        """Charge a move's time to the clock; False if the side lost on time."""
        limits = self.limits

        if limits.moves > 0:
            if self.moves_left == 1:
                self.moves_left = limits.moves
                self.time_left += limits.time
            else:
                self.moves_left -= 1

        if limits.fixed_time == 0 and limits.time + limits.increment == 0:
            return True

        self.time_left -= elapsed_millis

        if self.time_left < -limits.timemargin:
            return False

        if self.time_left < 0:
            self.time_left = 0

        self.time_left += limits.increment

        if limits.fixed_time != 0:
            self.time_left = limits.fixed_time

        return True

    def is_fixed_time(self) -> bool:
        return self.limits.fixed_time != 0

    def is_timed(self) -> bool:
        return self.limits.time != 0

    def is_moves(self) -> bool:
        return self.limits.moves != 0

    def is_increment(self) -> bool:
        return self.limits.increment != 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "limits_": self.limits.to_dict(),
            "time_left_": self.time_left,
            "moves_left_": self.moves_left,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> TimeControl:
        tc = TimeControl(Limits.from_dict(data.get("limits_", {})))
        if "time_left_" in data:
            tc.time_left = int(data["time_left_"])
        if "moves_left_" in data:
            tc.moves_left = int(data["moves_left_"])
        return tc

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeControl):
            return NotImplemented
        return (
            self.limits == other.limits
            and self.time_left == other.time_left
            and self.moves_left == other.moves_left
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"TimeControl(limits={self.limits!r}, time_left={self.time_left}, "
            f"moves_left={self.moves_left})"
        )

    def __str__(self) -> str:
        limits = self.limits
        if limits.fixed_time > 0:
            return f"{_seconds(limits.fixed_time, 8)}/move"

        parts = []
        if limits.moves == 0 and limits.time == 0 and limits.increment == 0:
            parts.append("-")
        if limits.moves > 0:
            parts.append(f"{limits.moves}/")
        if limits.time + limits.increment > 0:
            parts.append(_seconds(limits.time, 6))
        if limits.increment > 0:
            parts.append(f"+{_seconds(limits.increment, 6)}")
        return "".join(parts)