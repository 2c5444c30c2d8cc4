"""UCI engine options and the parser for ``option`` lines."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterator, Sequence


class OptionType(Enum):
    BUTTON = "button"
    CHECK = "check"
    COMBO = "combo"
    SPIN = "spin"
    STRING = "string"


class UCIOption(ABC):
    """An option advertised by an engine."""

    type: OptionType

    def __init__(self, name: str) -> None:
        self.name = name

    @property
    @abstractmethod
    def value(self) -> str:
        """The current value as it would be sent to the engine."""

    @abstractmethod
    def set_value(self, value: str) -> None:
        """Change the value."""

    @abstractmethod
    def is_valid(self, value: str) -> bool:
        """Whether ``value`` is acceptable for this option."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, value={self.value!r})"


class ButtonOption(UCIOption):
    type = OptionType.BUTTON

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._pressed = False

    @property
    def value(self) -> str:
        return "true" if self._pressed else "false"

    def set_value(self, value: str) -> None:
        if self.is_valid(value):
            self._pressed = True

    def is_valid(self, value: str) -> bool:
        return value == "true"


class CheckOption(UCIOption):
    type = OptionType.CHECK

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._checked = False

    @property
    def value(self) -> str:
        return "true" if self._checked else "false"

    def set_value(self, value: str) -> None:
        if self.is_valid(value):
            self._checked = value == "true"

    def is_valid(self, value: str) -> bool:
        return value in ("true", "false")


class ComboOption(UCIOption):
    type = OptionType.COMBO

    def __init__(self, name: str, choices: Sequence[str], default: str) -> None:
        super().__init__(name)
        self.choices = list(choices)
        self._value = default

    @property
    def value(self) -> str:
        return self._value

    def set_value(self, value: str) -> None:
        if self.is_valid(value):
            self._value = value

    def is_valid(self, value: str) -> bool:
        return value in self.choices


_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(
    r"\s*([+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan))",
    re.IGNORECASE,
)
_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1


def _parse_int(text: str) -> int:
    match = _INT_PREFIX.match(text)
    if match is None:
        raise ValueError(f"not an integer: {text!r}")
    number = int(match.group(1))
    if not _INT32_MIN <= number <= _INT32_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return number


def _parse_float(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    if match is None:
        raise ValueError(f"not a number: {text!r}")
    return float(match.group(1))


class SpinOption(UCIOption):
    """A numeric option bounded by ``min_value`` and ``max_value``."""

    type = OptionType.SPIN

    def __init__(
        self,
        name: str,
        min_value: str,
        max_value: str,
        numeric_type: type = int,
    ) -> None:
        super().__init__(name)
        if numeric_type not in (int, float):
            raise TypeError("SpinOption only supports int and float.")
        self.numeric_type = numeric_type
        self.min_value = self._parse(min_value)
        self.max_value = self._parse(max_value)
        if self.min_value > self.max_value:
            raise ValueError("Min value cannot be greater than max value.")
        self._value = self.min_value

    def _parse(self, text: str) -> int | float:
        return _parse_int(text) if self.numeric_type is int else _parse_float(text)

    @property
    def value(self) -> str:
        if self.numeric_type is int:
            return str(self._value)
        return f"{self._value:f}"

    def set_value(self, value: str) -> None:
        parsed = self._parse(value)
        if not self.min_value <= parsed <= self.max_value:
            raise ValueError("Value is out of the allowed range.")
        self._value = parsed

    def is_valid(self, value: str) -> bool:
        return self.min_value <= self._parse(value) <= self.max_value


class StringOption(UCIOption):
    type = OptionType.STRING

    def __init__(self, name: str, default: str) -> None:
        super().__init__(name)
        self._value = default

    @property
    def value(self) -> str:
        return self._value or "<empty>"

    def set_value(self, value: str) -> None:
        self._value = value

    def is_valid(self, value: str) -> bool:
        return True


class UCIOptions:
    """The options an engine advertised, in the order it sent them."""

    def __init__(self) -> None:
        self._options: list[UCIOption] = []

    def add(self, option: UCIOption) -> None:
        self._options.append(option)

    def get(self, name: str) -> UCIOption | None:
        return next((option for option in self._options if option.name == name), None)

    def __iter__(self) -> Iterator[UCIOption]:
        return iter(self._options)

    def __len__(self) -> int:
        return len(self._options)


_INTEGER = re.compile(r"[+-]?\d+")
_FLOAT = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _is_integer(text: str) -> bool:
    return _INTEGER.fullmatch(text) is not None and _INT32_MIN <= int(text) <= _INT32_MAX


def _is_float(text: str) -> bool:
    return _FLOAT.fullmatch(text) is not None


def parse_option_line(line: str) -> UCIOption | None:
    """Build an option from an engine's ``option ...`` line, or None if it is not one.

    Raises ValueError for a spin option with non-numeric or inconsistent values.
    """
    tokens = iter(line.split())
    name = ""
    kind = ""
    params: dict[str, str] = {}

    token = next(tokens, None)
    while token is not None:
        if token == "name":
            first = next(tokens, None)
            if first is None:
                break
            words = [first]
            token = None
            for word in tokens:
                if word == "type":
                    token = word
                    break
                words.append(word)
            name = " ".join(words)
            if token is None:
                break

        if token == "type":
            kind = next(tokens, kind)
        elif token in ("default", "min", "max"):
            value = next(tokens, None)
            if value is not None:
                params[token] = value
        elif token == "var":
            rest = "".join(f"{word} " for word in tokens if word != "var")
            params["var"] = params.get("var", "") + rest

        token = next(tokens, None)

    default = params.get("default", "")

    if kind == "check":
        check = CheckOption(name)
        check.set_value(default)
        return check
    if kind == "spin":
        low, high = params.get("min", ""), params.get("max", "")
        bounds = (default, low, high)
        if all(map(_is_integer, bounds)):
            numeric_type: type = int
        elif all(map(_is_float, bounds)):
            numeric_type = float
        else:
            raise ValueError("The spin values are not numeric.")
        spin = SpinOption(name, low, high, numeric_type)
        spin.set_value(default)
        return spin
    if kind == "combo":
        return ComboOption(name, params.get("var", "").split(), default)
    if kind == "button":
        return ButtonOption(name)
    if kind == "string":
        return StringOption(name, default)
    return None