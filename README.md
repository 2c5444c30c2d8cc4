# fastchess

Building blocks for running chess engines that speak the UCI protocol, and a
command that checks whether an engine follows it.

## Modules

- `fastchess.timecontrol`: `Limits` (increment, fixed time per move, base
  time, moves per period and time margin, all in milliseconds) and
  `TimeControl`, which tracks one side's clock. `update_time(elapsed_millis)`
  charges a move and returns `False` when the side has lost on time;
  `timeout_threshold()` gives the longest wait for a move. Both classes convert
  to and from dicts with `to_dict()` / `from_dict()`, and `str(tc)` prints forms
  such as `60+0.6`, `40/60` or `0.5/move`.
- `fastchess.options`: the UCI option kinds `ButtonOption`, `CheckOption`,
  `ComboOption`, `SpinOption` (integer or float) and `StringOption`, the
  `UCIOptions` collection, and `parse_option_line`, which builds an option from
  an `option name ... type ...` line. It returns `None` for other lines and
  raises `ValueError` for spin options with non-numeric values.
- `fastchess.cpuinfo`: `CpuInfo`, `PhysicalCpu` and `Core`. It can parse
  `/proc/cpuinfo` (`parse_proc_cpuinfo`) or describe the running system
  (`get_cpu_info`).
- `fastchess.affinity`: `set_affinity(cpus, pid)` and `AffinityManager`, which
  hands out cores (`consume()`) so that concurrent engines avoid sharing a
  physical core. A consumed `AffinityProcessor` goes back to the pool through
  `release()` or as a context manager.
- `fastchess.book`: `read_epd` reads plain or gzip-compressed EPD files.
  `OpeningBook` hands out openings in `OrderType.SEQUENTIAL` or
  `OrderType.RANDOM` order, with a start offset and truncation to the number of
  rounds. Use `fetch_id()` and then `book[idx]` to get an `Opening`.
- `fastchess.process`: `Process` starts a child process, writes to its stdin
  and reads its stdout/stderr line by line until a line starts with a given
  word or a timeout passes. It also provides `signal_to_string` for wait
  statuses.
- `fastchess.uci_engine`: `UciEngine` with `EngineConfiguration` and
  `EngineLimit`. It covers the UCI handshake and option sending, `position` and
  `go` commands, and reading `bestmove`, score, score type and time from the
  engine's output.
- `fastchess.compliance`: `is_valid_info_line` and `compliant(command, args)`,
  a step-by-step UCI check.

## Installation

```
pip install .
```

## Checking an engine

```
fastchess --compliance ./my_engine
```

An optional third argument is a string of arguments passed on to the engine.
Each step prints `Passed` or `Failed`. The check stops at the first failure.
The command exits with 0 when every step passes, 1 when a step fails or an
error occurs, and 2 when it is called the wrong way.

## Using the library

```python
from fastchess.timecontrol import Limits, TimeControl

tc = TimeControl(Limits(time=60_000, increment=600))
print(tc)                  # 60+0.6
ok = tc.update_time(1_500) # False once the side has lost on time
```

```python
from fastchess.options import parse_option_line

option = parse_option_line("option name Hash type spin default 16 min 1 max 1024")
option.is_valid("2048")    # False
```

```python
from fastchess.uci_engine import EngineConfiguration, UciEngine

with UciEngine(EngineConfiguration(name="engine", cmd="./my_engine")) as engine:
    if engine.start():
        engine.position(["e2e4"])
        engine.write_engine("go movetime 100")
        engine.read_engine("bestmove")
        print(engine.bestmove(), engine.last_score_type(), engine.last_score())
```

## What it does not do

- It does not run matches or tournaments. There is no game loop, no
  adjudication, no scoreboard, no Elo or SPRT statistics, and no PGN or EPD
  output of played games.
- It has no chess board. Moves and positions are passed to engines as strings
  and are not checked for legality.
- Opening books are read from EPD files only. PGN opening files are not
  supported.
- Engine processes are read through `selectors` on pipes. This works on POSIX
  systems but not on Windows.

## Tests

```
pip install .[test]
pytest
```