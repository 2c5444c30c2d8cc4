import shlex
import sys
import textwrap

import pytest

from fastchess.options import OptionType
from fastchess.process import Status
from fastchess.timecontrol import Limits, TimeControl
from fastchess.uci_engine import (
    EngineConfiguration,
    EngineLimit,
    ScoreType,
    UciEngine,
    VariantType,
)

ENGINE_SCRIPT = textwrap.dedent(
    """
    import sys

    received = []
    mute = False
    for raw in sys.stdin:
        cmd = raw.strip()
        if cmd == "uci":
            print("id name Dummy Engine")
            print("id author Tester")
            print("option name Hash type spin default 16 min 1 max 1024")
            print("option name Threads type spin default 1 min 1 max 64")
            print("option name UCI_Chess960 type check default false")
            print("uciok")
        elif cmd == "isready":
            if not mute:
                print("readyok")
        elif cmd == "mute":
            mute = True
        elif cmd == "quit":
            break
        elif cmd == "dump":
            for line in received:
                print("recv " + line)
            print("dumpend")
        elif cmd.startswith("go"):
            received.append(cmd)
            if "mate" in cmd:
                print("info depth 9 score mate 3 time 5 pv e2e4")
            else:
                print("info depth 1 score cp 25 time 12 nodes 100 pv e2e4")
                print("info depth 2 multipv 2 score cp 5 pv d2d4")
                print("info depth 3 score cp 40 lowerbound time 30 pv e2e4")
            print("bestmove e2e4 ponder e7e5")
        else:
            received.append(cmd)
        sys.stdout.flush()
    """
)


@pytest.fixture
def config(tmp_path):
    script = tmp_path / "engine.py"
    script.write_text(ENGINE_SCRIPT)
    return EngineConfiguration(
        name="dummy", cmd=sys.executable, args=shlex.quote(str(script))
    )


@pytest.fixture
def engine(config):
    with UciEngine(config, realtime_logging=False) as uci_engine:
        assert uci_engine.start()
        yield uci_engine


def received(engine):
    assert engine.write_engine("dump")
    assert engine.read_engine("dumpend", 5000) is Status.OK
    return [line.line[len("recv "):] for line in engine.output if line.line.startswith("recv ")]


def test_start_records_advertised_options(engine):
    names = [option.name for option in engine.uci_options]
    assert names == ["Hash", "Threads", "UCI_Chess960"]
    assert engine.uci_options.get("Hash").value == "16"
    assert engine.uci_options.get("UCI_Chess960").type is OptionType.CHECK


def test_start_is_idempotent(engine):
    assert engine.start()
    assert len(engine.uci_options) == 3


def test_start_fails_for_missing_command(tmp_path):
    config = EngineConfiguration(name="missing", cmd=str(tmp_path / "no-such-engine"))
    with UciEngine(config) as uci_engine:
        assert uci_engine.start() is False


def test_id_name_and_author(engine):
    assert engine.id_name() == "Dummy Engine"
    assert engine.id_author() == "Tester"


def test_isready_ok(engine):
    assert engine.isready(5000) is Status.OK


def test_isready_times_out_when_engine_is_silent(engine):
    assert engine.write_engine("mute")
    assert engine.isready(100) is Status.TIMEOUT


def test_ucinewgame_is_forwarded(engine):
    assert engine.ucinewgame()
    assert received(engine) == ["ucinewgame"]


def test_position_startpos_with_moves(engine):
    assert engine.position(["e2e4", "e7e5"], "startpos")
    assert received(engine) == ["position startpos moves e2e4 e7e5"]


def test_position_fen_without_moves(engine):
    fen = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"
    assert engine.position([], fen)
    assert received(engine) == [f"position fen {fen}"]


def test_go_with_clock_and_increment(engine):
    ours = TimeControl(Limits(time=1000, increment=100))
    theirs = TimeControl(Limits(time=2000, increment=100))
    assert engine.go(ours, theirs, white_to_move=False)
    assert engine.read_engine("bestmove", 5000) is Status.OK
    assert received(engine) == [
        f"go wtime {theirs.time_left} btime {ours.time_left} winc 100 binc 100"
    ]


def test_go_fixed_time_ignores_clock(engine):
    engine.config.limit = EngineLimit(nodes=1000)
    ours = TimeControl(Limits(fixed_time=500))
    assert engine.go(ours, TimeControl(Limits(time=1000)), white_to_move=True)
    assert engine.read_engine("bestmove", 5000) is Status.OK
    assert received(engine) == ["go nodes 1000 movetime 500"]


def test_go_with_moves_to_go(engine):
    ours = TimeControl(Limits(time=1000, moves=40))
    assert engine.go(ours, TimeControl(Limits(time=1000, moves=40)), white_to_move=True)
    assert engine.read_engine("bestmove", 5000) is Status.OK
    assert received(engine) == ["go wtime 1000 btime 1000 movestogo 40"]


def test_search_output_parsing(engine):
    assert engine.write_engine("go depth 3")
    assert engine.read_engine("bestmove", 5000) is Status.OK
    assert engine.bestmove() == "e2e4"
    assert engine.output_includes_bestmove()
    assert engine.last_info_line() == "info depth 1 score cp 25 time 12 nodes 100 pv e2e4"
    assert "lowerbound" in engine.last_info_line(exact=False)
    assert engine.last_score_type() is ScoreType.CP
    assert engine.last_score() == 25
    assert engine.last_time() == 30
    assert engine.last_info()[0] == "info"


def test_mate_score(engine):
    assert engine.write_engine("go mate 3")
    assert engine.read_engine("bestmove", 5000) is Status.OK
    assert engine.last_score_type() is ScoreType.MATE
    assert engine.last_score() == 3


def test_no_info_lines(engine):
    assert engine.isready(5000) is Status.OK
    assert engine.last_info_line() == ""
    assert engine.last_info() == []
    assert engine.last_score_type() is ScoreType.ERR
    assert engine.last_score() == 0
    assert engine.last_time() == 0
    assert engine.bestmove() is None
    assert not engine.output_includes_bestmove()


def test_refresh_sends_threads_first(config):
    config.options = [("Hash", "32"), ("Threads", "2"), ("Unknown", "1")]
    with UciEngine(config) as uci_engine:
        assert uci_engine.start()
        assert uci_engine.refresh_uci()
        commands = [line for line in received(uci_engine) if line.startswith("setoption")]
        assert commands == [
            "setoption name Threads value 2",
            "setoption name Hash value 32",
        ]
        assert uci_engine.uci_options.get("Hash").value == "32"


def test_refresh_skips_invalid_values(config):
    config.options = [("Hash", "4096")]
    with UciEngine(config) as uci_engine:
        assert uci_engine.start()
        assert uci_engine.refresh_uci()
        assert [line for line in received(uci_engine) if line.startswith("setoption")] == []
        assert uci_engine.uci_options.get("Hash").value == "16"


def test_refresh_frc_enables_chess960(config):
    config.variant = VariantType.FRC
    with UciEngine(config) as uci_engine:
        assert uci_engine.start()
        assert uci_engine.refresh_uci()
        commands = [line for line in received(uci_engine) if line.startswith("setoption")]
        assert commands == ["setoption name UCI_Chess960 value true"]
        assert uci_engine.uci_options.get("UCI_Chess960").value == "true"