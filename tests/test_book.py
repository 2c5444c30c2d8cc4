import gzip
import random

import pytest

from fastchess.book import (
    STARTPOS,
    Opening,
    OpeningBook,
    OrderType,
    read_epd,
    rotate,
    shuffle,
    truncate,
)

FENS = [f"fen{i} w - -" for i in range(6)]


@pytest.fixture
def epd_file(tmp_path):
    path = tmp_path / "book.epd"
    path.write_text("\n".join(FENS) + "\n")
    return path


def test_read_epd_handles_line_endings_and_blank_lines(tmp_path):
    path = tmp_path / "mixed.epd"
    path.write_bytes(b"a\r\nb\n\nc\rd")
    assert read_epd(path) == ["a", "b", "c", "d"]


def test_read_epd_gzip(tmp_path):
    path = tmp_path / "book.epd.gz"
    with gzip.open(path, "wb") as stream:
        stream.write("\n".join(FENS).encode())
    assert read_epd(path) == FENS


def test_read_epd_missing_file(tmp_path):
    with pytest.raises(RuntimeError, match="Failed to open file"):
        read_epd(tmp_path / "missing.epd")


def test_read_epd_empty_file(tmp_path):
    path = tmp_path / "empty.epd"
    path.write_text("\n\n")
    with pytest.raises(RuntimeError, match="No openings found"):
        read_epd(path)


def test_shuffle_is_permutation():
    items = list(range(20))
    shuffle(items, random.Random(1))
    assert sorted(items) == list(range(20))


def test_shuffle_is_deterministic_for_seed():
    first, second = list(range(10)), list(range(10))
    shuffle(first, random.Random(7))
    shuffle(second, random.Random(7))
    assert first == second


def test_rotate_wraps_offset():
    items = ["a", "b", "c"]
    rotate(items, 4)
    assert items == ["b", "c", "a"]


def test_rotate_empty_is_noop():
    items = []
    rotate(items, 3)
    assert items == []


def test_truncate():
    items = ["a", "b", "c"]
    truncate(items, 2)
    assert items == ["a", "b"]
    truncate(items, 5)
    assert items == ["a", "b"]


def test_sequential_book_cycles(epd_file):
    book = OpeningBook(epd_file)
    ids = [book.fetch_id() for _ in range(len(FENS) + 1)]
    assert ids == list(range(len(FENS))) + [0]
    assert book[0] == Opening(FENS[0])


def test_start_offsets_book(epd_file):
    book = OpeningBook(epd_file, start=3)
    assert book[book.fetch_id()].fen_epd == FENS[2]


def test_initial_matchcount_offsets_book(epd_file):
    book = OpeningBook(epd_file, start=1, games=2, initial_matchcount=4)
    assert book[book.fetch_id()].fen_epd == FENS[2]


def test_rounds_truncate_book(epd_file):
    book = OpeningBook(epd_file, rounds=2)
    assert len(book) == 2
    assert [book.fetch_id() for _ in range(3)] == [0, 1, 0]


def test_random_order_keeps_all_openings(epd_file):
    book = OpeningBook(epd_file, order=OrderType.RANDOM, rng=random.Random(3))
    assert sorted(book[i].fen_epd for i in range(len(book))) == sorted(FENS)


def test_empty_book_gives_startpos():
    book = OpeningBook()
    assert book.fetch_id() is None
    assert book[None] == Opening(STARTPOS, [])
    assert len(book) == 0