"""Tests for id generation and validation."""

import threading

import pytest

from inkwell.errors import ValidationError
from inkwell.ids import ClockIds, id_factory_for, random_id
from inkwell.types import validate_id


def test_random_ids_are_unique():
    ids = {random_id() for _ in range(1000)}
    assert len(ids) == 1000
    assert all(len(i) == 32 for i in ids)


class TestClockIds:

    def test_format(self):
        new_id = ClockIds()()
        assert new_id.startswith("d")
        assert new_id[1:].isdigit()

    def test_stalled_clock_still_increases(self, monkeypatch):
        monkeypatch.setattr("inkwell.ids.time.time_ns", lambda: 1_000)
        clock = ClockIds()
        assert [clock() for _ in range(3)] == ["d1000", "d1001", "d1002"]

    def test_clock_going_backwards(self, monkeypatch):
        readings = iter([5_000, 4_000, 6_000])
        monkeypatch.setattr("inkwell.ids.time.time_ns", lambda: next(readings))
        clock = ClockIds()
        assert [clock() for _ in range(3)] == ["d5000", "d5001", "d6000"]

    def test_unique_across_threads(self):
        clock = ClockIds()
        results = []
        lock = threading.Lock()

        def take():
            batch = [clock() for _ in range(200)]
            with lock:
                results.extend(batch)

        threads = [threading.Thread(target=take) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(results)) == 800

    def test_prefix(self, monkeypatch):
        monkeypatch.setattr("inkwell.ids.time.time_ns", lambda: 7)
        assert ClockIds(prefix="c")() == "c7"


class TestFactoryLookup:

    def test_known(self):
        assert id_factory_for("uuid") is random_id
        assert isinstance(id_factory_for("clock"), ClockIds)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown id generator"):
            id_factory_for("sequential")


class TestValidateId:

    @pytest.mark.parametrize("good", ["d1", "f_2", "a.b", "d1700000000000000000", "x" * 128])
    def test_accepts(self, good):
        validate_id(good)

    @pytest.mark.parametrize("bad", ["", "x" * 129, "a/b", "a:b", "..", "tab\there", "trailing "])
    def test_rejects(self, bad):
        with pytest.raises(ValidationError):
            validate_id(bad)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_id("")
