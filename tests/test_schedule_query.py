"""
Tests for current/next/range schedule queries.
"""
from datetime import datetime

from guide_engine.services.guide_types import Channel
from guide_engine.services.schedule_query_service import current_program, next_programs, programs_in_range
from tests.helpers import make_channel, utc


def _evening() -> Channel:
    return make_channel("5", [
        (utc(2024, 1, 1, 18), utc(2024, 1, 1, 19), "News"),
        (utc(2024, 1, 1, 19), utc(2024, 1, 1, 20), "Movie"),
        (utc(2024, 1, 1, 21), utc(2024, 1, 1, 22), "Late Show"),
    ])


class TestCurrentProgram:
    """Test the program-at-instant lookup."""

    def test_inside_interval(self):
        assert current_program(_evening(), utc(2024, 1, 1, 18, 30)).title == "News"

    def test_boundary_belongs_to_next_program(self):
        assert current_program(_evening(), utc(2024, 1, 1, 19, 0)).title == "Movie"

    def test_start_is_inclusive(self):
        assert current_program(_evening(), utc(2024, 1, 1, 18, 0)).title == "News"

    def test_gap_between_programs(self):
        assert current_program(_evening(), utc(2024, 1, 1, 20, 30)) is None

    def test_before_first_and_after_last(self):
        assert current_program(_evening(), utc(2024, 1, 1, 17, 59)) is None
        assert current_program(_evening(), utc(2024, 1, 1, 22, 0)) is None

    def test_empty_channel(self):
        assert current_program(Channel(id="x", name="x"), utc(2024, 1, 1, 18)) is None

    def test_overlap_prefers_earliest_start(self):
        channel = make_channel("5", [
            (utc(2024, 1, 1, 18, 30), utc(2024, 1, 1, 20), "Special"),
            (utc(2024, 1, 1, 18), utc(2024, 1, 1, 19), "News"),
        ])
        assert current_program(channel, utc(2024, 1, 1, 18, 45)).title == "News"
        assert current_program(channel, utc(2024, 1, 1, 19, 15)).title == "Special"

    def test_naive_instant_is_utc(self):
        assert current_program(_evening(), datetime(2024, 1, 1, 18, 30)).title == "News"


class TestNextPrograms:
    """Test upcoming program listing."""

    def test_strictly_after_instant(self):
        titles = [p.title for p in next_programs(_evening(), utc(2024, 1, 1, 18, 30), 5)]
        assert titles == ["Movie", "Late Show"]

    def test_program_starting_at_instant_is_excluded(self):
        titles = [p.title for p in next_programs(_evening(), utc(2024, 1, 1, 19, 0), 5)]
        assert titles == ["Late Show"]

    def test_count_limits_result(self):
        titles = [p.title for p in next_programs(_evening(), utc(2024, 1, 1, 12, 0), 2)]
        assert titles == ["News", "Movie"]

    def test_non_positive_count(self):
        assert next_programs(_evening(), utc(2024, 1, 1, 12, 0), 0) == []
        assert next_programs(_evening(), utc(2024, 1, 1, 12, 0), -3) == []

    def test_nothing_upcoming(self):
        assert next_programs(_evening(), utc(2024, 1, 1, 23, 0), 5) == []


class TestProgramsInRange:
    """Test half-open range intersection."""

    def test_range_inside_one_program(self):
        programs = programs_in_range(_evening(), utc(2024, 1, 1, 19, 0), utc(2024, 1, 1, 19, 30))
        assert [p.title for p in programs] == ["Movie"]

    def test_range_spanning_several(self):
        programs = programs_in_range(_evening(), utc(2024, 1, 1, 18, 30), utc(2024, 1, 1, 21, 30))
        assert [p.title for p in programs] == ["News", "Movie", "Late Show"]

    def test_range_end_is_exclusive(self):
        programs = programs_in_range(_evening(), utc(2024, 1, 1, 17, 0), utc(2024, 1, 1, 18, 0))
        assert programs == []

    def test_range_touching_program_end_is_excluded(self):
        programs = programs_in_range(_evening(), utc(2024, 1, 1, 20, 0), utc(2024, 1, 1, 21, 0))
        assert programs == []

    def test_range_overlapping_tail(self):
        programs = programs_in_range(_evening(), utc(2024, 1, 1, 21, 59), utc(2024, 1, 2, 6, 0))
        assert [p.title for p in programs] == ["Late Show"]

    def test_range_before_schedule(self):
        assert programs_in_range(_evening(), utc(2023, 12, 31), utc(2024, 1, 1)) == []
