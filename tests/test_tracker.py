"""
Tests for the beat/section tracker: lookups, change detection and throttling
"""

import unittest
from unittest.mock import Mock

from helpers import FakeClock  # noqa: F401  (sets up sys.path)

from beat_party.core.models import Beat, BeatGrid, SongSection
from beat_party.sync.tracker import BeatSectionTracker


def _grid():
    return BeatGrid.from_arrays([1, 2, 3, 4], [0.0, 0.5, 1.0, 1.5])


def _sections():
    return [SongSection("A", 0.0, 10.0), SongSection("B", 10.0, 20.0)]


class TestBeatLookup(unittest.TestCase):
    """Most recent beat at or before the sampled time"""

    def setUp(self):
        self.tracker = BeatSectionTracker()
        self.tracker.load_song(_grid(), None)

    def test_exact_timestamp_is_current_beat(self):
        self.assertEqual(self.tracker.poll(0.0).beat, Beat(1, 0.0))
        self.assertEqual(self.tracker.poll(0.5).beat, Beat(2, 0.5))

    def test_between_beats_reports_previous(self):
        self.assertEqual(self.tracker.poll(0.49).beat, Beat(1, 0.0))

    def test_past_the_end_keeps_last_beat(self):
        self.assertEqual(self.tracker.poll(10.0).beat, Beat(4, 1.5))

    def test_before_first_beat_reports_nothing(self):
        tracker = BeatSectionTracker()
        tracker.load_song(BeatGrid.from_arrays([1, 2], [1.0, 1.5]), None)
        result = tracker.poll(0.5)
        self.assertIsNone(result.beat)
        self.assertFalse(result.beat_changed)
        self.assertIsNone(tracker.current_beat)

    def test_unsorted_grid_is_sorted_on_receipt(self):
        tracker = BeatSectionTracker()
        tracker.load_song(BeatGrid.from_arrays([3, 1, 4, 2], [1.0, 0.0, 1.5, 0.5]), None)
        self.assertEqual(tracker.poll(0.75).beat, Beat(2, 0.5))

    def test_greatest_timestamp_not_after_t(self):
        times = [0.0, 0.37, 0.81, 1.2, 1.66, 2.05]
        tracker = BeatSectionTracker()
        tracker.load_song(BeatGrid.from_arrays([1, 2, 3, 4, 1, 2], times), None)
        for t in (0.0, 0.2, 0.37, 0.8, 1.19, 1.2, 1.9, 3.0):
            expected = max(x for x in times if x <= t)
            self.assertAlmostEqual(tracker.poll(t).beat.timestamp, expected)


class TestSectionLookup(unittest.TestCase):
    """Sections are [start, end) with pre-roll onto the first one"""

    def setUp(self):
        self.tracker = BeatSectionTracker()
        self.tracker.load_song(None, _sections())

    def test_pre_roll_selects_first_section(self):
        self.assertEqual(self.tracker.poll(-1.0).section.name, "A")

    def test_lower_bound_inclusive(self):
        self.assertEqual(self.tracker.poll(10.0).section.name, "B")

    def test_past_last_end_is_none(self):
        self.tracker.poll(15.0)
        self.assertIsNone(self.tracker.poll(25.0).section)
        self.assertIsNone(self.tracker.poll(20.0).section)

    def test_gap_between_sections_is_none(self):
        tracker = BeatSectionTracker()
        tracker.load_song(None, [SongSection("A", 0, 5), SongSection("B", 8, 12)])
        self.assertIsNone(tracker.poll(6.0).section)

    def test_sections_sorted_on_receipt(self):
        tracker = BeatSectionTracker()
        tracker.load_song(None, [{"name": "B", "start_time": 10, "end_time": 20},
                                 {"name": "A", "start_time": 0, "end_time": 10}])
        self.assertEqual(tracker.poll(-5).section.name, "A")
        self.assertEqual(tracker.poll(12).section.name, "B")

    def test_no_grid_still_tracks_sections(self):
        result = self.tracker.poll(3.0)
        self.assertEqual(result.section.name, "A")
        self.assertIsNone(result.beat)


class TestChangeEvents(unittest.TestCase):
    """Each transition fires once"""

    def setUp(self):
        self.tracker = BeatSectionTracker()
        self.tracker.load_song(_grid(), _sections())
        self.on_beat = Mock()
        self.on_section = Mock()
        self.tracker.add_beat_listener(self.on_beat)
        self.tracker.add_section_listener(self.on_section)

    def test_repeated_poll_does_not_refire(self):
        for _ in range(5):
            self.tracker.poll(0.25)
        self.assertEqual(self.on_beat.call_count, 1)
        self.assertEqual(self.on_section.call_count, 1)

    def test_each_beat_fires_once(self):
        for t in (0.0, 0.1, 0.5, 0.6, 1.0, 1.2, 1.5, 9.0):
            self.tracker.poll(t)
        fired = [c.args[0].beat_number for c in self.on_beat.call_args_list]
        self.assertEqual(fired, [1, 2, 3, 4])

    def test_section_change_reports_old_and_new(self):
        self.tracker.poll(5.0)
        self.tracker.poll(12.0)
        self.tracker.poll(30.0)
        calls = self.on_section.call_args_list
        self.assertEqual(len(calls), 3)
        old, new = calls[1].args
        self.assertEqual((old.name, new.name), ("A", "B"))
        old, new = calls[2].args
        self.assertEqual(old.name, "B")
        self.assertIsNone(new)

    def test_same_name_sections_do_not_fire(self):
        tracker = BeatSectionTracker()
        tracker.load_song(None, [SongSection("chorus", 0, 5), SongSection("chorus", 5, 10)])
        listener = Mock()
        tracker.add_section_listener(listener)
        tracker.poll(1.0)
        tracker.poll(6.0)
        self.assertEqual(listener.call_count, 1)

    def test_sub_millisecond_jitter_is_not_a_new_beat(self):
        tracker = BeatSectionTracker()
        tracker.load_song(BeatGrid.from_arrays([1, 1], [0.0, 0.0005]), None)
        listener = Mock()
        tracker.add_beat_listener(listener)
        tracker.poll(0.0)
        tracker.poll(0.0006)
        self.assertEqual(listener.call_count, 1)

    def test_failing_listener_does_not_escape_poll(self):
        bad = Mock(side_effect=RuntimeError("boom"))
        tracker = BeatSectionTracker()
        tracker.load_song(_grid(), None)
        tracker.add_beat_listener(bad)
        good = Mock()
        tracker.add_beat_listener(good)
        result = tracker.poll(0.5)
        self.assertTrue(result.beat_changed)
        good.assert_called_once_with(Beat(2, 0.5))

    def test_bad_clock_reading_is_ignored(self):
        self.tracker.poll(0.6)
        for reading in (None, "soon", float("nan"), float("inf")):
            result = self.tracker.poll(reading)
            self.assertIsNone(result.beat)
            self.assertFalse(result.beat_changed)
            self.assertFalse(result.section_changed)
        self.assertEqual(self.tracker.current_beat, Beat(2, 0.5))
        self.assertEqual(self.on_beat.call_count, 1)
        self.assertEqual(self.on_section.call_count, 1)

    def test_load_song_discards_previous_state(self):
        self.tracker.poll(1.2)
        self.tracker.load_song(BeatGrid.from_arrays([1], [0.0]), None)
        self.assertIsNone(self.tracker.current_beat)
        self.assertIsNone(self.tracker.current_section)
        self.assertIsNone(self.tracker.state.sections)

    def test_empty_grid_never_fires(self):
        tracker = BeatSectionTracker()
        tracker.load_song(BeatGrid(), None)
        listener = Mock()
        tracker.add_beat_listener(listener)
        for t in (0.0, 1.0, 2.0):
            tracker.poll(t)
        listener.assert_not_called()


class TestThrottle(unittest.TestCase):
    """Section lookups are rate-limited by wall time; beats are not"""

    def test_section_lookup_waits_for_interval(self):
        tracker = BeatSectionTracker(section_poll_interval=0.1)
        tracker.load_song(_grid(), _sections())
        self.assertEqual(tracker.poll(9.99, wall_time=0.0).section.name, "A")

        result = tracker.poll(10.5, wall_time=0.05)
        self.assertEqual(result.section.name, "A")
        self.assertFalse(result.section_changed)
        self.assertEqual(result.beat.beat_number, 4)

        result = tracker.poll(10.6, wall_time=0.1)
        self.assertEqual(result.section.name, "B")
        self.assertTrue(result.section_changed)
        self.assertEqual(tracker.state.last_poll_time, 0.1)


if __name__ == '__main__':
    unittest.main()
