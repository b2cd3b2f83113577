"""
Tests for the cooperative scheduler and clip length measurement
"""

import json
import os
import tempfile
import threading
import unittest
from unittest.mock import Mock

from helpers import FakeClock, pump_until

from beat_party.core.errors import ClipLoadError
from beat_party.core.scheduler import Scheduler
from beat_party.dance.catalog import DANCES, get_dance
from beat_party.dance.clips import (
    AnimationLengthCache, ClipLibrary, measure_clip_length, resolve_clip_path,
)


class TestScheduler(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.scheduler = Scheduler(clock=self.clock)

    def test_runs_due_tasks_in_order(self):
        seen = []
        self.scheduler.delay(0.2, lambda: seen.append("b"))
        self.scheduler.delay(0.1, lambda: seen.append("a"))
        self.scheduler.delay(1.0, lambda: seen.append("late"))
        self.clock.advance(0.5)
        self.assertEqual(self.scheduler.update(), 2)
        self.assertEqual(seen, ["a", "b"])

    def test_cancelled_task_never_runs(self):
        fn = Mock()
        task = self.scheduler.delay(0.1, fn)
        task.cancel()
        self.clock.advance(1.0)
        self.scheduler.update()
        fn.assert_not_called()
        self.assertEqual(self.scheduler.pending(), 0)

    def test_posted_callbacks_run_next_update(self):
        fn = Mock()
        self.scheduler.post(fn)
        self.assertEqual(self.scheduler.pending(), 1)
        self.scheduler.update()
        fn.assert_called_once_with()

    def test_failing_callback_is_contained(self):
        after = Mock()
        self.scheduler.delay(0.0, Mock(side_effect=ValueError("x")))
        self.scheduler.delay(0.0, after)
        self.scheduler.update()
        after.assert_called_once_with()

    def test_clear(self):
        fn = Mock()
        self.scheduler.delay(0.0, fn)
        self.scheduler.post(fn)
        self.scheduler.clear()
        self.scheduler.update()
        fn.assert_not_called()


class TestClipMeasurement(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

    def _write(self, name, payload):
        path = os.path.join(self.tmp.name, name)
        with open(path, "w", encoding="utf-8") as f:
            if isinstance(payload, str):
                f.write(payload)
            else:
                json.dump(payload, f)
        return path

    def test_length_is_latest_keyframe_or_marker(self):
        path = self._write("a.json", {
            "keyframes": [{"time": 0.0}, {"time": 1.5}, {"time": 3.25}],
            "markers": [{"name": "end", "time": 3.5}, {"name": "bad"}],
        })
        self.assertEqual(measure_clip_length(path), 3.5)

    def test_zero_length_is_an_error(self):
        path = self._write("b.json", {"keyframes": [{"time": 0}]})
        with self.assertRaises(ClipLoadError):
            measure_clip_length(path)

    def test_unreadable_clip_is_an_error(self):
        with self.assertRaises(ClipLoadError):
            measure_clip_length(self._write("c.json", "{not json"))
        with self.assertRaises(ClipLoadError):
            measure_clip_length(os.path.join(self.tmp.name, "missing.json"))

    def test_shipped_dances_have_clips(self):
        for dance in DANCES.values():
            self.assertGreater(measure_clip_length(resolve_clip_path(dance.clip_reference)), 0.0)
        self.assertEqual(get_dance(" 2 ").id, "2")
        self.assertIsNone(get_dance("nope"))


class TestClipLibrary(unittest.TestCase):

    def setUp(self):
        self.scheduler = Scheduler(clock=FakeClock())
        self.cache = AnimationLengthCache()
        self.loader = Mock(return_value=4.0)
        self.library = ClipLibrary(self.cache, self.scheduler, resolver=lambda r: r,
                                   loader=self.loader, threaded=False)

    def pump(self):
        self.scheduler.update()
        self.scheduler.update()

    def test_concurrent_requests_share_one_load(self):
        first, second = Mock(), Mock()
        self.library.measure("x.json", first)
        self.library.measure("x.json", second)
        self.pump()
        self.loader.assert_called_once_with("x.json")
        first.assert_called_once_with("x.json", 4.0)
        second.assert_called_once_with("x.json", 4.0)
        self.assertEqual(self.library.in_flight(), 0)

    def test_cache_hit_skips_loader(self):
        self.cache.set("x.json", 2.5)
        cb = Mock()
        self.library.measure("x.json", cb)
        self.scheduler.update()
        cb.assert_called_once_with("x.json", 2.5)
        self.loader.assert_not_called()

    def test_failures_are_reported_and_not_cached(self):
        self.loader.side_effect = ClipLoadError("empty")
        cb = Mock()
        self.library.measure("x.json", cb)
        self.pump()
        cb.assert_called_once_with("x.json", None)
        self.assertNotIn("x.json", self.cache)

    def test_cache_clear(self):
        self.cache.set("x.json", 1.0)
        self.cache.clear()
        self.assertEqual(len(self.cache), 0)




class TestThreadedClipLibrary(unittest.TestCase):
    """Measurement on a worker thread, delivered on the thread that drains the scheduler"""

    def setUp(self):
        self.scheduler = Scheduler()
        self.cache = AnimationLengthCache()
        self.results = []
        self.delivered_on = []

    def _callback(self, clip_ref, length):
        self.results.append((clip_ref, length))
        self.delivered_on.append(threading.current_thread())

    def _library(self, loader, resolver=lambda r: r):
        return ClipLibrary(self.cache, self.scheduler, resolver=resolver, loader=loader, threaded=True)

    def test_length_arrives_on_a_later_tick(self):
        loader_threads = []

        def loader(path):
            loader_threads.append(threading.current_thread())
            return 3.0

        library = self._library(loader)
        library.measure("x.json", self._callback)
        self.assertTrue(pump_until(self.scheduler.update, lambda: self.results))
        self.assertEqual(self.results, [("x.json", 3.0)])
        self.assertEqual(self.cache.get("x.json"), 3.0)
        self.assertIsNot(loader_threads[0], threading.main_thread())
        self.assertIs(self.delivered_on[0], threading.current_thread())
        self.assertEqual(library.in_flight(), 0)

    def test_failure_arrives_as_none(self):
        library = self._library(Mock(side_effect=ClipLoadError("no keyframes")))
        library.measure("x.json", self._callback)
        self.assertTrue(pump_until(self.scheduler.update, lambda: self.results))
        self.assertEqual(self.results, [("x.json", None)])
        self.assertNotIn("x.json", self.cache)
        self.assertEqual(library.in_flight(), 0)

    def test_shipped_clip_measured_in_background(self):
        library = ClipLibrary(self.cache, self.scheduler, threaded=True)
        library.measure(get_dance("1").clip_reference, self._callback)
        self.assertTrue(pump_until(self.scheduler.update, lambda: self.results))
        self.assertEqual(self.results, [("two_step.json", 8.0)])


if __name__ == '__main__':
    unittest.main()
