"""
Unit tests for the JSON snapshot store.

Storage contract:
- Missing file -> None, empty file -> {}
- Malformed file -> SnapshotCorruptError
- save/load round-trips every field, zeros and empty strings included
- An interrupted save never exposes a partial snapshot
"""

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from course_monitor.models import Course
from course_monitor.store import SnapshotCorruptError, SnapshotStore, SnapshotWriteError
from tests.helpers import course, snapshot


class TestSnapshotStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        self.path = self.dir / "data" / "last_result.json"
        self.store = SnapshotStore(self.path)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_load_missing_file_returns_none(self) -> None:
        self.assertIsNone(self.store.load())

    def test_load_empty_file_returns_empty_mapping(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("", encoding="utf-8")
        self.assertEqual(self.store.load(), {})

    def test_load_malformed_file_raises(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text('{"1_1": {"kch": ', encoding="utf-8")
        with self.assertRaises(SnapshotCorruptError):
            self.store.load()

    def test_load_non_object_raises(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("[1, 2]", encoding="utf-8")
        with self.assertRaises(SnapshotCorruptError):
            self.store.load()

    def test_save_creates_directory_and_roundtrips(self) -> None:
        zero = Course(plan_id="p", class_id="c")  # every other field empty / zero
        data = snapshot(course("1", "1", enrolled=0, capacity=0, location=""), zero)

        self.store.save(data)
        loaded = self.store.load()

        self.assertEqual(loaded, data)
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(raw["p_c"]["xkrs"], 0)
        self.assertEqual(raw["p_c"]["skdd"], "")
        self.assertFalse(self.store.tmp_path.exists())

    def test_file_uses_portal_field_names(self) -> None:
        self.store.save(snapshot(course("10", "20", course_name="数学")))
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        entry = raw["10_20"]
        self.assertEqual(entry["jx02id"], "10")
        self.assertEqual(entry["jx0404id"], "20")
        self.assertEqual(entry["kcmc"], "数学")
        self.assertEqual(entry["pkrs"], 30)

    def test_crash_before_replace_keeps_previous_snapshot(self) -> None:
        prior = snapshot(course("1", "1"))
        self.store.save(prior)

        # A crash after writing half of the temp file, before the rename.
        self.store.tmp_path.write_text('{"2_2": {"kch": "X"', encoding="utf-8")

        self.assertEqual(self.store.load(), prior)

    def test_failed_write_keeps_previous_snapshot(self) -> None:
        prior = snapshot(course("1", "1"))
        self.store.save(prior)

        with mock.patch("course_monitor.store.os.fsync", side_effect=OSError("disk full")):
            with self.assertRaises(SnapshotWriteError):
                self.store.save(snapshot(course("2", "2")))

        self.assertEqual(self.store.load(), prior)
        self.assertFalse(self.store.tmp_path.exists())

    def test_replace_retries_once_after_removing_target(self) -> None:
        self.store.save(snapshot(course("1", "1")))
        real_replace = os.replace
        calls = []

        def flaky_replace(src, dst):
            calls.append(dst)
            if len(calls) == 1:
                raise PermissionError("target in use")
            return real_replace(src, dst)

        new = snapshot(course("2", "2"))
        with mock.patch("course_monitor.store.os.replace", side_effect=flaky_replace):
            self.store.save(new)

        self.assertEqual(len(calls), 2)
        self.assertEqual(self.store.load(), new)

    def test_replace_failing_twice_raises(self) -> None:
        with mock.patch("course_monitor.store.os.replace", side_effect=OSError("locked")) as rep:
            with self.assertRaises(SnapshotWriteError):
                self.store.save(snapshot(course("1", "1")))
        self.assertEqual(rep.call_count, 2)
        self.assertFalse(self.store.tmp_path.exists())


class TestCourseJson(unittest.TestCase):
    def test_from_json_tolerates_missing_and_string_numbers(self) -> None:
        c = Course.from_json({"jx02id": " A ", "jx0404id": "B", "xkrs": "12", "pkrs": None})
        self.assertEqual(c.key, "A_B")
        self.assertEqual(c.enrolled, 12)
        self.assertEqual(c.capacity, 0)
        self.assertEqual(c.course_name, "")

    def test_blank_ids_have_no_identity(self) -> None:
        self.assertFalse(Course.from_json({"jx02id": " ", "jx0404id": ""}).has_identity)
        self.assertTrue(Course.from_json({"jx02id": "", "jx0404id": "1"}).has_identity)


class TestSnapshotStoreBadData(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "last_result.json"
        self.store = SnapshotStore(self.path)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_unencodable_text_fails_as_write_error_and_keeps_previous(self) -> None:
        prior = snapshot(course("1", "1"))
        self.store.save(prior)
        broken = snapshot(course("2", "2", course_name=json.loads('"\\ud800"')))

        with self.assertRaises(SnapshotWriteError):
            self.store.save(broken)

        self.assertEqual(self.store.load(), prior)
        self.assertFalse(self.store.tmp_path.exists())

    def test_infinite_number_loads_as_zero(self) -> None:
        self.path.write_text('{"1_1": {"jx02id": "1", "jx0404id": "1", "xkrs": 1e400}}', encoding="utf-8")

        loaded = self.store.load()

        self.assertEqual(loaded["1_1"].enrolled, 0)

    def test_unconvertible_entry_is_corrupt(self) -> None:
        self.path.write_text('{"1_1": {"jx02id": "1", "jx0404id": "1"}}', encoding="utf-8")
        with mock.patch("course_monitor.store.Course.from_json", side_effect=OverflowError("inf")):
            with self.assertRaises(SnapshotCorruptError):
                self.store.load()


if __name__ == "__main__":
    unittest.main()
