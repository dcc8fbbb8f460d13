"""Tests for the durable preference document."""

import threading
from pathlib import Path

import orjson
import pytest

from resight.memory import PreferenceStore, PreferenceStoreError


class TestPreferenceStore:
    """Test read-merge-write persistence."""

    def test_missing_file_reads_empty(self, tmp_path: Path) -> None:
        store = PreferenceStore(tmp_path / "absent.json")
        assert store.read() == {}
        assert store.get("likes") is None
        assert store.get("likes", "nothing") == "nothing"

    def test_set_creates_parent_directories(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "data" / "user_context.json"
        PreferenceStore(path).set("likes", "vanilla")
        assert orjson.loads(path.read_bytes()) == {"likes": "vanilla"}

    def test_write_touches_only_its_key(self, tmp_path: Path) -> None:
        path = tmp_path / "prefs.json"
        path.write_bytes(orjson.dumps({"allergies": "peanuts", "location": "Oakland"}))
        store = PreferenceStore(path)

        store.set("likes", "vanilla")
        store.set("location", "Berkeley")

        assert store.read() == {
            "allergies": "peanuts",
            "location": "Berkeley",
            "likes": "vanilla",
        }

    def test_survives_new_instance(self, tmp_path: Path) -> None:
        path = tmp_path / "prefs.json"
        PreferenceStore(path).set("diet", "vegan")
        assert PreferenceStore(path).get("diet") == "vegan"

    def test_corrupt_document_reads_empty_but_refuses_writes(self, tmp_path: Path) -> None:
        path = tmp_path / "prefs.json"
        path.write_text("{not json")
        store = PreferenceStore(path)

        assert store.read() == {}
        with pytest.raises(PreferenceStoreError):
            store.set("likes", "vanilla")
        assert path.read_text() == "{not json"

    def test_non_object_document_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "prefs.json"
        path.write_text("[1, 2]")
        with pytest.raises(PreferenceStoreError, match="JSON object"):
            PreferenceStore(path).merge({"a": 1})

    def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        store = PreferenceStore(tmp_path / "prefs.json")
        store.set("a", 1)
        store.set("b", 2)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["prefs.json"]

    def test_concurrent_writes_keep_every_key(self, tmp_path: Path) -> None:
        store = PreferenceStore(tmp_path / "prefs.json")

        threads = [
            threading.Thread(target=store.set, args=(f"key_{i}", i)) for i in range(20)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.read() == {f"key_{i}": i for i in range(20)}
