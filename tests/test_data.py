import json
from pathlib import Path

from data import JsonRepository, load_json_data, save_json_data


def test_missing_file_returns_default(tmp_path: Path):
    assert load_json_data(tmp_path / "missing.json", {}) == {}


def test_corrupt_file_is_treated_as_empty(tmp_path: Path):
    path = tmp_path / "device-cache.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonRepository(path, dict).load() == {}


def test_wrong_document_type_is_treated_as_empty(tmp_path: Path):
    path = tmp_path / "guest-cache.json"
    path.write_text(json.dumps({"mac": "aa:bb:cc:dd:ee:ff"}), encoding="utf-8")
    assert JsonRepository(path, list).load() == []


def test_save_replaces_file_and_leaves_no_temp(tmp_path: Path):
    path = tmp_path / "nested" / "device-cache.json"
    repo = JsonRepository(path, dict)
    assert repo.save({"aa:bb:cc:dd:ee:ff": {"mac": "aa:bb:cc:dd:ee:ff"}})
    assert repo.load() == {"aa:bb:cc:dd:ee:ff": {"mac": "aa:bb:cc:dd:ee:ff"}}
    assert [p.name for p in path.parent.iterdir()] == ["device-cache.json"]


def test_save_failure_is_reported(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")
    assert save_json_data({}, blocker / "device-cache.json") is False
