import json
from pathlib import Path

import pytest

from conftest import make_fund
from navwatch.storage import CURRENT_VERSION, StorageError, WatchlistStore


def test_save_and_reload(tmp_path):
    store = WatchlistStore(tmp_path)
    funds = [make_fund("000001", shares=100), make_fund("000002")]
    store.save_watchlist(funds)

    data = json.loads((tmp_path / "watchlist.json").read_text(encoding="utf-8"))
    assert data["version"] == CURRENT_VERSION
    assert [f["code"] for f in data["funds"]] == ["000001", "000002"]
    assert WatchlistStore(tmp_path).get_watchlist() == funds


def test_missing_file_is_empty(tmp_path):
    assert WatchlistStore(tmp_path / "nested").get_watchlist() == []


def test_unversioned_file_is_migrated(tmp_path):
    path = tmp_path / "watchlist.json"
    path.write_text(json.dumps({"funds": [make_fund("000001").model_dump()]}), encoding="utf-8")

    store = WatchlistStore(tmp_path)

    assert json.loads(path.read_text(encoding="utf-8"))["version"] == CURRENT_VERSION
    assert [f.code for f in store.get_watchlist()] == ["000001"]


@pytest.mark.parametrize("content", ["{not json", "[]", '{"funds": [{"name": "缺少代码"}]}'])
def test_corrupt_file_resets_to_empty(tmp_path, content):
    path = tmp_path / "watchlist.json"
    path.write_text(content, encoding="utf-8")

    store = WatchlistStore(tmp_path)

    assert store.get_watchlist() == []
    assert json.loads(path.read_text(encoding="utf-8"))["funds"] == []


def test_failed_write_raises_and_keeps_previous_file(tmp_path, monkeypatch):
    store = WatchlistStore(tmp_path)
    store.save_watchlist([make_fund("000001")])
    before = (tmp_path / "watchlist.json").read_text(encoding="utf-8")

    def broken_replace(self, target):
        raise OSError("disk full")

    monkeypatch.setattr(Path, "replace", broken_replace)
    with pytest.raises(StorageError):
        store.save_watchlist([make_fund("000002")])
    monkeypatch.undo()

    assert (tmp_path / "watchlist.json").read_text(encoding="utf-8") == before
    assert [f.code for f in store.get_watchlist()] == ["000001"]
