"""Shard store tests."""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest
from conftest import make_page

from diarist.store import (
    ShardStore,
    StoreIOError,
    StoreSerializationError,
    WeekPage,
)

WEDNESDAY = datetime(2024, 3, 6, 10, 0, tzinfo=timezone.utc)


def _shard(store: ShardStore, filename: str) -> dict:
    return json.loads((store.page_dir / filename).read_text(encoding="utf-8"))


def test_initialize_creates_directories(tmp_path: Path) -> None:
    store = ShardStore(tmp_path / "fresh")

    root = store.initialize()

    assert root == tmp_path / "fresh"
    assert (root / "pages").is_dir()
    assert (root / "images").is_dir()


def test_write_then_list_returns_equal_page(store: ShardStore) -> None:
    page = make_page("Title", WEDNESDAY, text="Some *markdown*", hidden=True)

    store.write(page)

    assert store.list(1) == [page]


def test_write_places_page_by_created_at(store: ShardStore) -> None:
    filename = store.write(make_page("Old", WEDNESDAY - timedelta(days=30)))

    assert filename == "2024-02-04-2024-02-10.json"
    assert (store.page_dir / filename).exists()


def test_same_created_at_replaces_page(store: ShardStore) -> None:
    store.write(make_page("First", WEDNESDAY, text="one"))
    store.write(make_page("Second", WEDNESDAY, text="two"))

    shard = store.load_shard("2024-03-03-2024-03-09.json")

    assert len(shard.pages) == 1
    assert shard.pages[0].title == "Second"
    assert shard.pages[0].text == "two"


def test_replace_keeps_position(store: ShardStore) -> None:
    first = make_page("A", WEDNESDAY)
    second = make_page("B", WEDNESDAY + timedelta(hours=1))
    store.write(first)
    store.write(second)

    store.write(first.amend("A2", "changed", at=WEDNESDAY + timedelta(hours=2)))

    titles = [page.title for page in store.load_shard("2024-03-03-2024-03-09.json").pages]
    assert titles == ["A2", "B"]


def test_write_clears_upload_stamp_and_marks_dirty(store: ShardStore) -> None:
    filename = "2024-03-03-2024-03-09.json"
    store.save_shard(filename, WeekPage(uploaded_at=WEDNESDAY))

    store.write(make_page("Entry", WEDNESDAY))

    assert _shard(store, filename)["uploaded_at"] is None
    assert store.tracker.snapshot().page_files == {filename}


def test_shard_json_layout(store: ShardStore) -> None:
    page = make_page("Entry", WEDNESDAY)

    filename = store.write(page)
    data = _shard(store, filename)

    assert set(data) == {"pages", "uploaded_at"}
    stored = data["pages"][0]
    assert set(stored) == {"id", "title", "text", "hidden", "created_at", "updated_at"}
    assert stored["id"] == page.id
    assert datetime.fromisoformat(stored["created_at"].replace("Z", "+00:00")) == WEDNESDAY


def test_list_orders_newest_first_across_shards(store: ShardStore) -> None:
    for days in (0, 1, 8, 15):
        store.write(make_page(f"day-{days}", WEDNESDAY - timedelta(days=days)))

    titles = [page.title for page in store.list(10)]

    assert titles == ["day-0", "day-1", "day-8", "day-15"]


def test_list_stops_before_reading_older_shards(store: ShardStore) -> None:
    store.write(make_page("new", WEDNESDAY))
    store.write(make_page("newer", WEDNESDAY + timedelta(hours=1)))
    (store.page_dir / "2000-01-02-2000-01-08.json").write_text("garbage", encoding="utf-8")

    titles = [page.title for page in store.list(2)]

    assert titles == ["newer", "new"]
    with pytest.raises(StoreSerializationError):
        store.list(3)


def test_list_with_filter_skips_non_matching(store: ShardStore) -> None:
    store.write(make_page("visible", WEDNESDAY))
    store.write(make_page("secret", WEDNESDAY + timedelta(hours=1), hidden=True))
    store.write(make_page("older", WEDNESDAY - timedelta(days=7)))

    pages = store.list_with_filter(2, lambda page: not page.hidden)

    assert [page.title for page in pages] == ["visible", "older"]


def test_list_zero_limit_reads_nothing(store: ShardStore) -> None:
    (store.page_dir / "2024-03-03-2024-03-09.json").write_text("garbage", encoding="utf-8")

    assert store.list(0) == []


def test_latest_on_empty_store(store: ShardStore) -> None:
    assert store.latest() is None


def test_week_range_covers_end_week_for_ten_day_span(store: ShardStore) -> None:
    start = datetime(2024, 3, 8, 12, 0, tzinfo=timezone.utc)  # Friday
    end = start + timedelta(days=10)  # Monday, two weeks later
    for moment in (start, start + timedelta(days=7), end):
        store.write(make_page(moment.isoformat(), moment))

    week_pages = store.get_week_page_range(start, end)

    assert [wp.pages[0].title for wp in week_pages] == [
        start.isoformat(),
        (start + timedelta(days=7)).isoformat(),
        end.isoformat(),
    ]


def test_week_range_does_not_duplicate_end_week(store: ShardStore) -> None:
    start = datetime(2024, 3, 3, 0, 0, tzinfo=timezone.utc)
    store.write(make_page("only", start))

    assert len(store.get_week_page_range(start, start + timedelta(days=6))) == 1


def test_week_range_reversed_bounds_is_empty(store: ShardStore) -> None:
    assert store.get_week_page_range(WEDNESDAY, WEDNESDAY - timedelta(days=1)) == []


def test_week_range_missing_shard_is_fatal(store: ShardStore) -> None:
    store.write(make_page("only", WEDNESDAY))

    with pytest.raises(StoreIOError) as excinfo:
        store.get_week_page_range(WEDNESDAY, WEDNESDAY + timedelta(days=7))

    assert excinfo.value.path.name == "2024-03-10-2024-03-16.json"


def test_pages_on_filters_by_local_day(store: ShardStore) -> None:
    store.write(make_page("morning", WEDNESDAY))
    store.write(make_page("next day", WEDNESDAY + timedelta(days=1)))

    pages = store.pages_on(WEDNESDAY.date(), timezone.utc)

    assert [page.title for page in pages] == ["morning"]


def test_corrupt_shard_write_is_fatal(store: ShardStore) -> None:
    (store.page_dir / "2024-03-03-2024-03-09.json").write_text("{", encoding="utf-8")

    with pytest.raises(StoreSerializationError):
        store.write(make_page("Entry", WEDNESDAY))


def test_write_image_copies_and_marks_dirty(store: ShardStore, tmp_path: Path) -> None:
    source = tmp_path / "photo.png"
    source.write_bytes(b"\x89PNG")

    destination = store.write_image(source, "2024_photo.png")

    assert destination.read_bytes() == b"\x89PNG"
    assert store.tracker.snapshot().image_files == {"2024_photo.png"}


def test_write_image_missing_source(store: ShardStore, tmp_path: Path) -> None:
    with pytest.raises(StoreIOError):
        store.write_image(tmp_path / "missing.png", "missing.png")

    assert store.tracker.snapshot().image_files == set()


def test_pages_on_tolerates_weeks_without_shards(store: ShardStore) -> None:
    saturday = datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc)
    store.write(make_page("weekend", saturday))

    assert [page.title for page in store.pages_on(saturday.date(), timezone.utc)] == ["weekend"]
    assert store.pages_on(date(2024, 5, 1), timezone.utc) == []


def test_nanosecond_timestamps_load_and_rewrite_as_microseconds(store: ShardStore) -> None:
    filename = "2024-03-03-2024-03-09.json"
    document = {
        "pages": [
            {
                "id": "1",
                "title": "precise",
                "text": "",
                "hidden": False,
                "created_at": "2024-03-06T10:00:00.123456789Z",
                "updated_at": ["2024-03-06T10:00:00.123456789Z"],
            }
        ],
        "uploaded_at": None,
    }
    (store.page_dir / filename).write_text(json.dumps(document), encoding="utf-8")

    page = store.load_shard(filename).pages[0]
    store.save_shard(filename, store.load_shard(filename))

    assert page.created_at == datetime(2024, 3, 6, 10, 0, 0, 123456, tzinfo=timezone.utc)
    assert _shard(store, filename)["pages"][0]["created_at"] == "2024-03-06T10:00:00.123456Z"


def test_failed_image_copy_is_not_left_dirty(
    store: ShardStore, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = tmp_path / "photo.png"
    source.write_bytes(b"\x89PNG")

    def _fail(src: Path, dst: Path) -> None:
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("diarist.store.shutil.copyfile", _fail)

    with pytest.raises(StoreIOError):
        store.write_image(source, "photo.png")

    assert store.tracker.snapshot().image_files == set()


def test_failed_image_overwrite_keeps_existing_mark(
    store: ShardStore, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = tmp_path / "photo.png"
    source.write_bytes(b"\x89PNG")
    store.write_image(source, "photo.png")

    def _fail(src: Path, dst: Path) -> None:
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("diarist.store.shutil.copyfile", _fail)

    with pytest.raises(StoreIOError):
        store.write_image(source, "photo.png")

    assert store.tracker.snapshot().image_files == {"photo.png"}
