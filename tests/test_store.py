import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from tubedigest.store import DuplicateError, LibraryStore, NotFoundError
from tubedigest.summarizer import SummarySection


def _channel(store, channel_id="UC1", name="Channel One", **kw):
    return store.create_channel(
        channel_id=channel_id,
        name=name,
        channel_url=f"https://www.youtube.com/channel/{channel_id}",
        **kw,
    )


def _video(store, channel_pk, video_id, day=1, title=None):
    return store.create_video(
        channel_id=channel_pk,
        video_id=video_id,
        title=title or f"Video {video_id}",
        published_at=datetime(2024, 5, day, tzinfo=timezone.utc),
        url=f"https://www.youtube.com/watch?v={video_id}",
    )


def _summary(store, channel_pk, video_pk=None, title="Summary", content="body", tags=()):
    return store.create_summary(
        channel_id=channel_pk,
        video_id=video_pk,
        title=title,
        content=content,
        tags=list(tags),
    )


class TestChannels:
    def test_create_and_persist(self, store, settings):
        ch = _channel(store, frequency="weekly")

        assert ch.id == 1
        reopened = LibraryStore(settings.library_path)
        assert reopened.get_channel(1).frequency == "weekly"
        assert reopened.get_channel_by_external_id("UC1").name == "Channel One"

    def test_on_disk_keys_are_snake_case(self, store, settings):
        _channel(store)

        raw = json.loads(settings.library_path.read_text(encoding="utf-8"))
        assert raw["schema_version"] == "1.0.0"
        assert "channel_url" in raw["channels"][0]

    def test_duplicate_external_id(self, store):
        _channel(store)

        with pytest.raises(DuplicateError):
            _channel(store, name="Same channel again")

    def test_invalid_frequency(self, store):
        with pytest.raises(ValidationError):
            _channel(store, frequency="fortnightly")

    def test_update(self, store):
        ch = _channel(store)

        updated = store.update_channel(ch.id, name="Renamed", is_active=False)

        assert updated.name == "Renamed"
        assert store.get_channel(ch.id).is_active is False

    def test_update_missing(self, store):
        with pytest.raises(NotFoundError):
            store.update_channel(99, name="x")

    def test_update_to_taken_external_id(self, store):
        _channel(store, "UC1")
        second = _channel(store, "UC2")

        with pytest.raises(DuplicateError):
            store.update_channel(second.id, channel_id="UC1")

    def test_ids_are_not_reused(self, store):
        first = _channel(store, "UC1")
        store.delete_channel(first.id)

        assert _channel(store, "UC2").id == 2

    def test_delete_cascades(self, store):
        ch = _channel(store)
        other = _channel(store, "UC2")
        v = _video(store, ch.id, "v1")
        _summary(store, ch.id, v.id)
        keep = _video(store, other.id, "v2")

        assert store.delete_channel(ch.id) is True
        assert store.get_video(v.id) is None
        assert store.summaries() == []
        assert store.get_video(keep.id) is not None
        assert store.delete_channel(ch.id) is False

    def test_channels_with_stats(self, store):
        ch = _channel(store)
        v1 = _video(store, ch.id, "v1", day=1)
        _video(store, ch.id, "v2", day=20)
        _summary(store, ch.id, v1.id)

        row = store.channels_with_stats(now=datetime(2024, 5, 22, tzinfo=timezone.utc))[0]

        assert row.video_count == 2
        assert row.summary_count == 1
        assert row.new_videos_count == 1
        assert row.api_dict()["newVideosCount"] == 1


class TestVideos:
    def test_requires_channel(self, store):
        with pytest.raises(NotFoundError):
            _video(store, 42, "v1")

    def test_duplicate_video(self, store):
        ch = _channel(store)
        _video(store, ch.id, "v1")

        with pytest.raises(DuplicateError):
            _video(store, ch.id, "v1")

    def test_sorted_newest_first(self, store):
        ch = _channel(store)
        _video(store, ch.id, "old", day=1)
        _video(store, ch.id, "new", day=9)
        _video(store, ch.id, "mid", day=5)

        assert [v.video_id for v in store.videos_by_channel(ch.id)] == ["new", "mid", "old"]
        assert [v.video_id for v in store.latest_videos(2)] == ["new", "mid"]
        assert len(store.latest_videos(None)) == 3

    def test_delete_keeps_summary(self, store):
        ch = _channel(store)
        v = _video(store, ch.id, "v1")
        s = _summary(store, ch.id, v.id)

        assert store.delete_video(v.id) is True
        kept = store.get_summary(s.id)
        assert kept is not None
        assert kept.video_id is None

        details = store.get_summary_details(s.id)
        assert details.video_title == "Unknown video"
        assert details.video_url == ""

    def test_api_dict_is_camel_case(self, store):
        ch = _channel(store)
        v = _video(store, ch.id, "v1")

        d = v.api_dict()
        assert d["videoId"] == "v1"
        assert d["channelId"] == ch.id
        assert "publishedAt" in d


class TestSummaries:
    def test_requires_channel(self, store):
        with pytest.raises(NotFoundError):
            _summary(store, 5)

    def test_sections_round_trip(self, store):
        ch = _channel(store)
        store.create_summary(
            channel_id=ch.id,
            title="T",
            content="c",
            sections=[SummarySection(title="Intro", timestamp="00:10", content="x", key_words=["k"])],
        )

        loaded = store.summaries()[0]
        assert loaded.sections[0].key_words == ["k"]
        assert loaded.api_dict()["sections"][0]["timestamp"] == "00:10"

    def test_details_join(self, store):
        ch = _channel(store)
        v = _video(store, ch.id, "v1", title="Original")
        s = _summary(store, ch.id, v.id)

        details = store.get_summary_details(s.id)
        assert details.channel_name == "Channel One"
        assert details.video_title == "Original"
        assert details.video_url.endswith("v1")
        assert store.summary_for_video(v.id).id == s.id

    def test_search(self, store):
        ch = _channel(store)
        _summary(store, ch.id, title="Rust ownership", content="borrowing")
        _summary(store, ch.id, title="Go channels", content="CSP")
        _summary(store, ch.id, title="Misc", content="none", tags=["Rustacean"])

        hits = {s.title for s in store.search_summaries("rust")}
        assert hits == {"Rust ownership", "Misc"}
        assert [s.title for s in store.search_summaries("csp")] == ["Go channels"]

    def test_filter_by_channel(self, store):
        a = _channel(store, "UCa")
        b = _channel(store, "UCb")
        _summary(store, a.id, title="A")
        _summary(store, b.id, title="B")

        assert [s.title for s in store.summaries(b.id)] == ["B"]
        assert len(store.latest_summaries(1)) == 1

    def test_delete(self, store):
        ch = _channel(store)
        s = _summary(store, ch.id)

        assert store.delete_summary(s.id) is True
        assert store.delete_summary(s.id) is False


def test_stats(store):
    ch = _channel(store)
    _video(store, ch.id, "v1")
    _summary(store, ch.id)

    stats = store.stats(now=datetime.now(timezone.utc))
    assert stats == {"totalChannels": 1, "totalVideos": 1, "totalSummaries": 1, "newThisWeek": 1}

    later = store.stats(now=datetime.now(timezone.utc) + timedelta(days=8))
    assert later["newThisWeek"] == 0


def test_corrupt_schema(settings):
    settings.library_path.parent.mkdir(parents=True)
    settings.library_path.write_text('{"channels": [{"id": "x"}]}', encoding="utf-8")

    with pytest.raises(ValueError):
        LibraryStore(settings.library_path).list_channels()
