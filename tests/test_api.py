import io
import zipfile
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from tubedigest.api import create_app
from tubedigest.channel_resolver import ChannelInfo, ResolutionExhausted, Resolution, UpstreamUnavailable
from tubedigest.progress import PENDING


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


@pytest.fixture
def seeded(store):
    ch = store.create_channel(channel_id="UCrust", name="Rust", channel_url="https://www.youtube.com/@rustlang")
    v = store.create_video(
        channel_id=ch.id,
        video_id="vid1",
        title="Ownership",
        published_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        url="https://www.youtube.com/watch?v=vid1",
        duration="4:13",
    )
    s = store.create_summary(
        video_id=v.id,
        channel_id=ch.id,
        title="Ownership explained",
        content="Body",
        tags=["rust"],
    )
    return ch, v, s


class TestChannels:
    def test_list_with_stats(self, client, seeded):
        r = client.get("/api/channels")

        assert r.status_code == 200
        row = r.json()[0]
        assert row["channelId"] == "UCrust"
        assert row["videoCount"] == 1
        assert row["summaryCount"] == 1

    @patch("tubedigest.service.fetch_latest_videos", return_value=[])
    @patch("tubedigest.service.fetch_channel_info")
    def test_create(self, mock_info, _latest, client):
        mock_info.return_value = ChannelInfo("UCnew", "New", "", None, Resolution("UCnew", "username"))

        r = client.post("/api/channels", json={"channelUrl": "https://www.youtube.com/user/new", "frequency": "weekly"})

        assert r.status_code == 201
        body = r.json()
        assert body["channelId"] == "UCnew"
        assert body["frequency"] == "weekly"
        assert body["isActive"] is True

    @patch("tubedigest.service.fetch_channel_info")
    def test_create_duplicate(self, mock_info, client, seeded):
        mock_info.return_value = ChannelInfo("UCrust", "Rust")

        r = client.post("/api/channels", json={"channelUrl": "https://www.youtube.com/channel/UCrust"})

        assert r.status_code == 400
        assert r.json() == {"message": "This channel is already registered."}

    @patch("tubedigest.service.fetch_channel_info")
    def test_create_unresolvable(self, mock_info, client):
        mock_info.side_effect = ResolutionExhausted("nothing")

        r = client.post("/api/channels", json={"channelUrl": "https://www.youtube.com/@ghost"})

        assert r.status_code == 400
        assert r.json()["message"] == ResolutionExhausted.user_message

    @patch("tubedigest.service.fetch_channel_info")
    def test_create_upstream_down(self, mock_info, client):
        mock_info.side_effect = UpstreamUnavailable("down")

        r = client.post("/api/channels", json={"channelUrl": "https://www.youtube.com/@ghost"})

        assert r.status_code == 400
        assert r.json()["message"] == UpstreamUnavailable.user_message

    @pytest.mark.parametrize("body", [
        {"channelUrl": "not a url"},
        {"channelUrl": "ftp://youtube.com/@x"},
        {"channelUrl": "https://www.youtube.com/@x", "frequency": "yearly"},
        {},
    ])
    def test_create_invalid_body(self, client, body):
        r = client.post("/api/channels", json=body)

        assert r.status_code == 400
        assert r.json() == {"message": "Invalid input data."}

    @patch("tubedigest.service.fetch_channel_info")
    def test_refresh(self, mock_info, client, seeded):
        ch, _, _ = seeded
        mock_info.return_value = ChannelInfo("UCrust", "Rust Official", "https://img/new.jpg")

        r = client.put(f"/api/channels/{ch.id}/refresh")

        assert r.status_code == 200
        assert r.json()["name"] == "Rust Official"
        assert r.json()["thumbnailUrl"] == "https://img/new.jpg"

    @patch("tubedigest.service.fetch_channel_info")
    def test_refresh_onto_registered_channel(self, mock_info, client, store, seeded):
        second = store.create_channel(channel_id="UCgo", name="Go", channel_url="https://www.youtube.com/@golang")
        mock_info.return_value = ChannelInfo("UCrust", "Rust")

        r = client.put(f"/api/channels/{second.id}/refresh")

        assert r.status_code == 400
        assert r.json() == {"message": "This channel is already registered."}
        assert store.get_channel(second.id).channel_id == "UCgo"

    def test_refresh_unknown_channel(self, client):
        assert client.put("/api/channels/77/refresh").status_code == 404

    def test_fetch_all_without_channels(self, client):
        r = client.post("/api/channels/fetch-all-videos")

        assert r.status_code == 400

    @patch("tubedigest.service.fetch_latest_videos", return_value=[])
    def test_fetch_all(self, _latest, client, seeded):
        r = client.post("/api/channels/fetch-all-videos")

        assert r.status_code == 200
        body = r.json()
        assert body["successCount"] == 1
        assert body["totalChannels"] == 1

    def test_delete(self, client, seeded):
        ch, _, _ = seeded

        assert client.delete(f"/api/channels/{ch.id}").status_code == 200
        assert client.get("/api/channels").json() == []
        assert client.get("/api/summaries").json() == []
        assert client.delete(f"/api/channels/{ch.id}").status_code == 404


class TestVideosAndSummaries:
    def test_list_videos(self, client, seeded):
        ch, _, _ = seeded

        by_channel = client.get("/api/videos", params={"channelId": ch.id}).json()
        latest = client.get("/api/videos").json()

        assert [v["videoId"] for v in by_channel] == ["vid1"]
        assert latest == by_channel

    def test_delete_video_keeps_summary(self, client, seeded):
        _, v, s = seeded

        assert client.delete(f"/api/videos/{v.id}").status_code == 200
        rows = client.get("/api/summaries").json()
        assert rows[0]["id"] == s.id
        assert rows[0]["videoId"] is None

    def test_start_summary(self, client, service, seeded):
        _, v, _ = seeded
        service.start_summary = MagicMock(return_value="summary_abc")

        r = client.post(f"/api/videos/{v.id}/summary")
        legacy = client.post(f"/api/summaries/{v.id}")

        assert r.status_code == 202
        assert r.json() == {"message": "Summary generation started.", "progressId": "summary_abc"}
        assert legacy.status_code == 202

    def test_start_summary_unknown_video(self, client):
        assert client.post("/api/videos/99/summary").status_code == 404

    def test_search_summaries(self, client, seeded):
        hits = client.get("/api/summaries", params={"search": "OWNERSHIP"}).json()
        misses = client.get("/api/summaries", params={"search": "golang"}).json()

        assert hits[0]["channelName"] == "Rust"
        assert hits[0]["videoTitle"] == "Ownership"
        assert misses == []

    def test_delete_summary(self, client, seeded):
        _, _, s = seeded

        assert client.delete(f"/api/summaries/{s.id}").status_code == 200
        assert client.delete(f"/api/summaries/{s.id}").status_code == 404

    def test_stats(self, client, seeded):
        body = client.get("/api/stats").json()

        assert body["totalChannels"] == 1
        assert body["totalSummaries"] == 1


class TestProgress:
    def test_list_and_cancel(self, client, registry):
        item = registry.register(1, "Video", "Channel")

        listed = client.get("/api/progress").json()
        assert listed[0]["id"] == item.id
        assert listed[0]["status"] == PENDING

        assert client.post(f"/api/progress/{item.id}/cancel").status_code == 200
        assert client.post(f"/api/progress/{item.id}/cancel").status_code == 400

    def test_cancel_unknown(self, client):
        assert client.post("/api/progress/summary_nope/cancel").status_code == 404

    def test_delete(self, client, registry):
        item = registry.register(1, "Video", "Channel")

        assert client.delete(f"/api/progress/{item.id}").status_code == 200
        assert client.delete(f"/api/progress/{item.id}").status_code == 404


class TestExport:
    def test_download(self, client, seeded):
        _, _, s = seeded

        r = client.get(f"/api/export/{s.id}")

        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/markdown")
        assert "Ownership_explained.md" in r.headers["content-disposition"]
        assert r.text.startswith("---\n")

    def test_obsidian_direct(self, client, service, seeded):
        _, _, s = seeded
        service.vault = MagicMock()
        service.vault.put_note.return_value = True

        r = client.get(f"/api/export/{s.id}")

        assert r.json() == {
            "message": "Saved to Obsidian.",
            "path": "YouTube Summaries/Rust/Ownership_explained.md",
            "method": "obsidian_direct",
        }

    def test_missing(self, client):
        r = client.get("/api/export/5")

        assert r.status_code == 404
        assert "message" in r.json()

    def test_export_all(self, client, seeded):
        r = client.get("/api/export-all")

        assert r.status_code == 200
        assert r.headers["content-type"] == "application/zip"
        assert "obsidian-summaries.zip" in r.headers["content-disposition"]
        with zipfile.ZipFile(io.BytesIO(r.content)) as zf:
            assert zf.namelist() == ["Ownership_explained.md"]
