from datetime import datetime, timezone

import pytest

from tubedigest.config import Settings
from tubedigest.progress import TaskRegistry
from tubedigest.service import DigestService
from tubedigest.store import LibraryStore
from tubedigest.video_collector import VideoRecord


@pytest.fixture
def settings(tmp_path):
    return Settings(
        youtube_api_key="test-key",
        openai_api_key="sk-test",
        data_dir=tmp_path / "data",
    )


@pytest.fixture
def store(settings):
    return LibraryStore(settings.library_path)


@pytest.fixture
def registry():
    reg = TaskRegistry(max_workers=1)
    yield reg
    reg.shutdown(wait=True)


@pytest.fixture
def service(store, registry, settings):
    return DigestService(store, registry, vault=None, settings=settings)


def make_record(video_id, title="Video", day=1):
    return VideoRecord(
        video_id=video_id,
        title=title,
        description=f"About {title}",
        thumbnail_url=f"https://i.ytimg.com/vi/{video_id}/mqdefault.jpg",
        published_at=datetime(2024, 5, day, 12, 0, tzinfo=timezone.utc),
        duration_iso="PT4M13S",
        duration="4:13",
        view_count=1000,
        url=f"https://www.youtube.com/watch?v={video_id}",
    )


@pytest.fixture
def record_factory():
    return make_record
