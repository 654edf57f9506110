import threading
from datetime import timedelta

import pytest

from tubedigest.progress import (
    CANCELLED,
    COMPLETED,
    FAILED,
    PENDING,
    PROCESSING,
    InvalidTransition,
    TaskRegistry,
)


def _register(registry):
    return registry.register(video_id=7, video_title="Some video", channel_name="Some channel")


class TestRegistry:
    def test_register(self, registry):
        item = _register(registry)

        assert item.id.startswith("summary_")
        assert item.status == PENDING
        assert item.progress == 0
        assert item.start_time is not None
        assert registry.get(item.id) == item

    def test_api_dict(self, registry):
        d = _register(registry).api_dict()

        assert d["videoTitle"] == "Some video"
        assert d["channelName"] == "Some channel"
        assert d["status"] == "pending"

    def test_update_marks_processing(self, registry):
        item = _register(registry)

        registry.update(item.id, 50)

        got = registry.get(item.id)
        assert got.status == PROCESSING
        assert got.progress == 50

    def test_complete(self, registry):
        item = _register(registry)

        registry.complete(item.id)

        got = registry.get(item.id)
        assert got.status == COMPLETED
        assert got.progress == 100
        assert got.end_time is not None

    def test_finished_tasks_ignore_updates(self, registry):
        item = _register(registry)
        registry.fail(item.id, "boom")

        registry.update(item.id, 75)
        registry.complete(item.id)

        got = registry.get(item.id)
        assert got.status == FAILED
        assert got.error == "boom"

    def test_cancel(self, registry):
        item = _register(registry)

        registry.cancel(item.id)

        assert registry.get(item.id).status == CANCELLED
        assert registry.token(item.id).cancelled

    def test_cancel_finished(self, registry):
        item = _register(registry)
        registry.complete(item.id)

        with pytest.raises(InvalidTransition):
            registry.cancel(item.id)

    def test_cancel_unknown(self, registry):
        with pytest.raises(KeyError):
            registry.cancel("summary_missing")

    def test_remove(self, registry):
        item = _register(registry)

        assert registry.remove(item.id) is True
        assert registry.get(item.id) is None
        assert registry.remove(item.id) is False

    def test_evict_finished(self, registry):
        done = _register(registry)
        active = _register(registry)
        registry.complete(done.id)

        assert registry.evict_finished(timedelta(seconds=-1)) == 1
        assert registry.get(done.id) is None
        assert registry.get(active.id) is not None


class TestSubmit:
    def test_job_completes(self, registry):
        item = _register(registry)
        seen = []

        def job(token, report):
            report(25)
            seen.append(registry.get(item.id).status)
            report(75)

        registry.submit(item.id, job).result(timeout=5)

        assert seen == [PROCESSING]
        got = registry.get(item.id)
        assert got.status == COMPLETED
        assert got.progress == 100

    def test_job_failure(self, registry):
        item = _register(registry)

        def job(token, report):
            raise RuntimeError("LLM quota exceeded")

        registry.submit(item.id, job).result(timeout=5)

        got = registry.get(item.id)
        assert got.status == FAILED
        assert got.error == "LLM quota exceeded"

    def test_cancel_between_stages(self, registry):
        item = _register(registry)
        started = threading.Event()
        release = threading.Event()
        stages = []

        def job(token, report):
            report(25)
            stages.append("transcript")
            started.set()
            release.wait(timeout=5)
            token.raise_if_cancelled()
            stages.append("summary")

        future = registry.submit(item.id, job)
        assert started.wait(timeout=5)
        registry.cancel(item.id)
        release.set()
        future.result(timeout=5)

        assert stages == ["transcript"]
        got = registry.get(item.id)
        assert got.status == CANCELLED
        assert got.progress == 25

    def test_cancelled_before_start_never_runs(self, registry):
        item = _register(registry)
        registry.cancel(item.id)
        ran = []

        registry.submit(item.id, lambda token, report: ran.append(True)).result(timeout=5)

        assert ran == []
        assert registry.get(item.id).status == CANCELLED
