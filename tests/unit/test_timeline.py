import asyncio

import aiohttp
import orjson
import pytest

from pushwire.timeline import Timeline, TimelineLevel, TimelineSender, timeline_sender_factory


class DummyResponse:
    def __init__(self, status=200, exception=None):
        self.status = status
        self._exception = exception

    def raise_for_status(self):
        if self._exception is not None:
            raise self._exception


class DummyPostContext:
    def __init__(self, response):
        self._response = response

    async def __aenter__(self):
        return self._response

    async def __aexit__(self, exc_type, exc, tb):
        return False


class DummySession:
    def __init__(self, response):
        self.response = response
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        return DummyPostContext(self.response)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def test_timeline_keeps_newest_entries_up_to_limit():
    timeline = Timeline("app-key", 7, limit=3)

    for index in range(5):
        timeline.info({"n": index})

    assert len(timeline) == 3
    assert [entry["n"] for entry in timeline.drain()["timeline"]] == [2, 3, 4]


def test_timeline_filters_by_level():
    timeline = Timeline("app-key", 7)

    timeline.debug({"noise": True})
    timeline.error({"boom": True})

    entries = timeline.drain()["timeline"]
    assert len(entries) == 1
    assert entries[0]["boom"] is True
    assert entries[0]["level"] == int(TimelineLevel.ERROR)
    assert "timestamp" in entries[0]


def test_drain_numbers_bundles_and_clears():
    timeline = Timeline("app-key", 7)
    timeline.info({"state": "connecting"})

    first = timeline.drain(encrypted=True)
    timeline.info({"state": "connected"})
    second = timeline.drain()

    assert first["key"] == "app-key"
    assert first["session"] == 7
    assert first["bundle"] == 1
    assert first["encrypted"] is True
    assert second["bundle"] == 2
    assert timeline.is_empty()


def test_sender_url_and_factory():
    timeline = Timeline("app-key", 7)

    sender = timeline_sender_factory(timeline, {"host": "stats.example.com", "encrypted": True})

    assert sender.url == "https://stats.example.com/timeline/v2/app-key"
    assert TimelineSender(timeline, host="stats.example.com").url == "http://stats.example.com/timeline/v2/app-key"


def test_send_skips_empty_timeline():
    sender = TimelineSender(Timeline("app-key", 7), host="stats.example.com")

    assert sender.send() is None


@pytest.mark.asyncio
async def test_send_posts_json_and_reports_status():
    timeline = Timeline("app-key", 7)
    timeline.info({"state": "connected"})
    session = DummySession(DummyResponse(status=200))
    sender = TimelineSender(timeline, host="stats.example.com", session_factory=lambda: session)
    results = []

    task = sender.send(lambda error, result: results.append((error, result)))
    await task

    assert results == [(None, {"status": 200})]
    url, kwargs = session.posts[0]
    assert url == "http://stats.example.com/timeline/v2/app-key"
    body = orjson.loads(kwargs["data"])
    assert body["timeline"][0]["state"] == "connected"
    assert body["encrypted"] is False
    assert timeline.is_empty()


@pytest.mark.asyncio
async def test_send_failure_is_reported_to_callback():
    timeline = Timeline("app-key", 7)
    timeline.info({"state": "connected"})
    failure = aiohttp.ClientPayloadError("rejected")
    sender = TimelineSender(
        timeline,
        host="stats.example.com",
        session_factory=lambda: DummySession(DummyResponse(status=500, exception=failure)),
    )
    results = []

    await sender.send(lambda error, result: results.append((error, result)))
    await asyncio.sleep(0)

    assert results == [(failure, None)]
