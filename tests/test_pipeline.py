from __future__ import annotations

import asyncio
import json

from meteo.services.fanout import LiveBroadcaster
from meteo.services.pipeline import IngestionPipeline, device_from_topic
from meteo.services.recent import RecentReadingsBuffer
from tests.fakes import FakeReadingRepository, FakeSink


def _pipeline(repo: FakeReadingRepository, **kwargs) -> tuple[IngestionPipeline, FakeSink]:
    broadcaster = LiveBroadcaster()
    sink = FakeSink()
    broadcaster.subscribe(sink)
    pipeline = IngestionPipeline(repo=repo, broadcaster=broadcaster, **kwargs)
    return pipeline, sink


def _ingest(pipeline: IngestionPipeline, *messages: tuple[bytes, str | None]) -> None:
    async def scenario() -> None:
        for payload, topic in messages:
            pipeline.on_message(payload, topic)
        await pipeline.drain()

    asyncio.run(scenario())


def test_message_is_persisted_and_published() -> None:
    repo = FakeReadingRepository()
    pipeline, sink = _pipeline(repo)

    _ingest(pipeline, (b'{"deviceId": "d1", "aht_t": 21.5, "aht_h": 0}', "meteo/d1/reading"))

    assert len(repo.readings) == 1
    assert repo.readings[0].present() == {"aht_t": 21.5, "aht_h": 0.0}
    body = json.loads(sink.sent[0])
    assert body["aht_t"] == 21.5
    assert body["aht_h"] == 0
    assert body["bmp_p"] is None
    assert pipeline.stats.persisted == 1
    assert pipeline.stats.published == 1


def test_malformed_message_does_not_stop_the_pipeline() -> None:
    repo = FakeReadingRepository()
    pipeline, sink = _pipeline(repo)

    _ingest(
        pipeline,
        (b"{not json", None),
        (b"\xff\xfe", None),
        (b"[1, 2, 3]", None),
        (b'{"deviceId": "d1", "mq3": "12.5"}', None),
    )

    assert pipeline.stats.received == 4
    assert pipeline.stats.malformed == 3
    assert len(repo.readings) == 1
    assert len(sink.sent) == 1


def test_deeply_nested_payload_is_counted_as_malformed() -> None:
    repo = FakeReadingRepository()
    pipeline, sink = _pipeline(repo)

    _ingest(
        pipeline,
        (b"[" * 200_000, None),
        (b'{"deviceId": "d1", "aht_t": 20}', None),
    )

    assert pipeline.stats.received == 2
    assert pipeline.stats.malformed == 1
    assert len(repo.readings) == 1
    assert len(sink.sent) == 1


def test_store_failure_does_not_block_live_delivery() -> None:
    repo = FakeReadingRepository()
    repo.fail_writes = True
    pipeline, sink = _pipeline(repo)

    _ingest(pipeline, (b'{"deviceId": "d1", "bmp_t": 18.0}', None))

    assert pipeline.stats.persist_failed == 1
    assert len(sink.sent) == 1


def test_subscriber_failure_does_not_block_persistence() -> None:
    repo = FakeReadingRepository()
    broadcaster = LiveBroadcaster()
    broadcaster.subscribe(FakeSink(fail=True))
    pipeline = IngestionPipeline(repo=repo, broadcaster=broadcaster)

    _ingest(pipeline, (b'{"deviceId": "d1", "bmp_t": 18.0}', None))

    assert len(repo.readings) == 1
    assert len(broadcaster) == 0


def test_saturated_store_drops_writes_but_still_publishes() -> None:
    repo = FakeReadingRepository()
    pipeline, sink = _pipeline(repo, max_pending_writes=1)

    _ingest(
        pipeline,
        (b'{"deviceId": "d1", "aht_t": 1}', None),
        (b'{"deviceId": "d1", "aht_t": 2}', None),
    )

    assert pipeline.stats.persist_dropped == 1
    assert len(repo.readings) == 1
    assert len(sink.sent) == 2


def test_device_id_falls_back_to_topic() -> None:
    repo = FakeReadingRepository()
    pipeline, _ = _pipeline(repo)

    _ingest(pipeline, (b'{"aht_t": 20}', "meteo/garden/reading"))

    assert repo.readings[0].device_id == "garden"


def test_device_from_topic() -> None:
    assert device_from_topic("meteo/42/reading") == "42"
    assert device_from_topic("meteo//reading") is None
    assert device_from_topic("reading") is None
    assert device_from_topic(None) is None


def test_readings_are_buffered_for_recent_view() -> None:
    repo = FakeReadingRepository()
    recent = RecentReadingsBuffer(window_seconds=60, max_points=10)
    pipeline, _ = _pipeline(repo, recent=recent)

    _ingest(pipeline, (b'{"deviceId": "d1", "aht_t": 20}', None))

    assert [p.value for p in recent.series(device_id="d1")["aht_t"]] == [20.0]
    assert [p.value for p in recent.series()["aht_t"]] == [20.0]
    assert recent.series(device_id="other")["aht_t"] == []
