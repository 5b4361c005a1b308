import asyncio

import pytest

from styllio.services.events import JobEventBus


@pytest.mark.asyncio
async def test_subscriber_receives_events_for_its_job_only():
    bus = JobEventBus()

    async with bus.subscribe("job-1") as queue:
        assert bus.publish("job-1", "processing") == 1
        assert bus.publish("job-2", "processing") == 0
        event = await asyncio.wait_for(queue.get(), timeout=1)

    assert event == {"jobId": "job-1", "status": "processing"}
    assert queue.empty()


@pytest.mark.asyncio
async def test_unsubscribe_on_exit():
    bus = JobEventBus()

    async with bus.subscribe("job-1"):
        assert bus.subscriber_count("job-1") == 1

    assert bus.subscriber_count("job-1") == 0
    assert bus.publish("job-1", "completed") == 0


@pytest.mark.asyncio
async def test_full_queue_drops_events_without_blocking():
    bus = JobEventBus(queue_size=1)

    async with bus.subscribe("job-1") as queue:
        bus.publish("job-1", "processing")
        bus.publish("job-1", "completed")

        assert queue.qsize() == 1
        assert (await queue.get())["status"] == "processing"
