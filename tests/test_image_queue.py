import asyncio

from dreamweaver.playback.image_queue import ImagePrefetchQueue

from conftest import PNG_BYTES, FakeGateway


async def test_drain_processes_in_order_with_pacing(settings):
    gateway = FakeGateway()
    queue = ImagePrefetchQueue(gateway, settings, delay_seconds=0.05)
    for index, prompt in [(4, "A"), (8, "B"), (12, "C")]:
        queue.enqueue(index, prompt)

    await queue.drain()

    entries = [queue.get(i) for i in (4, 8, 12)]
    assert [e.prompt for e in entries] == ["A", "B", "C"]
    assert [p for p, _ in gateway.image_calls] == ["A", "B", "C"]
    times = [e.created_at for e in entries]
    assert all(later - earlier >= 0.04 for earlier, later in zip(times, times[1:]))
    assert entries[0].mime_type == "image/png"
    assert entries[0].data == PNG_BYTES
    assert len(queue) == 0
    assert not queue.is_processing


async def test_reentrant_drain_is_a_no_op(settings):
    gateway = FakeGateway(image_delay=0.02)
    queue = ImagePrefetchQueue(gateway, settings, delay_seconds=0)
    queue.enqueue(0, "A")
    queue.enqueue(4, "B")

    worker = asyncio.create_task(queue.drain())
    await asyncio.sleep(0)
    assert queue.is_processing

    await queue.drain()
    await worker

    assert [p for p, _ in gateway.image_calls] == ["A", "B"]


async def test_generate_now_takes_item_out_of_queue(settings):
    gateway = FakeGateway()
    queue = ImagePrefetchQueue(gateway, settings, delay_seconds=0)
    queue.enqueue(4, "A")
    queue.enqueue(8, "B")

    entry = await queue.generate_now(8, "B")
    assert entry.index == 8
    assert queue.pending() == [4]

    await queue.drain()
    assert [p for p, _ in gateway.image_calls] == ["B", "A"]


async def test_generate_now_joins_in_flight_request(settings):
    gateway = FakeGateway(image_delay=0.05)
    queue = ImagePrefetchQueue(gateway, settings, delay_seconds=0)
    queue.enqueue(4, "A")

    worker = asyncio.create_task(queue.drain())
    await asyncio.sleep(0.01)
    assert queue.is_generating_visual

    entry = await queue.generate_now(4, "A")
    await worker

    assert entry is queue.get(4)
    assert len(gateway.image_calls) == 1


async def test_failed_image_is_skipped(settings):
    gateway = FakeGateway()
    gateway.fail_images = True
    queue = ImagePrefetchQueue(gateway, settings, delay_seconds=0)

    assert await queue.generate_now(0, "A") is None
    assert queue.get(0) is None
    assert len(gateway.image_calls) == settings.retry_attempts


async def test_close_drops_late_results(settings):
    gateway = FakeGateway(image_delay=0.05)
    queue = ImagePrefetchQueue(gateway, settings, delay_seconds=0)
    queue.enqueue(0, "A")
    queue.enqueue(4, "B")

    worker = asyncio.create_task(queue.drain())
    await asyncio.sleep(0.01)
    queue.close()
    await asyncio.gather(worker, return_exceptions=True)

    assert queue.get(0) is None
    assert len(queue) == 0


async def test_reported_mime_type_wins_over_sniffing(settings):
    gateway = FakeGateway()
    gateway.image_mime = "image/webp"
    queue = ImagePrefetchQueue(gateway, settings, delay_seconds=0)

    entry = await queue.generate_now(0, "A")

    assert entry.mime_type == "image/webp"
