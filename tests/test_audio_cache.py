import asyncio
import threading
import time

import pytest

from dreamweaver.errors import UpstreamError, ValidationError
from dreamweaver.media import write_wav
from dreamweaver.models.story import Sentence
from dreamweaver.playback import audio_cache
from dreamweaver.playback.audio_cache import AudioPrefetchCache

from conftest import PCM_SILENCE, FakeGateway


def sentences(count: int) -> list[Sentence]:
    return [Sentence(global_index=i, text=f"Line {i}.", chapter_index=0) for i in range(count)]


@pytest.fixture()
def cache_factory(settings, tmp_path):
    caches = []

    def build(gateway: FakeGateway, **kwargs) -> AudioPrefetchCache:
        cache = AudioPrefetchCache(gateway, settings, voice="Kore", accent="neutral", media_dir=tmp_path / "audio", **kwargs)
        caches.append(cache)
        return cache

    yield build
    for cache in caches:
        cache.close()


async def test_ensure_is_idempotent_while_in_flight(cache_factory):
    gateway = FakeGateway(speech_delay=0.05)
    cache = cache_factory(gateway)
    sentence = sentences(1)[0]

    cache.ensure(sentence)
    cache.ensure(sentence)
    assert cache.is_pending(0)

    entry = await cache.fetch(sentence)

    assert entry is not None
    assert entry.audio == PCM_SILENCE
    assert gateway.speech_calls == ["Line 0."]
    cache.ensure(sentence)
    assert gateway.speech_calls == ["Line 0."]


async def test_miss_fetches_synchronously(cache_factory):
    gateway = FakeGateway()
    cache = cache_factory(gateway)
    sentence = sentences(1)[0]

    assert cache.get(0) is None
    entry = await cache.fetch(sentence)

    assert cache.get(0) is entry
    assert entry.path.exists()
    assert entry.path.suffix == ".wav"


async def test_release_before_frees_stale_entries(cache_factory):
    cache = cache_factory(FakeGateway())
    lines = sentences(4)
    entries = [await cache.fetch(s) for s in lines[:3]]

    cache.release_before(2)

    assert cache.indices() == [2]
    assert not entries[0].path.exists()
    assert not entries[1].path.exists()
    assert entries[2].path.exists()

    # Released indices are never fetched again in the background
    cache.ensure(lines[1])
    assert not cache.is_pending(1)


async def test_release_cancels_in_flight_fetch(cache_factory):
    cache = cache_factory(FakeGateway(speech_delay=0.05))
    cache.ensure(sentences(1)[0])

    cache.release_before(1)
    await asyncio.sleep(0.08)

    assert cache.get(0) is None
    assert not cache.is_pending(0)


async def test_failed_prefetch_is_retried_at_play_time(cache_factory, settings):
    gateway = FakeGateway()
    gateway.fail_speech.add("Line 0.")
    cache = cache_factory(gateway)
    sentence = sentences(1)[0]

    cache.ensure(sentence)
    await asyncio.sleep(0.01)
    assert isinstance(cache.failure(0), UpstreamError)
    assert len(gateway.speech_calls) == settings.retry_attempts

    with pytest.raises(UpstreamError):
        await cache.fetch(sentence)
    assert len(gateway.speech_calls) == 2 * settings.retry_attempts


async def test_validation_error_is_not_retried(cache_factory):
    gateway = FakeGateway()
    gateway.invalid_speech.add("Line 0.")
    cache = cache_factory(gateway)

    with pytest.raises(ValidationError):
        await cache.fetch(sentences(1)[0])
    with pytest.raises(ValidationError):
        await cache.fetch(sentences(1)[0])
    assert gateway.speech_calls == ["Line 0."]


async def test_close_removes_owned_media_dir(settings):
    cache = AudioPrefetchCache(FakeGateway(), settings, voice="Kore", accent="neutral")
    entry = await cache.fetch(sentences(1)[0])
    assert entry.path.exists()

    cache.close()

    assert not entry.path.exists()
    assert not cache.media_dir.exists()
    assert cache.get(0) is None


async def test_wav_is_written_off_the_event_loop(cache_factory, monkeypatch):
    writers = []

    def recording_write(path, audio):
        writers.append(threading.get_ident())
        return write_wav(path, audio)

    monkeypatch.setattr(audio_cache, "write_wav", recording_write)
    cache = cache_factory(FakeGateway())

    entry = await cache.fetch(sentences(1)[0])

    assert entry.path.exists()
    assert writers and writers[0] != threading.get_ident()


async def test_release_during_write_removes_the_file(cache_factory, monkeypatch):
    writing = threading.Event()

    def slow_write(path, audio):
        writing.set()
        time.sleep(0.1)
        return write_wav(path, audio)

    monkeypatch.setattr(audio_cache, "write_wav", slow_write)
    cache = cache_factory(FakeGateway())
    cache.ensure(sentences(1)[0])
    for _ in range(100):
        if writing.is_set():
            break
        await asyncio.sleep(0.01)
    assert cache.is_pending(0)

    cache.release_before(1)
    await asyncio.sleep(0.3)

    assert 0 not in cache
    assert list(cache.media_dir.glob("*.wav")) == []
