"""Sliding-window prefetch cache for sentence narration."""

import asyncio
import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..config import Settings
from ..errors import DreamweaverError, UpstreamError
from ..gateway.interface import GenerationGateway
from ..media import pcm_duration_seconds, write_wav
from ..models.story import Sentence
from ..retry import retry_async

logger = logging.getLogger(__name__)


@dataclass
class AudioCacheEntry:
    """Synthesized narration for one sentence plus its playable WAV file."""

    index: int
    audio: bytes
    path: Path

    @property
    def duration_seconds(self) -> float:
        return pcm_duration_seconds(self.audio)

    def release(self) -> None:
        self.path.unlink(missing_ok=True)


class AudioPrefetchCache:
    """Maps sentence index to narration, fetched ahead of the playback cursor.

    Every entry owns a WAV file in the cache's media directory. Entries behind
    the cursor are released as playback advances, and anything still held is
    released on ``close``.
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        settings: Settings,
        voice: str,
        accent: str,
        media_dir: Optional[Path] = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self.voice = voice
        self.accent = accent
        self._owns_dir = media_dir is None
        self.media_dir = Path(tempfile.mkdtemp(prefix="dreamweaver-")) if media_dir is None else media_dir
        self.media_dir.mkdir(parents=True, exist_ok=True)

        self._entries: dict[int, AudioCacheEntry] = {}
        self._inflight: dict[int, asyncio.Task] = {}
        self._failures: dict[int, DreamweaverError] = {}
        self._released_before = 0
        self._closed = False

    def __contains__(self, index: int) -> bool:
        return index in self._entries

    def indices(self) -> list[int]:
        return sorted(self._entries)

    def is_pending(self, index: int) -> bool:
        return index in self._inflight

    def failure(self, index: int) -> Optional[DreamweaverError]:
        return self._failures.get(index)

    def get(self, index: int) -> Optional[AudioCacheEntry]:
        """Return the cached entry, or None on a cache miss."""
        return self._entries.get(index)

    def ensure(self, sentence: Sentence) -> None:
        """Start a background fetch unless the sentence is cached, in flight or stale."""
        index = sentence.global_index
        if self._closed or index < self._released_before:
            return
        if index in self._entries or index in self._inflight or index in self._failures:
            return
        self._start(sentence)

    def _start(self, sentence: Sentence) -> asyncio.Task:
        task = asyncio.create_task(self._fetch(sentence), name=f"audio-{sentence.global_index}")
        self._inflight[sentence.global_index] = task
        return task

    async def _fetch(self, sentence: Sentence) -> Optional[AudioCacheEntry]:
        index = sentence.global_index
        # Stays in flight until the WAV file is on disk
        try:
            try:
                audio = await retry_async(
                    lambda: self.gateway.generate_speech(sentence.text, self.voice, self.accent),
                    attempts=self.settings.retry_attempts,
                    base_delay=self.settings.retry_base_delay_seconds,
                    max_delay=self.settings.retry_max_delay_seconds,
                    description=f"Speech for sentence {index}",
                )
            except DreamweaverError as e:
                logger.warning(f"Narration for sentence {index} failed: {e}")
                self._failures[index] = e
                return None

            if self._closed or index < self._released_before:
                logger.debug(f"Discarding stale narration for sentence {index}")
                return None

            path = self.media_dir / f"sentence-{index:05d}.wav"
            write = asyncio.ensure_future(asyncio.to_thread(write_wav, path, audio))
            try:
                await asyncio.shield(write)
            except asyncio.CancelledError:
                write.add_done_callback(lambda done: _discard_written(done, path))
                raise
        finally:
            self._inflight.pop(index, None)

        if self._closed or index < self._released_before:
            logger.debug(f"Discarding narration for sentence {index} released while writing")
            path.unlink(missing_ok=True)
            return None

        entry = AudioCacheEntry(index=index, audio=audio, path=path)
        self._entries[index] = entry
        logger.debug(f"Cached narration for sentence {index} ({entry.duration_seconds:.1f}s)")
        return entry

    async def fetch(self, sentence: Sentence) -> Optional[AudioCacheEntry]:
        """Blocking path used at play time.

        Returns the cached entry, awaits an in-flight fetch, or fetches now.
        Raises the underlying error when the sentence cannot be synthesized.
        """
        index = sentence.global_index
        entry = self._entries.get(index)
        if entry is not None:
            return entry

        previous = self._failures.pop(index, None)
        if previous is not None and not (isinstance(previous, UpstreamError) and previous.retryable):
            self._failures[index] = previous
            raise previous

        task = self._inflight.get(index)
        if task is None:
            logger.info(f"Cache miss for sentence {index}; fetching synchronously")
            task = self._start(sentence)
        entry = await task

        if entry is None and index in self._failures:
            raise self._failures[index]
        return entry

    def release_before(self, index: int) -> None:
        """Free every entry with an index strictly less than ``index``."""
        self._released_before = max(self._released_before, index)
        for stale in [i for i in self._entries if i < index]:
            self._entries.pop(stale).release()
        for stale in [i for i in self._inflight if i < index]:
            self._inflight.pop(stale).cancel()
        for stale in [i for i in self._failures if i < index]:
            del self._failures[stale]

    def close(self) -> None:
        """Cancel in-flight fetches and release every entry."""
        self._closed = True
        for task in self._inflight.values():
            task.cancel()
        self._inflight.clear()
        for entry in self._entries.values():
            entry.release()
        self._entries.clear()
        if self._owns_dir:
            shutil.rmtree(self.media_dir, ignore_errors=True)


def _discard_written(write: asyncio.Future, path: Path) -> None:
    """Remove a WAV file whose fetch was cancelled while it was being written."""
    if not write.cancelled() and write.exception() is not None:
        logger.debug(f"Abandoned narration write to {path} failed: {write.exception()}")
    path.unlink(missing_ok=True)
