"""Paced background generation of chapter illustrations."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Optional

from ..config import Settings
from ..errors import DreamweaverError
from ..gateway.interface import GenerationGateway
from ..media import sniff_image_mime
from ..retry import retry_async

logger = logging.getLogger(__name__)


@dataclass
class ImageCacheEntry:
    index: int
    data: bytes
    mime_type: str
    prompt: str
    created_at: float


@dataclass
class ImageQueueItem:
    sentence_index: int
    prompt: str


class ImagePrefetchQueue:
    """FIFO of illustration requests drained by a single paced worker.

    Generated images are cached by sentence index and kept for the whole
    session. ``drain`` is the only worker entry point; calling it while a
    drain is already running returns immediately.
    """

    def __init__(self, gateway: GenerationGateway, settings: Settings, delay_seconds: float = 1.0) -> None:
        self.gateway = gateway
        self.settings = settings
        self.delay_seconds = delay_seconds

        self._queue: deque[ImageQueueItem] = deque()
        self._cache: dict[int, ImageCacheEntry] = {}
        self._inflight: dict[int, asyncio.Task] = {}
        self._processing = False
        self._closed = False

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_generating_visual(self) -> bool:
        return bool(self._inflight)

    def __len__(self) -> int:
        return len(self._queue)

    def pending(self) -> list[int]:
        return [item.sentence_index for item in self._queue]

    def get(self, index: int) -> Optional[ImageCacheEntry]:
        return self._cache.get(index)

    def enqueue(self, index: int, prompt: str) -> None:
        if self._closed or index in self._cache or index in self._inflight:
            return
        self._queue.append(ImageQueueItem(sentence_index=index, prompt=prompt))
        logger.debug(f"Queued illustration for sentence {index} ({len(self._queue)} waiting)")

    async def drain(self) -> None:
        """Generate queued images in order, pausing between requests."""
        if self._processing:
            return
        self._processing = True
        try:
            while self._queue and not self._closed:
                item = self._queue.popleft()
                await self._generate(item.sentence_index, item.prompt)
                await asyncio.sleep(self.delay_seconds)
        finally:
            self._processing = False

    async def generate_now(self, index: int, prompt: str) -> Optional[ImageCacheEntry]:
        """Return the image for ``index``, generating it immediately if needed.

        A queued request for the same index is taken out of the queue, and an
        in-flight one is awaited rather than duplicated.
        """
        entry = self._cache.get(index)
        if entry is not None:
            return entry
        for item in list(self._queue):
            if item.sentence_index == index:
                self._queue.remove(item)
        return await self._generate(index, prompt)

    async def _generate(self, index: int, prompt: str) -> Optional[ImageCacheEntry]:
        task = self._inflight.get(index)
        if task is None:
            task = asyncio.create_task(self._fetch(index, prompt), name=f"image-{index}")
            self._inflight[index] = task
        return await asyncio.shield(task)

    async def _fetch(self, index: int, prompt: str) -> Optional[ImageCacheEntry]:
        try:
            image = await retry_async(
                lambda: self.gateway.generate_image(prompt),
                attempts=self.settings.retry_attempts,
                base_delay=self.settings.retry_base_delay_seconds,
                max_delay=self.settings.retry_max_delay_seconds,
                description=f"Illustration for sentence {index}",
            )
        except DreamweaverError as e:
            logger.warning(f"Illustration for sentence {index} failed: {e}")
            return None
        finally:
            self._inflight.pop(index, None)

        if self._closed:
            return None

        entry = ImageCacheEntry(
            index=index,
            data=image.data,
            mime_type=image.mime_type or sniff_image_mime(image.data),
            prompt=prompt,
            created_at=asyncio.get_running_loop().time(),
        )
        self._cache[index] = entry
        logger.info(f"Cached illustration for sentence {index}")
        return entry

    def close(self) -> None:
        self._closed = True
        self._queue.clear()
        for task in self._inflight.values():
            task.cancel()
        self._inflight.clear()
