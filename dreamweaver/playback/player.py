import asyncio
import logging
from abc import ABC, abstractmethod

from .audio_cache import AudioCacheEntry

logger = logging.getLogger(__name__)


class NarrationPlayer(ABC):
    """Abstract sink that plays one sentence of narration to completion."""

    @abstractmethod
    async def play(self, entry: AudioCacheEntry) -> None:
        """Return once the audio-finished signal for ``entry`` has fired."""

    def finished(self, index: int) -> None:
        """Audio-finished signal from the listener's side. Ignored by default."""


class PacedPlayer(NarrationPlayer):
    """Waits out each clip's duration while the client plays it.

    ``speed`` scales the wait: 1.0 is real time, 0 returns immediately.
    """

    def __init__(self, speed: float = 1.0) -> None:
        self.speed = speed

    async def play(self, entry: AudioCacheEntry) -> None:
        duration = entry.duration_seconds * self.speed
        logger.debug(f"Playing sentence {entry.index} ({entry.duration_seconds:.1f}s)")
        await asyncio.sleep(duration)


class ClientAckPlayer(NarrationPlayer):
    """Waits for the client to report that a sentence finished playing.

    If no report arrives within ``duration * timeout_factor + grace_seconds``
    the sentence counts as played, so a silent client cannot stall a session.
    """

    def __init__(self, timeout_factor: float = 1.5, grace_seconds: float = 5.0) -> None:
        self.timeout_factor = timeout_factor
        self.grace_seconds = grace_seconds
        self._waiters: dict[int, asyncio.Future] = {}
        self._early: set[int] = set()

    def timeout_for(self, entry: AudioCacheEntry) -> float:
        return entry.duration_seconds * self.timeout_factor + self.grace_seconds

    async def play(self, entry: AudioCacheEntry) -> None:
        index = entry.index
        self._early = {i for i in self._early if i >= index}
        if index in self._early:
            self._early.discard(index)
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters[index] = waiter
        try:
            await asyncio.wait_for(waiter, timeout=self.timeout_for(entry))
        except asyncio.TimeoutError:
            logger.warning(f"No finished signal for sentence {index}; moving on")
        finally:
            self._waiters.pop(index, None)

    def finished(self, index: int) -> None:
        waiter = self._waiters.get(index)
        if waiter is None:
            # Reported before playback reached it
            self._early.add(index)
        elif not waiter.done():
            waiter.set_result(None)
