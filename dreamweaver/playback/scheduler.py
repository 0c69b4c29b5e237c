"""Session clock and chapter scheduling."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..config import SessionOptions
from ..models.session import SessionState

logger = logging.getLogger(__name__)


class ChapterScheduler:
    """Decides whether another chapter can plausibly finish in the time left."""

    def __init__(self, options: SessionOptions) -> None:
        self.options = options

    @property
    def estimated_chapter_duration_seconds(self) -> int:
        return self.options.estimated_chapter_duration_seconds

    @property
    def min_time_left_seconds(self) -> float:
        return self.estimated_chapter_duration_seconds * self.options.min_time_buffer_ratio

    def should_generate_next_chapter(self, state: SessionState) -> bool:
        if state.is_generating_chapter:
            return False
        if state.time_left_seconds <= 0:
            return False
        return state.time_left_seconds >= self.min_time_left_seconds

    @staticmethod
    def reached_midpoint(state: SessionState, index: int, chapter_index: int) -> bool:
        """True once playback of the newest chapter is at least half way through."""
        if not state.is_last_chapter(chapter_index):
            return False
        start, end = state.chapter_bounds(chapter_index)
        return (index - start + 1) * 2 >= end - start


class SessionClock:
    """Counts the session down while narration is playing."""

    def __init__(
        self,
        state: SessionState,
        tick_seconds: float = 1.0,
        on_tick: Optional[Callable[[int], Awaitable[None]]] = None,
        on_expired: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.state = state
        self.tick_seconds = tick_seconds
        self.on_tick = on_tick
        self.on_expired = on_expired
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run(), name=f"clock-{self.state.session_id}")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while self.state.time_left_seconds > 0:
            await asyncio.sleep(self.tick_seconds)
            if not self.state.is_playing:
                continue
            self.state.time_left_seconds -= 1
            if self.on_tick is not None:
                await self.on_tick(self.state.time_left_seconds)

        logger.info(f"Session {self.state.session_id} clock expired")
        if self.on_expired is not None:
            await self.on_expired()
