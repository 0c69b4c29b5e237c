"""Keyword scoring of chapter prose against the music catalog."""

import logging
import re
from functools import lru_cache
from typing import Optional, Sequence

from ..models.music import MUSIC_CATALOG, MusicTrack

logger = logging.getLogger(__name__)


@lru_cache(maxsize=512)
def _keyword_pattern(keyword: str) -> re.Pattern:
    # Trailing \w* lets "dark" match "darkness"
    return re.compile(rf"\b{re.escape(keyword.lower())}\w*\b")


def keyword_score(text: str, keywords: frozenset[str]) -> int:
    lowered = text.lower()
    return sum(len(_keyword_pattern(keyword).findall(lowered)) for keyword in keywords)


class MusicMoodSelector:
    """Picks a background track for a chapter.

    The keyword winner only replaces an established mood when its score
    reaches ``min_score``; weaker signals defer to the mood the story model
    suggested, which keeps the music from churning.
    """

    def __init__(self, catalog: Sequence[MusicTrack] = MUSIC_CATALOG, min_score: int = 2) -> None:
        if not catalog:
            raise ValueError("Music catalog must not be empty")
        self.catalog = tuple(catalog)
        self.min_score = min_score
        self._by_id = {track.id: track for track in self.catalog}

    def track(self, track_id: str) -> MusicTrack:
        return self._by_id[track_id]

    def scores(self, prose: str) -> dict[str, int]:
        """Score every track, in catalog order."""
        return {track.id: keyword_score(prose, track.keywords) for track in self.catalog}

    def resolve_mood(self, mood: Optional[str]) -> Optional[str]:
        """Map a free-form mood (id, display name or description) to a track id."""
        if not mood or not mood.strip():
            return None
        wanted = mood.strip().lower()
        for track in self.catalog:
            if wanted in (track.id.lower(), track.display_name.lower()):
                return track.id

        scores = self.scores(wanted)
        best = max(scores.values())
        if best == 0:
            return None
        return next(track_id for track_id, score in scores.items() if score == best)

    def select(self, prose: str, ai_suggested_mood: Optional[str], current_mood: Optional[str]) -> str:
        scores = self.scores(prose)
        best = max(scores.values())
        suggested = self.resolve_mood(ai_suggested_mood)
        fallback = suggested or current_mood or self.catalog[0].id

        if best == 0:
            logger.debug(f"No mood keywords matched; using {fallback}")
            return fallback

        tied = [track_id for track_id, score in scores.items() if score == best]
        winner = suggested if suggested in tied else tied[0]

        if current_mood is None or best >= self.min_score:
            logger.debug(f"Mood scores {scores}; selected {winner}")
            return winner

        logger.debug(f"Best mood score {best} below {self.min_score}; keeping {fallback}")
        return fallback
