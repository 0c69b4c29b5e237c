"""Background music catalog."""

from dataclasses import dataclass


@dataclass(frozen=True)
class MusicTrack:
    """A catalog entry tagged with the keywords that call for it."""

    id: str
    display_name: str
    icon: str
    source_url: str
    keywords: frozenset[str]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "icon": self.icon,
            "source_url": self.source_url,
            "keywords": sorted(self.keywords),
        }


MUSIC_CATALOG: tuple[MusicTrack, ...] = (
    MusicTrack(
        id="adventure",
        display_name="High Adventure",
        icon="⚔️",
        source_url="music/high-adventure.mp3",
        keywords=frozenset({
            "hero", "sword", "epic", "battle", "quest", "journey",
            "adventure", "courage", "dragon", "victory", "charge",
        }),
    ),
    MusicTrack(
        id="suspense",
        display_name="Dark Suspense",
        icon="🌑",
        source_url="music/dark-suspense.mp3",
        keywords=frozenset({
            "dark", "shadow", "fear", "whisper", "creep", "danger",
            "lurk", "scream", "dread", "sinister", "haunt",
        }),
    ),
    MusicTrack(
        id="peaceful",
        display_name="Peaceful Meadow",
        icon="🌿",
        source_url="music/peaceful-meadow.mp3",
        keywords=frozenset({
            "calm", "gentle", "meadow", "breeze", "quiet", "peace",
            "rest", "sunlight", "serene", "garden",
        }),
    ),
    MusicTrack(
        id="magical",
        display_name="Mystic Enchantment",
        icon="✨",
        source_url="music/mystic-enchantment.mp3",
        keywords=frozenset({
            "magic", "spell", "wizard", "enchant", "fairy", "crystal",
            "glow", "mystic", "potion", "sorcer",
        }),
    ),
    MusicTrack(
        id="melancholy",
        display_name="Melancholy Rain",
        icon="🌧️",
        source_url="music/melancholy-rain.mp3",
        keywords=frozenset({
            "sad", "tear", "loss", "grief", "lonely", "memory",
            "farewell", "rain", "mourn", "sorrow",
        }),
    ),
    MusicTrack(
        id="romantic",
        display_name="Tender Hearts",
        icon="💕",
        source_url="music/tender-hearts.mp3",
        keywords=frozenset({
            "love", "heart", "kiss", "embrace", "tender", "longing",
            "romance", "beloved", "smile",
        }),
    ),
)
