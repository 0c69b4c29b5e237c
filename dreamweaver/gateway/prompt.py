"""Prompt builders for chapter, speech and illustration requests."""

from ..config import Genre
from ..models.story import Chapter

GENRE_LABELS = {
    Genre.FANTASY: "fantasy",
    Genre.SCIENCE_FICTION: "science fiction",
    Genre.MYSTERY: "mystery",
    Genre.HORROR: "gentle horror",
    Genre.ROMANCE: "romance",
    Genre.ADVENTURE: "adventure",
    Genre.FAIRY_TALE: "fairy tale",
}

SYSTEM_INSTRUCTION = '''You are Dreamweaver, a master storyteller narrating an immersive {genre} story aloud.

Write one chapter at a time, roughly {sentences} sentences (about 400 words) of vivid, spoken-friendly prose.
Every sentence must end with terminal punctuation. Avoid lists, headings and stage directions.
Keep characters, places and tone consistent with the chapters that came before.

Reply with a single JSON object and nothing else:
{{
  "title": "chapter title",
  "prose": "the chapter text",
  "suggestedMusicMood": "one of: adventure, suspense, peaceful, magical, melancholy, romantic",
  "visualMomentPrompts": ["2 or 3 short scene descriptions worth illustrating, in story order"]
}}
'''

# Context from earlier chapters is trimmed to this many characters.
HISTORY_CHARS = 6000


def genre_label(genre: Genre) -> str:
    return GENRE_LABELS.get(genre, genre.value.replace("_", " "))


def build_system_instruction(genre: Genre, sentences_per_chapter: int = 12) -> str:
    return SYSTEM_INSTRUCTION.format(genre=genre_label(genre), sentences=sentences_per_chapter)


def build_opening_prompt(prompt: str) -> str:
    return f"Begin a new story based on this idea from the listener:\n\n{prompt.strip()}"


def build_continuation_prompt(prompt: str, history: list[Chapter]) -> str:
    """Ask for the next chapter, carrying the story so far as context."""
    parts = []
    for number, chapter in enumerate(history, start=1):
        parts.append(f"Chapter {number}: {chapter.title}\n{chapter.prose}")
    context = "\n\n".join(parts)
    if len(context) > HISTORY_CHARS:
        context = "..." + context[-HISTORY_CHARS:]

    return (
        f"The listener's original idea: {prompt.strip()}\n\n"
        f"The story so far:\n{context}\n\n"
        f"Write chapter {len(history) + 1}, continuing directly from where the story left off."
    )


def build_speech_prompt(text: str, accent: str) -> str:
    if not accent or accent == "neutral":
        return text
    return f"Read aloud in a warm storyteller's voice with a {accent} accent: {text}"


def build_sentence_image_prompt(text: str, genre: Genre) -> str:
    return f"A painterly {genre_label(genre)} storybook illustration of this moment: {text}"
