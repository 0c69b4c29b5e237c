"""Models for generated chapters and the sentences derived from them."""

from dataclasses import dataclass

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class Chapter(BaseModel):
    """One generated narrative unit as returned by the text model."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = ""
    prose: str = Field(min_length=1, validation_alias=AliasChoices("prose", "story", "text"))
    suggested_music_mood: str = Field(
        default="",
        validation_alias=AliasChoices("suggested_music_mood", "suggestedMusicMood", "musicMood", "mood"),
    )
    visual_moment_prompts: list[str] = Field(
        min_length=1,
        validation_alias=AliasChoices("visual_moment_prompts", "visualMomentPrompts", "visualMoments"),
    )

    @field_validator("prose")
    @classmethod
    def _strip_prose(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("prose must not be blank")
        return value

    @field_validator("visual_moment_prompts")
    @classmethod
    def _keep_three_prompts(cls, value: list[str]) -> list[str]:
        prompts = [p.strip() for p in value if p and p.strip()]
        if not prompts:
            raise ValueError("at least one visual moment prompt is required")
        return prompts[:3]


@dataclass(frozen=True)
class Sentence:
    """A narrative atom: the unit of narration playback and caching."""

    global_index: int
    text: str
    chapter_index: int
