from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..models.story import Chapter


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    # As reported by the service; None when it did not say
    mime_type: Optional[str] = None


class GenerationGateway(ABC):
    """Abstract boundary to the text, speech and image generation services.

    All three calls are idempotent from the caller's point of view. They raise
    ``UpstreamError`` when the service fails and ``ValidationError`` when the
    input is unusable.
    """

    @abstractmethod
    async def generate_text(self, prompt: str, system_instruction: str) -> Chapter:
        """Generate the next chapter of the story."""

    @abstractmethod
    async def generate_speech(self, text: str, voice: str, accent: str) -> bytes:
        """
        Synthesize narration for a single sentence.

        Returns:
            Raw 16-bit mono PCM at 24kHz.
        """

    @abstractmethod
    async def generate_image(self, prompt: str) -> GeneratedImage:
        """Generate an illustration as encoded image bytes."""
