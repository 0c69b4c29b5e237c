import asyncio
import base64
import logging
from typing import Any, Awaitable, Optional

from google import genai
from google.genai import errors, types
from pydantic import ValidationError as PydanticValidationError

from ..config import Settings, get_settings
from ..errors import UpstreamError, ValidationError
from ..models.story import Chapter
from .interface import GeneratedImage, GenerationGateway
from .prompt import build_speech_prompt

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}
TERMINAL_STATUS = {401, 403, 404}


class GeminiGateway(GenerationGateway):
    """Gemini implementation of GenerationGateway."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[genai.Client] = None) -> None:
        self.settings = settings or get_settings()
        if client is None:
            if not self.settings.google_api_key:
                raise ValueError("Gemini API key required. Set GOOGLE_API_KEY environment variable.")
            client = genai.Client(api_key=self.settings.google_api_key)
        self.client = client

    def _validate(self, text: str, what: str) -> str:
        if not text or not text.strip():
            raise ValidationError(f"{what} is required and must not be empty")
        if len(text) > self.settings.max_prompt_chars:
            raise ValidationError(
                f"{what} exceeds maximum length ({len(text)} > {self.settings.max_prompt_chars} chars)"
            )
        return text.strip()

    async def _call(self, request: Awaitable[Any], what: str) -> Any:
        """Await a Gemini request, translating failures into the error taxonomy."""
        try:
            return await asyncio.wait_for(request, timeout=self.settings.request_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"{what} timed out after {self.settings.request_timeout_seconds}s") from e
        except errors.APIError as e:
            code = getattr(e, "code", None)
            logger.error(f"Upstream API error ({code}) during {what}: {e}")
            if code in RETRYABLE_STATUS or (code is not None and code >= 500):
                raise UpstreamError(f"{what} failed: API returned {code}", status_code=code) from e
            if code in TERMINAL_STATUS:
                raise UpstreamError(
                    f"{what} failed: API returned {code}", status_code=code, retryable=False
                ) from e
            raise ValidationError(f"{what} rejected by API ({code}): {e}") from e

    @staticmethod
    def _inline_data(response: Any) -> tuple[bytes, Optional[str]]:
        """Collect inline binary parts from a response."""
        data = b""
        mime_type = None
        if response.candidates and response.candidates[0].content and response.candidates[0].content.parts:
            for part in response.candidates[0].content.parts:
                if getattr(part, "inline_data", None) and part.inline_data.data:
                    chunk = part.inline_data.data
                    if isinstance(chunk, str):
                        chunk = base64.b64decode(chunk)
                    data += chunk
                    mime_type = mime_type or part.inline_data.mime_type
        return data, mime_type

    async def generate_text(self, prompt: str, system_instruction: str) -> Chapter:
        prompt = self._validate(prompt, "Prompt")

        config = types.GenerateContentConfig(response_mime_type="application/json")
        if system_instruction:
            config.system_instruction = system_instruction

        response = await self._call(
            self.client.aio.models.generate_content(
                model=self.settings.gemini_text_model,
                contents=prompt,
                config=config,
            ),
            "chapter generation",
        )

        text = (response.text or "").strip()
        if not text:
            raise UpstreamError("Invalid upstream response: empty chapter")
        if text.startswith("```"):
            # Remove markdown code fences
            text = "\n".join(line for line in text.split("\n") if not line.strip().startswith("```"))

        try:
            chapter = Chapter.model_validate_json(text)
        except PydanticValidationError as e:
            logger.error(f"Chapter reply failed validation: {e}")
            raise UpstreamError(f"Invalid upstream response: {e.error_count()} chapter field errors") from e

        logger.info(f"Generated chapter '{chapter.title}' ({len(chapter.prose)} chars)")
        return chapter

    async def generate_speech(self, text: str, voice: str, accent: str) -> bytes:
        text = self._validate(text, "Speech text")

        speech_config = types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(
                    voice_name=voice,
                )
            )
        )

        response = await self._call(
            self.client.aio.models.generate_content(
                model=self.settings.gemini_tts_model,
                contents=build_speech_prompt(text, accent),
                config=types.GenerateContentConfig(
                    response_modalities=["AUDIO"],
                    speech_config=speech_config,
                ),
            ),
            "speech synthesis",
        )

        audio, _ = self._inline_data(response)
        if not audio:
            raise UpstreamError("Invalid upstream response: no audio returned")
        return audio

    async def generate_image(self, prompt: str) -> GeneratedImage:
        prompt = self._validate(prompt, "Image prompt")

        response = await self._call(
            self.client.aio.models.generate_content(
                model=self.settings.gemini_image_model,
                contents=[prompt],
                config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
            ),
            "image generation",
        )

        image, mime_type = self._inline_data(response)
        if not image:
            raise UpstreamError("Invalid upstream response: no image returned")
        logger.debug(f"Generated image ({mime_type}, {len(image)} bytes)")
        return GeneratedImage(data=image, mime_type=mime_type)
