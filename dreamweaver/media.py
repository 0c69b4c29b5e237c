"""Helpers for narration audio and illustration bytes."""

import wave
from pathlib import Path

# Gemini TTS output: 24kHz, 16-bit, mono PCM
SAMPLE_RATE = 24000
SAMPLE_WIDTH = 2
CHANNELS = 1


def pcm_duration_seconds(audio_bytes: bytes) -> float:
    """Calculate duration from PCM audio bytes (24kHz, 16-bit, mono)."""
    return len(audio_bytes) / (SAMPLE_RATE * SAMPLE_WIDTH * CHANNELS)


def write_wav(path: Path, audio_bytes: bytes) -> Path:
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(CHANNELS)
        wf.setsampwidth(SAMPLE_WIDTH)
        wf.setframerate(SAMPLE_RATE)
        wf.writeframes(audio_bytes)
    return path


def sniff_image_mime(data: bytes) -> str:
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "application/octet-stream"


IMAGE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def image_extension(mime_type: str) -> str:
    return IMAGE_EXTENSIONS.get(mime_type, ".bin")
