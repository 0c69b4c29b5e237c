from functools import lru_cache
from typing import Callable, Optional

from ..config import Settings, get_settings
from .gemini import GeminiGateway
from .interface import GenerationGateway

PROVIDERS: dict[str, Callable[[Settings], GenerationGateway]] = {
    "gemini": GeminiGateway,
}


def create_gateway(settings: Optional[Settings] = None) -> GenerationGateway:
    """Build the gateway named by ``settings.generation_provider``."""
    settings = settings or get_settings()
    try:
        provider = PROVIDERS[settings.generation_provider]
    except KeyError:
        raise ValueError(
            f"Unknown generation provider: {settings.generation_provider} "
            f"(available: {', '.join(sorted(PROVIDERS))})"
        ) from None
    return provider(settings)


@lru_cache
def get_generation_gateway() -> GenerationGateway:
    """Process-wide gateway used by the service."""
    return create_gateway()
