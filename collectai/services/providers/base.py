import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from collectai.exceptions import ValidationError

LANGUAGES = ("en", "ar")
TONES = ("friendly", "formal", "urgent")


@dataclass
class GenerationOptions:
    temperature: float = 0.7
    max_tokens: int = 1000
    language: str = "en"
    tone: Optional[str] = None

    def validate(self) -> None:
        if not 0.0 <= self.temperature <= 2.0:
            raise ValidationError(f"temperature must be between 0 and 2, got {self.temperature}")
        if self.max_tokens <= 0:
            raise ValidationError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.language not in LANGUAGES:
            raise ValidationError(f"Unsupported language: {self.language}")
        if self.tone is not None and self.tone not in TONES:
            raise ValidationError(f"Unsupported tone: {self.tone}")


@dataclass
class GeneratedContent:
    """Normalized result from any AI backend."""
    content: str
    tokens_used: int
    model: str
    cost: float = 0.0
    prompt_tokens: int = 0
    completion_tokens: int = 0


def estimate_cost(tokens: int, pricing: dict) -> float:
    """Approximate USD cost from a single token total.

    Input and output tokens are priced at their average because backends are
    billed per total here, not per direction.
    """
    if not pricing:
        return 0.0
    per_tokens = pricing.get("per_tokens", 1_000_000)
    avg_price = (pricing.get("input", 0.0) + pricing.get("output", 0.0)) / 2
    return (tokens / per_tokens) * avg_price


def build_system_prompt(context: dict, options: GenerationOptions) -> str:
    language_line = (
        "Respond in Arabic with proper formal tone"
        if options.language == "ar"
        else "Respond in English"
    )
    return (
        "You are a debt collection specialist for recruitment agencies in the GCC region.\n\n"
        "Cultural considerations:\n"
        "- Maintain respectful, relationship-focused tone\n"
        f"- {language_line}\n"
        "- Avoid aggressive language\n"
        "- Reference mutual business interests\n"
        "- Be aware of Islamic banking principles (no interest charges in Saudi Arabia)\n\n"
        f"Context: {json.dumps(context, indent=2, default=str)}\n\n"
        f"Generate content with tone: {options.tone or 'professional'}"
    )


class BaseAIBackend(ABC):
    """A text generation backend the model router can dispatch to."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        context: dict,
        options: GenerationOptions,
    ) -> GeneratedContent:
        """Return generated content or raise BackendUnavailable."""
        ...

    @abstractmethod
    def get_backend_name(self) -> str:
        ...
