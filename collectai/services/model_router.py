import asyncio
import logging
from typing import Optional

from collectai.config import Settings
from collectai.exceptions import BackendUnavailable, ServiceUnavailable, ValidationError
from collectai.services.providers.base import (
    BaseAIBackend,
    GeneratedContent,
    GenerationOptions,
)

logger = logging.getLogger(__name__)

COMPLEXITIES = ("simple", "complex", "negotiation")

LOW_COST = "low_cost"
PREMIUM = "premium"


def select_backend(complexity: str, priority: Optional[str] = None) -> str:
    """Pick the backend tier for a task.

    Simple tasks and low-priority complex tasks go to the low-cost backend;
    everything else (negotiations, other complex work) goes to premium.
    """
    if complexity not in COMPLEXITIES:
        raise ValidationError(f"Unknown task complexity: {complexity}")
    if complexity == "simple" or (complexity == "complex" and priority == "low"):
        return LOW_COST
    return PREMIUM


class ModelRouter:
    """Routes generation requests between a premium and a low-cost backend."""

    def __init__(
        self,
        premium: BaseAIBackend,
        low_cost: BaseAIBackend,
        timeout: float = 30.0,
    ):
        self._backends = {PREMIUM: premium, LOW_COST: low_cost}
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModelRouter":
        from collectai.services.providers.gemini_provider import GeminiBackend
        from collectai.services.providers.openai_provider import OpenAIBackend

        pricing = settings.pricing_config
        premium = OpenAIBackend(
            api_key=settings.openai_api_key.get_secret_value(),
            model=settings.premium_model,
            pricing=pricing.get("openai", {}).get(settings.premium_model, {}),
            timeout=settings.backend_timeout_seconds,
        )
        low_cost = GeminiBackend(
            api_key=settings.gemini_api_key.get_secret_value(),
            model=settings.low_cost_model,
            pricing=pricing.get("google", {}).get(settings.low_cost_model, {}),
        )
        return cls(premium, low_cost, timeout=settings.backend_timeout_seconds)

    async def _invoke(
        self,
        backend: BaseAIBackend,
        prompt: str,
        context: dict,
        options: GenerationOptions,
    ) -> GeneratedContent:
        try:
            return await asyncio.wait_for(
                backend.generate(prompt, context, options),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise BackendUnavailable(
                backend.get_backend_name(),
                f"timed out after {self._timeout:.0f}s",
            ) from e

    async def route_and_generate(
        self,
        complexity: str,
        prompt: str,
        context: Optional[dict] = None,
        options: Optional[GenerationOptions] = None,
    ) -> GeneratedContent:
        context = context or {}
        options = options or GenerationOptions()
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt must not be empty")
        options.validate()

        tier = select_backend(complexity, context.get("priority"))
        fallback_tier = PREMIUM if tier == LOW_COST else LOW_COST
        primary = self._backends[tier]
        fallback = self._backends[fallback_tier]

        logger.info(
            "Routing %s task to %s (%s)",
            complexity, primary.get_backend_name(), tier,
        )
        try:
            return await self._invoke(primary, prompt, context, options)
        except BackendUnavailable as e:
            logger.error("Primary model failed (%s): %s", primary.get_backend_name(), e)

        logger.warning("Falling back to %s", fallback.get_backend_name())
        try:
            return await self._invoke(fallback, prompt, context, options)
        except BackendUnavailable as e:
            logger.error("Both AI models failed: %s", e)
            raise ServiceUnavailable() from e
