import asyncio
import logging

import httpx
from google import genai
from google.genai import errors, types

from collectai.exceptions import BackendUnavailable
from collectai.services.providers.base import (
    BaseAIBackend,
    GeneratedContent,
    GenerationOptions,
    build_system_prompt,
    estimate_cost,
)

logger = logging.getLogger(__name__)


class GeminiBackend(BaseAIBackend):
    """Low-cost backend (Gemini Flash)."""

    def __init__(self, api_key: str, model: str, pricing: dict):
        self._client = genai.Client(api_key=api_key) if api_key else None
        self._model = model
        self._pricing = pricing

    def get_backend_name(self) -> str:
        return "google"

    async def generate(
        self,
        prompt: str,
        context: dict,
        options: GenerationOptions,
    ) -> GeneratedContent:
        if self._client is None:
            raise BackendUnavailable("google", "API key not configured")

        config = types.GenerateContentConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_tokens,
            system_instruction=build_system_prompt(context, options),
        )

        # google-genai generate_content is synchronous --
        # run in executor to avoid blocking the event loop
        loop = asyncio.get_running_loop()

        def _sync_generate():
            return self._client.models.generate_content(
                model=self._model,
                contents=f"User Request: {prompt}",
                config=config,
            )

        try:
            response = await loop.run_in_executor(None, _sync_generate)
        except (errors.APIError, httpx.HTTPError) as e:
            logger.error("Gemini API error: %s", e)
            raise BackendUnavailable("google", str(e)) from e

        text = response.text
        if not text:
            raise BackendUnavailable("google", "response contained no text")

        usage = getattr(response, "usage_metadata", None)
        prompt_tokens = getattr(usage, "prompt_token_count", 0) or 0
        completion_tokens = getattr(usage, "candidates_token_count", 0) or 0
        tokens_used = getattr(usage, "total_token_count", 0) or 0

        return GeneratedContent(
            content=text,
            tokens_used=tokens_used,
            model=self._model,
            cost=estimate_cost(tokens_used, self._pricing),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
