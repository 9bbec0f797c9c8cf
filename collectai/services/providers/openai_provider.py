import logging

from openai import AsyncOpenAI, OpenAIError

from collectai.exceptions import BackendUnavailable
from collectai.services.providers.base import (
    BaseAIBackend,
    GeneratedContent,
    GenerationOptions,
    build_system_prompt,
    estimate_cost,
)

logger = logging.getLogger(__name__)


class OpenAIBackend(BaseAIBackend):
    """Premium backend (GPT-4 Turbo)."""

    def __init__(self, api_key: str, model: str, pricing: dict, timeout: float = 30.0):
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout)
        self._model = model
        self._pricing = pricing

    def get_backend_name(self) -> str:
        return "openai"

    async def generate(
        self,
        prompt: str,
        context: dict,
        options: GenerationOptions,
    ) -> GeneratedContent:
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": build_system_prompt(context, options)},
                    {"role": "user", "content": prompt},
                ],
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        except OpenAIError as e:
            logger.error("OpenAI API error: %s", e)
            raise BackendUnavailable("openai", str(e)) from e

        if not completion.choices:
            raise BackendUnavailable("openai", "response contained no choices")

        usage = completion.usage
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        tokens_used = getattr(usage, "total_tokens", 0) or 0

        return GeneratedContent(
            content=completion.choices[0].message.content or "",
            tokens_used=tokens_used,
            model=self._model,
            cost=estimate_cost(tokens_used, self._pricing),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
