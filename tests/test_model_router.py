import pytest

from collectai.exceptions import BackendUnavailable, ServiceUnavailable, ValidationError
from collectai.services.model_router import LOW_COST, PREMIUM, ModelRouter, select_backend
from collectai.services.providers.base import GenerationOptions

from conftest import FakeBackend


class TestSelectBackend:
    def test_simple_goes_low_cost(self):
        assert select_backend("simple") == LOW_COST
        assert select_backend("simple", "high") == LOW_COST

    def test_low_priority_complex_goes_low_cost(self):
        assert select_backend("complex", "low") == LOW_COST

    def test_complex_goes_premium(self):
        assert select_backend("complex") == PREMIUM
        assert select_backend("complex", "medium") == PREMIUM
        assert select_backend("complex", "high") == PREMIUM

    def test_negotiation_always_premium(self):
        assert select_backend("negotiation", "low") == PREMIUM

    def test_unknown_complexity_rejected(self):
        with pytest.raises(ValidationError):
            select_backend("trivial")


@pytest.mark.asyncio
class TestRouteAndGenerate:
    async def test_simple_task_uses_low_cost_backend(self):
        premium, low = FakeBackend("openai"), FakeBackend("google", content="hi")
        router = ModelRouter(premium, low)

        result = await router.route_and_generate("simple", "Write a reminder")

        assert result.content == "hi"
        assert result.model == "google-model"
        assert len(low.calls) == 1
        assert premium.calls == []

    async def test_priority_is_read_from_context(self):
        premium, low = FakeBackend("openai"), FakeBackend("google")
        router = ModelRouter(premium, low)

        await router.route_and_generate("complex", "Escalate", {"priority": "low"})

        assert len(low.calls) == 1
        assert premium.calls == []

    async def test_falls_back_once_on_primary_failure(self):
        premium = FakeBackend("openai", error=BackendUnavailable("openai", "boom"))
        low = FakeBackend("google", content="fallback text")
        router = ModelRouter(premium, low)

        result = await router.route_and_generate("negotiation", "Counter offer")

        assert result.content == "fallback text"
        assert len(premium.calls) == 1
        assert len(low.calls) == 1

    async def test_both_failing_raises_service_unavailable(self):
        premium = FakeBackend("openai", error=BackendUnavailable("openai"))
        low = FakeBackend("google", error=BackendUnavailable("google"))
        router = ModelRouter(premium, low)

        with pytest.raises(ServiceUnavailable):
            await router.route_and_generate("simple", "Hello")

        assert len(low.calls) == 1
        assert len(premium.calls) == 1

    async def test_timeout_counts_as_backend_failure(self):
        low = FakeBackend("google", delay=0.5)
        premium = FakeBackend("openai", content="premium text")
        router = ModelRouter(premium, low, timeout=0.05)

        result = await router.route_and_generate("simple", "Hello")

        assert result.content == "premium text"

    async def test_unexpected_errors_are_not_swallowed(self):
        low = FakeBackend("google", error=RuntimeError("bug"))
        premium = FakeBackend("openai")
        router = ModelRouter(premium, low)

        with pytest.raises(RuntimeError):
            await router.route_and_generate("simple", "Hello")
        assert premium.calls == []

    async def test_empty_prompt_rejected_before_any_call(self):
        premium, low = FakeBackend("openai"), FakeBackend("google")
        router = ModelRouter(premium, low)

        with pytest.raises(ValidationError):
            await router.route_and_generate("simple", "   ")
        assert premium.calls == [] and low.calls == []

    async def test_invalid_options_rejected(self):
        router = ModelRouter(FakeBackend("openai"), FakeBackend("google"))

        with pytest.raises(ValidationError):
            await router.route_and_generate(
                "simple", "Hello", options=GenerationOptions(language="fr")
            )
        with pytest.raises(ValidationError):
            await router.route_and_generate(
                "simple", "Hello", options=GenerationOptions(temperature=3.0)
            )

    async def test_options_passed_through(self):
        low = FakeBackend("google")
        router = ModelRouter(FakeBackend("openai"), low)
        options = GenerationOptions(language="ar", tone="friendly", max_tokens=200)

        await router.route_and_generate("simple", "Hello", {"case": {"id": "c1"}}, options)

        call = low.calls[0]
        assert call["options"] is options
        assert call["context"] == {"case": {"id": "c1"}}


class TestFromSettings:
    def test_builds_configured_backends(self, test_settings):
        router = ModelRouter.from_settings(test_settings)
        assert router._backends[PREMIUM].get_backend_name() == "openai"
        assert router._backends[LOW_COST].get_backend_name() == "google"
        assert router._timeout == test_settings.backend_timeout_seconds
