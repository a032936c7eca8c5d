"""
Tests for the analysis orchestrator: preconditions, retry/backoff,
cancellation, fallback and error classification.
"""

import asyncio

import httpx
import orjson
import pytest

from app.errors import (
    CanceledError,
    MissingApiKeyError,
    MissingBaseUrlError,
    MissingModelError,
    RateLimitedError,
    RequestFailedError,
    ServerError,
    UnexpectedResponseShapeError,
)
from app.providers.presets import ProviderId
from app.services.analyzer import AnalysisOrchestrator, RetryPolicy, parse_retry_after
from app.utils.cancellation import CancellationToken

OPENAI_OK = {"choices": [{"message": {"role": "assistant", "content": "Startup looks fine."}}]}
ANTHROPIC_OK = {"content": [{"type": "text", "text": "Context refresh dominates."}]}


class FakeLLM:
    """Serves queued responses and records every request it receives."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item()
        if isinstance(item, int):
            return httpx.Response(item, json={"error": {"message": f"status {item}"}})
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json=item)

    @property
    def models(self):
        return [orjson.loads(r.content)["model"] for r in self.requests]


def garbled_gzip(status):
    """Response whose body claims gzip encoding but is not; decoding it fails."""
    return lambda: httpx.Response(status, headers={"Content-Encoding": "gzip"}, content=b"not gzip")


def make_orchestrator(manager, fake, **kwargs):
    kwargs.setdefault("retry_policy", RetryPolicy(base_ms=1, jitter_ms=0, max_ms=5))
    return AnalysisOrchestrator(manager, transport=httpx.MockTransport(fake), **kwargs)


@pytest.fixture
def openai_profile(manager):
    manager.ensure_default_profile()
    profile = manager.save_profile({
        "name": "OpenAI", "provider": "openai", "apiKey": "sk-test", "model": "gpt-4.1",
    })
    manager.set_active_profile_id(profile.id)
    return profile


@pytest.fixture
def openrouter_default(manager):
    manager.ensure_default_profile()
    return manager.get_active_profile()


# =============================================================================
# Backoff
# =============================================================================

class TestBackoff:
    def test_exponential_without_jitter(self):
        policy = RetryPolicy(base_ms=600, jitter_ms=0, max_ms=30000)
        assert [policy.compute_backoff(a) for a in (1, 2, 3)] == [600, 1200, 2400]

    def test_jitter_is_bounded(self):
        policy = RetryPolicy(base_ms=600, jitter_ms=250, max_ms=30000)
        for _ in range(50):
            assert 600 <= policy.compute_backoff(1) < 850

    def test_capped(self):
        policy = RetryPolicy(base_ms=600, jitter_ms=0, max_ms=30000)
        assert policy.compute_backoff(10) == 30000

    def test_retry_after_wins_but_is_clamped(self):
        policy = RetryPolicy()
        assert policy.compute_backoff(1, retry_after=2) == 2000
        assert policy.compute_backoff(1, retry_after=120) == 30000

    def test_parse_retry_after(self):
        assert parse_retry_after(httpx.Response(429, headers={"Retry-After": "3"})) == 3.0
        assert parse_retry_after(httpx.Response(429, headers={"Retry-After": "soon"})) == 0.0
        assert parse_retry_after(httpx.Response(429)) == 0.0
        assert parse_retry_after(None) == 0.0
        past = "Wed, 21 Oct 2015 07:28:00 GMT"
        assert parse_retry_after(httpx.Response(429, headers={"Retry-After": past})) == 0.0


# =============================================================================
# Preconditions
# =============================================================================

class TestPreconditions:
    def test_missing_api_key(self, manager, sample_report):
        manager.ensure_default_profile()
        profile = manager.save_profile({"name": "NoKey", "provider": "openai"})
        manager.set_active_profile_id(profile.id)
        fake = FakeLLM(OPENAI_OK)
        with pytest.raises(MissingApiKeyError):
            make_orchestrator(manager, fake).prepare(sample_report)
        assert fake.requests == []

    def test_missing_base_url(self, manager, sample_report):
        profile = manager.save_profile({"name": "Custom", "provider": "custom", "apiKey": "k", "model": "m"})
        manager.set_active_profile_id(profile.id)
        with pytest.raises(MissingBaseUrlError):
            make_orchestrator(manager, FakeLLM(OPENAI_OK)).prepare(sample_report)

    def test_custom_provider_requires_model(self, manager, sample_report):
        profile = manager.save_profile({
            "name": "Local", "provider": "custom", "baseUrl": "http://localhost:8080/v1/chat/completions", "apiKey": "k",
        })
        manager.set_active_profile_id(profile.id)
        with pytest.raises(MissingModelError):
            make_orchestrator(manager, FakeLLM(OPENAI_OK)).prepare(sample_report)

    def test_known_provider_defaults_model(self, manager, sample_report):
        profile = manager.save_profile({"name": "OpenAI", "provider": "openai", "apiKey": "k"})
        manager.set_active_profile_id(profile.id)
        context = make_orchestrator(manager, FakeLLM(OPENAI_OK)).prepare(sample_report)
        assert context.model == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_analyze_fails_before_any_request(self, manager, sample_report):
        profile = manager.save_profile({"name": "NoKey", "provider": "openai"})
        manager.set_active_profile_id(profile.id)
        fake = FakeLLM(OPENAI_OK)
        with pytest.raises(MissingApiKeyError):
            await make_orchestrator(manager, fake).analyze(sample_report)
        assert fake.requests == []


# =============================================================================
# Dispatch
# =============================================================================

class TestDispatch:
    @pytest.mark.asyncio
    async def test_openai_success(self, manager, openai_profile, sample_report):
        fake = FakeLLM(OPENAI_OK)
        text = await make_orchestrator(manager, fake).analyze(sample_report)
        assert text == "Startup looks fine."
        assert len(fake.requests) == 1
        request = fake.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test"
        body = orjson.loads(request.content)
        assert body["model"] == "gpt-4.1"
        assert "Total steps: 4" in body["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_anthropic_success(self, manager, sample_report):
        profile = manager.save_profile({"name": "Claude", "provider": "anthropic", "apiKey": "sk-ant"})
        manager.set_active_profile_id(profile.id)
        fake = FakeLLM(ANTHROPIC_OK)
        text = await make_orchestrator(manager, fake).analyze(sample_report)
        assert text == "Context refresh dominates."
        assert fake.requests[0].headers["x-api-key"] == "sk-ant"

    @pytest.mark.asyncio
    async def test_full_json_sends_whole_report(self, manager, openai_profile, sample_report):
        fake = FakeLLM(OPENAI_OK)
        await make_orchestrator(manager, fake).analyze(sample_report, full_json=True)
        user = orjson.loads(fake.requests[0].content)["messages"][1]["content"]
        assert orjson.dumps(sample_report).decode() in user

    @pytest.mark.asyncio
    async def test_retry_on_429_then_success(self, manager, openai_profile, sample_report):
        fake = FakeLLM(429, 429, OPENAI_OK)
        orchestrator = make_orchestrator(manager, fake)
        waits = []
        original_wait = orchestrator._wait

        async def recording_wait(delay_ms, token):
            waits.append(delay_ms)
            await original_wait(delay_ms, token)

        orchestrator._wait = recording_wait
        statuses = []
        text = await orchestrator.analyze(sample_report, on_status=statuses.append, attempts=3)

        assert text == "Startup looks fine."
        assert len(fake.requests) == 3
        assert len(waits) == 2
        assert len(statuses) == 2
        assert statuses[0].startswith("Rate limited, retrying in")
        assert "(attempt 2/3)" in statuses[0]
        assert "(attempt 3/3)" in statuses[1]

    @pytest.mark.asyncio
    async def test_retry_after_header_is_used(self, manager, openai_profile, sample_report):
        limited = httpx.Response(429, headers={"Retry-After": "2"}, json={"error": {"message": "slow down"}})
        fake = FakeLLM(limited, OPENAI_OK)
        orchestrator = make_orchestrator(manager, fake, retry_policy=RetryPolicy(base_ms=1, jitter_ms=0))
        waits = []

        async def recording_wait(delay_ms, token):
            waits.append(delay_ms)

        orchestrator._wait = recording_wait
        statuses = []
        await orchestrator.analyze(sample_report, on_status=statuses.append)
        assert waits == [2000]
        assert "retrying in 2s" in statuses[0]

    @pytest.mark.asyncio
    async def test_server_error_retried(self, manager, openai_profile, sample_report):
        fake = FakeLLM(503, OPENAI_OK)
        statuses = []
        text = await make_orchestrator(manager, fake).analyze(sample_report, on_status=statuses.append)
        assert text == "Startup looks fine."
        assert statuses[0].startswith("Server error 503, retrying in")

    @pytest.mark.asyncio
    async def test_transport_failure_treated_as_server_error(self, manager, openai_profile, sample_report):
        fake = FakeLLM(httpx.ConnectError("connection refused"), OPENAI_OK)
        statuses = []
        text = await make_orchestrator(manager, fake).analyze(sample_report, on_status=statuses.append)
        assert text == "Startup looks fine."
        assert statuses[0].startswith("Network error, retrying in")

    @pytest.mark.asyncio
    async def test_transport_failure_exhausted(self, manager, openai_profile, sample_report):
        fake = FakeLLM(httpx.ConnectError("connection refused"))
        with pytest.raises(ServerError) as exc_info:
            await make_orchestrator(manager, fake).analyze(sample_report, attempts=2)
        assert exc_info.value.status == 0
        assert "LLM request failed (network): connection refused" in str(exc_info.value)
        assert len(fake.requests) == 2

    @pytest.mark.asyncio
    async def test_undecodable_body_retried_as_network_error(self, manager, openai_profile, sample_report):
        fake = FakeLLM(garbled_gzip(200), OPENAI_OK)
        statuses = []
        text = await make_orchestrator(manager, fake).analyze(sample_report, on_status=statuses.append)
        assert text == "Startup looks fine."
        assert statuses[0].startswith("Network error, retrying in")
        assert len(fake.requests) == 2

    @pytest.mark.asyncio
    async def test_undecodable_body_exhausted(self, manager, openai_profile, sample_report):
        fake = FakeLLM(garbled_gzip(502))
        with pytest.raises(ServerError) as exc_info:
            await make_orchestrator(manager, fake).analyze(sample_report, attempts=2)
        assert exc_info.value.status == 0
        assert "LLM request failed (network)" in str(exc_info.value)
        assert len(fake.requests) == 2

    @pytest.mark.asyncio
    async def test_redirect_loop_is_classified(self, manager, openai_profile, sample_report):
        fake = FakeLLM(httpx.TooManyRedirects("Exceeded maximum allowed redirects."))
        with pytest.raises(ServerError) as exc_info:
            await make_orchestrator(manager, fake).analyze(sample_report, attempts=1)
        assert exc_info.value.status == 0
        assert "Exceeded maximum allowed redirects" in exc_info.value.provider_message

    @pytest.mark.asyncio
    async def test_server_error_exhausted(self, manager, openai_profile, sample_report):
        fake = FakeLLM(500)
        with pytest.raises(ServerError) as exc_info:
            await make_orchestrator(manager, fake).analyze(sample_report, attempts=3)
        assert exc_info.value.status == 500
        assert len(fake.requests) == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, manager, openai_profile, sample_report):
        fake = FakeLLM(httpx.Response(401, json={"error": {"message": "Invalid API key"}}))
        with pytest.raises(RequestFailedError) as exc_info:
            await make_orchestrator(manager, fake).analyze(sample_report)
        error = exc_info.value
        assert not isinstance(error, (RateLimitedError, ServerError))
        assert error.status == 401
        assert error.provider_message == "Invalid API key"
        assert "LLM request failed (401): Invalid API key" in str(error)
        assert "Check API key" in str(error)
        assert len(fake.requests) == 1

    @pytest.mark.asyncio
    async def test_plain_text_error_body(self, manager, openai_profile, sample_report):
        fake = FakeLLM(httpx.Response(400, text="bad request body"))
        with pytest.raises(RequestFailedError) as exc_info:
            await make_orchestrator(manager, fake).analyze(sample_report)
        assert exc_info.value.provider_message == "bad request body"

    @pytest.mark.asyncio
    async def test_empty_choices_is_unexpected_shape(self, manager, openai_profile, sample_report):
        fake = FakeLLM({"choices": []}, OPENAI_OK)
        with pytest.raises(UnexpectedResponseShapeError):
            await make_orchestrator(manager, fake).analyze(sample_report)
        assert len(fake.requests) == 1

    @pytest.mark.asyncio
    async def test_non_json_success_is_unexpected_shape(self, manager, openai_profile, sample_report):
        fake = FakeLLM(httpx.Response(200, text="<html>gateway</html>"))
        with pytest.raises(UnexpectedResponseShapeError):
            await make_orchestrator(manager, fake).analyze(sample_report)


# =============================================================================
# Cancellation
# =============================================================================

class TestCancellation:
    @pytest.mark.asyncio
    async def test_already_cancelled_token(self, manager, openai_profile, sample_report):
        fake = FakeLLM(OPENAI_OK)
        token = CancellationToken()
        token.cancel()
        with pytest.raises(CanceledError):
            await make_orchestrator(manager, fake).analyze(sample_report, cancellation_token=token)
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_wait(self, manager, openai_profile, sample_report):
        fake = FakeLLM(429, OPENAI_OK)
        # Long enough that only cancellation can end the wait within the test
        orchestrator = make_orchestrator(
            manager, fake, retry_policy=RetryPolicy(base_ms=60000, jitter_ms=0, max_ms=60000)
        )
        token = CancellationToken()
        statuses = []

        def on_status(message):
            statuses.append(message)
            asyncio.get_running_loop().call_later(0.05, token.cancel)

        with pytest.raises(CanceledError):
            await asyncio.wait_for(
                orchestrator.analyze(sample_report, on_status=on_status, cancellation_token=token),
                timeout=5,
            )
        assert len(fake.requests) == 1
        assert len(statuses) == 1

    @pytest.mark.asyncio
    async def test_cancel_stops_fallback(self, manager, openrouter_default, sample_report):
        fake = FakeLLM(429)
        token = CancellationToken()

        def on_status(message):
            if message.startswith("Rate limited. Trying fallback"):
                token.cancel()

        with pytest.raises(CanceledError):
            await make_orchestrator(manager, fake).analyze(
                sample_report, on_status=on_status, cancellation_token=token,
                attempts=1, allow_fallback=True,
            )
        assert len(fake.requests) == 1


# =============================================================================
# Fallback
# =============================================================================

class TestFallback:
    @pytest.mark.asyncio
    async def test_sustained_429_without_opt_in(self, manager, openrouter_default, sample_report):
        fake = FakeLLM(429)
        with pytest.raises(RateLimitedError) as exc_info:
            await make_orchestrator(manager, fake).analyze(sample_report, attempts=1)
        assert exc_info.value.status == 429
        assert "You hit a rate limit" in str(exc_info.value)
        assert len(fake.requests) == 1

    @pytest.mark.asyncio
    async def test_fallback_model_after_sustained_429(self, manager, openrouter_default, sample_report):
        fake = FakeLLM(429)
        statuses = []
        with pytest.raises(RateLimitedError):
            await make_orchestrator(manager, fake).analyze(
                sample_report, on_status=statuses.append, attempts=1, allow_fallback=True,
            )
        primary = openrouter_default.model
        assert fake.models[0] == primary
        # one fallback dispatch with its own two-attempt budget
        assert fake.models[1:] == ["openai/gpt-4o-mini", "openai/gpt-4o-mini"]
        assert "Rate limited. Trying fallback model: openai/gpt-4o-mini ..." in statuses

    @pytest.mark.asyncio
    async def test_fallback_success(self, manager, openrouter_default, sample_report):
        fake = FakeLLM(429, OPENAI_OK)
        text = await make_orchestrator(manager, fake).analyze(sample_report, attempts=1, allow_fallback=True)
        assert text == "Startup looks fine."
        assert fake.models == [openrouter_default.model, "openai/gpt-4o-mini"]

    @pytest.mark.asyncio
    async def test_no_fallback_when_model_already_fallback(self, manager, sample_report):
        profile = manager.save_profile({"name": "OpenAI", "provider": "openai", "apiKey": "k", "model": "gpt-4o-mini"})
        manager.set_active_profile_id(profile.id)
        fake = FakeLLM(429)
        with pytest.raises(RateLimitedError):
            await make_orchestrator(manager, fake).analyze(sample_report, attempts=1, allow_fallback=True)
        assert len(fake.requests) == 1

    @pytest.mark.asyncio
    async def test_non_rate_limit_error_skips_fallback(self, manager, openrouter_default, sample_report):
        fake = FakeLLM(403)
        with pytest.raises(RequestFailedError):
            await make_orchestrator(manager, fake).analyze(sample_report, attempts=1, allow_fallback=True)
        assert len(fake.requests) == 1


# =============================================================================
# Concurrency
# =============================================================================

@pytest.mark.asyncio
async def test_concurrent_calls_are_independent(manager, openai_profile, sample_report):
    fake = FakeLLM(OPENAI_OK)
    orchestrator = make_orchestrator(manager, fake)
    results = await asyncio.gather(*(orchestrator.analyze(sample_report) for _ in range(3)))
    assert results == ["Startup looks fine."] * 3
    assert len(fake.requests) == 3


@pytest.mark.asyncio
async def test_profile_edit_mid_flight_does_not_affect_call(manager, openai_profile, sample_report):
    fake = FakeLLM(429, OPENAI_OK)
    orchestrator = make_orchestrator(manager, fake)

    def on_status(message):
        manager.save_profile({"id": openai_profile.id, "name": "Edited", "provider": "openai", "apiKey": "sk-new", "model": "other"})

    await orchestrator.analyze(sample_report, on_status=on_status)
    assert [r.headers["authorization"] for r in fake.requests] == ["Bearer sk-test", "Bearer sk-test"]
    assert fake.models == ["gpt-4.1", "gpt-4.1"]
