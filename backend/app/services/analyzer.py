"""
Analysis orchestrator: sends a startup report to the active LLM profile.

Resolves the active profile, builds the prompt, dispatches it through the
provider adapter with retry/backoff, degrades to a fallback model after
sustained rate limiting, and raises classified errors from ``app.errors``.
"""

import logging
import math
import random
from dataclasses import dataclass
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Optional

import httpx
import orjson
from fastapi import Request

from app.config import settings
from app.errors import (
    MissingApiKeyError,
    MissingBaseUrlError,
    MissingModelError,
    MissingProfileError,
    RateLimitedError,
    UnexpectedResponseShapeError,
    classify_failure,
    describe,
)
from app.models.profile import Profile
from app.providers.base import BaseAdapter
from app.providers.presets import (
    DEFAULT_MODELS,
    ProviderId,
    get_preset,
    infer_provider,
    pick_fallback_model,
    provider_family,
)
from app.providers.registry import create_adapter
from app.services.profiles import ProfileManager
from app.services.prompts import Prompt, build_full_prompt, build_prompt
from app.utils.cancellation import CancellationToken
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


@dataclass
class RetryPolicy:
    """Backoff parameters, in milliseconds."""

    base_ms: int = 600
    jitter_ms: int = 250
    max_ms: int = 30000

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            base_ms=settings.backoff_base_ms,
            jitter_ms=settings.backoff_jitter_ms,
            max_ms=settings.backoff_max_ms,
        )

    def compute_backoff(self, attempt: int, retry_after: float = 0.0) -> int:
        """
        Delay before the attempt following ``attempt`` (1-based).

        A positive server-provided retry-after (seconds) wins over the
        exponential schedule. Both are capped at ``max_ms``.
        """
        if retry_after and retry_after > 0:
            return int(min(self.max_ms, retry_after * 1000))
        jitter = random.randrange(self.jitter_ms) if self.jitter_ms > 0 else 0
        return int(min(self.max_ms, self.base_ms * 2 ** (attempt - 1) + jitter))


@dataclass
class RequestContext:
    """Everything resolved before the first network attempt."""

    profile: Profile
    provider: ProviderId
    adapter: BaseAdapter
    model: str
    prompt: Prompt


def parse_retry_after(response: Optional[httpx.Response]) -> float:
    """Seconds from a Retry-After header (delta-seconds or HTTP date); 0 if absent."""
    if response is None:
        return 0.0
    value = response.headers.get("retry-after")
    if not value:
        return 0.0
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return 0.0
    if when is None:
        return 0.0
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - utcnow()).total_seconds())


def provider_error_message(response: httpx.Response) -> str:
    """Provider-reported error text: ``error.message`` from a JSON body, else the raw body."""
    try:
        text = response.text
    except (httpx.HTTPError, UnicodeDecodeError):
        return ""
    try:
        body = orjson.loads(text)
    except orjson.JSONDecodeError:
        return text
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("message"):
            return str(body["message"])
    return text


def _safe_json(response: httpx.Response) -> Any:
    try:
        return orjson.loads(response.content)
    except orjson.JSONDecodeError:
        return {}


class AnalysisOrchestrator:
    """
    Sends startup reports to the active LLM profile.

    Each ``analyze`` call is independent: it reads the profile once, owns its
    own attempt counter and HTTP client, and shares nothing mutable with other
    calls in flight.
    """

    def __init__(
        self,
        manager: ProfileManager,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        default_attempts: Optional[int] = None,
        fallback_attempts: Optional[int] = None,
        temperature: Optional[float] = None,
        max_prompt_bytes: Optional[int] = None,
        top_n: Optional[int] = None,
    ):
        self.manager = manager
        self.transport = transport
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.timeout = timeout if timeout is not None else float(settings.provider_timeout)
        self.default_attempts = default_attempts or settings.retry_attempts
        self.fallback_attempts = fallback_attempts or settings.fallback_attempts
        self.temperature = temperature if temperature is not None else settings.temperature
        self.max_prompt_bytes = max_prompt_bytes or settings.prompt_max_bytes
        self.top_n = top_n or settings.prompt_top_n

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def prepare(self, report: Any, full_json: bool = False) -> RequestContext:
        """
        Resolve the active profile and build the prompt. No I/O.

        Raises:
            MissingProfileError, MissingBaseUrlError, MissingApiKeyError,
            MissingModelError: when the profile cannot be used
        """
        profile = self.manager.get_active_profile()
        if profile is None:
            raise MissingProfileError()

        provider = ProviderId(profile.provider) if profile.provider else infer_provider(profile.base_url)
        if not profile.base_url:
            raise MissingBaseUrlError()
        if not profile.api_key:
            raise MissingApiKeyError()
        if not profile.model and provider == ProviderId.CUSTOM:
            raise MissingModelError()

        model = profile.model or self._default_model(provider)
        if full_json:
            prompt = build_full_prompt(report)
        else:
            prompt = build_prompt(report, max_bytes=self.max_prompt_bytes, top_n=self.top_n)

        return RequestContext(
            profile=profile,
            provider=provider,
            adapter=create_adapter(provider, profile.base_url, profile.api_key),
            model=model,
            prompt=prompt,
        )

    @staticmethod
    def _default_model(provider: ProviderId) -> str:
        preset = get_preset(provider)
        if preset and preset.model:
            return preset.model
        return DEFAULT_MODELS[provider_family(provider)]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def analyze(
        self,
        report: Any,
        on_status: Optional[StatusCallback] = None,
        cancellation_token: Optional[CancellationToken] = None,
        full_json: bool = False,
        attempts: Optional[int] = None,
        allow_fallback: bool = False,
    ) -> str:
        """
        Analyze a startup report with the active profile.

        Args:
            report: The /actuator/startup document (dict or JSON text)
            on_status: Called with a human-readable line on every retry wait
                and fallback switch
            cancellation_token: Stops further attempts and aborts waits
            full_json: Send the whole report instead of the compact prompt
            attempts: Attempt budget for the primary model
            allow_fallback: Retry once with a fallback model after sustained 429s

        Returns:
            The narrative text returned by the model

        Raises:
            AnalyzerError: classified failure (see app.errors)
        """
        token = cancellation_token or CancellationToken()
        token.raise_if_cancelled()
        context = self.prepare(report, full_json=full_json)
        return await self.run(
            context,
            on_status=on_status,
            cancellation_token=token,
            attempts=attempts,
            allow_fallback=allow_fallback,
        )

    async def run(
        self,
        context: RequestContext,
        on_status: Optional[StatusCallback] = None,
        cancellation_token: Optional[CancellationToken] = None,
        attempts: Optional[int] = None,
        allow_fallback: bool = False,
    ) -> str:
        """Dispatch a prepared request, with optional fallback-model degradation."""
        token = cancellation_token or CancellationToken()
        notify = on_status or (lambda message: None)
        budget = attempts or self.default_attempts

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                return await self._dispatch(client, context, context.model, budget, notify, token)
            except RateLimitedError:
                if not allow_fallback:
                    raise
                fallback = pick_fallback_model(context.provider, context.model)
                if not fallback:
                    raise
                logger.warning(
                    f"Model '{context.model}' stayed rate limited; falling back to '{fallback}'"
                )
                notify(f"Rate limited. Trying fallback model: {fallback} ...")
                return await self._dispatch(
                    client, context, fallback, self.fallback_attempts, notify, token
                )

    async def _dispatch(
        self,
        client: httpx.AsyncClient,
        context: RequestContext,
        model: str,
        attempts: int,
        notify: StatusCallback,
        token: CancellationToken,
    ) -> str:
        """Bounded retry loop for one model. Attempts are strictly sequential."""
        adapter = context.adapter
        base_url = context.profile.base_url

        for attempt in range(1, attempts + 1):
            token.raise_if_cancelled()
            request = adapter.build_request(
                client,
                model=model,
                system=context.prompt.system,
                user=context.prompt.user,
                temperature=self.temperature,
            )

            response: Optional[httpx.Response] = None
            transport_error: Optional[Exception] = None
            try:
                response = await client.send(request)
            except httpx.RequestError as e:
                # Connect/read failures, undecodable bodies, redirect loops: no usable response
                transport_error = e
                logger.warning(f"Attempt {attempt}/{attempts} to {context.provider} failed: {describe(e)}")

            if response is not None and response.is_success:
                content = adapter.extract_content(_safe_json(response))
                if not content:
                    raise UnexpectedResponseShapeError(
                        f"Unexpected {adapter.family.value} response shape from {context.provider}"
                    )
                logger.info(f"Analysis received from {context.provider} ({model}) on attempt {attempt}")
                return content

            status = response.status_code if response is not None else 0
            provider_message = (
                provider_error_message(response) if response is not None else describe(transport_error)
            )
            error = classify_failure(status, provider_message, base_url)

            if error.retryable and attempt < attempts:
                retry_after = parse_retry_after(response) if status == 429 else 0.0
                delay_ms = self.retry_policy.compute_backoff(attempt, retry_after)
                notify(
                    f"{self._retry_label(status)}, retrying in {self._seconds(delay_ms)}s "
                    f"(attempt {attempt + 1}/{attempts})..."
                )
                await self._wait(delay_ms, token)
                continue

            logger.error(
                f"LLM request to {context.provider} ({model}) failed: "
                f"status={status or 'network'}, error={error.provider_message}"
            )
            raise error

        # Only reachable with a non-positive attempt budget
        raise classify_failure(0, "retries exhausted", base_url)

    @staticmethod
    def _retry_label(status: int) -> str:
        if status == 429:
            return "Rate limited"
        return f"Server error {status}" if status else "Network error"

    @staticmethod
    def _seconds(delay_ms: int) -> int:
        return math.ceil(delay_ms / 1000)

    async def _wait(self, delay_ms: int, token: CancellationToken) -> None:
        """Backoff wait that ends early with CanceledError when the token fires."""
        logger.debug(f"Backing off for {delay_ms}ms")
        await token.sleep(delay_ms / 1000)


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    """FastAPI dependency: the orchestrator created at startup."""
    return request.app.state.orchestrator
