"""
Exception hierarchy for the analysis core.

Every failure raised by the profile manager or the request orchestrator is an
``AnalyzerError``. Terminal request failures carry the HTTP status and the
provider's own error text, and render into a message the UI can show as-is.

Usage:
    from app.errors import RateLimitedError

    try:
        text = await orchestrator.analyze(report)
    except RateLimitedError as e:
        print(e.status, e.provider_message)
"""

import re
from typing import Optional

OPENROUTER_PRIVACY_URL = "https://openrouter.ai/settings/privacy"

_DATA_POLICY_RE = re.compile(r"no endpoints found matching your data policy", re.IGNORECASE)


class AnalyzerError(Exception):
    """
    Base exception for all analysis errors.

    Attributes:
        retryable: Whether the orchestrator retries this failure locally
        user_message: Short description for logs and UI badges
    """

    retryable: bool = False
    user_message: str = "Analysis failed"


# ============================================================================
# Precondition Errors (raised before any network I/O)
# ============================================================================


class PreconditionError(AnalyzerError):
    """The active profile cannot be used to send a request."""

    user_message = "LLM profile is incomplete"


class MissingProfileError(PreconditionError):
    def __init__(self, message: str = "No active LLM profile"):
        super().__init__(message)


class MissingBaseUrlError(PreconditionError):
    def __init__(self, message: str = "Base URL is missing for the active profile"):
        super().__init__(message)


class MissingApiKeyError(PreconditionError):
    def __init__(self, message: str = "API Key is missing for the active profile"):
        super().__init__(message)


class MissingModelError(PreconditionError):
    def __init__(
        self,
        message: str = (
            "Model is missing for the OpenAI Compatible provider. "
            "Please specify a model in LLM Settings."
        ),
    ):
        super().__init__(message)


# ============================================================================
# Runtime Errors
# ============================================================================


class CanceledError(AnalyzerError):
    """The caller signaled the cancellation token."""

    user_message = "Analysis canceled"

    def __init__(self, message: str = "Canceled"):
        super().__init__(message)


class UnexpectedResponseShapeError(AnalyzerError):
    """
    The provider answered 2xx but the envelope held no text.

    Not retryable - this is a contract violation, not a transient fault.
    """

    user_message = "Unexpected LLM response"


class ProtectedProfileError(AnalyzerError):
    """Attempted deletion or mutation of the read-only default profile."""

    user_message = "The default profile is read-only"

    def __init__(self, message: str = "Cannot delete default profile"):
        super().__init__(message)


class RequestFailedError(AnalyzerError):
    """
    Terminal request failure.

    Attributes:
        status: HTTP status code, or 0 when no response was received
        provider_message: Error text reported by the provider (or transport)
    """

    user_message = "LLM request failed"

    def __init__(self, message: str, status: int = 0, provider_message: str = ""):
        super().__init__(message)
        self.status = status
        self.provider_message = provider_message


class RateLimitedError(RequestFailedError):
    """HTTP 429 after the attempt budget was spent."""

    retryable = True
    user_message = "Rate limited by the LLM provider"


class ServerError(RequestFailedError):
    """HTTP 5xx (or no response) after the attempt budget was spent."""

    retryable = True
    user_message = "LLM provider error"


# ============================================================================
# Classification
# ============================================================================


def friendly_message(status: int, provider_message: str, base_url: str = "") -> str:
    """Render a terminal failure with the status, provider text and a hint."""
    status_str = str(status) if status else "network"
    trimmed = (provider_message or "").strip()
    base = f"LLM request failed ({status_str}): {trimmed or 'Unknown error'}"

    if not status:
        return (
            base
            + "\nHint: This may be a network or CORS issue. Check the Base URL and "
            "that the provider is reachable from this machine."
        )
    if status in (401, 403):
        return (
            base
            + "\nHint: Check API key/organization permissions and that the selected "
            "model is allowed for your account."
        )
    if status == 404:
        if "openrouter" in (base_url or "").lower() and _DATA_POLICY_RE.search(trimmed):
            return (
                "LLM request failed (404): OpenRouter blocked this request due to your "
                "data policy. Enable “Free model publication” or pick a non-free model.\n"
                f"Action: Visit {OPENROUTER_PRIVACY_URL} to adjust your Data Policy.\n"
                f"Provider message: {trimmed}"
            )
        return (
            base
            + "\nHint: Verify the Base URL and Model. Some providers use different "
            "endpoints or model names."
        )
    if status == 429:
        return (
            base
            + "\nHint: You hit a rate limit. Wait and retry, switch to a lighter model, "
            "or try again later."
        )
    if status == 400:
        return (
            base
            + "\nHint: The provider rejected the request. Check your model name, base URL, "
            "and request size (try turning off “Send full JSON”)."
        )
    if 500 <= status <= 599:
        return (
            base
            + "\nHint: Provider error. Try again later; if it persists, change the model "
            "or provider."
        )
    return base


def classify_failure(
    status: int, provider_message: str, base_url: str = ""
) -> RequestFailedError:
    """Map a terminal status to the matching error class with a friendly message."""
    message = friendly_message(status, provider_message, base_url)
    if status == 429:
        error_class = RateLimitedError
    elif status == 0 or 500 <= status <= 599:
        error_class = ServerError
    else:
        error_class = RequestFailedError
    return error_class(message, status=status, provider_message=(provider_message or "").strip())


def describe(error: Optional[BaseException]) -> str:
    """Text for a transport exception, never empty."""
    if error is None:
        return "Network error"
    return str(error) or type(error).__name__
