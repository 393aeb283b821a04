"""Chat-completion API wrapper and auth helpers."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Any

import httpx

from proposal_review.config import API_KEY_ENV_VAR, Settings

CHAT_COMPLETIONS_ENDPOINT = "/chat/completions"
MODELS_ENDPOINT = "/models"
DEFAULT_RETRY_BACKOFF_SECONDS = 0.5
DEFAULT_MAX_RETRY_DELAY_SECONDS = 60.0

logger = logging.getLogger(__name__)


class LLMAuthError(RuntimeError):
    """Raised when no API key is configured for the generation service."""


class ExternalServiceError(RuntimeError):
    """Raised when a generation service request fails."""

    def __init__(self, message: str, *, status_code: int | None, endpoint: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class LLMRateLimitError(ExternalServiceError):
    """Raised when rate limiting prevents request completion."""


class ReviewTimeoutError(TimeoutError):
    """Raised when the generation service does not answer within the timeout."""

    def __init__(self, message: str, *, timeout_seconds: float | None, endpoint: str) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
        self.endpoint = endpoint


@dataclass(frozen=True, slots=True)
class ChatCompletion:
    """Normalized first-choice reply from the chat completions API."""

    content: str
    model: str
    finish_reason: str | None
    prompt_tokens: int
    completion_tokens: int
    attempts: int
    latency_seconds: float


def _ensure_mapping(value: object, *, context: str) -> dict[str, Any]:
    """Ensure a response fragment is a JSON object."""
    if not isinstance(value, dict):
        raise ExternalServiceError(
            f"Expected JSON object for {context}.",
            status_code=None,
            endpoint=context,
        )
    return value


def _optional_int(payload: dict[str, Any], *, key: str) -> int:
    """Read a non-negative integer usage counter, defaulting to zero."""
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        return 0
    return value


def parse_chat_completion(
    payload: dict[str, Any],
    *,
    endpoint: str = CHAT_COMPLETIONS_ENDPOINT,
    requested_model: str = "",
    attempts: int = 1,
    latency_seconds: float = 0.0,
) -> ChatCompletion:
    """Extract the first choice's message content from a completion payload."""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ExternalServiceError(
            "Generation service returned no choices.",
            status_code=None,
            endpoint=endpoint,
        )
    first_choice = _ensure_mapping(choices[0], context=f"{endpoint} choices[0]")
    message = _ensure_mapping(first_choice.get("message"), context=f"{endpoint} message")
    content = message.get("content")
    if not isinstance(content, str):
        raise ExternalServiceError(
            "Generation service returned a choice without text content.",
            status_code=None,
            endpoint=endpoint,
        )

    usage = payload.get("usage")
    usage_payload = usage if isinstance(usage, dict) else {}
    model = payload.get("model")
    finish_reason = first_choice.get("finish_reason")
    return ChatCompletion(
        content=content,
        model=model if isinstance(model, str) and model else requested_model,
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
        prompt_tokens=_optional_int(usage_payload, key="prompt_tokens"),
        completion_tokens=_optional_int(usage_payload, key="completion_tokens"),
        attempts=attempts,
        latency_seconds=latency_seconds,
    )


def _is_retryable_status(status_code: int) -> bool:
    """Return whether a status code is retryable under policy."""
    return status_code == 429 or 500 <= status_code < 600


def _parse_retry_after_seconds(response: httpx.Response) -> float | None:
    """Parse Retry-After header as seconds if present and valid."""
    retry_after = response.headers.get("Retry-After")
    if retry_after is None:
        return None
    try:
        parsed_value = float(retry_after)
    except ValueError:
        return None
    if not math.isfinite(parsed_value) or parsed_value < 0:
        return None
    return parsed_value


def _compute_retry_delay_seconds(
    response: httpx.Response | None,
    *,
    attempt_number: int,
    max_delay_seconds: float = DEFAULT_MAX_RETRY_DELAY_SECONDS,
) -> float:
    """Compute retry delay from Retry-After header or exponential backoff, capped."""
    delay_seconds = DEFAULT_RETRY_BACKOFF_SECONDS * (2 ** (attempt_number - 1))
    if response is not None:
        retry_after_seconds = _parse_retry_after_seconds(response)
        if retry_after_seconds is not None:
            delay_seconds = retry_after_seconds
    return min(delay_seconds, max_delay_seconds)


async def _sleep_for_retry(seconds: float) -> None:
    """Sleep helper for retry delays (wrapped for deterministic tests)."""
    await asyncio.sleep(seconds)


def _raise_http_error(response: httpx.Response, endpoint: str) -> None:
    """Raise a typed error for a non-success API response."""
    message = (
        f"Generation service request failed with status {response.status_code} "
        f"for '{endpoint}'."
    )
    if response.status_code == 429:
        raise LLMRateLimitError(
            message,
            status_code=response.status_code,
            endpoint=endpoint,
        )
    raise ExternalServiceError(
        message,
        status_code=response.status_code,
        endpoint=endpoint,
    )


def _timeout_seconds(client: httpx.AsyncClient) -> float | None:
    """Return the client's read timeout for error reporting."""
    return client.timeout.read


def _max_retry_delay_seconds(client: httpx.AsyncClient) -> float:
    """Cap retry waits at the client's request timeout."""
    timeout_seconds = _timeout_seconds(client)
    if timeout_seconds is None:
        return DEFAULT_MAX_RETRY_DELAY_SECONDS
    return timeout_seconds


def _decode_json(response: httpx.Response, endpoint: str) -> dict[str, Any]:
    """Decode a JSON object body, mapping malformed bodies onto the service error."""
    try:
        payload = response.json()
    except ValueError as error:
        raise ExternalServiceError(
            "Generation service returned a non-JSON body.",
            status_code=response.status_code,
            endpoint=endpoint,
        ) from error
    return _ensure_mapping(payload, context=endpoint)


async def _post_with_retries(
    client: httpx.AsyncClient,
    endpoint: str,
    *,
    json_body: dict[str, Any],
    max_attempts: int,
) -> tuple[httpx.Response, int]:
    """POST with bounded retry for 429/5xx responses and transport failures."""
    max_delay_seconds = _max_retry_delay_seconds(client)
    for attempt_number in range(1, max_attempts + 1):
        logger.debug("POST %s attempt %d/%d", endpoint, attempt_number, max_attempts)
        try:
            response = await client.post(endpoint, json=json_body)
        except httpx.TimeoutException as error:
            raise ReviewTimeoutError(
                f"Generation service timed out for '{endpoint}'.",
                timeout_seconds=_timeout_seconds(client),
                endpoint=endpoint,
            ) from error
        except httpx.TransportError as error:
            if attempt_number >= max_attempts:
                raise ExternalServiceError(
                    f"Generation service request failed for '{endpoint}': {error}",
                    status_code=None,
                    endpoint=endpoint,
                ) from error
            delay_seconds = _compute_retry_delay_seconds(
                None, attempt_number=attempt_number, max_delay_seconds=max_delay_seconds
            )
            logger.warning(
                "Network error calling %s (%s); retrying in %.1fs", endpoint, error, delay_seconds
            )
            await _sleep_for_retry(delay_seconds)
            continue

        if response.status_code < 400:
            return response, attempt_number

        should_retry = _is_retryable_status(response.status_code) and attempt_number < max_attempts
        if not should_retry:
            _raise_http_error(response, endpoint)

        delay_seconds = _compute_retry_delay_seconds(
            response, attempt_number=attempt_number, max_delay_seconds=max_delay_seconds
        )
        logger.warning(
            "Status %d from %s; retrying in %.1fs", response.status_code, endpoint, delay_seconds
        )
        await _sleep_for_retry(delay_seconds)

    raise RuntimeError("Unexpected retry loop exit without a response.")


async def create_chat_completion(
    *,
    client: httpx.AsyncClient,
    prompt: str,
    model: str,
    temperature: float,
    max_attempts: int = 1,
) -> ChatCompletion:
    """Send one user-turn prompt and return the first choice's reply."""
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}.")
    json_body = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": temperature,
    }
    started = time.perf_counter()
    response, attempts = await _post_with_retries(
        client,
        CHAT_COMPLETIONS_ENDPOINT,
        json_body=json_body,
        max_attempts=max_attempts,
    )
    latency_seconds = time.perf_counter() - started

    return parse_chat_completion(
        _decode_json(response, CHAT_COMPLETIONS_ENDPOINT),
        requested_model=model,
        attempts=attempts,
        latency_seconds=latency_seconds,
    )


async def fetch_available_model_ids(*, client: httpx.AsyncClient) -> list[str]:
    """List model identifiers visible to the configured API key."""
    response = await _get_once(client, MODELS_ENDPOINT)
    payload = _decode_json(response, MODELS_ENDPOINT)
    rows = payload.get("data")
    if not isinstance(rows, list):
        raise ExternalServiceError(
            "Expected 'data' array in models response.",
            status_code=response.status_code,
            endpoint=MODELS_ENDPOINT,
        )
    return [row["id"] for row in rows if isinstance(row, dict) and isinstance(row.get("id"), str)]


async def _get_once(client: httpx.AsyncClient, endpoint: str) -> httpx.Response:
    """Perform a single GET, mapping failures onto the service error types."""
    try:
        response = await client.get(endpoint)
    except httpx.TimeoutException as error:
        raise ReviewTimeoutError(
            f"Generation service timed out for '{endpoint}'.",
            timeout_seconds=_timeout_seconds(client),
            endpoint=endpoint,
        ) from error
    except httpx.TransportError as error:
        raise ExternalServiceError(
            f"Generation service request failed for '{endpoint}': {error}",
            status_code=None,
            endpoint=endpoint,
        ) from error
    if response.status_code >= 400:
        _raise_http_error(response, endpoint)
    return response


def get_api_key(settings: Settings) -> str:
    """Return the configured API key and fail fast if missing."""
    if not settings.api_key:
        raise LLMAuthError(f"Missing generation service API key. Set {API_KEY_ENV_VAR}.")
    return settings.api_key


def build_llm_client(settings: Settings, *, trust_env: bool = True) -> httpx.AsyncClient:
    """Build an authenticated async HTTP client for the generation service."""
    api_key = get_api_key(settings)
    headers = {
        "Accept": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    return httpx.AsyncClient(
        base_url=settings.base_url,
        headers=headers,
        timeout=settings.timeout_seconds,
        trust_env=trust_env,
    )
