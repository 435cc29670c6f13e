"""Chat completion client for the OpenRouter model-routing API."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from discovery.errors import (
    AuthError,
    ClientError,
    CompletionError,
    EmptyResponseError,
    NetworkError,
    RateLimitError,
    ServerError,
)
from discovery.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
MAX_ATTEMPTS = 3
INITIAL_RETRY_DELAY = 1.0
DEFAULT_RETRY_AFTER = 60.0


@dataclass(frozen=True)
class CompletionResult:
    text: str
    raw_response: Dict[str, Any]


def extract_content(data: Dict[str, Any]) -> str:
    """Return the first choice's message text from a completion response."""
    choices = data.get("choices") if isinstance(data, dict) else None
    if not choices:
        raise EmptyResponseError("No response from API")
    choice = choices[0] or {}
    content = (choice.get("message") or {}).get("content")
    if not content or not isinstance(content, str):
        raise EmptyResponseError("Invalid response structure")
    return content


def _parse_retry_after(value: Optional[str]) -> float:
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        seconds = float(value)
    except ValueError:
        return DEFAULT_RETRY_AFTER
    return seconds if seconds >= 0 else DEFAULT_RETRY_AFTER


class CompletionClient:
    """Sends chat completion requests, retrying transient failures.

    The client keeps no state between calls besides its configuration.
    """

    def __init__(self, settings: Settings, sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.api_url = settings.openrouter_api_url
        self._sleep = sleep

    def _make_headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": "https://ballot.app",
            "X-Title": "Ballot",
        }

    def complete(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> CompletionResult:
        """Run a completion and return the first choice's text.

        Args:
            messages: ``[{"role": ..., "content": ...}]`` chat messages
            model: Model slug; defaults to the configured discovery model
            temperature: Sampling temperature
            max_tokens: Optional completion length cap
            timeout: Wall-clock timeout per attempt, in seconds

        Raises:
            AuthError: no API key configured
            RateLimitError: still rate limited after the last attempt
            ServerError: 5xx on every attempt
            ClientError: any other 4xx
            NetworkError: timeout or connection failure on every attempt
            EmptyResponseError: success response without a completion
        """
        api_key = self.settings.openrouter_api_key
        if not api_key:
            raise AuthError(
                "OPENROUTER_API_KEY not found. Add it to your environment or .env file."
            )

        payload: Dict[str, Any] = {
            "model": model or self.settings.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        headers = self._make_headers(api_key)

        last_error: CompletionError | None = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            is_last = attempt == MAX_ATTEMPTS
            backoff = INITIAL_RETRY_DELAY * (2 ** (attempt - 1))

            try:
                logger.info("POST %s (model=%s, attempt %d/%d)", self.api_url, payload["model"], attempt, MAX_ATTEMPTS)
                response = requests.post(self.api_url, headers=headers, json=payload, timeout=timeout)
            except requests.Timeout:
                last_error = NetworkError("Request timeout")
                if is_last:
                    break
                logger.warning("Completion request timed out. Retrying in %.0fs...", backoff)
                self._sleep(backoff)
                continue
            except requests.RequestException as exc:
                last_error = NetworkError("Network request failed. Please check your connection.")
                if is_last:
                    break
                logger.warning("Network error (%s). Retrying in %.0fs...", exc, backoff)
                self._sleep(backoff)
                continue

            status = response.status_code

            if status == 429:
                retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                last_error = RateLimitError("Rate limit exceeded. Please try again later.", retry_after)
                if is_last:
                    break
                logger.warning("Rate limited. Retrying after %.0fs...", retry_after)
                self._sleep(retry_after)
                continue

            if 500 <= status < 600:
                last_error = ServerError(f"Server error: {status} {response.reason or ''}".strip(), status)
                if is_last:
                    break
                logger.warning("Server error (%d). Retrying in %.0fs...", status, backoff)
                self._sleep(backoff)
                continue

            if status >= 400:
                raise ClientError(status, response.text or "Unknown error")

            try:
                data = response.json()
            except ValueError as exc:
                raise EmptyResponseError("Response body was not valid JSON") from exc

            text = extract_content(data)
            return CompletionResult(text=text, raw_response=data)

        logger.error("Completion request failed after %d attempts: %s", MAX_ATTEMPTS, last_error)
        raise last_error
