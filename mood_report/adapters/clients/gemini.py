"""
Gemini REST client for mood report generation.

Sends one prompt to the generateContent endpoint and returns the raw response
body. Resilience rules:
- At most GEMINI_MAX_ATTEMPTS attempts (default 3), each bounded by a timeout
- Fixed backoff between attempts, plus random jitter
- Timeouts, network errors, 408/429 and 5xx are retried
- Any other 4xx is terminal and fails after the first attempt
"""

import asyncio
import json
import logging
import os
import random
from typing import Awaitable, Callable, Optional

import requests

from mood_report.core.exceptions import UpstreamRejected, UpstreamUnavailable

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash-lite"
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 1.0
DEFAULT_BACKOFF_JITTER = 0.25
DEFAULT_TIMEOUT_SECONDS = 30.0
CONNECT_TIMEOUT_SECONDS = 10.0

RETRYABLE_STATUS_CODES = {408, 429}
ERROR_BODY_LOG_LIMIT = 300


# ============================================================================
# CONFIGURATION
# ============================================================================

class GeminiConfig:
    """Encapsulates Gemini endpoint, credential and retry configuration."""

    def __init__(self, api_key: Optional[str] = None,
                 model: str = DEFAULT_MODEL,
                 base_url: str = DEFAULT_BASE_URL,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
                 backoff_jitter: float = DEFAULT_BACKOFF_JITTER,
                 timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        """
        Initialize Gemini configuration.

        Raises:
            ValueError: If no API key is given or the retry settings are invalid.
        """
        if not api_key:
            raise ValueError("GEMINI_API_KEY environment variable not set")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.backoff_seconds = max(0.0, backoff_seconds)
        self.backoff_jitter = max(0.0, backoff_jitter)
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_env(cls) -> "GeminiConfig":
        """Reads the configuration from environment variables."""
        return cls(
            api_key=os.environ.get("GEMINI_API_KEY"),
            model=os.environ.get("GEMINI_MODEL", DEFAULT_MODEL),
            base_url=os.environ.get("GEMINI_BASE_URL", DEFAULT_BASE_URL),
            max_attempts=int(os.environ.get("GEMINI_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)),
            backoff_seconds=float(os.environ.get("GEMINI_BACKOFF_SECONDS", DEFAULT_BACKOFF_SECONDS)),
            backoff_jitter=float(os.environ.get("GEMINI_BACKOFF_JITTER", DEFAULT_BACKOFF_JITTER)),
            timeout_seconds=float(os.environ.get("GEMINI_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"


# ============================================================================
# ATTEMPT ERRORS
# ============================================================================

class AttemptFailed(Exception):
    """One failed attempt, tagged as retryable or terminal."""

    def __init__(self, message: str, retryable: bool, status: Optional[int] = None):
        super().__init__(message)
        self.retryable = retryable
        self.status = status


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUS_CODES or status >= 500


def build_request_body(prompt: str) -> str:
    """
    Serializes the generateContent body.

    json.dumps escapes quotes, backslashes and control characters, so any
    prompt text is safe to embed.
    """
    return json.dumps({"contents": [{"parts": [{"text": prompt}]}]}, ensure_ascii=False)


# ============================================================================
# CLIENT
# ============================================================================

class GeminiClient:
    """Calls Gemini generateContent with bounded retries."""

    def __init__(self, config: GeminiConfig,
                 session: Optional[requests.Session] = None,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        """
        Args:
            config: Endpoint, credential and retry settings.
            session: HTTP session (a fresh requests.Session by default).
            sleep: Awaitable sleep used for backoff (asyncio.sleep by default).
        """
        self.config = config
        self.session = session or requests.Session()
        self._sleep = sleep or asyncio.sleep

    def _post(self, body: str) -> str:
        """Performs one blocking HTTP attempt."""
        try:
            response = self.session.post(
                self.config.endpoint,
                params={"key": self.config.api_key},
                data=body.encode("utf-8"),
                headers={"Content-Type": "application/json"},
                timeout=(CONNECT_TIMEOUT_SECONDS, self.config.timeout_seconds),
            )
        except requests.Timeout as e:
            raise AttemptFailed(f"Request timed out: {e}", retryable=True) from e
        except requests.RequestException as e:
            raise AttemptFailed(f"Network error: {e}", retryable=True) from e

        status = response.status_code
        if 200 <= status < 300:
            if not response.text:
                raise AttemptFailed("Empty response body", retryable=True, status=status)
            return response.text

        excerpt = (response.text or "")[:ERROR_BODY_LOG_LIMIT]
        raise AttemptFailed(
            f"Gemini API returned {status}: {excerpt}",
            retryable=is_retryable_status(status),
            status=status,
        )

    def _backoff_delay(self) -> float:
        return self.config.backoff_seconds + random.uniform(0, self.config.backoff_jitter)

    async def generate(self, prompt: str) -> str:
        """
        Sends the prompt and returns the raw response text.

        Args:
            prompt: Fully built prompt.

        Returns:
            Raw response body (the vendor envelope).

        Raises:
            UpstreamRejected: Terminal client error, no retry.
            UpstreamUnavailable: Every attempt failed.
        """
        body = build_request_body(prompt)
        last_error: Optional[AttemptFailed] = None

        for attempt in range(1, self.config.max_attempts + 1):
            try:
                logger.info(f"Calling Gemini ({self.config.model}), attempt {attempt}/{self.config.max_attempts}")
                text = await asyncio.wait_for(
                    asyncio.to_thread(self._post, body),
                    timeout=self.config.timeout_seconds,
                )
                logger.info(f"[OK] Gemini responded on attempt {attempt}")
                return text
            except asyncio.TimeoutError:
                last_error = AttemptFailed(
                    f"Attempt exceeded {self.config.timeout_seconds}s", retryable=True
                )
            except AttemptFailed as e:
                last_error = e

            if not last_error.retryable:
                logger.error(f"Gemini rejected the request (terminal): {last_error}")
                raise UpstreamRejected(
                    "Model service rejected the request",
                    attempts=attempt,
                    status=last_error.status,
                    last_error=str(last_error),
                ) from last_error

            logger.warning(f"Attempt {attempt} failed: {last_error}")
            if attempt < self.config.max_attempts:
                await self._sleep(self._backoff_delay())

        logger.error(f"All {self.config.max_attempts} attempts to reach Gemini failed")
        raise UpstreamUnavailable(
            "Model service unavailable",
            attempts=self.config.max_attempts,
            status=last_error.status if last_error else None,
            last_error=str(last_error) if last_error else None,
        ) from last_error

    def close(self) -> None:
        self.session.close()
