"""Chat-completion client that turns CV text into the structured profile JSON."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx
from prometheus_client import Counter
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..constants import NO_ERROR_BODY
from ..errors import ModelError, ModelErrorCode, diagnostic_body
from ..logging import get_logger
from ..security.contact import ContactDetailFilter
from .prompts import system_prompt, truncate_for_prompt, user_prompt

logger = get_logger(__name__)

_MODEL_RETRIES = Counter(
    "cv_model_retries_total",
    "Retried chat-completion calls.",
)

_TRANSIENT_TRANSPORT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


def is_transient(exc: BaseException) -> bool:
    """True for API errors and network-level I/O failures, which are worth retrying."""

    if isinstance(exc, ModelError):
        return exc.code is ModelErrorCode.API_ERROR
    return isinstance(exc, _TRANSIENT_TRANSPORT_ERRORS)


class StructuredExtractionClient:
    """Calls ``POST {chat_endpoint}`` and returns the raw JSON answer of the model.

    Transient failures are retried with exponential backoff (3s, 6s, 12s with
    the defaults). Exhausting the retries raises ``ModelError(RetriesExhausted)``
    chained to the last failure.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        model: str,
        chat_endpoint: str = "/v1/chat/completions",
        max_input_chars: int = 15000,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        max_retries: int = 3,
        backoff_initial_seconds: float = 3.0,
        backoff_max_seconds: float = 60.0,
        redactor: Optional[ContactDetailFilter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._model = model
        self._chat_endpoint = chat_endpoint
        self._max_input_chars = max_input_chars
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._max_retries = max_retries
        self._backoff_initial = backoff_initial_seconds
        self._backoff_max = backoff_max_seconds
        self._redactor = redactor
        self._sleep = sleep

    @property
    def model(self) -> str:
        return self._model

    def build_request(self, text: str, language: Optional[str]) -> dict[str, Any]:
        cv_text = truncate_for_prompt(text, self._max_input_chars)
        if self._redactor is not None:
            cv_text, findings = self._redactor.redact(cv_text)
            if findings:
                logger.info("model.input_redacted", findings=len(findings))
        if not language:
            logger.warning("model.no_language_hint")
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt(language)},
                {"role": "user", "content": user_prompt(cv_text)},
            ],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }

    async def extract_profile(self, text: str, language: str) -> str:
        payload = self.build_request(text, language)
        logger.info(
            "model.request",
            model=self._model,
            language=language or None,
            textLength=len(text),
            truncated=len(text) > self._max_input_chars,
        )

        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential(multiplier=self._backoff_initial, max=self._backoff_max),
            sleep=self._sleep,
            before_sleep=self._log_retry,
        )
        content = ""
        try:
            async for attempt in retrying:
                with attempt:
                    content = await self._call_once(payload)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            attempts = exc.last_attempt.attempt_number
            raise ModelError(
                ModelErrorCode.RETRIES_EXHAUSTED,
                f"Chat-completion call failed after {attempts - 1} retries",
                details={"attempts": attempts, "lastError": str(last)},
            ) from last
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ModelError(
                ModelErrorCode.INVALID_REQUEST,
                "Chat-completion request could not be sent",
                details={"error": f"{type(exc).__name__}: {exc}"},
            ) from exc
        return content

    async def _call_once(self, payload: dict[str, Any]) -> str:
        response = await self._client.post(self._chat_endpoint, json=payload)
        if response.is_error:
            body = response.text if response.text.strip() else NO_ERROR_BODY
            body = diagnostic_body(body)
            logger.error("model.api_error", status=response.status_code, body=body)
            raise ModelError(
                ModelErrorCode.API_ERROR,
                f"Chat-completion API returned {response.status_code}",
                details={"status": response.status_code, "body": body},
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ModelError(
                ModelErrorCode.API_ERROR,
                "Chat-completion API returned a non-JSON body",
                details={"status": response.status_code},
            ) from exc

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise ModelError(
                ModelErrorCode.API_ERROR, "Chat-completion response contained no choices"
            )
        choice = choices[0]
        message = choice.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ModelError(
                ModelErrorCode.API_ERROR, "Chat-completion response contained empty content"
            )

        finish_reason = choice.get("finish_reason")
        logger.info("model.response", finishReason=finish_reason, contentLength=len(content))
        if finish_reason == "length":
            logger.warning("model.response_truncated", maxTokens=self._max_tokens)
        return content

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        _MODEL_RETRIES.inc()
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        delay = retry_state.next_action.sleep if retry_state.next_action is not None else None
        logger.warning(
            "model.retry",
            attempt=retry_state.attempt_number,
            delaySeconds=delay,
            error=str(error),
        )


__all__ = ["StructuredExtractionClient", "is_transient"]
