from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from .errors import UpstreamFailure

GEMINI_ENDPOINT_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}

logger = logging.getLogger("career_coach.completion")


class TransientCompletionError(Exception):
    pass


class GeminiCompletionClient:
    """Text-in/text-out client for the Gemini generateContent API."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        timeout_seconds: float = 30.0,
        max_retries: int = 1,
        backoff_seconds: float = 0.5,
        temperature: float = 0.4,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(0, int(max_retries))
        self.backoff_seconds = max(0.0, float(backoff_seconds))
        self.temperature = temperature
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return GEMINI_ENDPOINT_TEMPLATE.format(model=self.model)

    def build_body(self, prompt: str, *, json_output: bool) -> dict[str, Any]:
        generation_config: dict[str, Any] = {"temperature": self.temperature}
        if json_output:
            generation_config["responseMimeType"] = "application/json"
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    def complete(self, prompt: str, *, json_output: bool = False) -> str:
        body = self.build_body(prompt, json_output=json_output)
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                payload = self._post(body)
            except TransientCompletionError as exc:
                if attempt >= attempts:
                    logger.warning(
                        json.dumps(
                            {"event": "completion_failed", "attempts": attempt, "reason": str(exc)},
                            ensure_ascii=False,
                        )
                    )
                    raise UpstreamFailure("AI service is unavailable, please try again later") from exc

                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.info(
                    json.dumps(
                        {
                            "event": "completion_retry",
                            "attempt": attempt,
                            "delaySeconds": delay,
                            "reason": str(exc),
                        },
                        ensure_ascii=False,
                    )
                )
                if delay > 0:
                    time.sleep(delay)
                continue

            return extract_completion_text(payload)

        raise UpstreamFailure()

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.post(self.endpoint, params={"key": self.api_key}, json=body)
        except httpx.TimeoutException as exc:
            raise TransientCompletionError("completion request timed out") from exc
        except httpx.TransportError as exc:
            raise TransientCompletionError(f"completion transport error: {type(exc).__name__}") from exc

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientCompletionError(f"completion returned HTTP {response.status_code}")
        if response.status_code >= 400:
            logger.warning(
                json.dumps(
                    {"event": "completion_rejected", "status": response.status_code},
                    ensure_ascii=False,
                )
            )
            raise UpstreamFailure(f"AI service rejected the request (HTTP {response.status_code})")

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamFailure("AI service returned a non-JSON envelope") from exc
        if not isinstance(payload, dict):
            raise UpstreamFailure("AI service returned an unexpected envelope")
        return payload


def extract_completion_text(payload: dict[str, Any]) -> str:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise UpstreamFailure("AI service returned empty candidates")

    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") if isinstance(first.get("content"), dict) else {}
    parts = content.get("parts", [])
    if not isinstance(parts, list) or not parts:
        raise UpstreamFailure("AI service returned empty parts")

    text = "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict)).strip()
    if not text:
        raise UpstreamFailure("AI service returned an empty completion")
    return text
