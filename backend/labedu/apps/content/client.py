"""
HTTP client for the generative-language service.

One instance is built by the application lifespan and shared through
`app.state`; nothing here runs at import time. Every call carries an
explicit timeout, and every failure comes back as a typed ServiceError:

- timeout                     -> TRANSIENT (CONTENT_TIMEOUT)
- connection error, 429, 5xx  -> TRANSIENT
- 401 / 403                   -> PERMISSION_DENIED
- body that is not the JSON we asked for -> INVALID_RESPONSE
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import httpx
from fastapi import Request

from ...errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_TIMEOUT_SECONDS = 15.0


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


class GenerativeContentClient:
    def __init__(
        self,
        *,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self._http = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
        )

    @classmethod
    def from_env(cls) -> Optional["GenerativeContentClient"]:
        """Return a client, or None when GENAI_API_KEY is not set."""
        api_key = os.getenv("GENAI_API_KEY")
        if not api_key:
            return None
        return cls(
            api_key=api_key,
            model=os.getenv("GENAI_MODEL", DEFAULT_MODEL),
            base_url=os.getenv("GENAI_BASE_URL", DEFAULT_BASE_URL),
            timeout=_float_env("GENAI_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        )

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def generate_json(self, prompt: str, response_schema: Dict[str, Any]) -> Any:
        """
        Send a prompt plus a structured-output schema and return the decoded
        JSON value the model produced.
        """
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            },
        }
        path = f"/v1beta/models/{self.model}:generateContent"

        try:
            response = self._http.post(path, json=body)
        except httpx.TimeoutException as exc:
            logger.warning("Content service timed out", extra={"timeout": self.timeout})
            raise ServiceError(
                ErrorKind.TRANSIENT,
                f"The content service did not answer within {self.timeout:g} seconds.",
                code="CONTENT_TIMEOUT",
            ) from exc
        except httpx.TransportError as exc:
            logger.warning("Content service unreachable", extra={"error": str(exc)})
            raise ServiceError(
                ErrorKind.TRANSIENT,
                "The content service could not be reached.",
                code="CONTENT_UNAVAILABLE",
            ) from exc

        self._raise_for_status(response)
        return self._decode(response)

    def _raise_for_status(self, response: httpx.Response) -> None:
        code = response.status_code
        if code < 400:
            return

        logger.warning("Content service error", extra={"status_code": code})
        if code in (401, 403):
            raise ServiceError(
                ErrorKind.PERMISSION_DENIED,
                "The content service rejected our credentials; check GENAI_API_KEY.",
                code="CONTENT_PERMISSION_DENIED",
                details={"status_code": code},
            )
        if code == 429:
            raise ServiceError(
                ErrorKind.TRANSIENT,
                "The content service is rate limiting requests.",
                code="CONTENT_RATE_LIMITED",
                details={"status_code": code},
            )
        if code >= 500:
            raise ServiceError(
                ErrorKind.TRANSIENT,
                "The content service is temporarily unavailable.",
                code="CONTENT_UNAVAILABLE",
                details={"status_code": code},
            )
        raise ServiceError(
            ErrorKind.INTERNAL,
            "The content service rejected the request.",
            code="CONTENT_REQUEST_REJECTED",
            details={"status_code": code},
        )

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            envelope = response.json()
            parts = envelope["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
            raise invalid_response("The content service returned an unexpected envelope.") from exc

        if not text.strip():
            raise invalid_response("The content service returned an empty answer.")
        try:
            return json.loads(text)
        except ValueError as exc:
            raise invalid_response("The content service answer was not valid JSON.") from exc


def invalid_response(message: str) -> ServiceError:
    logger.warning("Invalid content service response", extra={"reason": message})
    return ServiceError(ErrorKind.INVALID_RESPONSE, message, code="CONTENT_INVALID_RESPONSE")


def get_content_client(request: Request) -> GenerativeContentClient:
    client = getattr(request.app.state, "content_client", None)
    if client is None:
        raise ServiceError(
            ErrorKind.INTERNAL,
            "Content generation is not configured on this server.",
            code="CONTENT_SERVICE_NOT_CONFIGURED",
        )
    return client
