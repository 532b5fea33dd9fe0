"""Token transport — streams a model response token by token.

The session injects a transport matching the protocol:

    def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[str]: ...

`messages` is the chat history in OpenAI form ({"role", "content"}), with the
rendered scene prompt as the first system message. Each yielded string is a
text fragment to append to the assistant message being built.

Two implementations are provided:

    HttpTokenStream — real HTTP client for OpenAI-compatible backends
                      (POST /v1/chat/completions with "stream": true,
                      server-sent events).
    EchoTokenStream — replays a canned response in small chunks. Useful for
                      smoke-testing the streaming path without a model.
"""

from __future__ import annotations

import html
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol — every transport must match this signature
# ---------------------------------------------------------------------------

class TokenStream(Protocol):
    def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[str]: ...


# ---------------------------------------------------------------------------
# HttpTokenStream — connects to a real backend
# ---------------------------------------------------------------------------

class HttpTokenStream:
    """Async streaming client for OpenAI-compatible chat backends.

    POST {provider_url}/v1/chat/completions
        {"model": ..., "messages": [...], "stream": true}
    Response: `data: {"choices": [{"delta": {"content": "..."}}]}` lines,
    terminated by `data: [DONE]`.

    Args:
        provider_url: Base URL of the backend, e.g. "http://localhost:5001".
        api_key:      Bearer token, or empty string if not required.
        model:        Model identifier; omitted from the body when empty.
        timeout:      HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    @classmethod
    def from_connection(cls, connection: dict[str, Any]) -> HttpTokenStream:
        """Build from the `llm_connection` config block."""
        if not connection.get("provider_url"):
            raise LLMError("No LLM provider configured")
        return cls(
            connection["provider_url"],
            api_key=connection.get("api_key", ""),
            model=connection.get("model", ""),
        )

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, messages: list[dict[str, str]]) -> tuple[str, dict]:
        url = f"{self._base_url}/v1/chat/completions"
        body: dict = {"messages": messages, "stream": True}
        if self._model:
            body["model"] = self._model
        return url, body

    @staticmethod
    def _parse_event(line: str) -> str | None:
        """Text fragment carried by one SSE line; "" marks the [DONE] terminator."""
        if not line.startswith("data:"):
            return None
        payload = line[len("data:"):].strip()
        if payload == "[DONE]":
            return ""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise LLMError(f"Malformed stream event: {payload[:80]!r}") from e
        if not isinstance(data, dict):
            raise LLMError(f"Unexpected stream event: {payload[:80]!r}")
        choices = data.get("choices")
        if not choices:
            return None
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            raise LLMError(f"Unexpected stream event: {payload[:80]!r}")
        delta = choices[0].get("delta") or {}
        if not isinstance(delta, dict):
            raise LLMError(f"Unexpected stream event: {payload[:80]!r}")
        content = delta.get("content")
        return content if isinstance(content, str) and content else None

    async def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        url, body = self._build_request(messages)
        logger.debug("llm stream url=%s messages=%d", url, len(messages))
        received = 0

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream(
                    "POST", url, json=body, headers=self._headers()
                ) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        token = self._parse_event(line)
                        if token == "":
                            break
                        if token:
                            received += len(token)
                            yield token
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.TransportError as e:
            raise LLMError(f"LLM stream interrupted: {e}") from e
        except httpx.HTTPError as e:
            raise LLMError(f"LLM request failed: {e}") from e
        except httpx.InvalidURL as e:
            raise LLMError(f"Invalid LLM backend URL: {e}") from e

        logger.debug("llm stream done len=%d", received)


# ---------------------------------------------------------------------------
# EchoTokenStream — canned response; useful for smoke tests and the demo
# ---------------------------------------------------------------------------

class EchoTokenStream:
    """Yields a fixed response in chunks of `chunk_size` characters.

    With no response configured it echoes the last user message back as
    narration, which is enough to watch a streamed turn play out.
    """

    def __init__(self, response: str | None = None, chunk_size: int = 8) -> None:
        self.response = response
        self.chunk_size = max(1, chunk_size)

    def _response_for(self, messages: list[dict[str, str]]) -> str:
        if self.response is not None:
            return self.response
        last = next(
            (m["content"] for m in reversed(messages) if m.get("role") == "user"), ""
        )
        return f"<narrate>{html.escape(last, quote=False)}</narrate>" if last else ""

    async def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        text = self._response_for(messages)
        logger.debug("EchoTokenStream len=%d", len(text))
        for i in range(0, len(text), self.chunk_size):
            yield text[i:i + self.chunk_size]


# ---------------------------------------------------------------------------
# LLMError — raised for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
