"""
Provider Clients
- ClaudeProvider: "rich" provider. Anthropic messages API with the server-side
  web_search tool, so a single request/response is enough.
- GroqProvider: "tool-loop" provider. OpenAI-compatible chat completions that
  must be driven through an explicit tool-calling loop (see tool_loop.py).

Both normalise every response into a ProviderOutcome immediately after the
HTTP call; nothing provider-specific leaks past this module.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from config import Settings
from models import ConversationTurn, to_anthropic_messages
from outcomes import ProviderOutcome, classify_exception, classify_response
from resilience import call_with_timeout, retry_with_backoff

logger = logging.getLogger(__name__)


# ======================================================================
# Claude (Anthropic API) - rich provider
# ======================================================================

class ClaudeProvider:
    """Answer generation with Anthropic's native web search tool."""

    API_URL = "https://api.anthropic.com/v1/messages"
    ANTHROPIC_VERSION = "2023-06-01"
    WEB_SEARCH_BETA = "web-search-2025-03-05"
    WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 8}

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self._settings = settings
        self._client: Optional[httpx.AsyncClient] = client

    @property
    def model_name(self) -> str:
        return f"anthropic/{self._settings.anthropic_model}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=60.0)
        return self._client

    async def close(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def is_healthy(self) -> bool:
        """Check if Claude API key is configured (no API call, saves quota)."""
        return self._settings.has_anthropic

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        return await self._get_client().post(
            self.API_URL,
            headers={
                "x-api-key": self._settings.anthropic_api_key,
                "anthropic-version": self.ANTHROPIC_VERSION,
                "anthropic-beta": self.WEB_SEARCH_BETA,
                "content-type": "application/json",
            },
            json=payload,
        )

    async def answer(
        self,
        system_prompt: str,
        history: List[ConversationTurn],
        max_tokens: int = 2000,
    ) -> ProviderOutcome:
        """
        Single request/response bounded by the configured timeout.
        Returns Success(text) with the concatenated text blocks, or a failure outcome.
        """
        messages = to_anthropic_messages(history)
        if not messages:
            return ProviderOutcome.protocol_error("No user message to send")

        payload = {
            "model": self._settings.anthropic_model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": messages,
            "tools": [self.WEB_SEARCH_TOOL],
        }

        try:
            resp = await call_with_timeout(self._post, payload, timeout=self._settings.anthropic_timeout)
        except asyncio.TimeoutError:
            return ProviderOutcome.transport_error(f"timeout after {self._settings.anthropic_timeout:.0f}s")
        except httpx.HTTPError as e:
            return classify_exception(e)

        failure = classify_response(resp)
        if failure is not None:
            return failure

        data = resp.json()
        blocks = data.get("content")
        if not isinstance(blocks, list):
            return ProviderOutcome.protocol_error("Anthropic response has no content list")

        # Web search responses interleave server_tool_use / web_search_tool_result blocks
        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        if not text.strip():
            return ProviderOutcome.protocol_error(
                f"Anthropic returned no text (stop_reason={data.get('stop_reason')})"
            )

        usage = data.get("usage") or {}
        logger.info(
            f"Claude answered: {len(text)} chars, "
            f"in={usage.get('input_tokens', 0)} out={usage.get('output_tokens', 0)}"
        )
        return ProviderOutcome.success(text)


# ======================================================================
# Groq (OpenAI-compatible API) - tool-loop provider
# ======================================================================

class GroqProvider:
    """Chat completions with caller-side function calling."""

    GROQ_API_URL = "https://api.groq.com/openai/v1/chat/completions"

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self._settings = settings
        self._client: Optional[httpx.AsyncClient] = client

    @property
    def model_name(self) -> str:
        return f"groq/{self._settings.groq_model}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=60.0)
        return self._client

    async def close(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def is_healthy(self) -> bool:
        return self._settings.has_groq

    async def _complete(self, payload: Dict[str, Any], max_retries: int) -> ProviderOutcome:
        client = self._get_client()

        async def _do_groq_post():
            r = await client.post(
                self.GROQ_API_URL,
                headers={
                    "Authorization": f"Bearer {self._settings.groq_api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
            r.raise_for_status()
            return r

        try:
            resp = await retry_with_backoff(_do_groq_post, max_retries=max_retries)
        except httpx.HTTPStatusError as e:
            return classify_response(e.response)
        except httpx.HTTPError as e:
            return classify_exception(e)

        failure = classify_response(resp)
        if failure is not None:
            return failure

        data = resp.json()
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ProviderOutcome.protocol_error("No choices in Groq response")

        message = choices[0].get("message")
        if not isinstance(message, dict):
            return ProviderOutcome.protocol_error("Groq choice has no message")

        turn = ConversationTurn.from_openai(message)
        logger.debug(
            f"Groq response: finish_reason={choices[0].get('finish_reason')}, "
            f"content_len={turn.length}, tool_calls={len(turn.tool_calls)}"
        )
        return ProviderOutcome.success(turn.content or "", turn=turn)

    async def chat(
        self,
        messages: List[ConversationTurn],
        tools: List[Dict[str, Any]],
        max_tokens: int = 2000,
        temperature: float = 0.15,
    ) -> ProviderOutcome:
        """One tool-loop turn. Success carries the assistant turn (possibly with tool calls)."""
        payload = {
            "model": self._settings.groq_model,
            "messages": [m.to_openai() for m in messages],
            "tools": tools,
            "tool_choice": "auto",
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        logger.info(f"Groq request - model: {payload['model']}, messages: {len(messages)}")
        # A tool-loop turn is never retried here; the loop's next iteration is the retry
        return await self._complete(payload, max_retries=1)

    async def format(self, prompt: str, max_tokens: int = 2000) -> ProviderOutcome:
        """Single formatting call, no tools, no history."""
        payload = {
            "model": self._settings.groq_model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": 0.1,
        }
        return await self._complete(payload, max_retries=3)
