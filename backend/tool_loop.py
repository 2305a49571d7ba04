"""
Tool-Calling Loop Engine
Drives a tool-loop provider: the model may request web searches, which are run
concurrently and fed back as tool turns, until it produces a final answer or
the iteration ceiling is hit.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from models import ROLE_ASSISTANT, ROLE_SYSTEM, ROLE_TOOL, ConversationTurn, ToolCall
from outcomes import ProviderOutcome

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL_NAME = "web_search"

SEARCH_TOOL = [
    {
        "type": "function",
        "function": {
            "name": WEB_SEARCH_TOOL_NAME,
            "description": (
                "Search the web for real-time property listings, parcel records, foreclosures, owner data. "
                "Search Regrid.com for parcel/APN data. Search PropertyRadar.com for distress data."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Search query including city, state, and current year",
                    }
                },
                "required": ["query"],
            },
        },
    }
]


@dataclass
class LoopResult:
    """Final text of a loop run; `failure` is set when the provider stopped it early."""
    text: str = ""
    failure: Optional[ProviderOutcome] = None
    iterations: int = 0
    searches: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failure is None


def _parse_query(tool_call: ToolCall) -> Optional[str]:
    try:
        args = json.loads(tool_call.arguments or "{}")
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(args, dict):
        return None
    query = args.get("query")
    if not isinstance(query, str) or not query.strip():
        return None
    return query


class ToolLoopEngine:
    """
    Explicit bounded state machine:
      REQUEST -> (FAILED | FINAL | TOOLS -> REQUEST) ... -> EXHAUSTED
    The search client is injected; it must never raise.
    """

    def __init__(self, search_client, max_tokens: int = 2000, temperature: float = 0.15):
        self._search = search_client
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def _run_tool_call(self, tool_call: ToolCall, searches: List[str]) -> ConversationTurn:
        if tool_call.name != WEB_SEARCH_TOOL_NAME:
            logger.warning(f"Model requested unknown tool: {tool_call.name}")
            content = f"Tool {tool_call.name} is not available. Only web_search can be used."
        else:
            query = _parse_query(tool_call)
            if query is None:
                logger.warning(f"Malformed web_search arguments: {tool_call.arguments[:200]}")
                content = "Invalid web_search arguments. Call web_search with a JSON object like {\"query\": \"...\"}."
            else:
                searches.append(query)
                logger.info(f"Tool web_search: {query[:100]}")
                result = await self._search.search(query)
                content = result.to_text()
        return ConversationTurn(role=ROLE_TOOL, content=content, tool_call_id=tool_call.id)

    async def run(
        self,
        system_prompt: str,
        trimmed_history: List[ConversationTurn],
        provider,
        max_iterations: int = 8,
    ) -> LoopResult:
        messages: List[ConversationTurn] = [ConversationTurn(role=ROLE_SYSTEM, content=system_prompt)]
        messages.extend(
            ConversationTurn(role=turn.role, content=turn.content)
            for turn in trimmed_history
            if turn.role != ROLE_TOOL
        )
        searches: List[str] = []

        for iteration in range(max_iterations):
            outcome = await provider.chat(
                messages,
                tools=SEARCH_TOOL,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )

            if not outcome.ok:
                logger.warning(f"Tool loop stopped at iteration {iteration + 1}: {outcome.kind.value} {outcome.detail[:200]}")
                return LoopResult(failure=outcome, iterations=iteration + 1, searches=searches)

            turn = outcome.turn or ConversationTurn(role=ROLE_ASSISTANT, content=outcome.text)
            messages.append(turn)

            if not turn.tool_calls:
                return LoopResult(text=turn.content or "", iterations=iteration + 1, searches=searches)

            # Fan out every search of this turn, then append results in call order
            tool_turns = await asyncio.gather(
                *(self._run_tool_call(tc, searches) for tc in turn.tool_calls)
            )
            messages.extend(tool_turns)

        logger.warning(f"Tool loop hit the {max_iterations}-iteration ceiling without a final answer")
        last = next(
            (m for m in reversed(messages) if m.role == ROLE_ASSISTANT and m.content),
            None,
        )
        return LoopResult(text=last.content if last else "", iterations=max_iterations, searches=searches)
