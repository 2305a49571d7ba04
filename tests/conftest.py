"""
Shared fixtures: scripted provider and search fakes injected into the tool
loop and the cascade. Nothing here touches the network.
"""

import asyncio
from typing import List, Optional

import pytest

from config import Settings
from models import ROLE_ASSISTANT, ConversationTurn, SearchItem, SearchResult, ToolCall
from outcomes import ProviderOutcome


class FakeSearch:
    """Records every query and tracks how many searches ran at once."""

    def __init__(self, empty: bool = False, delay: float = 0.01):
        self.empty = empty
        self.delay = delay
        self.queries: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def search(self, query: str) -> SearchResult:
        self.queries.append(query)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if self.empty:
            return SearchResult(query=query)
        return SearchResult(
            query=query,
            answer_summary=f"Summary for {query}",
            items=[SearchItem(title="Listing", url="https://example.com/listing", snippet=f"Result for {query}")],
        )

    async def close(self):
        self.closed = True


class FakeRichProvider:
    """Returns the scripted outcomes in order and counts calls."""

    model_name = "anthropic/test-model"

    def __init__(self, *outcomes: ProviderOutcome):
        self.outcomes = list(outcomes)
        self.calls: List[List[ConversationTurn]] = []

    async def answer(self, system_prompt, history, max_tokens=2000):
        self.calls.append(list(history))
        return self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]

    async def close(self):
        pass


class FakeToolLoopProvider:
    """
    `chat` returns the scripted outcomes in order, repeating the last one.
    Each call's message list is copied so later appends don't leak in.
    """

    model_name = "groq/test-model"

    def __init__(self, *outcomes: ProviderOutcome, format_outcome: Optional[ProviderOutcome] = None):
        self.outcomes = list(outcomes)
        self.format_outcome = format_outcome or ProviderOutcome.success("formatted")
        self.chat_calls: List[List[ConversationTurn]] = []
        self.format_calls: List[str] = []

    async def chat(self, messages, tools, max_tokens=2000, temperature=0.15):
        self.chat_calls.append(list(messages))
        return self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]

    async def format(self, prompt, max_tokens=2000):
        self.format_calls.append(prompt)
        return self.format_outcome

    async def close(self):
        pass


def assistant_text(text: str) -> ProviderOutcome:
    return ProviderOutcome.success(text, turn=ConversationTurn(role=ROLE_ASSISTANT, content=text))


def assistant_tools(*queries: str, content: Optional[str] = None) -> ProviderOutcome:
    calls = [
        ToolCall(id=f"call_{i}", name="web_search", arguments=f'{{"query": "{q}"}}')
        for i, q in enumerate(queries)
    ]
    return ProviderOutcome.success(
        content or "", turn=ConversationTurn(role=ROLE_ASSISTANT, content=content, tool_calls=calls)
    )


@pytest.fixture
def all_keys_settings():
    return Settings(
        anthropic_api_key="sk-ant-test",
        groq_api_key="gsk_test",
        tavily_api_key="tvly-test",
    )


@pytest.fixture
def groq_and_tavily_settings():
    return Settings(groq_api_key="gsk_test", tavily_api_key="tvly-test")


@pytest.fixture
def fake_search():
    return FakeSearch()
