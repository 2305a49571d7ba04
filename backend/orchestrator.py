"""
Provider Cascade Controller
Tries, in order: rich provider (Claude + native web search) -> tool-loop provider
(Groq + caller-side search) -> search-and-format -> raw search -> fixed notice.
Stages only move forward, each runs after the previous one's outcome is known,
and nothing is kept between requests.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from budget import trim_history
from config import Settings
from deal_blocks import OPEN, FilterPolicy, filter_deal_text
from exceptions import ConfigurationError
from models import ConversationTurn, latest_user_message
from outcomes import OutcomeKind, ProviderOutcome
from providers import ClaudeProvider, GroqProvider
from search_integrations import TavilySearch
from tool_loop import LoopResult, ToolLoopEngine

logger = logging.getLogger(__name__)

OUTPUT_DEAL_BLOCKS = "deal_blocks"
OUTPUT_JSON_ARRAY = "json_array"

# User-facing texts. Raw provider errors never reach the caller.
MESSAGES = {
    "not_configured": "No AI API configured. Add ANTHROPIC_API_KEY, GROQ_API_KEY or TAVILY_API_KEY to .env and restart.",
    "rate_limited": "The AI service is rate limited right now. Please try again shortly.",
    "credit_exhausted": "The AI provider is out of credits. Add GROQ_API_KEY or TAVILY_API_KEY as a fallback, or start a new chat later.",
    "busy": "AI is busy. Please start a new chat to clear history, then try again.",
    "unavailable": "The AI service is unavailable right now. Please try again shortly.",
    "search_unavailable": "Search is unavailable right now. Please try again in a moment.",
    "empty_reply": "No response received. Please try again.",
    "raw_search_prefix": "Search results (AI formatting unavailable):",
    "unformatted_prefix": "I found search results but couldn't format them. Here's what was found:",
}

DEFAULT_DEAL_FORMAT = """Format each real property as:
<<<DEAL>>>
{ "address":"full numbered street address","details":"size/type/details","status":"strong","statusLabel":"Strong Opportunity","isQCT":false,"isOZ":false,"riskScore":"Low","feasibilityScore":8,"dealSignals":["signal"],"source":"source name","listingUrl":"url","owner":{"name":"","address":"","apn":"","ownerType":"","yearsOwned":""},"financials":[{"label":"Asking","value":"$X"},{"label":"Per Acre","value":"$X"},{"label":"Est. Units","value":"X"},{"label":"Land %","value":"X%","highlight":true}] }
<<<END_DEAL>>>"""

DEFAULT_ARRAY_FORMAT = """Return ONLY a valid JSON array of deal objects, each shaped like:
{ "address":"full numbered street address","details":"size/type/details","status":"strong","statusLabel":"Strong Opportunity","isQCT":false,"isOZ":false,"riskScore":"Low","feasibilityScore":8,"dealSignals":["signal"],"source":"source name","listingUrl":"url","owner":{"name":"","address":"","apn":"","ownerType":"","yearsOwned":""},"financials":[{"label":"Asking","value":"$X"}] }
Return [] if the results contain no qualifying property."""

ARRAY_CONTRACT_MARKER = "Return ONLY a valid JSON array"


class Stage(Enum):
    RICH = "rich"
    TOOL_LOOP = "tool_loop"
    SEARCH_AND_FORMAT = "search_and_format"
    RAW_SEARCH = "raw_search"
    NOTICE = "notice"


@dataclass(frozen=True)
class CascadePolicy:
    """Per-request knobs. Numeric defaults are tuned, not derived."""
    history_budget_chars: int = 6000
    rich_history_budget_chars: int = 60000
    reduced_budget_divisor: int = 3
    max_iterations: int = 8
    max_tokens: int = 2000
    temperature: float = 0.15
    output_format: str = OUTPUT_DEAL_BLOCKS
    filter: FilterPolicy = field(default_factory=FilterPolicy)

    @classmethod
    def for_chat(cls, settings: Settings, system_prompt: str, max_tokens: int = 2000) -> "CascadePolicy":
        return cls(
            history_budget_chars=settings.history_budget_chars,
            rich_history_budget_chars=settings.rich_history_budget_chars,
            max_iterations=settings.max_tool_iterations,
            max_tokens=max_tokens,
            filter=FilterPolicy(
                land_context=is_land_context(system_prompt),
                min_acres=settings.min_acres,
                below_minimum=settings.acreage_policy,
                unknown_acreage=settings.unknown_acreage_policy,
            ),
        )

    @classmethod
    def for_scan(cls, settings: Settings, land_context: bool) -> "CascadePolicy":
        """Non-interactive single-turn mode with a JSON array output contract."""
        return cls(
            history_budget_chars=settings.history_budget_chars,
            rich_history_budget_chars=settings.rich_history_budget_chars,
            max_iterations=settings.max_tool_iterations,
            max_tokens=3000,
            temperature=0.1,
            output_format=OUTPUT_JSON_ARRAY,
            filter=FilterPolicy(
                land_context=land_context,
                min_acres=settings.min_acres,
                below_minimum="drop",
                unknown_acreage=settings.unknown_acreage_policy,
            ),
        )


@dataclass
class FinalAnswer:
    text: str
    stage: Stage
    model: Optional[str] = None
    failures: List[ProviderOutcome] = field(default_factory=list)


def is_land_context(system_prompt: str) -> bool:
    lowered = (system_prompt or "").lower()
    return "land acquisition" in lowered or "acre" in lowered


def notice_for(outcome: Optional[ProviderOutcome]) -> str:
    """Fixed user-safe text for the last failure seen."""
    if outcome is None:
        return MESSAGES["unavailable"]
    if outcome.kind is OutcomeKind.RATE_LIMITED:
        return MESSAGES["rate_limited"]
    if outcome.kind is OutcomeKind.CREDIT_EXHAUSTED:
        return MESSAGES["credit_exhausted"]
    if outcome.kind is OutcomeKind.TOKEN_BUDGET_EXCEEDED:
        return MESSAGES["busy"]
    return MESSAGES["unavailable"]


class ProviderCascade:
    """One cascade run per inbound call. Stage availability depends only on Settings."""

    FORMAT_PROMPT = """You are a real estate deal analyst. The user asked: "{question}"

Below are real web search results. Extract every property that matches what the user asked for. Only include properties with real numbered street addresses (not intersections). Only include current listings.

SEARCH RESULTS:
{results}

{output_contract}

{closing} Do not invent data - use only what the search results contain."""

    def __init__(
        self,
        settings: Settings,
        rich_provider: Optional[ClaudeProvider] = None,
        tool_loop_provider: Optional[GroqProvider] = None,
        search_client: Optional[TavilySearch] = None,
    ):
        self._settings = settings
        self.rich_provider = rich_provider if rich_provider is not None else ClaudeProvider(settings)
        self.tool_loop_provider = tool_loop_provider if tool_loop_provider is not None else GroqProvider(settings)
        self.search_client = search_client if search_client is not None else TavilySearch(settings)

    # --- availability (pure functions of settings) ---

    @property
    def has_rich(self) -> bool:
        return self._settings.has_anthropic

    @property
    def has_tool_loop(self) -> bool:
        return self._settings.has_groq

    @property
    def has_search(self) -> bool:
        return self._settings.has_tavily

    def _require_configured(self):
        if not self._settings.has_any_stage:
            raise ConfigurationError("No provider or search credentials configured")

    async def close(self):
        await self.rich_provider.close()
        await self.tool_loop_provider.close()
        await self.search_client.close()

    # --- entry point ---

    async def answer(
        self,
        system_prompt: str,
        history: List[ConversationTurn],
        policy: CascadePolicy,
    ) -> FinalAnswer:
        try:
            self._require_configured()
        except ConfigurationError as e:
            logger.error(str(e))
            return FinalAnswer(text=MESSAGES["not_configured"], stage=Stage.NOTICE)

        failures: List[ProviderOutcome] = []

        # 1. Rich provider
        if self.has_rich:
            outcome = await self._try_rich(system_prompt, history, policy)
            if outcome.ok:
                return self._finish(outcome.text, Stage.RICH, self.rich_provider.model_name, failures, policy)
            failures.append(outcome)

        # 2. Tool-loop provider
        if self.has_tool_loop:
            result = await self._try_tool_loop(system_prompt, history, policy)
            if result.ok:
                text = result.text if result.text.strip() else MESSAGES["empty_reply"]
                return self._finish(text, Stage.TOOL_LOOP, self.tool_loop_provider.model_name, failures, policy)
            failures.append(result.failure)

            if not self.has_search:
                logger.warning("Tool-loop provider blocked and no search configured")
                return FinalAnswer(text=notice_for(result.failure), stage=Stage.NOTICE, failures=failures)

            logger.warning("Groq blocked - switching to search-and-format fallback")
            return await self._search_and_format(system_prompt, history, policy, failures)

        # 3/4. No tool loop available: search directly
        if self.has_search:
            return await self._search_and_format(system_prompt, history, policy, failures)

        # 5. Only the rich provider was configured and it failed
        last = failures[-1] if failures else None
        return FinalAnswer(text=notice_for(last), stage=Stage.NOTICE, failures=failures)

    # --- stages ---

    async def _try_rich(
        self,
        system_prompt: str,
        history: List[ConversationTurn],
        policy: CascadePolicy,
    ) -> ProviderOutcome:
        trimmed = trim_history(history, policy.rich_history_budget_chars)
        outcome = await self.rich_provider.answer(system_prompt, trimmed, max_tokens=policy.max_tokens)
        if outcome.ok:
            logger.info("Answered by rich provider")
        elif outcome.kind in (OutcomeKind.RATE_LIMITED, OutcomeKind.CREDIT_EXHAUSTED):
            logger.warning(f"Anthropic unavailable ({outcome.kind.value}) - trying next stage")
        else:
            logger.error(f"Anthropic {outcome.kind.value}: {outcome.detail} - trying next stage")
        return outcome

    async def _try_tool_loop(
        self,
        system_prompt: str,
        history: List[ConversationTurn],
        policy: CascadePolicy,
    ) -> LoopResult:
        engine = ToolLoopEngine(self.search_client, max_tokens=policy.max_tokens, temperature=policy.temperature)

        budget = policy.history_budget_chars
        result = await engine.run(
            system_prompt, trim_history(history, budget), self.tool_loop_provider, policy.max_iterations
        )

        if result.failure is not None and result.failure.kind is OutcomeKind.TOKEN_BUDGET_EXCEEDED:
            reduced = max(1, budget // policy.reduced_budget_divisor)
            logger.warning(f"Groq token limit - retrying once with history budget {reduced}")
            result = await engine.run(
                system_prompt, trim_history(history, reduced), self.tool_loop_provider, policy.max_iterations
            )

        if result.failure is not None and not result.failure.is_blocking:
            logger.error(f"Groq {result.failure.kind.value}: {result.failure.detail}")
        return result

    def _output_contract(self, system_prompt: str, policy: CascadePolicy) -> str:
        """Reuse only the output-format part of the system prompt; drop the rest."""
        system_prompt = system_prompt or ""
        if policy.output_format == OUTPUT_JSON_ARRAY:
            idx = system_prompt.find(ARRAY_CONTRACT_MARKER)
            return system_prompt[idx:] if idx != -1 else DEFAULT_ARRAY_FORMAT
        idx = system_prompt.find(OPEN)
        return system_prompt[max(0, idx - 200):] if idx != -1 else DEFAULT_DEAL_FORMAT

    async def _search_and_format(
        self,
        system_prompt: str,
        history: List[ConversationTurn],
        policy: CascadePolicy,
        failures: List[ProviderOutcome],
    ) -> FinalAnswer:
        """
        History and system prompt are discarded so the formatting call can't
        hit the same budget problem again.
        """
        question = latest_user_message(history)[:300]
        result = await self.search_client.search(question)
        if result.is_empty:
            return FinalAnswer(text=MESSAGES["search_unavailable"], stage=Stage.NOTICE, failures=failures)

        results_text = result.to_text()

        if not self.has_tool_loop:
            text = f"{MESSAGES['raw_search_prefix']}\n\n{results_text}"
            return FinalAnswer(text=text, stage=Stage.RAW_SEARCH, model="tavily", failures=failures)

        if policy.output_format == OUTPUT_JSON_ARRAY:
            closing = "Output only the JSON array."
        else:
            closing = "Output only deal blocks plus a brief summary sentence."
        prompt = self.FORMAT_PROMPT.format(
            question=question,
            results=results_text[:10000],
            output_contract=self._output_contract(system_prompt, policy),
            closing=closing,
        )

        outcome = await self.tool_loop_provider.format(prompt, max_tokens=policy.max_tokens)
        if outcome.ok and outcome.text.strip():
            model = f"tavily+{self.tool_loop_provider.model_name}/format"
            return self._finish(outcome.text, Stage.SEARCH_AND_FORMAT, model, failures, policy)

        if not outcome.ok:
            failures.append(outcome)
            logger.warning(f"Formatting call failed ({outcome.kind.value}) - returning raw results")
        text = f"{MESSAGES['unformatted_prefix']}\n\n{results_text[:2000]}"
        return FinalAnswer(text=text, stage=Stage.RAW_SEARCH, model="tavily", failures=failures)

    def _finish(
        self,
        text: str,
        stage: Stage,
        model: Optional[str],
        failures: List[ProviderOutcome],
        policy: CascadePolicy,
    ) -> FinalAnswer:
        if policy.output_format == OUTPUT_DEAL_BLOCKS:
            text = filter_deal_text(text, policy.filter)
        return FinalAnswer(text=text, stage=stage, model=model, failures=failures)
