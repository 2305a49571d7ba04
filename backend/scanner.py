"""
Market Scanner
Non-interactive single-turn run of the cascade that returns a JSON array of
deals for one market and agent type.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from config import Settings
from deal_blocks import deals_to_payload, extract_deal_array, filter_deals
from exceptions import UnknownAgentTypeError
from models import ROLE_USER, ConversationTurn
from orchestrator import CascadePolicy, ProviderCascade
from scan_prompts import LAND_ACQUISITION, build_scan_directive, build_system_prompt

logger = logging.getLogger(__name__)

RAW_PREVIEW_CHARS = 500


class MarketScanner:
    def __init__(self, settings: Settings, cascade: ProviderCascade):
        self._settings = settings
        self._cascade = cascade

    async def scan(self, agent_type: str, market: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        system_prompt = build_system_prompt(agent_type, market, now.year)
        if system_prompt is None:
            raise UnknownAgentTypeError(agent_type)

        directive = build_scan_directive(agent_type, market, now.year)
        land_context = agent_type == LAND_ACQUISITION
        policy = CascadePolicy.for_scan(self._settings, land_context=land_context)

        logger.info(f"Scanning {market} ({agent_type})")
        answer = await self._cascade.answer(system_prompt, [ConversationTurn(role=ROLE_USER, content=directive)], policy)

        envelope: Dict[str, Any] = {
            "deals": [],
            "scannedAt": now.isoformat().replace("+00:00", "Z"),
            "market": market,
            "agentType": agent_type,
        }

        deals = extract_deal_array(answer.text)
        if deals is None:
            logger.warning(f"Scan for {market} returned no JSON array (stage={answer.stage.value})")
            envelope["rawResponse"] = answer.text[:RAW_PREVIEW_CHARS]
            return envelope

        found = len(deals)
        deals = filter_deals(deals, policy.filter)
        if len(deals) < found:
            logger.info(f"Dropped {found - len(deals)} under-minimum parcels from {market} scan")

        envelope["deals"] = deals_to_payload(deals)
        return envelope
