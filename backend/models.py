"""
Data Model
Conversation turns and tool calls exchanged with providers, normalised search
results, and the DealRecord parsed out of model output.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"
ROLE_SYSTEM = "system"


# ======================================================================
# Conversation
# ======================================================================

@dataclass
class ToolCall:
    """A provider's request to run a named tool with a JSON argument string."""
    id: str
    name: str
    arguments: str = "{}"

    def to_openai(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_openai(cls, data: Dict[str, Any]) -> "ToolCall":
        function = data.get("function") or {}
        arguments = function.get("arguments")
        if not isinstance(arguments, str):
            # Some OpenAI-compatible servers send the arguments already decoded
            arguments = json.dumps(arguments or {})
        # The id pairs the call with its tool result; some servers omit it
        call_id = data.get("id") or f"call_{uuid.uuid4().hex[:12]}"
        return cls(id=str(call_id), name=str(function.get("name", "")), arguments=arguments)


@dataclass
class ConversationTurn:
    role: str
    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    @property
    def length(self) -> int:
        return len(self.content or "")

    def to_openai(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message

    @classmethod
    def from_openai(cls, message: Dict[str, Any]) -> "ConversationTurn":
        return cls(
            role=message.get("role") or ROLE_ASSISTANT,
            content=message.get("content"),
            tool_calls=[ToolCall.from_openai(tc) for tc in (message.get("tool_calls") or [])],
            tool_call_id=message.get("tool_call_id"),
        )


def to_anthropic_messages(history: List[ConversationTurn]) -> List[Dict[str, str]]:
    """
    Plain user/assistant turns for the Anthropic messages API.
    Tool turns are internal to the tool loop and never sent; the list must open
    with a user turn.
    """
    messages = [
        {"role": turn.role, "content": turn.content or ""}
        for turn in history
        if turn.role in (ROLE_USER, ROLE_ASSISTANT)
    ]
    while messages and messages[0]["role"] != ROLE_USER:
        messages.pop(0)
    return messages


def latest_user_message(history: List[ConversationTurn]) -> str:
    for turn in reversed(history):
        if turn.role == ROLE_USER:
            return turn.content or ""
    return ""


# ======================================================================
# Search
# ======================================================================

@dataclass
class SearchItem:
    title: str
    url: str
    snippet: str


@dataclass
class SearchResult:
    """Normalised output of one search query."""
    query: str = ""
    answer_summary: Optional[str] = None
    items: List[SearchItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.answer_summary and not self.items

    def to_text(self) -> str:
        """Plain-text rendering fed back to a provider as a tool-result turn."""
        if self.is_empty:
            return f"No search results found for: {self.query}"
        lines = "\n\n---\n\n".join(
            f"TITLE: {item.title}\nURL: {item.url}\nSNIPPET: {item.snippet}"
            for item in self.items
        )
        prefix = f"ANSWER: {self.answer_summary}\n\n" if self.answer_summary else ""
        return prefix + lines


# ======================================================================
# Deals
# ======================================================================

DEAL_STATUSES = ("strong", "marginal", "rejected")
RISK_SCORES = ("Low", "Medium", "High")


def _as_text(value: Any) -> Any:
    if value is None:
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class DealOwner(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = "Unknown"
    address: Optional[str] = None
    apn: Optional[str] = None
    owner_type: Optional[str] = Field(default=None, alias="ownerType")
    years_owned: Optional[str] = Field(default=None, alias="yearsOwned")

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value):
        value = _as_text(value)
        return value if value else "Unknown"

    @field_validator("address", "apn", "owner_type", "years_owned", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return _as_text(value)


class DealFinancial(BaseModel):
    label: str
    value: str = ""
    highlight: Optional[bool] = None

    @field_validator("label", "value", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        value = _as_text(value)
        return "" if value is None else value


class DealRecord(BaseModel):
    """A deal parsed from model output. Never constructed from nothing."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    address: str = ""
    details: str = ""
    status: str = "strong"
    status_label: str = Field(default="Deal", alias="statusLabel")
    is_qct: Optional[bool] = Field(default=None, alias="isQCT")
    is_oz: Optional[bool] = Field(default=None, alias="isOZ")
    risk_score: Optional[str] = Field(default=None, alias="riskScore")
    feasibility_score: Optional[float] = Field(default=None, alias="feasibilityScore")
    deal_signals: List[str] = Field(default_factory=list, alias="dealSignals")
    source: Optional[str] = None
    listing_url: Optional[str] = Field(default=None, alias="listingUrl")
    owner: DealOwner = Field(default_factory=DealOwner)
    financials: List[DealFinancial] = Field(default_factory=list)

    @field_validator("address", "details", mode="before")
    @classmethod
    def _text_or_empty(cls, value):
        value = _as_text(value)
        return "" if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def _repair_status(cls, value):
        if value is None or value == "":
            return "strong"
        value = str(value).strip().lower()
        return value if value in DEAL_STATUSES else "marginal"

    @field_validator("status_label", mode="before")
    @classmethod
    def _repair_label(cls, value):
        return value if value else "Deal"

    @field_validator("is_qct", "is_oz", mode="before")
    @classmethod
    def _repair_flags(cls, value):
        if isinstance(value, bool) or value is None:
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "yes"):
            return True
        if isinstance(value, str) and value.strip().lower() in ("false", "no"):
            return False
        return None

    @field_validator("risk_score", mode="before")
    @classmethod
    def _repair_risk(cls, value):
        if isinstance(value, str):
            value = value.strip().capitalize()
            if value in RISK_SCORES:
                return value
        return None

    @field_validator("feasibility_score", mode="before")
    @classmethod
    def _repair_feasibility(cls, value):
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return value
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @field_validator("deal_signals", mode="before")
    @classmethod
    def _repair_signals(cls, value):
        if not isinstance(value, list):
            return []
        return [str(signal) for signal in value if signal not in (None, "")]

    @field_validator("owner", mode="before")
    @classmethod
    def _repair_owner(cls, value):
        return value if isinstance(value, dict) else {}

    @field_validator("financials", mode="before")
    @classmethod
    def _repair_financials(cls, value):
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict) and item.get("label")]

    @field_validator("source", "listing_url", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return _as_text(value)

    def to_payload(self) -> Dict[str, Any]:
        """camelCase JSON-ready dict, as the dashboard consumes it."""
        return self.model_dump(by_alias=True, exclude_none=True)
