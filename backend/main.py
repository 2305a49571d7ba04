"""
Deal Finder - Main Backend API
FastAPI server exposing the orchestration engine: conversational chat with
deal blocks, one-shot market scans, and a configuration health check.
"""

import os
import sys
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

# Ensure backend directory is on the Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import get_cors_origins, get_fastapi_port, get_log_level, get_rate_limit_rpm, load_settings

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from exceptions import UnknownAgentTypeError
from models import ROLE_ASSISTANT, ROLE_TOOL, ROLE_USER, ConversationTurn
from orchestrator import CascadePolicy, ProviderCascade
from scanner import MarketScanner

logging.basicConfig(level=get_log_level())
logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.5
CHAT_ERROR = {"error": "Failed to process request"}
SCAN_ERROR = {"error": "Scan failed", "deals": []}

# Initialize FastAPI
app = FastAPI(
    title="Deal Finder",
    description="Real estate deal finder backed by a provider cascade with live web search",
    version="1.0.0"
)

# CORS middleware - restrict to known origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
RATE_LIMIT = f"{get_rate_limit_rpm()}/minute"

# Engine components, shared across requests. Only HTTP clients are shared;
# every cascade run keeps its own state.
settings = load_settings()
cascade = ProviderCascade(settings)
scanner = MarketScanner(settings, cascade)


# ============================================================================
# REQUEST / RESPONSE MODELS
# ============================================================================

class ChatMessage(BaseModel):
    role: str
    content: Optional[Union[str, List[Dict[str, Any]]]] = None
    toolCallId: Optional[str] = None

    @field_validator("role")
    @classmethod
    def _known_role(cls, value):
        if value not in (ROLE_USER, ROLE_ASSISTANT, ROLE_TOOL):
            raise ValueError(f"unsupported role: {value}")
        return value

    def as_text(self) -> Optional[str]:
        """Anthropic-style content block lists are flattened to their text blocks."""
        if isinstance(self.content, list):
            return "\n".join(
                block.get("text", "") for block in self.content if block.get("type") == "text"
            )
        return self.content


class ChatRequest(BaseModel):
    system: str = ""
    messages: List[ChatMessage] = Field(default_factory=list)
    max_tokens: Optional[int] = 2000


class TextBlock(BaseModel):
    type: str = "text"
    text: str


class ChatResponse(BaseModel):
    content: List[TextBlock]
    model: Optional[str] = None


class ScanRequest(BaseModel):
    agentType: str
    market: str = Field(..., min_length=1)


class HealthResponse(BaseModel):
    status: str
    services: Dict[str, bool]
    timestamp: str


# ============================================================================
# HELPERS
# ============================================================================

async def run_until_disconnect(request: Request, coro):
    """
    Run a cascade coroutine, cancelling it if the client goes away.
    Cancellation propagates into any in-flight provider or search call.
    """
    task = asyncio.ensure_future(coro)
    try:
        while not task.done():
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                break
            if await request.is_disconnected():
                logger.info(f"Client disconnected from {request.url.path} - cancelling request")
                task.cancel()
                break
        return await task
    finally:
        if not task.done():
            task.cancel()


@app.exception_handler(RequestValidationError)
async def invalid_body_handler(request: Request, exc: RequestValidationError):
    """Malformed inbound bodies get the same generic 500 as any other unexpected failure."""
    logger.error(f"Malformed request body on {request.url.path}: {exc.errors()}")
    body = SCAN_ERROR if request.url.path == "/scan" else CHAT_ERROR
    return JSONResponse(status_code=500, content=body)


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "Deal Finder",
        "version": "1.0.0",
        "status": "operational",
        "endpoints": {
            "chat": "/chat",
            "scan": "/scan",
            "health": "/health",
        }
    }


@app.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
@limiter.limit(RATE_LIMIT)
async def chat(request: Request, chat_request: ChatRequest):
    """
    Conversational endpoint. Always answers 200 with text when any stage
    produced text, including fixed notices when every provider is blocked.
    """
    try:
        # Tool results belong to the run that produced them; only the dialogue carries over
        history = [
            ConversationTurn(role=message.role, content=message.as_text())
            for message in chat_request.messages
            if message.role != ROLE_TOOL
        ]
        policy = CascadePolicy.for_chat(settings, chat_request.system, chat_request.max_tokens or 2000)
        answer = await run_until_disconnect(request, cascade.answer(chat_request.system, history, policy))
    except Exception:
        logger.exception("Chat request failed")
        return JSONResponse(status_code=500, content=CHAT_ERROR)

    logger.info(f"Chat answered via {answer.stage.value} ({answer.model or 'no model'})")
    return ChatResponse(content=[TextBlock(text=answer.text)], model=answer.model)


@app.post("/scan")
@limiter.limit(RATE_LIMIT)
async def scan(request: Request, scan_request: ScanRequest):
    """One-shot market scan returning a JSON array of deals."""
    try:
        return await run_until_disconnect(
            request, scanner.scan(scan_request.agentType, scan_request.market)
        )
    except UnknownAgentTypeError:
        logger.warning(f"Scan requested for unknown agent type: {scan_request.agentType}")
        return JSONResponse(status_code=400, content={"error": "Unknown agent type"})
    except Exception:
        logger.exception("Scan request failed")
        return JSONResponse(status_code=500, content=SCAN_ERROR)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Configuration health: which stages could run right now."""
    services = {
        "anthropic": cascade.rich_provider.is_healthy(),
        "groq": cascade.tool_loop_provider.is_healthy(),
        "tavily": cascade.search_client.is_healthy(),
    }

    if services["anthropic"] or services["groq"]:
        status = "healthy"
    elif services["tavily"]:
        status = "degraded"  # Search works but nothing can format it
    else:
        status = "offline"

    return HealthResponse(
        status=status,
        services=services,
        timestamp=datetime.now(timezone.utc).isoformat()
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down Deal Finder...")
    await cascade.close()


if __name__ == "__main__":
    import uvicorn

    port = get_fastapi_port()
    is_production = os.getenv("ENVIRONMENT", "development") == "production"

    uvicorn_config = {
        "app": "main:app",
        "host": "0.0.0.0",
        "port": port,
        "log_level": "info",
    }

    if not is_production:
        uvicorn_config["reload"] = True
        uvicorn_config["reload_dirs"] = ["."]
        uvicorn_config["reload_includes"] = ["*.py"]

    uvicorn.run(**uvicorn_config)
