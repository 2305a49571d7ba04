"""
Search Integrations Module
Tavily web search, normalised to SearchResult. Search failures never raise:
they degrade to an empty result so the calling provider can reason with less.
"""

import json
import logging
from typing import Optional

import httpx

from config import Settings
from models import SearchItem, SearchResult

logger = logging.getLogger(__name__)


class TavilySearch:
    """
    Web search via Tavily API.
    Fixed configuration: advanced depth, capped result count, answer synthesis on.
    """

    API_URL = "https://api.tavily.com/search"
    SEARCH_DEPTH = "advanced"

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self._settings = settings
        self._client: Optional[httpx.AsyncClient] = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def is_healthy(self) -> bool:
        """Check if Tavily API key is configured (no API call, saves quota)."""
        return self._settings.has_tavily

    async def search(self, query: str) -> SearchResult:
        """
        Run one search query.
        Returns an empty SearchResult on missing key, network error, HTTP error
        or an undecodable body. No retries here.
        """
        empty = SearchResult(query=query)
        if not self._settings.has_tavily:
            logger.warning("Tavily API key not configured, skipping search")
            return empty
        if not query or not query.strip():
            return empty

        payload = {
            "api_key": self._settings.tavily_api_key,
            "query": query,
            "search_depth": self.SEARCH_DEPTH,
            "max_results": self._settings.search_max_results,
            "include_answer": True,
            "include_raw_content": False,
        }

        try:
            resp = await self._get_client().post(self.API_URL, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Tavily error: {e.response.status_code}")
            return empty
        except httpx.HTTPError as e:
            logger.error(f"Tavily transport error: {e.__class__.__name__}: {e}")
            return empty
        except (json.JSONDecodeError, ValueError):
            logger.error("Tavily returned a non-JSON body")
            return empty

        if not isinstance(data, dict):
            return empty

        items = []
        for result in data.get("results") or []:
            if not isinstance(result, dict):
                continue
            items.append(SearchItem(
                title=result.get("title") or "",
                url=result.get("url") or "",
                snippet=result.get("content") or "",
            ))

        logger.info(f"Tavily returned {len(items)} results for '{query[:80]}'")
        for item in items[:5]:
            logger.debug(f"  - {item.url}")

        return SearchResult(query=query, answer_summary=data.get("answer") or None, items=items)
