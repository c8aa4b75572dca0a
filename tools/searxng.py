"""Web search through a SearxNG instance's JSON API."""

import logging
import os
from typing import Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_SEARXNG_URL = "http://127.0.0.1:8888/search"


class SearchToolError(RuntimeError):
    """Web search request failed."""
    pass


class SearxngTool:
    """Minimal SearxNG client returning ``{url, title, description}`` results."""

    name = "Web Search"
    description = "A web search tool"

    def __init__(
        self,
        base_url: Optional[str] = None,
        max_results: int = 10,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if max_results < 1 or max_results > 100:
            raise ValueError("max_results must be between 1 and 100")
        self.base_url = base_url or os.getenv("SEARXNG_URL", DEFAULT_SEARXNG_URL)
        self.max_results = max_results
        self.timeout = timeout
        self.session = session or requests.Session()

    def run(self, query: str) -> List[Dict[str, str]]:
        if not query or not query.strip():
            raise ValueError("query must not be empty")

        logger.info(f"[SearxngTool] Searching: {query}")
        try:
            response = self.session.get(
                self.base_url,
                params={"q": query, "format": "json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise SearchToolError(f"Search request failed: {exc}") from exc
        except ValueError as exc:
            raise SearchToolError(f"Search response is not JSON: {exc}") from exc

        results = []
        for result in (data.get("results") or [])[: self.max_results]:
            results.append({
                "url": result.get("url") or "",
                "title": result.get("title") or "",
                "description": result.get("content") or "",
            })
        logger.info(f"[SearxngTool] {len(results)} results for: {query}")
        return results
