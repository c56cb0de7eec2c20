"""Web search tool backed by DuckDuckGo (instant answers, then HTML results)."""

import json
import re
from typing import Any
from urllib.parse import parse_qs, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel

from maid.config import WebSearchConfig, get_config
from maid.logging import get_logger
from maid.tools.registry import Tool, ToolResult

log = get_logger(__name__)

DUCKDUCKGO_BASE = "https://duckduckgo.com"
SOURCE_INSTANT_ANSWER = "duckduckgo_instant_answer"
SOURCE_HTML = "duckduckgo_html"


class SearchResult(BaseModel):
    title: str
    snippet: str
    url: str | None = None


def _clean_text(value: str) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def resolve_duckduckgo_redirect(href: str) -> str:
    """Unwrap ``/l/?uddg=<target>`` redirect links; other links are made absolute."""
    absolute = urljoin(DUCKDUCKGO_BASE, href)
    target = parse_qs(urlparse(absolute).query).get("uddg")
    return target[0] if target else absolute


def parse_instant_answer(payload: Any, query: str, limit: int) -> list[SearchResult]:
    """Abstract first, then RelatedTopics flattened one level."""
    if not isinstance(payload, dict):
        return []
    related = payload.get("RelatedTopics") if isinstance(payload.get("RelatedTopics"), list) else []
    flattened: list[Any] = []
    for item in related:
        if isinstance(item, dict) and isinstance(item.get("Topics"), list):
            flattened.extend(item["Topics"])
        else:
            flattened.append(item)

    topics = [
        SearchResult(
            title=item["Text"].split(" - ")[0] or item["Text"],
            snippet=item["Text"],
            url=item.get("FirstURL") or None,
        )
        for item in flattened
        if isinstance(item, dict) and isinstance(item.get("Text"), str)
    ][:limit]

    results: list[SearchResult] = []
    abstract = payload.get("AbstractText")
    if isinstance(abstract, str) and abstract.strip():
        results.append(
            SearchResult(
                title=payload.get("Heading") or query,
                snippet=abstract,
                url=payload.get("AbstractURL") or None,
            )
        )
    return (results + topics)[:limit]


def parse_html_results(html: str, limit: int) -> list[SearchResult]:
    """Pair ``a.result__a`` titles with ``.result__snippet`` snippets by index."""
    soup = BeautifulSoup(html, "html.parser")
    anchors = soup.select("a.result__a")
    snippets = soup.select(".result__snippet")
    results: list[SearchResult] = []
    for index, anchor in enumerate(anchors[:limit]):
        title = _clean_text(anchor.get_text(" "))
        href = str(anchor.get("href") or "")
        url = resolve_duckduckgo_redirect(href) if href else ""
        snippet = _clean_text(snippets[index].get_text(" ")) if index < len(snippets) else ""
        if not title or not url:
            continue
        results.append(SearchResult(title=title, snippet=snippet or title, url=url))
    return results


class DuckDuckGoSearch:
    """Keyless search: structured instant-answer API with an HTML scrape fallback."""

    def __init__(self, client: httpx.AsyncClient | None = None, config: WebSearchConfig | None = None):
        self.config = config or get_config().web_search
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            follow_redirects=True,
            timeout=float(self.config.timeout or 20),
            headers={"User-Agent": self.config.user_agent},
        )

    def result_limit(self, top_k: Any) -> int:
        try:
            requested = int(top_k or self.config.default_top_k)
        except (TypeError, ValueError):
            requested = self.config.default_top_k
        return max(1, min(requested, self.config.max_results))

    async def fetch_html_results(self, query: str, limit: int) -> list[SearchResult]:
        response = await self.client.get(
            self.config.html_url,
            params={"q": query},
            headers={"Accept": "text/html"},
        )
        if not response.is_success:
            log.debug("HTML search returned non-success status", query=query, status=response.status_code)
            return []
        return parse_html_results(response.text, limit)

    async def search(self, query: str, top_k: Any = None) -> dict[str, Any]:
        """Return the JSON-ready payload the model sees for one query.

        Failures are reported inside the payload (``error`` key) rather than raised.
        """
        limit = self.result_limit(top_k)
        try:
            response = await self.client.get(
                self.config.instant_answer_url,
                params={
                    "q": query,
                    "format": "json",
                    "no_html": "1",
                    "no_redirect": "1",
                    "skip_disambig": "1",
                },
            )
            if not response.is_success:
                return {"query": query, "error": f"search_failed:{response.status_code}"}

            instant = parse_instant_answer(response.json(), query, limit)
            if instant:
                return {
                    "query": query,
                    "results": [item.model_dump(exclude_none=True) for item in instant],
                    "source": SOURCE_INSTANT_ANSWER,
                }

            html_results = await self.fetch_html_results(query, limit)
            if html_results:
                return {
                    "query": query,
                    "results": [item.model_dump(exclude_none=True) for item in html_results],
                    "source": SOURCE_HTML,
                }

            return {"query": query, "error": "no_results", "results": [], "source": SOURCE_HTML}
        except (httpx.HTTPError, ValueError) as e:
            log.warning("Web search failed", query=query, error=str(e))
            return {"query": query, "error": f"search_error:{e}"}

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()


class WebSearchTool(Tool):
    """Search the web for up-to-date snippets."""

    name = "web_search"
    description = "Search the web for up-to-date information and return concise source snippets."
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Search query string."},
            "top_k": {
                "type": "number",
                "description": "Maximum number of results to return.",
                "default": 5,
            },
        },
        "required": ["query"],
    }

    def __init__(self, search: DuckDuckGoSearch | None = None):
        self.search = search or DuckDuckGoSearch()
        self.timeout_seconds = float(self.search.config.timeout or 20) * 2

    async def execute(self, query: str = "", top_k: Any = None, **kwargs: Any) -> ToolResult:
        q = (query or "").strip()
        if not q:
            payload: dict[str, Any] = {"error": "missing_query"}
        else:
            payload = await self.search.search(q, top_k)
        return ToolResult(success=True, content=json.dumps(payload, ensure_ascii=False), data=payload)

    async def close(self) -> None:
        await self.search.close()
