"""Web tools: Brave search and page fetching."""

from __future__ import annotations

import html
import json
import re
from typing import Any
from urllib.parse import urlparse

import httpx

from relaybot.agent.tools.base import Tool

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_7_2) AppleWebKit/537.36"
BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


def _strip_tags(text: str) -> str:
    text = re.sub(r"<script[\s\S]*?</script>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"<style[\s\S]*?</style>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    return html.unescape(text).strip()


def _normalize(text: str) -> str:
    text = re.sub(r"[ \t]+", " ", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def html_to_markdown(raw: str) -> str:
    """Convert HTML to a rough markdown rendering (links, headings, lists, blocks)."""
    text = re.sub(
        r"<a\s+[^>]*href=[\"']([^\"']+)[\"'][^>]*>([\s\S]*?)</a>",
        lambda m: f"[{_strip_tags(m.group(2))}]({m.group(1)})",
        raw,
        flags=re.IGNORECASE,
    )
    text = re.sub(
        r"<h([1-6])[^>]*>([\s\S]*?)</h\1>",
        lambda m: f"\n{'#' * int(m.group(1))} {_strip_tags(m.group(2))}\n",
        text,
        flags=re.IGNORECASE,
    )
    text = re.sub(
        r"<li[^>]*>([\s\S]*?)</li>",
        lambda m: f"\n- {_strip_tags(m.group(1))}",
        text,
        flags=re.IGNORECASE,
    )
    text = re.sub(r"</(p|div|section|article)>", "\n\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<(br|hr)\s*/?>", "\n", text, flags=re.IGNORECASE)
    return _normalize(_strip_tags(text))


def validate_url(url: str) -> str | None:
    """Return an error message if the URL is not a fetchable http(s) URL."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return f"Only http/https allowed, got '{parsed.scheme or 'none'}'"
    if not parsed.netloc:
        return "Missing domain"
    return None


class WebSearchTool(Tool):
    """Search the web using the Brave Search API."""

    def __init__(self, api_key: str | None = None, max_results: int = 5) -> None:
        self.api_key = api_key
        self.max_results = max_results

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return "Search the web. Returns titles, URLs, and snippets."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "count": {
                    "type": "integer",
                    "description": "Number of results (1-10)",
                    "minimum": 1,
                    "maximum": 10,
                },
            },
            "required": ["query"],
        }

    async def execute(self, *, query: str, count: int | None = None) -> str:
        if not self.api_key:
            return "Error: web search API key not configured"

        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(
                BRAVE_SEARCH_URL,
                params={"q": query, "count": count or self.max_results},
                headers={"Accept": "application/json", "X-Subscription-Token": self.api_key},
            )
            response.raise_for_status()
            data = response.json()

        results = (data.get("web") or {}).get("results") or []
        if not results:
            return f"No results for: {query}"

        lines = [f"Results for: {query}\n"]
        for i, item in enumerate(results[: count or self.max_results], start=1):
            lines.append(f"{i}. {item.get('title', '')}\n   {item.get('url', '')}")
            if item.get("description"):
                lines.append(f"   {item['description']}")
        return "\n".join(lines)


class WebFetchTool(Tool):
    """Fetch a URL and extract readable content."""

    def __init__(self, max_chars: int = 50000) -> None:
        self.max_chars = max_chars

    @property
    def name(self) -> str:
        return "web_fetch"

    @property
    def description(self) -> str:
        return "Fetch URL and extract readable content (HTML -> markdown/text)."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "URL to fetch"},
                "extract_mode": {"type": "string", "enum": ["markdown", "text"]},
                "max_chars": {"type": "integer", "minimum": 100},
            },
            "required": ["url"],
        }

    async def execute(
        self,
        *,
        url: str,
        extract_mode: str = "markdown",
        max_chars: int | None = None,
    ) -> str:
        max_chars = max_chars or self.max_chars
        error = validate_url(url)
        if error:
            return json.dumps({"error": f"URL validation failed: {error}", "url": url})

        try:
            async with httpx.AsyncClient(
                timeout=30.0, follow_redirects=True, headers={"User-Agent": USER_AGENT}
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            return json.dumps({"error": str(e), "url": url})

        if response.status_code >= 400:
            return json.dumps({"error": f"HTTP {response.status_code}", "url": url})

        content_type = response.headers.get("content-type", "")
        body = response.text
        head = body[:256].lower()

        if "application/json" in content_type:
            try:
                text = json.dumps(json.loads(body), indent=2, ensure_ascii=False)
            except json.JSONDecodeError:
                text = body
            extractor = "json"
        elif "text/html" in content_type or head.startswith(("<!doctype", "<html")):
            text = html_to_markdown(body) if extract_mode == "markdown" else _strip_tags(body)
            extractor = "html"
        else:
            text = body
            extractor = "raw"

        truncated = len(text) > max_chars
        if truncated:
            text = text[:max_chars]

        return json.dumps(
            {
                "url": url,
                "final_url": str(response.url),
                "status": response.status_code,
                "extractor": extractor,
                "truncated": truncated,
                "length": len(text),
                "text": text,
            },
            ensure_ascii=False,
        )
