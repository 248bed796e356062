import logging
from typing import Any, Dict, List

import requests

from errors import UpstreamError


logger = logging.getLogger(__name__)

DDG_URL = "https://api.duckduckgo.com/"


def _flatten_related(topics: Any) -> List[Dict[str, str]]:
    out: List[Dict[str, str]] = []
    if isinstance(topics, list):
        for item in topics:
            out.extend(_flatten_related(item))
    elif isinstance(topics, dict):
        if topics.get("FirstURL") and topics.get("Text"):
            out.append({"title": topics["Text"], "url": topics["FirstURL"], "snippet": topics["Text"]})
        if "Topics" in topics:
            out.extend(_flatten_related(topics["Topics"]))
    return out


def web_search(query: str, limit: int = 3, timeout: int = 15) -> List[Dict[str, str]]:
    """Look ``query`` up with the DuckDuckGo Instant Answer API.

    Returns at most ``limit`` results as ``{"title", "url", "snippet"}``,
    best match first. Raises :class:`UpstreamError` when the service cannot
    be reached or answers with something other than JSON.
    """
    q = (query or "").strip()
    if not q:
        return []

    params = {"q": q, "format": "json", "no_html": "1", "no_redirect": "1", "skip_disambig": "1"}
    try:
        r = requests.get(DDG_URL, params=params, timeout=timeout, headers={"User-Agent": "Mozilla/5.0"})
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Web search failed for %r: %s", q, e)
        raise UpstreamError("Web search failed") from e

    if not isinstance(data, dict):
        logger.warning("Web search for %r returned a %s payload", q, type(data).__name__)
        raise UpstreamError("Web search failed")

    results: List[Dict[str, str]] = []
    answer = str(data.get("Answer") or data.get("AbstractText") or "").strip()
    if answer:
        results.append({
            "title": data.get("Heading") or q,
            "url": data.get("AbstractURL") or "",
            "snippet": answer,
        })
    for item in data.get("Results") or []:
        if isinstance(item, dict) and item.get("FirstURL") and item.get("Text"):
            results.append({"title": item["Text"], "url": item["FirstURL"], "snippet": item["Text"]})
    results.extend(_flatten_related(data.get("RelatedTopics", [])))

    logger.info("Web search for %r returned %d result(s)", q, len(results))
    return results[:max(0, limit)]


def format_results(results: List[Dict[str, str]]) -> str:
    lines = []
    for i, r in enumerate(results, 1):
        line = f"{i}. {r.get('title', '')}"
        if r.get("url"):
            line += f" ({r['url']})"
        if r.get("snippet") and r.get("snippet") != r.get("title"):
            line += f": {r['snippet']}"
        lines.append(line)
    return "\n".join(lines)
