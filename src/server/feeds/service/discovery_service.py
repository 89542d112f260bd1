# -*- coding: utf-8 -*-
"""
订阅源发现服务

功能：
- 从用户提交的站点地址中找出候选订阅链接：页面中声明的 alternate 链接优先，
  其后补充常见的订阅路径

公开接口：
- `discover_feed_candidates`

内部方法：
- `_fetch_html`
- `_build_www_variant_url`
- `_extract_alternate_candidates`
- `_build_heuristic_candidates`
- `_add_candidate`
- `_should_skip_candidate`
- `_is_feed_link`

说明：
- 页面抓取失败不会抛出异常，只会减少候选数量。
"""

from __future__ import annotations

import re
from typing import List
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup
from loguru import logger

from ..config import feeds_config
from ..errors import FeedError
from ..schemas import DiscoveryMethod, FeedDiscoveryResult
from .fetch_service import HTML_ACCEPT_HEADER, fetch_remote_text
from .url_service import normalize_feed_url

_FEED_TYPE_RE = re.compile(
    r"(application/(rss|atom)\+xml|application/xml|text/xml|application/feed\+json|application/json)",
    re.IGNORECASE,
)
_FEED_HINT_RE = re.compile(r"(rss|atom|feed|xml)", re.IGNORECASE)
_COMMENT_RE = re.compile(r"(comment|comments|reply|replies)", re.IGNORECASE)

HEURISTIC_PATHS = (
    "/feed",
    "/feed.xml",
    "/rss",
    "/rss.xml",
    "/atom.xml",
    "/?feed=rss2",
)


def _fetch_html(url: str) -> tuple[str, str] | None:
    """抓取页面 HTML，返回 (内容, 最终地址)，失败时返回 None。"""
    try:
        result = fetch_remote_text(
            url,
            timeout=feeds_config.feeds_discovery_timeout,
            retries=0,
            accept=HTML_ACCEPT_HEADER,
        )
    except FeedError as exc:
        logger.warning("发现流程抓取页面失败：url={}, 错误码={}", url, exc.code)
        return None
    if result.status != "ok" or not result.text:
        return None
    return result.text, result.final_url


def _build_www_variant_url(url: str) -> str | None:
    parts = urlsplit(url)
    hostname = (parts.hostname or "").lower()
    if hostname.startswith("www."):
        return None
    if hostname == "localhost" or hostname.endswith(".localhost"):
        return None
    if "." not in hostname:
        return None
    netloc = parts.netloc.replace(hostname, f"www.{hostname}", 1)
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, ""))


def _should_skip_candidate(candidate_url: str, title: str | None = None) -> bool:
    return bool(_COMMENT_RE.search(candidate_url) or _COMMENT_RE.search(title or ""))


def _add_candidate(
    result: FeedDiscoveryResult,
    raw_candidate: str,
    method: DiscoveryMethod,
    normalized_input_url: str,
) -> None:
    candidate = normalize_feed_url(raw_candidate)
    if not candidate or candidate == normalized_input_url:
        return
    if _should_skip_candidate(candidate):
        return
    if candidate in result.method_by_url:
        return
    if len(result.candidates) >= feeds_config.feeds_max_discovery_candidates:
        return
    result.candidates.append(candidate)
    result.method_by_url[candidate] = method


def _is_feed_link(link) -> bool:
    rel_value = link.get("rel") or []
    if isinstance(rel_value, str):
        rel_value = rel_value.split()
    if "alternate" not in [token.lower() for token in rel_value]:
        return False

    link_type = (link.get("type") or "").strip()
    if link_type:
        return bool(_FEED_TYPE_RE.search(link_type))
    href = link.get("href") or ""
    title = link.get("title") or ""
    return bool(_FEED_HINT_RE.search(href) or _FEED_HINT_RE.search(title))


def _extract_alternate_candidates(
    html: str,
    base_url: str,
    result: FeedDiscoveryResult,
    normalized_input_url: str,
) -> None:
    """解析页面中的 `<link rel="alternate">`，以页面最终地址为基准补全链接。"""
    soup = BeautifulSoup(html, "html.parser")
    for link in soup.find_all("link"):
        if not _is_feed_link(link):
            continue
        href = (link.get("href") or "").strip()
        if not href:
            continue
        try:
            resolved = urljoin(base_url, href)
        except ValueError:
            continue
        if _should_skip_candidate(resolved, link.get("title")):
            continue
        _add_candidate(result, resolved, "html_alternate", normalized_input_url)


def _build_heuristic_candidates(url: str) -> List[str]:
    parts = urlsplit(url)
    origin = urlunsplit((parts.scheme, parts.netloc, "/", "", ""))
    return [urljoin(origin, path) for path in HEURISTIC_PATHS]


def discover_feed_candidates(site_url: str) -> FeedDiscoveryResult:
    """从站点地址发现候选订阅链接，最多返回配置上限个。"""
    result = FeedDiscoveryResult()
    normalized_input_url = normalize_feed_url(site_url)
    if not normalized_input_url:
        return result

    page = _fetch_html(normalized_input_url)
    if page:
        html, final_url = page
        _extract_alternate_candidates(html, final_url, result, normalized_input_url)
    else:
        www_variant_url = _build_www_variant_url(normalized_input_url)
        if www_variant_url:
            www_page = _fetch_html(www_variant_url)
            if www_page:
                html, final_url = www_page
                _extract_alternate_candidates(
                    html, final_url, result, normalized_input_url
                )
            for candidate in _build_heuristic_candidates(www_variant_url):
                _add_candidate(result, candidate, "heuristic_path", normalized_input_url)

    for candidate in _build_heuristic_candidates(normalized_input_url):
        _add_candidate(result, candidate, "heuristic_path", normalized_input_url)

    logger.debug(
        "发现候选订阅链接：url={}, 数量={}", normalized_input_url, len(result.candidates)
    )
    return result
