# -*- coding: utf-8 -*-
"""
订阅源解析服务

功能：
- 将 RSS 0.9x/1.0/2.0、Atom 与 JSON Feed 1.x 文本解析为统一的订阅源结构
- 组合抓取与解析，支持基于 ETag / Last-Modified 的条件请求

公开接口：
- `parse_feed_text`
- `parse_feed_with_cache`
- `parse_feed_with_metadata`
- `parse_feed`

内部方法：
- `_looks_like_json_feed`
- `_parse_json_feed`
- `_parse_xml_feed`
- `_json_item_author`
- `_json_item_content`
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

import feedparser  # type: ignore

from ..errors import FeedParseError
from ..schemas import ParsedFeed, ParsedFeedFetch, ParsedFeedItem
from .fetch_service import fetch_feed_xml
from .utils import (
    _clean_text,
    _parse_datetime_text,
    _resolve_content,
    _resolve_datetime,
)


def _looks_like_json_feed(text: str) -> bool:
    return text.startswith("{")


def _json_item_author(item: Dict[str, Any]) -> str | None:
    authors = item.get("authors")
    if isinstance(authors, list):
        for author in authors:
            if isinstance(author, dict) and _clean_text(author.get("name")):
                return _clean_text(author.get("name"))
    author = item.get("author")
    if isinstance(author, dict):
        return _clean_text(author.get("name"))
    return None


def _json_item_content(item: Dict[str, Any]) -> str | None:
    for key in ("content_html", "content_text", "summary"):
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _parse_json_feed(text: str) -> ParsedFeed:
    """解析 JSON Feed 1.0 / 1.1。"""
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise FeedParseError("JSON Feed 内容无法解析") from exc
    if not isinstance(payload, dict):
        raise FeedParseError("JSON Feed 顶层结构必须是对象")

    version = payload.get("version")
    raw_items = payload.get("items")
    is_json_feed = isinstance(version, str) and "jsonfeed.org" in version
    if not is_json_feed and not isinstance(raw_items, list):
        raise FeedParseError("无法识别的 JSON 内容")

    items: List[ParsedFeedItem] = []
    for raw in raw_items if isinstance(raw_items, list) else []:
        if not isinstance(raw, dict):
            continue
        published_text = raw.get("date_published") or raw.get("date_modified")
        items.append(
            ParsedFeedItem(
                guid=_clean_text(raw.get("id")),
                title=_clean_text(raw.get("title")),
                link=_clean_text(raw.get("url") or raw.get("external_url")),
                content=_json_item_content(raw),
                author=_json_item_author(raw),
                published_at=_parse_datetime_text(published_text)
                if isinstance(published_text, str)
                else None,
            )
        )

    return ParsedFeed(
        title=_clean_text(payload.get("title")),
        description=_clean_text(payload.get("description")),
        items=items,
    )


def _parse_xml_feed(text: str) -> ParsedFeed:
    """使用 feedparser 解析 RSS / Atom。"""
    # 非标记文本交给 feedparser 可能被当作地址或文件路径处理
    if not text.startswith("<"):
        raise FeedParseError("内容不是有效的 XML 订阅源")

    parsed = feedparser.parse(text)
    if not parsed.get("version") and not parsed.entries:
        raise FeedParseError("内容不是有效的 RSS 或 Atom 订阅源")

    channel = parsed.feed
    items = [
        ParsedFeedItem(
            guid=_clean_text(entry.get("id")),
            title=_clean_text(entry.get("title")),
            link=_clean_text(entry.get("link")),
            content=_resolve_content(entry),
            author=_clean_text(entry.get("author")),
            published_at=_resolve_datetime(entry),
        )
        for entry in parsed.entries
    ]
    return ParsedFeed(
        title=_clean_text(channel.get("title")),
        description=_clean_text(channel.get("subtitle") or channel.get("description")),
        items=items,
    )


def parse_feed_text(raw: str) -> ParsedFeed:
    """解析订阅源文本，无法识别时抛出 `FeedParseError`。"""
    text = (raw or "").lstrip("\ufeff").strip()
    if not text:
        raise FeedParseError("订阅源内容为空")
    if _looks_like_json_feed(text):
        return _parse_json_feed(text)
    return _parse_xml_feed(text)


def parse_feed_with_cache(
    url: str,
    *,
    etag: str | None = None,
    last_modified: str | None = None,
    timeout: float | None = None,
    retries: int | None = None,
) -> ParsedFeedFetch:
    """条件抓取并解析订阅源，未修改时跳过解析。"""
    result = fetch_feed_xml(
        url,
        etag=etag,
        last_modified=last_modified,
        timeout=timeout,
        retries=retries,
    )
    if result.status == "not_modified":
        return ParsedFeedFetch(
            status="not_modified",
            etag=result.etag or etag,
            last_modified=result.last_modified or last_modified,
            resolved_url=result.final_url,
        )
    return ParsedFeedFetch(
        status="ok",
        parsed_feed=parse_feed_text(result.text or ""),
        etag=result.etag,
        last_modified=result.last_modified,
        resolved_url=result.final_url,
    )


def parse_feed_with_metadata(
    url: str,
    *,
    timeout: float | None = None,
    retries: int | None = None,
) -> ParsedFeedFetch:
    """无缓存校验字段的抓取与解析，用于新订阅。"""
    return parse_feed_with_cache(url, timeout=timeout, retries=retries)


def parse_feed(url: str) -> ParsedFeed:
    """抓取并解析订阅源，仅返回解析结果。"""
    result = parse_feed_with_metadata(url)
    if result.parsed_feed is None:
        raise FeedParseError("订阅源未返回内容")
    return result.parsed_feed
