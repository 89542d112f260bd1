# -*- coding: utf-8 -*-
"""
订阅源服务工具模块

功能：
- 提供订阅源服务中共享的底层工具函数

公开接口：
- 无（仅内部使用）

内部方法：
- `_utcnow`
- `_normalize_datetime_utc`
- `_parse_datetime_text`
- `_resolve_datetime`
- `_resolve_content`
- `_clean_text`
- `_html_to_text`
- `_to_feed_schema`
- `_to_item_schema`
- `_to_folder_schema`
"""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterable, Mapping

from bs4 import BeautifulSoup

from ..models import Feed, FeedItem, Folder
from ..schemas import FeedItemSchema, FeedSchema, FolderSchema

_WHITESPACE_RE = re.compile(r"\s+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_datetime_utc(value: datetime | None) -> datetime | None:
    """统一将时间转换为 UTC 时区。"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_datetime_text(text_value: str) -> datetime | None:
    """解析 RFC 822 或 ISO 8601 时间文本。"""
    try:
        return _normalize_datetime_utc(parsedate_to_datetime(text_value))
    except (TypeError, ValueError, IndexError):
        pass
    try:
        iso_text = text_value.strip()
        if iso_text.endswith(("Z", "z")):
            iso_text = iso_text[:-1] + "+00:00"
        return _normalize_datetime_utc(datetime.fromisoformat(iso_text))
    except ValueError:
        return None


def _resolve_datetime(entry: Mapping[str, Any]) -> datetime | None:
    """解析条目的发布时间：发布、更新、创建依次回退，统一转换为 UTC。"""
    struct_time = (
        entry.get("published_parsed")
        or entry.get("updated_parsed")
        or entry.get("created_parsed")
    )
    if struct_time:
        # feedparser 已将 *_parsed 归一为 UTC 的 struct_time
        return datetime.fromtimestamp(calendar.timegm(struct_time), tz=timezone.utc)

    text_value = entry.get("published") or entry.get("updated") or entry.get("created")
    if isinstance(text_value, str) and text_value.strip():
        return _parse_datetime_text(text_value)
    return None


def _resolve_content(entry: Mapping[str, Any]) -> str | None:
    """解析条目正文内容，缺失时回退到摘要。"""
    contents = entry.get("content")
    if isinstance(contents, list) and contents:
        for item in contents:
            value = item.get("value")
            if value:
                return value
    if isinstance(contents, dict):
        value = contents.get("value")
        if value:
            return value
    return entry.get("summary") or entry.get("description")


def _clean_text(value: Any) -> str | None:
    """去除首尾空白，空字符串视为缺失。"""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _html_to_text(value: str | None) -> str:
    """剥离 HTML 标签并压缩空白。"""
    if not value:
        return ""
    text = BeautifulSoup(value, "html.parser").get_text(" ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def _to_feed_schema(feed: Feed, folder_ids: Iterable[int] = ()) -> FeedSchema:
    """将 ORM 订阅源转换为 Pydantic 模型。"""
    return FeedSchema(
        id=feed.id,
        url=feed.url,
        title=feed.title,
        custom_title=feed.custom_title,
        description=feed.description,
        last_fetched_at=_normalize_datetime_utc(feed.last_fetched_at),
        last_fetch_status=feed.last_fetch_status,
        last_fetch_error_code=feed.last_fetch_error_code,
        last_fetch_error_message=feed.last_fetch_error_message,
        last_fetch_error_at=_normalize_datetime_utc(feed.last_fetch_error_at),
        created_at=_normalize_datetime_utc(feed.created_at) or _utcnow(),
        folder_ids=list(folder_ids),
    )


def _to_item_schema(item: FeedItem) -> FeedItemSchema:
    """将 ORM 条目转换为 Pydantic 模型。"""
    return FeedItemSchema(
        id=item.id,
        feed_id=item.feed_id,
        title=item.title,
        link=item.link,
        content=item.content,
        author=item.author,
        published_at=_normalize_datetime_utc(item.published_at),
        read_at=_normalize_datetime_utc(item.read_at),
        saved_at=_normalize_datetime_utc(item.saved_at),
        created_at=_normalize_datetime_utc(item.created_at) or _utcnow(),
    )


def _to_folder_schema(folder: Folder) -> FolderSchema:
    return FolderSchema(
        id=folder.id,
        name=folder.name,
        created_at=_normalize_datetime_utc(folder.created_at) or _utcnow(),
        updated_at=_normalize_datetime_utc(folder.updated_at) or _utcnow(),
    )
