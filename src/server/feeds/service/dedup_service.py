# -*- coding: utf-8 -*-
"""
条目去重服务

公开接口：
- `compute_feed_item_fingerprint`
- `identify_item`
- `build_item_rows`

内部方法：
- `_normalize_part`
- `_to_iso_string`

文件功能：
- 为缺少原生 guid 的条目计算稳定的内容指纹，并将解析结果转换为可冲突忽略写入的行。

说明：
- 存在 guid 时不计算指纹，两者在同一条目中互斥；
- 唯一约束负责最终去重，本模块不做先查后写。
"""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from ..schemas import ItemIdentity, ParsedFeedItem
from .utils import _html_to_text, _normalize_datetime_utc

_WHITESPACE_RE = re.compile(r"\s+")


def _normalize_part(value: str | None) -> str:
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value.strip()).lower()


def _to_iso_string(value: datetime | None) -> str:
    """格式化为 `YYYY-MM-DDTHH:MM:SS.mmmZ`。"""
    if value is None:
        return ""
    utc_value = value.astimezone(timezone.utc) if value.tzinfo else value
    milliseconds = utc_value.microsecond // 1000
    return f"{utc_value.strftime('%Y-%m-%dT%H:%M:%S')}.{milliseconds:03d}Z"


def compute_feed_item_fingerprint(
    link: str | None,
    title: str | None,
    content: str | None,
    author: str | None,
    published_at: datetime | None,
) -> str:
    """计算条目内容指纹（SHA-256 十六进制）。"""
    payload = "|".join(
        [
            _normalize_part(link),
            _normalize_part(title),
            _normalize_part(_html_to_text(content)),
            _normalize_part(author),
            _to_iso_string(published_at),
        ]
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def identify_item(item: ParsedFeedItem) -> ItemIdentity:
    """确定条目身份：优先使用原生 guid，缺失时回退到内容指纹。"""
    guid = (item.guid or "").strip()
    if guid:
        return ItemIdentity(guid=guid)
    return ItemIdentity(
        content_fingerprint=compute_feed_item_fingerprint(
            item.link,
            item.title,
            item.content,
            item.author,
            item.published_at,
        )
    )


def build_item_rows(
    feed_id: int,
    items: Iterable[ParsedFeedItem],
    timestamp: datetime,
) -> List[Dict[str, Any]]:
    """将解析条目转换为待写入的数据库行。"""
    rows: List[Dict[str, Any]] = []
    for item in items:
        identity = identify_item(item)
        author = item.author[:255] if item.author else None
        rows.append(
            {
                "feed_id": feed_id,
                "guid": identity.guid,
                "content_fingerprint": identity.content_fingerprint,
                "title": item.title,
                "link": item.link,
                "content": item.content,
                "author": author,
                "published_at": _normalize_datetime_utc(item.published_at),
                "read_at": None,
                "created_at": timestamp,
                "updated_at": timestamp,
            }
        )
    return rows
