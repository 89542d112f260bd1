# -*- coding: utf-8 -*-
"""
条目去重服务测试
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from src.server.dao.dao_base import BaseDAO
from src.server.feeds.models import FeedItem
from src.server.feeds.schemas import ParsedFeedItem
from src.server.feeds.service.dedup_service import (
    build_item_rows,
    compute_feed_item_fingerprint,
    identify_item,
)

PUBLISHED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_fingerprint_matches_normalized_payload() -> None:
    """指纹由归一化后的字段以竖线拼接后计算 SHA-256。"""
    fingerprint = compute_feed_item_fingerprint(
        "https://Example.com/A",
        "  Hello   World ",
        "<p>Body   <b>Text</b></p>",
        "Ann",
        PUBLISHED,
    )
    expected = hashlib.sha256(
        "https://example.com/a|hello world|body text|ann|2024-01-01T00:00:00.000Z".encode(
            "utf-8"
        )
    ).hexdigest()
    assert fingerprint == expected


def test_fingerprint_ignores_formatting_noise() -> None:
    """大小写、空白与 HTML 标签差异不影响指纹。"""
    first = compute_feed_item_fingerprint(
        "https://example.com/a", "Hello", "<p>Body</p>", None, PUBLISHED
    )
    second = compute_feed_item_fingerprint(
        " https://EXAMPLE.com/a ", "hello ", "Body", "", PUBLISHED
    )
    assert first == second


def test_fingerprint_converts_timezones() -> None:
    """同一时刻的不同时区表示得到相同指纹。"""
    shanghai = timezone(timedelta(hours=8))
    utc_value = compute_feed_item_fingerprint(None, "t", None, None, PUBLISHED)
    local_value = compute_feed_item_fingerprint(
        None, "t", None, None, datetime(2024, 1, 1, 8, tzinfo=shanghai)
    )
    assert utc_value == local_value


def test_fingerprint_changes_with_content() -> None:
    first = compute_feed_item_fingerprint(None, "t", "a", None, None)
    second = compute_feed_item_fingerprint(None, "t", "b", None, None)
    assert first != second
    assert len(first) == 64


def test_identify_item_prefers_guid() -> None:
    """存在 guid 时不计算指纹。"""
    identity = identify_item(ParsedFeedItem(guid=" post-1 ", title="t"))
    assert identity.guid == "post-1"
    assert identity.content_fingerprint is None


def test_identify_item_falls_back_to_fingerprint() -> None:
    """空白 guid 视为缺失，回退到内容指纹。"""
    item = ParsedFeedItem(guid="   ", title="t", link="https://example.com/x")
    identity = identify_item(item)
    assert identity.guid is None
    assert identity.content_fingerprint == compute_feed_item_fingerprint(
        "https://example.com/x", "t", None, None, None
    )


def test_build_item_rows() -> None:
    """构造待写入行，作者超长时截断。"""
    timestamp = datetime(2024, 5, 1, tzinfo=timezone.utc)
    rows = build_item_rows(
        7,
        [
            ParsedFeedItem(guid="a", title="A", author="x" * 300),
            ParsedFeedItem(title="B", published_at=PUBLISHED),
        ],
        timestamp,
    )

    assert len(rows) == 2
    assert rows[0]["feed_id"] == 7
    assert rows[0]["guid"] == "a"
    assert rows[0]["content_fingerprint"] is None
    assert len(rows[0]["author"]) == 255
    assert rows[0]["created_at"] == timestamp
    assert rows[1]["guid"] is None
    assert rows[1]["content_fingerprint"]
    assert rows[1]["published_at"] == PUBLISHED
    assert rows[1]["read_at"] is None


def test_conflict_ignoring_insert_rejects_unknown_dialect() -> None:
    """只支持 PostgreSQL 与 SQLite 的冲突忽略写入。"""
    bind = SimpleNamespace(dialect=SimpleNamespace(name="mysql"))
    session = SimpleNamespace(get_bind=lambda: bind)

    with pytest.raises(ValueError, match="mysql"):
        BaseDAO(session).insert_ignore_conflicts(FeedItem.__table__, [{"feed_id": 1}])
