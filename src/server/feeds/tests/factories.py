# -*- coding: utf-8 -*-
"""
测试数据构造工具
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

from sqlalchemy.orm import Session

from src.server.feeds.dao import FeedDAO, FeedItemDAO, FolderDAO
from src.server.feeds.models import Feed, Folder
from src.server.feeds.schemas import ParsedFeed, ParsedFeedItem
from src.server.feeds.service.dedup_service import build_item_rows

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def build_parsed_feed(
    count: int,
    *,
    prefix: str = "item",
    title: str | None = "示例频道",
    start: datetime = BASE_TIME,
) -> ParsedFeed:
    """构造包含 count 个条目的解析结果，发布时间逐小时递增。"""
    items: List[ParsedFeedItem] = [
        ParsedFeedItem(
            guid=f"{prefix}-{index}",
            title=f"文章 {index}",
            link=f"https://example.com/{prefix}/{index}",
            content=f"<p>正文 {index}</p>",
            author="alice",
            published_at=start + timedelta(hours=index),
        )
        for index in range(count)
    ]
    return ParsedFeed(title=title, description="示例内容", items=items)


def create_feed(db: Session, owner_id: str, url: str, title: str | None = "旧标题") -> Feed:
    return FeedDAO(db).create_feed(
        owner_id=owner_id,
        url=url,
        title=title,
        description=None,
        fetched_at=BASE_TIME,
    )


def create_folder(db: Session, owner_id: str, name: str) -> Folder:
    return FolderDAO(db).create_folder(owner_id=owner_id, name=name, name_key=name.lower())


def seed_items(
    db: Session,
    feed_id: int,
    count: int,
    prefix: str,
    hours_offset: int = 0,
) -> None:
    """为订阅源写入 count 个条目，发布时间从 BASE_TIME + hours_offset 起逐小时递增。"""
    parsed = build_parsed_feed(
        count, prefix=prefix, start=BASE_TIME + timedelta(hours=hours_offset)
    )
    FeedItemDAO(db).insert_ignore_conflicts(build_item_rows(feed_id, parsed.items, BASE_TIME))
