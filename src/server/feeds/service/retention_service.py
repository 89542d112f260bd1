# -*- coding: utf-8 -*-
"""
条目保留策略服务

公开接口：
- `purge_old_feed_items_for_feed`
- `purge_old_feed_items_for_owner`

文件功能：
- 每个订阅源只保留最近的 N 条条目（按发布时间，缺失时按入库时间倒序），超出部分在单条语句中删除。
"""

from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session

from ..config import feeds_config
from ..dao import FeedItemDAO


def purge_old_feed_items_for_feed(db: Session, owner_id: str, feed_id: int) -> int:
    """清理单个订阅源超出上限的条目，返回删除数量。"""
    deleted = FeedItemDAO(db).purge_beyond_limit(
        owner_id,
        feeds_config.feeds_items_per_feed_limit,
        feed_id=feed_id,
    )
    if deleted:
        logger.info("清理超出保留上限的条目：feed_id={}, 删除={}", feed_id, deleted)
    return deleted


def purge_old_feed_items_for_owner(db: Session, owner_id: str) -> int:
    """清理用户全部订阅源超出上限的条目，返回删除数量。"""
    deleted = FeedItemDAO(db).purge_beyond_limit(
        owner_id,
        feeds_config.feeds_items_per_feed_limit,
    )
    if deleted:
        logger.info("清理超出保留上限的条目：owner_id={}, 删除={}", owner_id, deleted)
    return deleted
