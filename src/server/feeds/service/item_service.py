# -*- coding: utf-8 -*-
"""
条目阅读服务

功能：
- 按范围（全部、未读、收藏、未分类、文件夹、订阅源）分页读取条目
- 标记已读、按范围批量标记已读、收藏与取消收藏

公开接口：
- `encode_item_cursor`
- `decode_item_cursor`
- `resolve_scope_feed_ids`
- `list_items_for_owner`
- `mark_item_read`
- `mark_all_items_read`
- `set_item_saved`

内部方法：
- `_raise_item_error`
- `_require_owned_item`
- `_build_scope`

说明：
- 分页使用键集游标 (排序时间, 条目 ID)，排序时间为发布时间，缺失时取入库时间；
  翻页期间插入的新条目不会导致重复或跳过。
- 文件夹与未分类范围经过文件夹归属解析，仅存在历史单文件夹字段的订阅源同样计入。
"""

from __future__ import annotations

import base64
from typing import List, NoReturn

from fastapi import HTTPException, status
from loguru import logger
from sqlalchemy.orm import Session

from ..config import feeds_config
from ..dao import FeedDAO, FeedItemDAO, FolderDAO
from ..models import FeedItem
from ..schemas import (
    FeedItemPageResponse,
    ItemCursor,
    ItemScope,
    ItemScopeType,
    MarkAllReadResponse,
    MarkItemReadResponse,
    SetItemSavedResponse,
)
from .folder_service import get_feed_folder_ids_map
from .retention_service import purge_old_feed_items_for_owner
from .utils import _normalize_datetime_utc, _to_item_schema, _utcnow

INVALID_CURSOR_MESSAGE = "分页游标无效。"


def _raise_item_error(code: str, message: str) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": code, "message": message},
    )


def encode_item_cursor(item: FeedItem) -> str:
    """以条目的排序时间与 ID 生成下一页游标。"""
    sort_key = _normalize_datetime_utc(item.published_at or item.created_at)
    cursor = ItemCursor(sort_key=sort_key, item_id=item.id)
    payload = cursor.model_dump_json().encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def decode_item_cursor(token: str) -> ItemCursor:
    """解析游标，格式或版本不符时抛出 400。"""
    token = token.strip()
    if not token:
        _raise_item_error("invalid_cursor", INVALID_CURSOR_MESSAGE)
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        cursor = ItemCursor.model_validate_json(raw)
    except ValueError:
        _raise_item_error("invalid_cursor", INVALID_CURSOR_MESSAGE)
    cursor.sort_key = _normalize_datetime_utc(cursor.sort_key)
    return cursor


def _build_scope(scope_type: ItemScopeType, scope_id: int | None) -> ItemScope:
    if scope_type in ("folder", "feed"):
        if scope_id is None:
            _raise_item_error("invalid_scope_id", "文件夹与订阅源范围需要提供 scope_id。")
        return ItemScope(type=scope_type, id=scope_id)
    return ItemScope(type=scope_type)


def resolve_scope_feed_ids(db: Session, owner_id: str, scope: ItemScope) -> List[int]:
    """解析范围内的订阅源 ID，文件夹或订阅源不属于用户时返回 404。"""
    feed_dao = FeedDAO(db)
    if scope.type in ("all", "unread", "saved"):
        return feed_dao.list_ids_by_owner(owner_id)

    if scope.type == "feed":
        feed = feed_dao.get_for_owner(owner_id, scope.id)
        if not feed:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="订阅源不存在")
        return [feed.id]

    if scope.type == "folder" and not FolderDAO(db).get_for_owner(owner_id, scope.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="文件夹不存在")

    feeds = feed_dao.list_by_owner(owner_id)
    folder_map = get_feed_folder_ids_map(db, owner_id, feeds)
    if scope.type == "folder":
        return [feed.id for feed in feeds if scope.id in folder_map.get(feed.id, [])]
    return [feed.id for feed in feeds if not folder_map.get(feed.id)]


def list_items_for_owner(
    db: Session,
    owner_id: str,
    scope_type: ItemScopeType = "all",
    scope_id: int | None = None,
    cursor: str | None = None,
    limit: int | None = None,
) -> FeedItemPageResponse:
    """按时间倒序分页读取范围内的条目。"""
    scope = _build_scope(scope_type, scope_id)
    decoded = decode_item_cursor(cursor) if cursor is not None else None
    limit = min(
        limit or feeds_config.feeds_default_item_limit,
        feeds_config.feeds_max_item_page_limit,
    )

    purge_old_feed_items_for_owner(db, owner_id)
    feed_ids = resolve_scope_feed_ids(db, owner_id, scope)

    # 多取一条用于判断是否还有下一页
    rows = FeedItemDAO(db).list_page(
        feed_ids,
        limit + 1,
        cursor_sort_key=decoded.sort_key if decoded else None,
        cursor_item_id=decoded.item_id if decoded else None,
        unread_only=scope.type == "unread",
        saved_only=scope.type == "saved",
    )
    has_more = len(rows) > limit
    page = rows[:limit]
    return FeedItemPageResponse(
        items=[_to_item_schema(item) for item in page],
        next_cursor=encode_item_cursor(page[-1]) if has_more else None,
        has_more=has_more,
        limit=limit,
        scope=scope,
    )


def _require_owned_item(db: Session, owner_id: str, item_id: int) -> FeedItem:
    item = FeedItemDAO(db).get_with_feed(item_id)
    if not item or item.feed.owner_id != owner_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="条目不存在",
        )
    return item


def mark_item_read(db: Session, owner_id: str, item_id: int) -> MarkItemReadResponse:
    """将条目标记为已读。"""
    item = _require_owned_item(db, owner_id, item_id)
    if item.read_at is not None:
        return MarkItemReadResponse(
            status="already_read",
            item_id=item.id,
            read_at=_normalize_datetime_utc(item.read_at),
        )
    now = _utcnow()
    FeedItemDAO(db).mark_read(item, now)
    return MarkItemReadResponse(status="marked", item_id=item.id, read_at=now)


def mark_all_items_read(
    db: Session,
    owner_id: str,
    scope_type: ItemScopeType = "all",
    scope_id: int | None = None,
) -> MarkAllReadResponse:
    """将范围内全部未读条目标记为已读。"""
    scope = _build_scope(scope_type, scope_id)
    feed_ids = resolve_scope_feed_ids(db, owner_id, scope)
    marked = FeedItemDAO(db).mark_all_read(
        feed_ids, _utcnow(), saved_only=scope.type == "saved"
    )
    logger.info(
        "批量标记已读：owner_id={}, 范围={}, 数量={}", owner_id, scope.type, marked
    )
    return MarkAllReadResponse(marked_count=marked)


def set_item_saved(
    db: Session,
    owner_id: str,
    item_id: int,
    saved: bool,
) -> SetItemSavedResponse:
    """收藏或取消收藏条目，已处于目标状态时返回 already_set。"""
    item = _require_owned_item(db, owner_id, item_id)
    if saved == (item.saved_at is not None):
        return SetItemSavedResponse(
            status="already_set",
            item_id=item.id,
            saved_at=_normalize_datetime_utc(item.saved_at),
        )
    now = _utcnow()
    item = FeedItemDAO(db).set_saved_at(item, now if saved else None, now)
    return SetItemSavedResponse(
        status="saved" if saved else "unsaved",
        item_id=item.id,
        saved_at=now if saved else None,
    )
