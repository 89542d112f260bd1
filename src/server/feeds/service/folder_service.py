# -*- coding: utf-8 -*-
"""
文件夹服务

功能：
- 解析订阅源所属文件夹（关系表与历史单文件夹字段合并）
- 设置、追加订阅源的文件夹归属
- 文件夹的增删改查

公开接口：
- `resolve_feed_folder_ids`
- `normalize_folder_ids`
- `get_feed_folder_ids`
- `get_feed_folder_ids_map`
- `set_feed_folders`
- `add_feed_folders`
- `validate_folder_ids`
- `list_folders`
- `create_folder`
- `rename_folder`
- `delete_folder`

内部方法：
- `_raise_folder_error`
- `_validate_folder_name`
- `_require_feed`

说明：
- 替换归属时先写入新关系再删除过期关系，中途失败最多留下多余的归属，不会丢失归属。
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, NoReturn, Sequence

from fastapi import HTTPException, status
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import feeds_config
from ..dao import FeedDAO, FeedFolderMembershipDAO, FolderDAO
from ..models import Feed
from ..schemas import (
    DeleteFolderMode,
    DeleteFolderResponse,
    FeedFoldersResponse,
    FolderSchema,
)
from .utils import _to_folder_schema, _utcnow

RESERVED_FOLDER_NAMES = frozenset({"all feeds", "saved", "uncategorized"})
FOLDER_NAME_MAX_LENGTH = 255


def resolve_feed_folder_ids(
    legacy_folder_id: int | None,
    membership_folder_ids: Iterable[int | None],
) -> List[int]:
    """合并历史字段与关系表中的文件夹 ID，去重并排序。"""
    resolved = {folder_id for folder_id in membership_folder_ids if folder_id is not None}
    if legacy_folder_id is not None:
        resolved.add(legacy_folder_id)
    return sorted(resolved)


def normalize_folder_ids(folder_ids: Iterable[int | None]) -> List[int]:
    """去重并排序，忽略空值。"""
    return resolve_feed_folder_ids(None, folder_ids)


def get_feed_folder_ids(db: Session, owner_id: str, feed: Feed) -> List[int]:
    membership_ids = FeedFolderMembershipDAO(db).list_folder_ids(owner_id, feed.id)
    return resolve_feed_folder_ids(feed.folder_id, membership_ids)


def get_feed_folder_ids_map(
    db: Session,
    owner_id: str,
    feeds: Sequence[Feed],
) -> Dict[int, List[int]]:
    """批量解析多个订阅源的文件夹归属。"""
    pairs = FeedFolderMembershipDAO(db).list_pairs_for_feeds(
        owner_id, [feed.id for feed in feeds]
    )
    membership_map: Dict[int, List[int]] = defaultdict(list)
    for feed_id, folder_id in pairs:
        membership_map[feed_id].append(folder_id)
    return {
        feed.id: resolve_feed_folder_ids(feed.folder_id, membership_map.get(feed.id, []))
        for feed in feeds
    }


def _raise_folder_error(code: str, message: str, status_code: int = 400) -> NoReturn:
    raise HTTPException(status_code=status_code, detail={"code": code, "message": message})


def _require_feed(db: Session, owner_id: str, feed_id: int) -> Feed:
    feed = FeedDAO(db).get_for_owner(owner_id, feed_id)
    if not feed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="订阅源不存在",
        )
    return feed


def validate_folder_ids(
    db: Session,
    owner_id: str,
    folder_ids: Iterable[int],
) -> List[int]:
    """校验文件夹均归属当前用户，返回归一化后的 ID 列表。"""
    normalized = normalize_folder_ids(folder_ids)
    owned = FolderDAO(db).list_owned_ids(owner_id, normalized)
    invalid = [folder_id for folder_id in normalized if folder_id not in owned]
    if invalid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_folder_ids", "invalid_folder_ids": invalid},
        )
    return normalized


def set_feed_folders(
    db: Session,
    owner_id: str,
    feed_id: int,
    folder_ids: Iterable[int],
) -> FeedFoldersResponse:
    """将订阅源的文件夹归属替换为给定集合。"""
    feed = _require_feed(db, owner_id, feed_id)
    target_ids = validate_folder_ids(db, owner_id, folder_ids)

    membership_dao = FeedFolderMembershipDAO(db)
    now = _utcnow()
    membership_dao.insert_ignore_conflicts(owner_id, feed.id, target_ids, now)
    removed = membership_dao.delete_except(owner_id, feed.id, target_ids)
    feed_dao = FeedDAO(db)
    feed_dao.clear_legacy_folder(feed.id)
    feed_dao.touch(owner_id, [feed.id], now)
    db.refresh(feed)

    logger.info(
        "更新订阅源文件夹：feed_id={}, 文件夹={}, 移除={}", feed.id, target_ids, removed
    )
    return FeedFoldersResponse(folder_ids=get_feed_folder_ids(db, owner_id, feed))


def add_feed_folders(
    db: Session,
    owner_id: str,
    feed_id: int,
    folder_ids: Iterable[int],
) -> FeedFoldersResponse:
    """为订阅源追加文件夹归属，不移除已有归属。"""
    feed = _require_feed(db, owner_id, feed_id)
    target_ids = validate_folder_ids(db, owner_id, folder_ids)

    now = _utcnow()
    added = FeedFolderMembershipDAO(db).insert_ignore_conflicts(
        owner_id, feed.id, target_ids, now
    )
    if added:
        FeedDAO(db).touch(owner_id, [feed.id], now)
    return FeedFoldersResponse(
        folder_ids=get_feed_folder_ids(db, owner_id, feed),
        added_folder_ids=normalize_folder_ids(added),
    )


def list_folders(db: Session, owner_id: str) -> List[FolderSchema]:
    return [_to_folder_schema(folder) for folder in FolderDAO(db).list_by_owner(owner_id)]


def _validate_folder_name(name: str) -> tuple[str, str]:
    """返回 (去空白后的名称, 小写键)。"""
    trimmed = (name or "").strip()
    if not trimmed or len(trimmed) > FOLDER_NAME_MAX_LENGTH:
        _raise_folder_error("invalid_name", "文件夹名称不能为空且不能超过 255 个字符。")
    name_key = trimmed.lower()
    if name_key in RESERVED_FOLDER_NAMES:
        _raise_folder_error("reserved_name", "该名称为系统保留名称。")
    return trimmed, name_key


def create_folder(db: Session, owner_id: str, name: str) -> FolderSchema:
    """创建文件夹。"""
    trimmed, name_key = _validate_folder_name(name)
    folder_dao = FolderDAO(db)
    existing = folder_dao.list_by_owner(owner_id)
    if len(existing) >= feeds_config.feeds_folder_limit:
        _raise_folder_error("folder_limit_reached", "文件夹数量已达上限。")
    if any(folder.name_key == name_key for folder in existing):
        _raise_folder_error("duplicate_name", "已存在同名文件夹。")

    try:
        folder = folder_dao.create_folder(owner_id=owner_id, name=trimmed, name_key=name_key)
    except IntegrityError:
        # 并发创建同名文件夹时由唯一约束兜底
        db.rollback()
        _raise_folder_error("duplicate_name", "已存在同名文件夹。")
    logger.info("创建文件夹：owner_id={}, folder_id={}", owner_id, folder.id)
    return _to_folder_schema(folder)


def rename_folder(db: Session, owner_id: str, folder_id: int, name: str) -> FolderSchema:
    """重命名文件夹。"""
    trimmed, name_key = _validate_folder_name(name)
    folder_dao = FolderDAO(db)
    folder = folder_dao.get_for_owner(owner_id, folder_id)
    if not folder:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="文件夹不存在",
        )
    duplicate = any(
        sibling.id != folder.id and sibling.name_key == name_key
        for sibling in folder_dao.list_by_owner(owner_id)
    )
    if duplicate:
        _raise_folder_error("duplicate_name", "已存在同名文件夹。")

    try:
        folder = folder_dao.rename_folder(folder, name=trimmed, name_key=name_key)
    except IntegrityError:
        db.rollback()
        _raise_folder_error("duplicate_name", "已存在同名文件夹。")
    return _to_folder_schema(folder)


def delete_folder(
    db: Session,
    owner_id: str,
    folder_id: int,
    mode: DeleteFolderMode = "remove_only",
) -> DeleteFolderResponse:
    """删除文件夹；可选同时退订仅归属于该文件夹的订阅源。"""
    folder_dao = FolderDAO(db)
    folder = folder_dao.get_for_owner(owner_id, folder_id)
    if not folder:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="文件夹不存在",
        )

    feeds = FeedDAO(db).list_by_owner(owner_id)
    folder_map = get_feed_folder_ids_map(db, owner_id, feeds)
    exclusive_ids: List[int] = []
    cross_listed_ids: List[int] = []
    for feed_id, assigned in folder_map.items():
        if folder.id not in assigned:
            continue
        if len(assigned) <= 1:
            exclusive_ids.append(feed_id)
        else:
            cross_listed_ids.append(feed_id)

    unsubscribed = 0
    if mode == "remove_and_unsubscribe_exclusive" and exclusive_ids:
        unsubscribed = FeedDAO(db).delete_many(owner_id, exclusive_ids)

    folder_dao.delete_folder(folder)
    logger.info(
        "删除文件夹：folder_id={}, 模式={}, 退订={}", folder_id, mode, unsubscribed
    )
    return DeleteFolderResponse(
        mode=mode,
        total_feeds=len(exclusive_ids) + len(cross_listed_ids),
        exclusive_feeds=len(exclusive_ids),
        cross_listed_feeds=len(cross_listed_ids),
        unsubscribed_feeds=unsubscribed,
    )
