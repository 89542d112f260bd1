# -*- coding: utf-8 -*-
"""
订阅源 DAO

- 公开接口：
    - `FeedDAO`
    - `FeedItemDAO`
    - `FolderDAO`
    - `FeedFolderMembershipDAO`

内部方法：
- 无

文件功能：
- 为订阅源模块提供面向数据库的访问层，封装订阅源、条目、文件夹及文件夹关系的常见读写操作。

说明：
- 不依赖多语句事务：每个写操作独立提交，调用方通过写入顺序保证一致性。
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Mapping, Sequence

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.orm import selectinload

from src.server.dao.dao_base import BaseDAO
from .models import Feed, FeedFolderMembership, FeedItem, Folder


class FeedDAO(BaseDAO):
    """订阅源 DAO"""

    def list_by_owner(self, owner_id: str) -> List[Feed]:
        stmt = select(Feed).where(Feed.owner_id == owner_id).order_by(Feed.id.asc())
        return list(self.db_session.scalars(stmt))

    def list_ids_by_owner(self, owner_id: str) -> List[int]:
        stmt = select(Feed.id).where(Feed.owner_id == owner_id).order_by(Feed.id.asc())
        return list(self.db_session.scalars(stmt))

    def get_for_owner(self, owner_id: str, feed_id: int) -> Feed | None:
        stmt = select(Feed).where(Feed.id == feed_id, Feed.owner_id == owner_id)
        return self.db_session.scalars(stmt).first()

    def get_by_url(self, owner_id: str, url: str) -> Feed | None:
        stmt = select(Feed).where(Feed.owner_id == owner_id, Feed.url == url)
        return self.db_session.scalars(stmt).first()

    def create_feed(
        self,
        *,
        owner_id: str,
        url: str,
        title: str | None,
        description: str | None,
        fetched_at: datetime,
        etag: str | None = None,
        last_modified: str | None = None,
    ) -> Feed:
        feed = Feed(
            owner_id=owner_id,
            url=url,
            title=title,
            description=description,
            last_fetched_at=fetched_at,
            last_fetch_status="success",
            http_etag=etag,
            http_last_modified=last_modified,
            created_at=fetched_at,
            updated_at=fetched_at,
        )
        self.db_session.add(feed)
        self.db_session.commit()
        self.db_session.refresh(feed)
        return feed

    def mark_fetch_success(
        self,
        feed_id: int,
        *,
        fetched_at: datetime,
        etag: str | None,
        last_modified: str | None,
        title: str | None = None,
        description: str | None = None,
    ) -> None:
        values: dict[str, Any] = {
            "last_fetched_at": fetched_at,
            "last_fetch_status": "success",
            "last_fetch_error_code": None,
            "last_fetch_error_message": None,
            "last_fetch_error_at": None,
            "http_etag": etag,
            "http_last_modified": last_modified,
            "updated_at": fetched_at,
        }
        if title:
            values["title"] = title
        if description:
            values["description"] = description
        self.db_session.execute(update(Feed).where(Feed.id == feed_id).values(**values))
        self.db_session.commit()

    def mark_fetch_error(
        self,
        feed_id: int,
        *,
        code: str,
        message: str,
        failed_at: datetime,
    ) -> None:
        stmt = (
            update(Feed)
            .where(Feed.id == feed_id)
            .values(
                last_fetch_status="error",
                last_fetch_error_code=code,
                last_fetch_error_message=message,
                last_fetch_error_at=failed_at,
                updated_at=failed_at,
            )
        )
        self.db_session.execute(stmt)
        self.db_session.commit()

    def update_custom_title(self, feed: Feed, custom_title: str | None) -> Feed:
        feed.custom_title = custom_title
        self.db_session.add(feed)
        self.db_session.commit()
        self.db_session.refresh(feed)
        return feed

    def clear_legacy_folder(self, feed_id: int) -> None:
        stmt = update(Feed).where(Feed.id == feed_id).values(folder_id=None)
        self.db_session.execute(stmt)
        self.db_session.commit()

    def touch(self, owner_id: str, feed_ids: Sequence[int], timestamp: datetime) -> None:
        if not feed_ids:
            return
        stmt = (
            update(Feed)
            .where(Feed.owner_id == owner_id, Feed.id.in_(feed_ids))
            .values(updated_at=timestamp)
        )
        self.db_session.execute(stmt)
        self.db_session.commit()

    def delete_feed(self, feed: Feed) -> None:
        self.db_session.delete(feed)
        self.db_session.commit()

    def delete_many(self, owner_id: str, feed_ids: Sequence[int]) -> int:
        if not feed_ids:
            return 0
        stmt = (
            delete(Feed)
            .where(Feed.owner_id == owner_id, Feed.id.in_(feed_ids))
            .execution_options(synchronize_session=False)
        )
        result = self.db_session.execute(stmt)
        self.db_session.commit()
        self.db_session.expire_all()
        return result.rowcount or 0


class FeedItemDAO(BaseDAO):
    """条目 DAO"""

    def insert_ignore_conflicts(self, rows: Iterable[Mapping[str, Any]]) -> int:
        return len(super().insert_ignore_conflicts(FeedItem.__table__, rows))

    def list_page(
        self,
        feed_ids: Sequence[int],
        limit: int,
        *,
        cursor_sort_key: datetime | None = None,
        cursor_item_id: int | None = None,
        unread_only: bool = False,
        saved_only: bool = False,
    ) -> List[FeedItem]:
        """按 (发布时间, 否则入库时间, ID) 倒序做键集分页，从游标之后开始。"""
        if not feed_ids:
            return []
        sort_key = func.coalesce(FeedItem.published_at, FeedItem.created_at)
        stmt = select(FeedItem).where(FeedItem.feed_id.in_(feed_ids))
        if unread_only:
            stmt = stmt.where(FeedItem.read_at.is_(None))
        if saved_only:
            stmt = stmt.where(FeedItem.saved_at.is_not(None))
        if cursor_sort_key is not None and cursor_item_id is not None:
            stmt = stmt.where(
                or_(
                    sort_key < cursor_sort_key,
                    and_(sort_key == cursor_sort_key, FeedItem.id < cursor_item_id),
                )
            )
        stmt = stmt.order_by(sort_key.desc(), FeedItem.id.desc()).limit(limit)
        return list(self.db_session.scalars(stmt))

    def count_for_feed(self, feed_id: int) -> int:
        stmt = select(func.count()).select_from(FeedItem).where(FeedItem.feed_id == feed_id)
        return int(self.db_session.execute(stmt).scalar() or 0)

    def get_with_feed(self, item_id: int) -> FeedItem | None:
        stmt = (
            select(FeedItem)
            .where(FeedItem.id == item_id)
            .options(selectinload(FeedItem.feed))
        )
        return self.db_session.scalars(stmt).first()

    def mark_read(self, item: FeedItem, timestamp: datetime) -> FeedItem:
        item.read_at = timestamp
        item.updated_at = timestamp
        self.db_session.add(item)
        self.db_session.commit()
        self.db_session.refresh(item)
        return item

    def mark_all_read(
        self,
        feed_ids: Sequence[int],
        timestamp: datetime,
        *,
        saved_only: bool = False,
    ) -> int:
        if not feed_ids:
            return 0
        stmt = update(FeedItem).where(
            FeedItem.feed_id.in_(feed_ids), FeedItem.read_at.is_(None)
        )
        if saved_only:
            stmt = stmt.where(FeedItem.saved_at.is_not(None))
        stmt = stmt.values(read_at=timestamp, updated_at=timestamp).execution_options(
            synchronize_session=False
        )
        result = self.db_session.execute(stmt)
        self.db_session.commit()
        self.db_session.expire_all()
        return result.rowcount or 0

    def set_saved_at(
        self,
        item: FeedItem,
        saved_at: datetime | None,
        timestamp: datetime,
    ) -> FeedItem:
        item.saved_at = saved_at
        item.updated_at = timestamp
        self.db_session.add(item)
        self.db_session.commit()
        self.db_session.refresh(item)
        return item

    def purge_beyond_limit(
        self,
        owner_id: str,
        limit: int,
        feed_id: int | None = None,
    ) -> int:
        """按 (发布时间, 否则入库时间) 倒序为每个订阅源排名，删除超过上限的条目。"""
        item_rank = (
            func.row_number()
            .over(
                partition_by=FeedItem.feed_id,
                order_by=(
                    func.coalesce(FeedItem.published_at, FeedItem.created_at).desc(),
                    FeedItem.id.desc(),
                ),
            )
            .label("item_rank")
        )
        ranked = (
            select(FeedItem.id.label("id"), item_rank)
            .join(Feed, Feed.id == FeedItem.feed_id)
            .where(Feed.owner_id == owner_id)
        )
        if feed_id is not None:
            ranked = ranked.where(FeedItem.feed_id == feed_id)
        ranked_subquery = ranked.subquery("ranked_items")

        stmt = (
            delete(FeedItem)
            .where(
                FeedItem.id.in_(
                    select(ranked_subquery.c.id).where(
                        ranked_subquery.c.item_rank > limit
                    )
                )
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db_session.execute(stmt)
        self.db_session.commit()
        return result.rowcount or 0


class FolderDAO(BaseDAO):
    """文件夹 DAO"""

    def list_by_owner(self, owner_id: str) -> List[Folder]:
        stmt = select(Folder).where(Folder.owner_id == owner_id).order_by(Folder.id.asc())
        return list(self.db_session.scalars(stmt))

    def get_for_owner(self, owner_id: str, folder_id: int) -> Folder | None:
        stmt = select(Folder).where(Folder.id == folder_id, Folder.owner_id == owner_id)
        return self.db_session.scalars(stmt).first()

    def list_owned_ids(self, owner_id: str, folder_ids: Sequence[int]) -> set[int]:
        if not folder_ids:
            return set()
        stmt = select(Folder.id).where(
            Folder.owner_id == owner_id, Folder.id.in_(folder_ids)
        )
        return set(self.db_session.scalars(stmt))

    def create_folder(self, *, owner_id: str, name: str, name_key: str) -> Folder:
        folder = Folder(owner_id=owner_id, name=name, name_key=name_key)
        self.db_session.add(folder)
        self.db_session.commit()
        self.db_session.refresh(folder)
        return folder

    def rename_folder(self, folder: Folder, *, name: str, name_key: str) -> Folder:
        folder.name = name
        folder.name_key = name_key
        self.db_session.add(folder)
        self.db_session.commit()
        self.db_session.refresh(folder)
        return folder

    def delete_folder(self, folder: Folder) -> None:
        self.db_session.delete(folder)
        self.db_session.commit()


class FeedFolderMembershipDAO(BaseDAO):
    """订阅源与文件夹关系 DAO"""

    def list_folder_ids(self, owner_id: str, feed_id: int) -> List[int]:
        stmt = select(FeedFolderMembership.folder_id).where(
            FeedFolderMembership.owner_id == owner_id,
            FeedFolderMembership.feed_id == feed_id,
        )
        return list(self.db_session.scalars(stmt))

    def list_pairs_for_feeds(
        self,
        owner_id: str,
        feed_ids: Sequence[int],
    ) -> List[tuple[int, int]]:
        if not feed_ids:
            return []
        stmt = select(FeedFolderMembership.feed_id, FeedFolderMembership.folder_id).where(
            FeedFolderMembership.owner_id == owner_id,
            FeedFolderMembership.feed_id.in_(feed_ids),
        )
        return [(row.feed_id, row.folder_id) for row in self.db_session.execute(stmt)]

    def insert_ignore_conflicts(
        self,
        owner_id: str,
        feed_id: int,
        folder_ids: Sequence[int],
        timestamp: datetime,
    ) -> List[int]:
        """写入关系并返回本次新增的文件夹 ID。"""
        rows = [
            {
                "owner_id": owner_id,
                "feed_id": feed_id,
                "folder_id": folder_id,
                "created_at": timestamp,
                "updated_at": timestamp,
            }
            for folder_id in folder_ids
        ]
        inserted = super().insert_ignore_conflicts(FeedFolderMembership.__table__, rows)
        return [row["folder_id"] for row in inserted]

    def delete_except(
        self,
        owner_id: str,
        feed_id: int,
        keep_folder_ids: Sequence[int],
    ) -> int:
        stmt = delete(FeedFolderMembership).where(
            FeedFolderMembership.owner_id == owner_id,
            FeedFolderMembership.feed_id == feed_id,
        )
        if keep_folder_ids:
            stmt = stmt.where(FeedFolderMembership.folder_id.not_in(keep_folder_ids))
        result = self.db_session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        self.db_session.commit()
        return result.rowcount or 0
