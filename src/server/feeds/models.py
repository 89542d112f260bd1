# -*- coding: utf-8 -*-
"""
订阅源数据模型

公开接口：
- `Folder`
- `Feed`
- `FeedItem`
- `FeedFolderMembership`

内部方法：
- `_utcnow`

文件功能：
- 定义订阅源模块使用的 SQLAlchemy ORM 模型，描述文件夹、订阅源、条目以及订阅源与文件夹的多对多关系。

说明：
- 所有时间字段统一使用 UTC。
- 条目在同一订阅源内通过 `guid` 与 `content_fingerprint` 两个独立唯一约束避免重复写入；
  两列均可为空，空值之间互不冲突。
- `Feed.folder_id` 为历史遗留的单文件夹字段，读取时与关系表合并解析。
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Text,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.server.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Folder(Base):
    __tablename__ = "folders"
    __table_args__ = (
        UniqueConstraint("owner_id", "name_key", name="uq_folders_owner_name_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # 去空白并小写后的名称，用于大小写不敏感的唯一约束
    name_key: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    memberships: Mapped[List["FeedFolderMembership"]] = relationship(
        "FeedFolderMembership",
        back_populates="folder",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Feed(Base):
    __tablename__ = "feeds"
    __table_args__ = (UniqueConstraint("owner_id", "url", name="uq_feeds_owner_url"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(500), default=None)
    custom_title: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    folder_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("folders.id", ondelete="SET NULL"),
        default=None,
    )
    last_fetched_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_fetch_status: Mapped[Optional[str]] = mapped_column(String(16), default=None)
    last_fetch_error_code: Mapped[Optional[str]] = mapped_column(
        String(64), default=None
    )
    last_fetch_error_message: Mapped[Optional[str]] = mapped_column(
        Text, default=None
    )
    last_fetch_error_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=None
    )
    http_etag: Mapped[Optional[str]] = mapped_column(Text, default=None)
    http_last_modified: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    items: Mapped[List["FeedItem"]] = relationship(
        "FeedItem",
        back_populates="feed",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    folder_memberships: Mapped[List["FeedFolderMembership"]] = relationship(
        "FeedFolderMembership",
        back_populates="feed",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class FeedItem(Base):
    __tablename__ = "feed_items"
    __table_args__ = (
        UniqueConstraint("feed_id", "guid", name="uq_feed_items_feed_guid"),
        UniqueConstraint(
            "feed_id",
            "content_fingerprint",
            name="uq_feed_items_feed_content_fingerprint",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("feeds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    guid: Mapped[Optional[str]] = mapped_column(Text, default=None)
    content_fingerprint: Mapped[Optional[str]] = mapped_column(
        String(64), default=None
    )
    title: Mapped[Optional[str]] = mapped_column(Text, default=None)
    link: Mapped[Optional[str]] = mapped_column(Text, default=None)
    content: Mapped[Optional[str]] = mapped_column(Text, default=None)
    author: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=None
    )
    read_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=None
    )
    saved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    feed: Mapped["Feed"] = relationship("Feed", back_populates="items")


class FeedFolderMembership(Base):
    __tablename__ = "feed_folder_memberships"
    __table_args__ = (
        UniqueConstraint(
            "owner_id",
            "feed_id",
            "folder_id",
            name="uq_feed_folder_memberships_owner_feed_folder",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    feed_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("feeds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    folder_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("folders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    feed: Mapped["Feed"] = relationship("Feed", back_populates="folder_memberships")
    folder: Mapped["Folder"] = relationship("Folder", back_populates="memberships")
