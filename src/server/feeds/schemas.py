# -*- coding: utf-8 -*-
"""
订阅源 Pydantic 模型

- 公开接口：
    - 抓取与解析：`FetchResult`、`ParsedFeedItem`、`ParsedFeed`、`ParsedFeedFetch`、`FeedHttpValidators`
    - 去重：`ItemIdentity`
    - 发现：`FeedDiscoveryResult`、`DiscoverCandidateSchema`、`FeedDiscoverResponse`
    - 刷新：`FeedOutcome`、`RefreshAllResponse`
    - 实体：`FeedSchema`、`FeedItemSchema`、`FolderSchema`
    - 结果：`CreatedFeed`、`SubscribeFeedResponse`、`FeedFoldersResponse`、
      `DeleteFolderResponse`、`MoveUncategorizedResponse`、`DeleteUncategorizedResponse`、
      `MarkItemReadResponse`、`SetItemSavedResponse`、`MarkAllReadResponse`
    - 条目分页：`ItemCursor`、`ItemScope`、`FeedItemPageResponse`
    - 请求体：`DiscoverFeedPayload`、`SubscribeFeedPayload`、`FeedFoldersPayload`、
      `RenameFeedPayload`、`FolderNamePayload`、`SetItemSavedPayload`

内部方法：
- 无

文件功能：
- 描述抓取、解析、发现、刷新各环节之间传递的数据结构，以及 API 层的请求与响应模型。
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

DiscoveryMethod = Literal["html_alternate", "heuristic_path"]
DiscoverCandidateMethod = Literal["direct", "html_alternate", "heuristic_path"]
DeleteFolderMode = Literal["remove_only", "remove_and_unsubscribe_exclusive"]
ItemScopeType = Literal["all", "unread", "saved", "uncategorized", "folder", "feed"]


class FetchResult(BaseModel):
    """一次 HTTP 抓取的结果"""

    status: Literal["ok", "not_modified"]
    text: Optional[str] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    final_url: str
    status_code: int


class FeedHttpValidators(BaseModel):
    """缓存校验字段"""

    etag: Optional[str] = None
    last_modified: Optional[str] = None


class ParsedFeedItem(BaseModel):
    """解析后的单个条目"""

    guid: Optional[str] = None
    title: Optional[str] = None
    link: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None


class ParsedFeed(BaseModel):
    """解析后的订阅源"""

    title: Optional[str] = None
    description: Optional[str] = None
    items: List[ParsedFeedItem] = Field(default_factory=list)


class ParsedFeedFetch(BaseModel):
    """抓取并解析的组合结果，`not_modified` 时不含解析内容"""

    status: Literal["ok", "not_modified"]
    parsed_feed: Optional[ParsedFeed] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    resolved_url: str


class ItemIdentity(BaseModel):
    """条目身份：原生 guid 与内容指纹二选一"""

    guid: Optional[str] = None
    content_fingerprint: Optional[str] = None


class FeedDiscoveryResult(BaseModel):
    """站点发现得到的候选订阅链接"""

    candidates: List[str] = Field(default_factory=list)
    method_by_url: Dict[str, DiscoveryMethod] = Field(default_factory=dict)


class DiscoverCandidateSchema(BaseModel):
    """经过校验的候选订阅源"""

    url: str
    title: Optional[str] = None
    method: DiscoverCandidateMethod
    duplicate: bool = False
    existing_feed_id: Optional[int] = None


class FeedDiscoverResponse(BaseModel):
    """订阅前的候选预览"""

    status: Literal["single", "multiple", "duplicate"]
    normalized_input_url: str
    candidates: List[DiscoverCandidateSchema]


class FeedOutcome(BaseModel):
    """单个订阅源在一次刷新中的结果"""

    feed_id: int
    feed_url: str
    new_item_count: int = 0
    status: Literal["success", "error"]
    fetch_state: Optional[Literal["updated", "not_modified"]] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class RefreshAllResponse(BaseModel):
    """批量刷新结果"""

    status: Literal["ok"] = "ok"
    message: Optional[str] = None
    results: List[FeedOutcome] = Field(default_factory=list)
    retention_deleted_count: int = 0


class FeedSchema(BaseModel):
    """订阅源信息"""

    id: int
    url: str
    title: Optional[str] = None
    custom_title: Optional[str] = None
    description: Optional[str] = None
    last_fetched_at: Optional[datetime] = None
    last_fetch_status: Optional[str] = None
    last_fetch_error_code: Optional[str] = None
    last_fetch_error_message: Optional[str] = None
    last_fetch_error_at: Optional[datetime] = None
    created_at: datetime
    folder_ids: List[int] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class FeedItemSchema(BaseModel):
    """条目信息"""

    id: int
    feed_id: int
    title: Optional[str] = None
    link: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    saved_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class FolderSchema(BaseModel):
    """文件夹信息"""

    id: int
    name: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CreatedFeed(BaseModel):
    """首次订阅写入结果"""

    feed: FeedSchema
    inserted_item_count: int


class SubscribeFeedResponse(BaseModel):
    """订阅请求结果"""

    feed: FeedSchema
    duplicate: bool = False
    inserted_item_count: int = 0
    message: Optional[str] = None


class FeedFoldersResponse(BaseModel):
    """订阅源所属文件夹更新结果"""

    folder_ids: List[int]
    added_folder_ids: List[int] = Field(default_factory=list)


class DeleteFolderResponse(BaseModel):
    """删除文件夹结果"""

    mode: DeleteFolderMode
    total_feeds: int
    exclusive_feeds: int
    cross_listed_feeds: int
    unsubscribed_feeds: int


class MoveUncategorizedResponse(BaseModel):
    """未分类订阅源批量归档结果"""

    total_uncategorized_count: int
    moved_feed_count: int
    failed_feed_count: int


class DeleteUncategorizedResponse(BaseModel):
    """删除未分类订阅源结果"""

    deleted_feed_count: int


class MarkItemReadResponse(BaseModel):
    """标记已读结果"""

    status: Literal["marked", "already_read"]
    item_id: int
    read_at: datetime


class SetItemSavedResponse(BaseModel):
    """收藏状态变更结果，`already_set` 表示条目已处于目标状态"""

    status: Literal["saved", "unsaved", "already_set"]
    item_id: int
    saved_at: Optional[datetime] = None


class MarkAllReadResponse(BaseModel):
    """按范围批量标记已读结果"""

    marked_count: int


class ItemCursor(BaseModel):
    """条目分页游标：上一页最后一条的排序时间与 ID"""

    v: Literal[1] = 1
    sort_key: datetime
    item_id: int


class ItemScope(BaseModel):
    """条目读取范围，`folder` 与 `feed` 需要携带 ID"""

    type: ItemScopeType = "all"
    id: Optional[int] = None


class FeedItemPageResponse(BaseModel):
    """条目分页结果"""

    items: List[FeedItemSchema]
    next_cursor: Optional[str] = None
    has_more: bool = False
    limit: int
    scope: ItemScope


class DiscoverFeedPayload(BaseModel):
    """发现候选订阅源的请求体"""

    url: str = Field(..., min_length=1, max_length=2048, description="站点或订阅链接")


class SubscribeFeedPayload(BaseModel):
    """订阅的请求体"""

    url: str = Field(..., min_length=1, max_length=2048, description="站点或订阅链接")
    folder_ids: List[int] = Field(default_factory=list, description="目标文件夹")


class FeedFoldersPayload(BaseModel):
    """设置或追加文件夹的请求体"""

    folder_ids: List[int] = Field(default_factory=list, description="文件夹 ID 列表")


class RenameFeedPayload(BaseModel):
    """自定义订阅源标题的请求体，空值表示恢复原标题"""

    custom_title: Optional[str] = Field(
        default=None, max_length=255, description="自定义标题"
    )


class FolderNamePayload(BaseModel):
    """创建或重命名文件夹的请求体"""

    name: str = Field(..., max_length=255, description="文件夹名称")


class SetItemSavedPayload(BaseModel):
    """收藏或取消收藏条目的请求体"""

    saved: bool = Field(..., description="是否收藏")
