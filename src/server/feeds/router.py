# -*- coding: utf-8 -*-
"""
订阅源路由

公开接口：
- GET /api/feeds
- POST /api/feeds/discover
- POST /api/feeds
- POST /api/feeds/refresh
- PATCH /api/feeds/{feed_id}
- DELETE /api/feeds/{feed_id}
- PUT /api/feeds/{feed_id}/folders
- POST /api/feeds/{feed_id}/folders
- DELETE /api/feeds/uncategorized
- POST /api/feeds/uncategorized/move
- GET /api/items
- POST /api/items/read
- POST /api/items/{item_id}/read
- PUT /api/items/{item_id}/saved
- GET /api/folders
- POST /api/folders
- PATCH /api/folders/{folder_id}
- DELETE /api/folders/{folder_id}

内部方法：
- 无

文件功能：
- 暴露订阅源模块的 REST API：订阅与发现、批量刷新、文件夹归属、条目分页阅读与收藏。
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from src.server.auth.dependencies import get_current_owner_id
from src.server.database import get_db
from .schemas import (
    DeleteFolderMode,
    DeleteFolderResponse,
    DeleteUncategorizedResponse,
    DiscoverFeedPayload,
    FeedDiscoverResponse,
    FeedFoldersPayload,
    FeedFoldersResponse,
    FeedItemPageResponse,
    FeedSchema,
    FolderNamePayload,
    FolderSchema,
    ItemScopeType,
    MarkAllReadResponse,
    MarkItemReadResponse,
    MoveUncategorizedResponse,
    RefreshAllResponse,
    RenameFeedPayload,
    SetItemSavedPayload,
    SetItemSavedResponse,
    SubscribeFeedPayload,
    SubscribeFeedResponse,
)
from .service import (
    add_feed_folders,
    create_folder,
    delete_feed,
    delete_folder,
    delete_uncategorized_feeds,
    list_feeds_for_owner,
    list_folders,
    list_items_for_owner,
    mark_all_items_read,
    mark_item_read,
    move_uncategorized_feeds_to_folder,
    preview_feed_candidates,
    refresh_all_feeds_for_owner,
    rename_feed,
    rename_folder,
    set_feed_folders,
    set_item_saved,
    subscribe_feed,
)

router = APIRouter(prefix="/api", tags=["Feeds"])


@router.get(
    "/feeds",
    response_model=list[FeedSchema],
    summary="列出订阅源",
    response_description="返回当前用户的订阅源及其文件夹归属",
)
def list_feeds_api(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> list[FeedSchema]:
    """列出当前用户的订阅源。"""
    return list_feeds_for_owner(db, owner_id)


@router.post(
    "/feeds/discover",
    response_model=FeedDiscoverResponse,
    summary="预览候选订阅源",
    response_description="返回经过校验的候选订阅源",
)
def discover_feeds_api(
    payload: DiscoverFeedPayload,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> FeedDiscoverResponse:
    """校验地址并发现站点中的订阅源。"""
    return preview_feed_candidates(db, owner_id, payload.url)


@router.post(
    "/feeds",
    response_model=SubscribeFeedResponse,
    summary="订阅",
    response_description="返回新建或已存在的订阅源",
)
def subscribe_feed_api(
    payload: SubscribeFeedPayload,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> SubscribeFeedResponse:
    """订阅地址，必要时通过站点发现定位订阅源。"""
    return subscribe_feed(db, owner_id, payload.url, payload.folder_ids)


@router.post(
    "/feeds/refresh",
    response_model=RefreshAllResponse,
    summary="刷新全部订阅源",
    response_description="返回每个订阅源的刷新结果",
)
def refresh_feeds_api(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> RefreshAllResponse:
    """手动触发当前用户全部订阅源的刷新。"""
    return refresh_all_feeds_for_owner(db, owner_id)


@router.delete(
    "/feeds/uncategorized",
    response_model=DeleteUncategorizedResponse,
    summary="退订未分类订阅源",
)
def delete_uncategorized_feeds_api(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> DeleteUncategorizedResponse:
    return delete_uncategorized_feeds(db, owner_id)


@router.post(
    "/feeds/uncategorized/move",
    response_model=MoveUncategorizedResponse,
    summary="归档未分类订阅源",
)
def move_uncategorized_feeds_api(
    folder_id: int = Query(..., description="目标文件夹 ID"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> MoveUncategorizedResponse:
    return move_uncategorized_feeds_to_folder(db, owner_id, folder_id)


@router.patch(
    "/feeds/{feed_id}",
    response_model=FeedSchema,
    summary="重命名订阅源",
)
def rename_feed_api(
    feed_id: int,
    payload: RenameFeedPayload,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> FeedSchema:
    """设置订阅源的自定义标题。"""
    return rename_feed(db, owner_id, feed_id, payload.custom_title)


@router.delete(
    "/feeds/{feed_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="退订",
    response_description="成功退订后不返回内容",
)
def delete_feed_api(
    feed_id: int,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> Response:
    """退订指定订阅源。"""
    delete_feed(db, owner_id, feed_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/feeds/{feed_id}/folders",
    response_model=FeedFoldersResponse,
    summary="设置订阅源文件夹",
)
def set_feed_folders_api(
    feed_id: int,
    payload: FeedFoldersPayload,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> FeedFoldersResponse:
    """将订阅源的文件夹归属替换为给定集合。"""
    return set_feed_folders(db, owner_id, feed_id, payload.folder_ids)


@router.post(
    "/feeds/{feed_id}/folders",
    response_model=FeedFoldersResponse,
    summary="追加订阅源文件夹",
)
def add_feed_folders_api(
    feed_id: int,
    payload: FeedFoldersPayload,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> FeedFoldersResponse:
    """为订阅源追加文件夹归属。"""
    return add_feed_folders(db, owner_id, feed_id, payload.folder_ids)


@router.get(
    "/items",
    response_model=FeedItemPageResponse,
    summary="分页获取条目",
    response_description="按时间倒序返回范围内的条目与下一页游标",
)
def list_items_api(
    scope_type: ItemScopeType = Query(default="all", description="读取范围"),
    scope_id: Optional[int] = Query(default=None, description="文件夹或订阅源 ID"),
    cursor: Optional[str] = Query(default=None, description="上一页返回的游标"),
    limit: Optional[int] = Query(default=None, ge=1, description="每页条目数量"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> FeedItemPageResponse:
    """返回当前用户范围内的条目，超过单页上限时截断。"""
    return list_items_for_owner(
        db, owner_id, scope_type=scope_type, scope_id=scope_id, cursor=cursor, limit=limit
    )


@router.post(
    "/items/read",
    response_model=MarkAllReadResponse,
    summary="按范围全部标记已读",
)
def mark_all_items_read_api(
    scope_type: ItemScopeType = Query(default="all", description="读取范围"),
    scope_id: Optional[int] = Query(default=None, description="文件夹或订阅源 ID"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> MarkAllReadResponse:
    return mark_all_items_read(db, owner_id, scope_type=scope_type, scope_id=scope_id)


@router.post(
    "/items/{item_id}/read",
    response_model=MarkItemReadResponse,
    summary="标记已读",
)
def mark_item_read_api(
    item_id: int,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> MarkItemReadResponse:
    return mark_item_read(db, owner_id, item_id)


@router.put(
    "/items/{item_id}/saved",
    response_model=SetItemSavedResponse,
    summary="收藏或取消收藏",
)
def set_item_saved_api(
    item_id: int,
    payload: SetItemSavedPayload,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> SetItemSavedResponse:
    return set_item_saved(db, owner_id, item_id, payload.saved)


@router.get(
    "/folders",
    response_model=list[FolderSchema],
    summary="列出文件夹",
)
def list_folders_api(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> list[FolderSchema]:
    return list_folders(db, owner_id)


@router.post(
    "/folders",
    response_model=FolderSchema,
    status_code=status.HTTP_201_CREATED,
    summary="创建文件夹",
)
def create_folder_api(
    payload: FolderNamePayload,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> FolderSchema:
    return create_folder(db, owner_id, payload.name)


@router.patch(
    "/folders/{folder_id}",
    response_model=FolderSchema,
    summary="重命名文件夹",
)
def rename_folder_api(
    folder_id: int,
    payload: FolderNamePayload,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> FolderSchema:
    return rename_folder(db, owner_id, folder_id, payload.name)


@router.delete(
    "/folders/{folder_id}",
    response_model=DeleteFolderResponse,
    summary="删除文件夹",
)
def delete_folder_api(
    folder_id: int,
    mode: DeleteFolderMode = Query(default="remove_only", description="删除模式"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
) -> DeleteFolderResponse:
    """删除文件夹，可选同时退订仅属于该文件夹的订阅源。"""
    return delete_folder(db, owner_id, folder_id, mode)
