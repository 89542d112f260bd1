# -*- coding: utf-8 -*-
"""
订阅管理服务

功能：
- 订阅：地址归一化、文件夹校验、重复检测、直接解析失败时回退到站点发现
- 订阅前的候选预览
- 订阅源列表的读取（读取前执行保留策略清理）
- 重命名、退订、未分类订阅源的批量操作

公开接口：
- `find_existing_feed_for_owner`
- `subscribe_feed`
- `preview_feed_candidates`
- `list_feeds_for_owner`
- `rename_feed`
- `delete_feed`
- `delete_uncategorized_feeds`
- `move_uncategorized_feeds_to_folder`

内部方法：
- `_raise_feed_error`
- `_require_owned_feed`
- `_duplicate_response`
- `_fetch_candidate`
- `_build_candidate`
- `_list_uncategorized_feed_ids`
"""

from __future__ import annotations

from typing import Iterable, List, NoReturn

from fastapi import HTTPException, status
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import feeds_config
from ..dao import FeedDAO, FeedFolderMembershipDAO
from ..errors import FeedFetchError, FeedError, normalize_feed_error
from ..models import Feed
from ..schemas import (
    DeleteUncategorizedResponse,
    DiscoverCandidateMethod,
    DiscoverCandidateSchema,
    FeedDiscoverResponse,
    FeedHttpValidators,
    FeedSchema,
    MoveUncategorizedResponse,
    ParsedFeed,
    ParsedFeedFetch,
    SubscribeFeedResponse,
)
from .discovery_service import discover_feed_candidates
from .fetch_service import fetch_feed_xml
from .folder_service import (
    get_feed_folder_ids,
    get_feed_folder_ids_map,
    validate_folder_ids,
)
from .parse_service import parse_feed_text, parse_feed_with_metadata
from .refresh_service import create_feed_with_initial_items
from .retention_service import purge_old_feed_items_for_owner
from .url_service import normalize_feed_url
from .utils import _to_feed_schema, _utcnow

INVALID_URL_MESSAGE = "该地址看起来无效。"
NO_FEED_FOUND_MESSAGE = "未能在该地址找到可订阅的 RSS、Atom 或 JSON Feed。"
DUPLICATE_FEED_MESSAGE = "该订阅源已在你的订阅列表中。"


def _raise_feed_error(code: str, message: str) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": code, "message": message},
    )


def _require_owned_feed(db: Session, owner_id: str, feed_id: int) -> Feed:
    feed = FeedDAO(db).get_for_owner(owner_id, feed_id)
    if not feed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="订阅源不存在",
        )
    return feed


def find_existing_feed_for_owner(db: Session, owner_id: str, url: str) -> Feed | None:
    """按规范地址查找用户已有的订阅源。"""
    return FeedDAO(db).get_by_url(owner_id, url)


def _duplicate_response(db: Session, owner_id: str, feed: Feed) -> SubscribeFeedResponse:
    return SubscribeFeedResponse(
        feed=_to_feed_schema(feed, get_feed_folder_ids(db, owner_id, feed)),
        duplicate=True,
        message=DUPLICATE_FEED_MESSAGE,
    )


def _fetch_candidate(url: str) -> ParsedFeedFetch:
    """以发现流程的超时设置抓取并解析候选地址，不重试。"""
    result = fetch_feed_xml(url, timeout=feeds_config.feeds_discovery_timeout, retries=0)
    if result.status != "ok":
        raise FeedFetchError("候选订阅源意外返回未修改")
    return ParsedFeedFetch(
        status="ok",
        parsed_feed=parse_feed_text(result.text or ""),
        etag=result.etag,
        last_modified=result.last_modified,
        resolved_url=normalize_feed_url(result.final_url) or result.final_url,
    )


def subscribe_feed(
    db: Session,
    owner_id: str,
    url: str,
    folder_ids: Iterable[int] = (),
) -> SubscribeFeedResponse:
    """订阅地址；地址本身不是订阅源时尝试从站点中发现。"""
    normalized_url = normalize_feed_url(url)
    if not normalized_url:
        _raise_feed_error("invalid_url", INVALID_URL_MESSAGE)
    target_folder_ids = validate_folder_ids(db, owner_id, folder_ids)

    existing = find_existing_feed_for_owner(db, owner_id, normalized_url)
    if existing:
        return _duplicate_response(db, owner_id, existing)

    fetched: ParsedFeedFetch | None = None
    try:
        fetched = parse_feed_with_metadata(normalized_url)
        fetched.resolved_url = normalize_feed_url(fetched.resolved_url) or normalized_url
    except FeedError as exc:
        normalized = normalize_feed_error(exc, "create")
        if normalized.code != "invalid_xml":
            logger.warning(
                "订阅失败：url={}, 错误码={}, 错误={}", normalized_url, normalized.code, exc
            )
            _raise_feed_error(normalized.code, normalized.message)

        fetched = None
        for candidate_url in discover_feed_candidates(normalized_url).candidates:
            duplicate = find_existing_feed_for_owner(db, owner_id, candidate_url)
            if duplicate:
                return _duplicate_response(db, owner_id, duplicate)
            try:
                fetched = _fetch_candidate(candidate_url)
            except FeedError as candidate_exc:
                logger.debug(
                    "候选订阅源不可用：url={}, 错误码={}", candidate_url, candidate_exc.code
                )
                continue
            resolved_duplicate = find_existing_feed_for_owner(
                db, owner_id, fetched.resolved_url
            )
            if resolved_duplicate:
                return _duplicate_response(db, owner_id, resolved_duplicate)
            break

        if fetched is None:
            _raise_feed_error("invalid_xml", NO_FEED_FOUND_MESSAGE)

    if fetched.resolved_url != normalized_url:
        resolved_duplicate = find_existing_feed_for_owner(db, owner_id, fetched.resolved_url)
        if resolved_duplicate:
            return _duplicate_response(db, owner_id, resolved_duplicate)

    try:
        created = create_feed_with_initial_items(
            db,
            owner_id,
            fetched.resolved_url,
            fetched.parsed_feed or ParsedFeed(),
            target_folder_ids,
            FeedHttpValidators(etag=fetched.etag, last_modified=fetched.last_modified),
        )
    except IntegrityError:
        # 并发订阅同一地址时由唯一约束兜底
        db.rollback()
        race_existing = find_existing_feed_for_owner(db, owner_id, fetched.resolved_url)
        if race_existing:
            return _duplicate_response(db, owner_id, race_existing)
        raise

    return SubscribeFeedResponse(
        feed=created.feed,
        duplicate=False,
        inserted_item_count=created.inserted_item_count,
    )


def _build_candidate(
    db: Session,
    owner_id: str,
    url: str,
    method: DiscoverCandidateMethod,
    parsed_feed: ParsedFeed,
) -> DiscoverCandidateSchema:
    existing = find_existing_feed_for_owner(db, owner_id, url)
    return DiscoverCandidateSchema(
        url=url,
        title=parsed_feed.title,
        method=method,
        duplicate=existing is not None,
        existing_feed_id=existing.id if existing else None,
    )


def preview_feed_candidates(db: Session, owner_id: str, url: str) -> FeedDiscoverResponse:
    """校验地址本身及站点发现得到的候选订阅源，供用户选择。"""
    normalized_url = normalize_feed_url(url)
    if not normalized_url:
        _raise_feed_error("invalid_url", INVALID_URL_MESSAGE)

    candidates: List[DiscoverCandidateSchema] = []
    seen_urls: set[str] = set()

    try:
        direct = parse_feed_with_metadata(normalized_url)
        candidates.append(
            _build_candidate(
                db, owner_id, normalized_url, "direct", direct.parsed_feed or ParsedFeed()
            )
        )
        seen_urls.add(normalized_url)
    except FeedError as exc:
        normalized = normalize_feed_error(exc, "create")
        if normalized.code != "invalid_xml":
            _raise_feed_error(normalized.code, normalized.message)

    discovery = discover_feed_candidates(normalized_url)
    for candidate_url in discovery.candidates:
        if candidate_url in seen_urls:
            continue
        try:
            fetched = _fetch_candidate(candidate_url)
        except FeedError:
            continue
        if fetched.resolved_url in seen_urls:
            continue
        method = discovery.method_by_url.get(candidate_url, "heuristic_path")
        candidates.append(
            _build_candidate(
                db,
                owner_id,
                fetched.resolved_url,
                method,
                fetched.parsed_feed or ParsedFeed(),
            )
        )
        seen_urls.add(fetched.resolved_url)

    if not candidates:
        _raise_feed_error("invalid_xml", NO_FEED_FOUND_MESSAGE)

    addable = [candidate for candidate in candidates if not candidate.duplicate]
    if not addable:
        preview_status = "duplicate"
    elif len(addable) == 1:
        preview_status = "single"
    else:
        preview_status = "multiple"
    return FeedDiscoverResponse(
        status=preview_status,
        normalized_input_url=normalized_url,
        candidates=candidates,
    )


def list_feeds_for_owner(db: Session, owner_id: str) -> List[FeedSchema]:
    """列出用户的订阅源及其文件夹归属。"""
    purge_old_feed_items_for_owner(db, owner_id)
    feeds = FeedDAO(db).list_by_owner(owner_id)
    folder_map = get_feed_folder_ids_map(db, owner_id, feeds)
    return [_to_feed_schema(feed, folder_map.get(feed.id, [])) for feed in feeds]


def rename_feed(
    db: Session,
    owner_id: str,
    feed_id: int,
    custom_title: str | None,
) -> FeedSchema:
    """设置订阅源的自定义标题，空值表示恢复原标题。"""
    feed = _require_owned_feed(db, owner_id, feed_id)
    cleaned = (custom_title or "").strip() or None
    feed = FeedDAO(db).update_custom_title(feed, cleaned)
    return _to_feed_schema(feed, get_feed_folder_ids(db, owner_id, feed))


def delete_feed(db: Session, owner_id: str, feed_id: int) -> None:
    """退订订阅源，条目与文件夹归属随之删除。"""
    feed = _require_owned_feed(db, owner_id, feed_id)
    FeedDAO(db).delete_feed(feed)
    logger.info("退订订阅源：owner_id={}, feed_id={}", owner_id, feed_id)


def _list_uncategorized_feed_ids(db: Session, owner_id: str) -> List[int]:
    feeds = FeedDAO(db).list_by_owner(owner_id)
    folder_map = get_feed_folder_ids_map(db, owner_id, feeds)
    return [feed.id for feed in feeds if not folder_map.get(feed.id)]


def delete_uncategorized_feeds(db: Session, owner_id: str) -> DeleteUncategorizedResponse:
    """退订所有未归属任何文件夹的订阅源。"""
    feed_ids = _list_uncategorized_feed_ids(db, owner_id)
    deleted = FeedDAO(db).delete_many(owner_id, feed_ids)
    logger.info("退订未分类订阅源：owner_id={}, 数量={}", owner_id, deleted)
    return DeleteUncategorizedResponse(deleted_feed_count=deleted)


def move_uncategorized_feeds_to_folder(
    db: Session,
    owner_id: str,
    folder_id: int,
) -> MoveUncategorizedResponse:
    """将所有未分类订阅源归入指定文件夹，逐个执行，失败单独计数。"""
    validate_folder_ids(db, owner_id, [folder_id])
    feed_ids = _list_uncategorized_feed_ids(db, owner_id)

    membership_dao = FeedFolderMembershipDAO(db)
    now = _utcnow()
    moved_ids: List[int] = []
    failed = 0
    for feed_id in feed_ids:
        try:
            membership_dao.insert_ignore_conflicts(owner_id, feed_id, [folder_id], now)
        except Exception:  # pragma: no cover - 极端数据库错误
            db.rollback()
            logger.exception("归档未分类订阅源失败：feed_id={}", feed_id)
            failed += 1
            continue
        moved_ids.append(feed_id)

    FeedDAO(db).touch(owner_id, moved_ids, now)
    return MoveUncategorizedResponse(
        total_uncategorized_count=len(feed_ids),
        moved_feed_count=len(moved_ids),
        failed_feed_count=failed,
    )
