# -*- coding: utf-8 -*-
"""
订阅源刷新服务

功能：
- 批量刷新用户的全部订阅源：抓取与解析并发执行，写库按订阅源逐个进行
- 首次订阅时写入订阅源及其初始条目

公开接口：
- `refresh_all_feeds_for_owner`
- `create_feed_with_initial_items`

内部方法：
- `_fetch_one`
- `_fetch_all`
- `_insert_parsed_items`
- `_apply_fetch_result`
- `_record_failure`

说明：
- 工作线程只做网络请求与解析，不接触数据库会话；
- 单个订阅源的失败只影响它自己的刷新结果。
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from ..config import feeds_config
from ..dao import FeedDAO, FeedFolderMembershipDAO, FeedItemDAO
from ..errors import normalize_feed_error
from ..models import Feed
from ..schemas import (
    CreatedFeed,
    FeedHttpValidators,
    FeedOutcome,
    ParsedFeed,
    ParsedFeedFetch,
    RefreshAllResponse,
)
from .dedup_service import build_item_rows
from .folder_service import normalize_folder_ids, resolve_feed_folder_ids
from .parse_service import parse_feed_with_cache
from .retention_service import (
    purge_old_feed_items_for_feed,
    purge_old_feed_items_for_owner,
)
from .utils import _to_feed_schema, _utcnow

FetchJob = Tuple[int, str, Optional[str], Optional[str]]
FetchOutcome = Tuple[Optional[ParsedFeedFetch], Optional[Exception]]


def _fetch_one(url: str, etag: str | None, last_modified: str | None) -> ParsedFeedFetch:
    return parse_feed_with_cache(url, etag=etag, last_modified=last_modified)


def _fetch_all(jobs: List[FetchJob]) -> List[FetchOutcome]:
    """并发抓取全部订阅源，等待所有任务结束后按输入顺序返回。"""
    max_workers = max(1, min(feeds_config.feeds_max_concurrent_fetches, len(jobs)))
    outcomes: List[FetchOutcome] = []
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(_fetch_one, url, etag, last_modified)
            for _, url, etag, last_modified in jobs
        ]
        for future in futures:
            try:
                outcomes.append((future.result(), None))
            except Exception as exc:
                outcomes.append((None, exc))
    return outcomes


def _insert_parsed_items(db: Session, feed_id: int, parsed_feed: ParsedFeed) -> int:
    rows = build_item_rows(feed_id, parsed_feed.items, _utcnow())
    if not rows:
        return 0
    return FeedItemDAO(db).insert_ignore_conflicts(rows)


def _record_failure(
    db: Session,
    feed_id: int,
    feed_url: str,
    error: Exception,
) -> FeedOutcome:
    """记录刷新失败并返回该订阅源的错误结果。"""
    normalized = normalize_feed_error(error, "refresh")
    logger.warning(
        "订阅源刷新失败：feed_id={}, url={}, 错误码={}, 错误={}",
        feed_id,
        feed_url,
        normalized.code,
        error,
    )
    try:
        FeedDAO(db).mark_fetch_error(
            feed_id,
            code=normalized.code,
            message=normalized.message,
            failed_at=_utcnow(),
        )
    except Exception:  # pragma: no cover - 极端数据库错误
        db.rollback()
        logger.exception("记录订阅源错误状态失败：feed_id={}", feed_id)
    return FeedOutcome(
        feed_id=feed_id,
        feed_url=feed_url,
        new_item_count=0,
        status="error",
        error_code=normalized.code,
        error_message=normalized.message,
    )


def _apply_fetch_result(
    db: Session,
    owner_id: str,
    job: FetchJob,
    fetched: ParsedFeedFetch,
) -> Tuple[FeedOutcome, int]:
    """将一次成功的抓取结果写入数据库，返回 (结果, 清理条目数)。"""
    feed_id, feed_url, etag, last_modified = job
    feed_dao = FeedDAO(db)
    now = _utcnow()

    if fetched.status == "not_modified":
        feed_dao.mark_fetch_success(
            feed_id,
            fetched_at=now,
            etag=fetched.etag or etag,
            last_modified=fetched.last_modified or last_modified,
        )
        outcome = FeedOutcome(
            feed_id=feed_id,
            feed_url=feed_url,
            new_item_count=0,
            status="success",
            fetch_state="not_modified",
        )
        return outcome, 0

    parsed_feed = fetched.parsed_feed or ParsedFeed()
    inserted = _insert_parsed_items(db, feed_id, parsed_feed)
    pruned = purge_old_feed_items_for_feed(db, owner_id, feed_id) if inserted else 0
    # 校验字段只在条目落库之后更新
    feed_dao.mark_fetch_success(
        feed_id,
        fetched_at=now,
        etag=fetched.etag,
        last_modified=fetched.last_modified,
        title=parsed_feed.title,
        description=parsed_feed.description,
    )
    outcome = FeedOutcome(
        feed_id=feed_id,
        feed_url=feed_url,
        new_item_count=inserted,
        status="success",
        fetch_state="updated",
    )
    return outcome, pruned


def refresh_all_feeds_for_owner(db: Session, owner_id: str) -> RefreshAllResponse:
    """刷新用户的全部订阅源。"""
    retention_deleted_count = purge_old_feed_items_for_owner(db, owner_id)

    feeds = FeedDAO(db).list_by_owner(owner_id)
    if not feeds:
        return RefreshAllResponse(
            status="ok",
            message="没有需要刷新的订阅源",
            results=[],
            retention_deleted_count=retention_deleted_count,
        )

    jobs: List[FetchJob] = [
        (feed.id, feed.url, feed.http_etag, feed.http_last_modified) for feed in feeds
    ]
    fetch_outcomes = _fetch_all(jobs)

    results: List[FeedOutcome] = []
    for job, (fetched, error) in zip(jobs, fetch_outcomes):
        feed_id, feed_url = job[0], job[1]
        if error is not None:
            results.append(_record_failure(db, feed_id, feed_url, error))
            continue
        try:
            outcome, pruned = _apply_fetch_result(db, owner_id, job, fetched)
        except Exception as exc:
            db.rollback()
            logger.exception("订阅源写入失败：feed_id={}", feed_id)
            results.append(_record_failure(db, feed_id, feed_url, exc))
            continue
        retention_deleted_count += pruned
        results.append(outcome)

    success_count = sum(1 for outcome in results if outcome.status == "success")
    new_item_count = sum(outcome.new_item_count for outcome in results)
    logger.info(
        "批量刷新完成：owner_id={}, 成功={}/{}, 新增条目={}, 清理条目={}",
        owner_id,
        success_count,
        len(results),
        new_item_count,
        retention_deleted_count,
    )
    return RefreshAllResponse(
        status="ok",
        results=results,
        retention_deleted_count=retention_deleted_count,
    )


def create_feed_with_initial_items(
    db: Session,
    owner_id: str,
    url: str,
    parsed_feed: ParsedFeed,
    folder_ids: Iterable[int] = (),
    validators: FeedHttpValidators | None = None,
) -> CreatedFeed:
    """写入新订阅源及其初始条目，并按上限清理。"""
    validators = validators or FeedHttpValidators()
    normalized_folder_ids = normalize_folder_ids(folder_ids)
    now = _utcnow()

    feed: Feed = FeedDAO(db).create_feed(
        owner_id=owner_id,
        url=url,
        title=parsed_feed.title or None,
        description=parsed_feed.description or None,
        fetched_at=now,
        etag=validators.etag,
        last_modified=validators.last_modified,
    )
    inserted = _insert_parsed_items(db, feed.id, parsed_feed)
    purge_old_feed_items_for_feed(db, owner_id, feed.id)

    if normalized_folder_ids:
        FeedFolderMembershipDAO(db).insert_ignore_conflicts(
            owner_id, feed.id, normalized_folder_ids, now
        )

    logger.info(
        "创建订阅源：owner_id={}, feed_id={}, url={}, 初始条目={}",
        owner_id,
        feed.id,
        url,
        inserted,
    )
    return CreatedFeed(
        feed=_to_feed_schema(
            feed, resolve_feed_folder_ids(feed.folder_id, normalized_folder_ids)
        ),
        inserted_item_count=inserted,
    )
