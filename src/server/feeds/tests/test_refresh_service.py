# -*- coding: utf-8 -*-
"""
订阅源刷新服务测试
"""

from __future__ import annotations

from typing import Dict, List

import pytest
from sqlalchemy.orm import Session

from src.server.feeds.dao import FeedDAO, FeedItemDAO
from src.server.feeds.errors import FeedTimeoutError
from src.server.feeds.models import Feed
from src.server.feeds.schemas import (
    FeedHttpValidators,
    ParsedFeed,
    ParsedFeedFetch,
    ParsedFeedItem,
)
from src.server.feeds.service.refresh_service import (
    create_feed_with_initial_items,
    refresh_all_feeds_for_owner,
)
from src.server.feeds.tests.factories import (
    BASE_TIME,
    build_parsed_feed,
    create_feed,
    create_folder,
)

OWNER_ID = "owner-1"


def _install_fetch(monkeypatch: pytest.MonkeyPatch, responses: Dict[str, object]) -> List[dict]:
    """按地址返回预置结果；值为异常时抛出。"""
    calls: List[dict] = []

    def fake_parse_feed_with_cache(url: str, **kwargs) -> ParsedFeedFetch:
        calls.append({"url": url, **kwargs})
        response = responses[url]
        if isinstance(response, Exception):
            raise response
        return response  # type: ignore[return-value]

    monkeypatch.setattr(
        "src.server.feeds.service.refresh_service.parse_feed_with_cache",
        fake_parse_feed_with_cache,
    )
    return calls


def _ok(parsed_feed: ParsedFeed, url: str, etag: str | None = None) -> ParsedFeedFetch:
    return ParsedFeedFetch(status="ok", parsed_feed=parsed_feed, etag=etag, resolved_url=url)


def _reload(db: Session, feed_id: int) -> Feed:
    db.expire_all()
    feed = db.get(Feed, feed_id)
    assert feed is not None
    return feed


def test_refresh_without_feeds(test_db_session: Session) -> None:
    """没有订阅源时直接返回提示。"""
    response = refresh_all_feeds_for_owner(test_db_session, OWNER_ID)

    assert response.status == "ok"
    assert response.results == []
    assert response.message == "没有需要刷新的订阅源"
    assert response.retention_deleted_count == 0


def test_refresh_is_idempotent(test_db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    """重复刷新相同内容不会产生新条目。"""
    first = create_feed(test_db_session, OWNER_ID, "https://a.example.com/feed")
    second = create_feed(test_db_session, OWNER_ID, "https://b.example.com/feed")
    _install_fetch(
        monkeypatch,
        {
            first.url: _ok(build_parsed_feed(3, prefix="a"), first.url),
            second.url: _ok(build_parsed_feed(2, prefix="b"), second.url),
        },
    )

    initial = refresh_all_feeds_for_owner(test_db_session, OWNER_ID)
    repeated = refresh_all_feeds_for_owner(test_db_session, OWNER_ID)

    assert [outcome.feed_id for outcome in initial.results] == [first.id, second.id]
    assert [outcome.new_item_count for outcome in initial.results] == [3, 2]
    assert [outcome.new_item_count for outcome in repeated.results] == [0, 0]
    assert all(outcome.status == "success" for outcome in repeated.results)
    assert FeedItemDAO(test_db_session).count_for_feed(first.id) == 3


def test_refresh_sends_stored_validators(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """携带已保存的缓存校验字段，未修改时不写入条目。"""
    feed = create_feed(test_db_session, OWNER_ID, "https://example.com/feed")
    FeedDAO(test_db_session).mark_fetch_success(
        feed.id,
        fetched_at=BASE_TIME,
        etag="v1",
        last_modified="Mon, 01 Jan 2024 00:00:00 GMT",
    )
    calls = _install_fetch(
        monkeypatch,
        {
            feed.url: ParsedFeedFetch(
                status="not_modified",
                etag="v1",
                last_modified="Mon, 01 Jan 2024 00:00:00 GMT",
                resolved_url=feed.url,
            )
        },
    )

    response = refresh_all_feeds_for_owner(test_db_session, OWNER_ID)

    assert calls[0]["etag"] == "v1"
    assert calls[0]["last_modified"] == "Mon, 01 Jan 2024 00:00:00 GMT"
    outcome = response.results[0]
    assert outcome.status == "success"
    assert outcome.fetch_state == "not_modified"
    assert outcome.new_item_count == 0
    reloaded = _reload(test_db_session, feed.id)
    assert reloaded.http_etag == "v1"
    assert reloaded.last_fetch_status == "success"


def test_refresh_isolates_failures(test_db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    """单个订阅源失败不影响其他订阅源，结果保持输入顺序。"""
    feeds = [
        create_feed(test_db_session, OWNER_ID, f"https://example.com/{name}")
        for name in ("one", "two", "three")
    ]
    _install_fetch(
        monkeypatch,
        {
            feeds[0].url: _ok(build_parsed_feed(2, prefix="one"), feeds[0].url),
            feeds[1].url: FeedTimeoutError("请求超时"),
            feeds[2].url: _ok(build_parsed_feed(1, prefix="three"), feeds[2].url),
        },
    )

    response = refresh_all_feeds_for_owner(test_db_session, OWNER_ID)

    assert [outcome.feed_id for outcome in response.results] == [feed.id for feed in feeds]
    assert [outcome.status for outcome in response.results] == ["success", "error", "success"]
    failed = response.results[1]
    assert failed.error_code == "timeout"
    assert failed.error_message
    assert failed.new_item_count == 0
    assert response.results[0].new_item_count == 2
    assert response.results[2].new_item_count == 1

    reloaded = _reload(test_db_session, feeds[1].id)
    assert reloaded.last_fetch_status == "error"
    assert reloaded.last_fetch_error_code == "timeout"
    assert reloaded.last_fetch_error_at is not None


def test_refresh_keeps_old_validators_when_insert_fails(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """条目写入失败时保留旧的校验字段，下次刷新仍会拿到完整内容。"""
    feed = create_feed(test_db_session, OWNER_ID, "https://example.com/feed")
    FeedDAO(test_db_session).mark_fetch_success(
        feed.id, fetched_at=BASE_TIME, etag="v1", last_modified=None
    )
    _install_fetch(
        monkeypatch,
        {feed.url: _ok(build_parsed_feed(2), feed.url, etag="v2")},
    )

    def failing_insert(self, rows) -> int:
        raise RuntimeError("磁盘已满")

    monkeypatch.setattr(FeedItemDAO, "insert_ignore_conflicts", failing_insert)

    response = refresh_all_feeds_for_owner(test_db_session, OWNER_ID)

    outcome = response.results[0]
    assert outcome.status == "error"
    assert outcome.error_code == "unreachable"
    reloaded = _reload(test_db_session, feed.id)
    assert reloaded.http_etag == "v1"
    assert reloaded.last_fetch_status == "error"


def test_refresh_success_clears_previous_error(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """成功刷新清除错误状态并保存新的缓存校验字段。"""
    feed = create_feed(test_db_session, OWNER_ID, "https://example.com/feed")
    FeedDAO(test_db_session).mark_fetch_error(
        feed.id, code="timeout", message="超时", failed_at=BASE_TIME
    )
    _install_fetch(
        monkeypatch,
        {feed.url: _ok(build_parsed_feed(1), feed.url, etag="v2")},
    )

    refresh_all_feeds_for_owner(test_db_session, OWNER_ID)

    reloaded = _reload(test_db_session, feed.id)
    assert reloaded.last_fetch_status == "success"
    assert reloaded.last_fetch_error_code is None
    assert reloaded.last_fetch_error_message is None
    assert reloaded.http_etag == "v2"


def test_refresh_keeps_title_when_new_one_is_blank(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """新标题为空时保留原标题。"""
    feed = create_feed(test_db_session, OWNER_ID, "https://example.com/feed", title="旧标题")
    _install_fetch(
        monkeypatch,
        {feed.url: _ok(build_parsed_feed(1, title=None), feed.url)},
    )

    refresh_all_feeds_for_owner(test_db_session, OWNER_ID)

    assert _reload(test_db_session, feed.id).title == "旧标题"


def test_refresh_applies_retention(test_db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    """刷新后每个订阅源最多保留上限数量的条目。"""
    feed = create_feed(test_db_session, OWNER_ID, "https://example.com/feed")
    _install_fetch(monkeypatch, {feed.url: _ok(build_parsed_feed(55), feed.url)})

    response = refresh_all_feeds_for_owner(test_db_session, OWNER_ID)

    assert response.results[0].new_item_count == 55
    assert response.retention_deleted_count == 5
    assert FeedItemDAO(test_db_session).count_for_feed(feed.id) == 50


def test_refresh_dedups_items_without_guid(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """缺少 guid 的相同条目只写入一次。"""
    feed = create_feed(test_db_session, OWNER_ID, "https://example.com/feed")
    item = ParsedFeedItem(title="无 guid", link="https://example.com/x", content="正文")
    parsed = ParsedFeed(title="示例", items=[item, item.model_copy()])
    _install_fetch(monkeypatch, {feed.url: _ok(parsed, feed.url)})

    first = refresh_all_feeds_for_owner(test_db_session, OWNER_ID)
    second = refresh_all_feeds_for_owner(test_db_session, OWNER_ID)

    assert first.results[0].new_item_count == 1
    assert second.results[0].new_item_count == 0


def test_create_feed_with_initial_items(test_db_session: Session) -> None:
    """首次订阅写入条目后按上限清理，并写入文件夹归属。"""
    folder = create_folder(test_db_session, OWNER_ID, "技术")

    created = create_feed_with_initial_items(
        test_db_session,
        OWNER_ID,
        "https://example.com/feed",
        build_parsed_feed(60),
        folder_ids=[folder.id, folder.id],
        validators=FeedHttpValidators(etag="v1"),
    )

    assert created.inserted_item_count == 60
    assert created.feed.folder_ids == [folder.id]
    assert created.feed.title == "示例频道"
    assert created.feed.last_fetch_status == "success"
    assert FeedItemDAO(test_db_session).count_for_feed(created.feed.id) == 50
    assert _reload(test_db_session, created.feed.id).http_etag == "v1"
