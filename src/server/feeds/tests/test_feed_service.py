# -*- coding: utf-8 -*-
"""
订阅管理服务测试
"""

from __future__ import annotations

from typing import Dict, List

import pytest
from fastapi import HTTPException
from sqlalchemy import update
from sqlalchemy.orm import Session

from src.server.feeds.dao import FeedFolderMembershipDAO, FeedItemDAO
from src.server.feeds.errors import (
    FeedHTTPStatusError,
    FeedParseError,
    FeedTimeoutError,
)
from src.server.feeds.models import Feed
from src.server.feeds.schemas import (
    FeedDiscoveryResult,
    FetchResult,
    ParsedFeedFetch,
)
from src.server.feeds.service.feed_service import (
    delete_feed,
    delete_uncategorized_feeds,
    list_feeds_for_owner,
    move_uncategorized_feeds_to_folder,
    preview_feed_candidates,
    rename_feed,
    subscribe_feed,
)
from src.server.feeds.tests.factories import (
    BASE_TIME,
    build_parsed_feed,
    create_feed,
    create_folder,
    seed_items,
)

OWNER_ID = "owner-1"

CANDIDATE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>候选频道</title>
    <item><title>候选文章</title><guid>candidate-1</guid></item>
  </channel>
</rss>
"""


def _install_direct(monkeypatch: pytest.MonkeyPatch, outcome: object) -> List[str]:
    calls: List[str] = []

    def fake_parse_feed_with_metadata(url: str, **kwargs) -> ParsedFeedFetch:
        calls.append(url)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome  # type: ignore[return-value]

    monkeypatch.setattr(
        "src.server.feeds.service.feed_service.parse_feed_with_metadata",
        fake_parse_feed_with_metadata,
    )
    return calls


def _install_discovery(
    monkeypatch: pytest.MonkeyPatch,
    candidates: List[str],
    responses: Dict[str, object],
) -> None:
    def fake_discover(url: str) -> FeedDiscoveryResult:
        return FeedDiscoveryResult(
            candidates=candidates,
            method_by_url={candidate: "html_alternate" for candidate in candidates},
        )

    def fake_fetch_feed_xml(url: str, **kwargs) -> FetchResult:
        response = responses[url]
        if isinstance(response, Exception):
            raise response
        return response  # type: ignore[return-value]

    monkeypatch.setattr(
        "src.server.feeds.service.feed_service.discover_feed_candidates", fake_discover
    )
    monkeypatch.setattr(
        "src.server.feeds.service.feed_service.fetch_feed_xml", fake_fetch_feed_xml
    )


def _direct_ok(url: str, count: int = 3) -> ParsedFeedFetch:
    return ParsedFeedFetch(
        status="ok",
        parsed_feed=build_parsed_feed(count),
        etag="v1",
        resolved_url=url,
    )


def _candidate_page(url: str) -> FetchResult:
    return FetchResult(status="ok", text=CANDIDATE_RSS, final_url=url, status_code=200)


def test_subscribe_direct_feed(test_db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    """地址本身是订阅源时直接订阅，并写入初始条目与文件夹。"""
    folder = create_folder(test_db_session, OWNER_ID, "技术")
    calls = _install_direct(monkeypatch, _direct_ok("https://example.com/feed.xml"))

    response = subscribe_feed(
        test_db_session, OWNER_ID, "Example.com/feed.xml#top", [folder.id]
    )

    assert calls == ["https://example.com/feed.xml"]
    assert response.duplicate is False
    assert response.inserted_item_count == 3
    assert response.feed.url == "https://example.com/feed.xml"
    assert response.feed.title == "示例频道"
    assert response.feed.folder_ids == [folder.id]


def test_subscribe_detects_duplicates(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """已订阅的地址直接返回已有订阅源，不再抓取。"""
    existing = create_feed(test_db_session, OWNER_ID, "https://example.com/feed.xml")
    calls = _install_direct(monkeypatch, _direct_ok("https://example.com/feed.xml"))

    response = subscribe_feed(test_db_session, OWNER_ID, "HTTPS://EXAMPLE.COM:443/feed.xml")

    assert calls == []
    assert response.duplicate is True
    assert response.feed.id == existing.id
    assert response.message


def test_subscribe_stores_resolved_url(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """重定向后的最终地址作为订阅地址保存。"""
    _install_direct(monkeypatch, _direct_ok("https://Example.com/new-feed#x"))

    response = subscribe_feed(test_db_session, OWNER_ID, "https://example.com/old-feed")

    assert response.feed.url == "https://example.com/new-feed"


def test_subscribe_rejects_invalid_url(test_db_session: Session) -> None:
    with pytest.raises(HTTPException) as exc_info:
        subscribe_feed(test_db_session, OWNER_ID, "ftp://example.com/feed")
    assert exc_info.value.status_code == 400
    assert exc_info.value.detail["code"] == "invalid_url"


@pytest.mark.parametrize(
    "url", ["https://a..example.com/feed", "https://" + "a" * 64 + ".com/feed"]
)
def test_subscribe_rejects_hosts_that_cannot_be_encoded(
    test_db_session: Session, url: str
) -> None:
    """空标签或超长标签的主机名按无效地址处理。"""
    with pytest.raises(HTTPException) as exc_info:
        subscribe_feed(test_db_session, OWNER_ID, url)
    assert exc_info.value.status_code == 400
    assert exc_info.value.detail["code"] == "invalid_url"


def test_subscribe_rejects_invalid_folders_before_fetching(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls = _install_direct(monkeypatch, _direct_ok("https://example.com/feed.xml"))

    with pytest.raises(HTTPException) as exc_info:
        subscribe_feed(test_db_session, OWNER_ID, "https://example.com/feed.xml", [42])

    assert exc_info.value.detail == {"code": "invalid_folder_ids", "invalid_folder_ids": [42]}
    assert calls == []


def test_subscribe_falls_back_to_discovery(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """站点首页不是订阅源时依次尝试候选链接。"""
    _install_direct(monkeypatch, FeedParseError("不是订阅源"))
    _install_discovery(
        monkeypatch,
        ["https://example.com/missing", "https://example.com/feed.xml"],
        {
            "https://example.com/missing": FeedHTTPStatusError(404),
            "https://example.com/feed.xml": _candidate_page("https://example.com/feed.xml"),
        },
    )

    response = subscribe_feed(test_db_session, OWNER_ID, "https://example.com")

    assert response.duplicate is False
    assert response.feed.url == "https://example.com/feed.xml"
    assert response.feed.title == "候选频道"
    assert response.inserted_item_count == 1


def test_subscribe_discovery_returns_existing_candidate(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    existing = create_feed(test_db_session, OWNER_ID, "https://example.com/feed.xml")
    _install_direct(monkeypatch, FeedParseError("不是订阅源"))
    _install_discovery(monkeypatch, ["https://example.com/feed.xml"], {})

    response = subscribe_feed(test_db_session, OWNER_ID, "https://example.com")

    assert response.duplicate is True
    assert response.feed.id == existing.id


def test_subscribe_reports_fetch_errors(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """抓取失败时返回归一化的错误码，不进入发现流程。"""
    _install_direct(monkeypatch, FeedTimeoutError("请求超时"))

    with pytest.raises(HTTPException) as exc_info:
        subscribe_feed(test_db_session, OWNER_ID, "https://example.com/feed.xml")

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail["code"] == "timeout"


def test_subscribe_without_any_feed(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    _install_direct(monkeypatch, FeedParseError("不是订阅源"))
    _install_discovery(monkeypatch, [], {})

    with pytest.raises(HTTPException) as exc_info:
        subscribe_feed(test_db_session, OWNER_ID, "https://example.com")

    assert exc_info.value.detail["code"] == "invalid_xml"
    assert test_db_session.query(Feed).count() == 0


def test_preview_direct_feed(test_db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    _install_direct(monkeypatch, _direct_ok("https://example.com/feed.xml"))
    _install_discovery(monkeypatch, [], {})

    response = preview_feed_candidates(test_db_session, OWNER_ID, "example.com/feed.xml")

    assert response.status == "single"
    assert response.normalized_input_url == "https://example.com/feed.xml"
    assert response.candidates[0].method == "direct"
    assert response.candidates[0].title == "示例频道"


def test_preview_multiple_candidates(
    test_db_session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    """多个可用候选时返回 multiple，已订阅的候选带有标记。"""
    existing = create_feed(test_db_session, OWNER_ID, "https://example.com/atom.xml")
    _install_direct(monkeypatch, FeedParseError("不是订阅源"))
    _install_discovery(
        monkeypatch,
        [
            "https://example.com/feed.xml",
            "https://example.com/rss.xml",
            "https://example.com/atom.xml",
        ],
        {
            "https://example.com/feed.xml": _candidate_page("https://example.com/feed.xml"),
            "https://example.com/rss.xml": _candidate_page("https://example.com/rss.xml"),
            "https://example.com/atom.xml": _candidate_page("https://example.com/atom.xml"),
        },
    )

    response = preview_feed_candidates(test_db_session, OWNER_ID, "https://example.com")

    assert response.status == "multiple"
    assert [candidate.url for candidate in response.candidates] == [
        "https://example.com/feed.xml",
        "https://example.com/rss.xml",
        "https://example.com/atom.xml",
    ]
    assert response.candidates[2].duplicate is True
    assert response.candidates[2].existing_feed_id == existing.id
    assert response.candidates[0].method == "html_alternate"


def test_preview_only_duplicates(test_db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    create_feed(test_db_session, OWNER_ID, "https://example.com/feed.xml")
    _install_direct(monkeypatch, _direct_ok("https://example.com/feed.xml"))
    _install_discovery(monkeypatch, [], {})

    response = preview_feed_candidates(test_db_session, OWNER_ID, "https://example.com/feed.xml")

    assert response.status == "duplicate"


def test_rename_feed(test_db_session: Session) -> None:
    feed = create_feed(test_db_session, OWNER_ID, "https://example.com/a")

    renamed = rename_feed(test_db_session, OWNER_ID, feed.id, "  我的订阅  ")
    assert renamed.custom_title == "我的订阅"
    assert renamed.title == "旧标题"

    reset = rename_feed(test_db_session, OWNER_ID, feed.id, "   ")
    assert reset.custom_title is None

    with pytest.raises(HTTPException) as exc_info:
        rename_feed(test_db_session, "owner-2", feed.id, "x")
    assert exc_info.value.status_code == 404


def test_delete_feed_removes_items(test_db_session: Session) -> None:
    """退订后条目一并删除。"""
    feed = create_feed(test_db_session, OWNER_ID, "https://example.com/a")
    seed_items(test_db_session, feed.id, 2, "a")

    delete_feed(test_db_session, OWNER_ID, feed.id)

    assert FeedItemDAO(test_db_session).count_for_feed(feed.id) == 0
    assert list_feeds_for_owner(test_db_session, OWNER_ID) == []
    with pytest.raises(HTTPException):
        delete_feed(test_db_session, OWNER_ID, feed.id)


def _seed_categorized_feeds(db: Session) -> tuple[int, Feed, Feed, Feed]:
    """三个订阅源：关系表归档、未分类、历史字段归档。"""
    folder = create_folder(db, OWNER_ID, "一")
    in_folder = create_feed(db, OWNER_ID, "https://example.com/a")
    uncategorized = create_feed(db, OWNER_ID, "https://example.com/b")
    legacy = create_feed(db, OWNER_ID, "https://example.com/c")
    FeedFolderMembershipDAO(db).insert_ignore_conflicts(
        OWNER_ID, in_folder.id, [folder.id], BASE_TIME
    )
    db.execute(update(Feed).where(Feed.id == legacy.id).values(folder_id=folder.id))
    db.commit()
    return folder.id, in_folder, uncategorized, legacy


def test_list_feeds_includes_folder_ids(test_db_session: Session) -> None:
    folder_id, in_folder, uncategorized, legacy = _seed_categorized_feeds(test_db_session)
    test_db_session.expire_all()

    feeds = {feed.id: feed for feed in list_feeds_for_owner(test_db_session, OWNER_ID)}

    assert feeds[in_folder.id].folder_ids == [folder_id]
    assert feeds[uncategorized.id].folder_ids == []
    assert feeds[legacy.id].folder_ids == [folder_id]


def test_delete_uncategorized_feeds(test_db_session: Session) -> None:
    _, in_folder, uncategorized, legacy = _seed_categorized_feeds(test_db_session)
    test_db_session.expire_all()

    response = delete_uncategorized_feeds(test_db_session, OWNER_ID)

    assert response.deleted_feed_count == 1
    remaining = {feed.id for feed in list_feeds_for_owner(test_db_session, OWNER_ID)}
    assert remaining == {in_folder.id, legacy.id}


def test_move_uncategorized_feeds(test_db_session: Session) -> None:
    _, _, uncategorized, _ = _seed_categorized_feeds(test_db_session)
    target = create_folder(test_db_session, OWNER_ID, "二")
    test_db_session.expire_all()

    response = move_uncategorized_feeds_to_folder(test_db_session, OWNER_ID, target.id)

    assert response.total_uncategorized_count == 1
    assert response.moved_feed_count == 1
    assert response.failed_feed_count == 0
    feeds = {feed.id: feed for feed in list_feeds_for_owner(test_db_session, OWNER_ID)}
    assert feeds[uncategorized.id].folder_ids == [target.id]

    with pytest.raises(HTTPException) as exc_info:
        move_uncategorized_feeds_to_folder(test_db_session, OWNER_ID, 999)
    assert exc_info.value.status_code == 400
