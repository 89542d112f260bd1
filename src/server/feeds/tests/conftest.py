# -*- coding: utf-8 -*-
"""
订阅源模块测试夹具
"""

from __future__ import annotations

from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import wait_none

from src.server.database import Base
from src.server.feeds import models  # noqa: F401


@pytest.fixture()
def test_db_session() -> Iterator[Session]:
    """基于内存 SQLite 的独立会话。"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = testing_session()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(autouse=True)
def _stub_network_side_effects(monkeypatch: pytest.MonkeyPatch) -> None:
    """测试中不做真实 DNS 解析与退避等待。"""
    monkeypatch.setattr(
        "src.server.feeds.service.fetch_service._resolve_host_addresses",
        lambda hostname: ["93.184.216.34"],
    )
    monkeypatch.setattr(
        "src.server.feeds.service.fetch_service._RETRY_WAIT",
        wait_none(),
    )
