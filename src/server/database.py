# -*- coding: utf-8 -*-
"""
数据库基础设施

公开接口：
- `Base`
- `database_config`
- `engine`
- `SessionLocal`
- `get_db`
- `init_db`

内部方法：
- `_enable_sqlite_foreign_keys`

文件功能：
- 提供 SQLAlchemy 声明基类、全局引擎与会话工厂，供各业务模块的 ORM 模型与 DAO 复用。

说明：
- SQLite 默认不启用外键约束，这里在建立连接时统一打开，保证级联删除与 `SET NULL` 生效。
"""

from __future__ import annotations

import sqlite3
from typing import Iterator

from pydantic import Field
from pydantic_settings import BaseSettings
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class DatabaseConfig(BaseSettings):
    """数据库配置"""

    database_url: str = Field(
        default="sqlite:///./feeds.db",
        title="数据库连接地址",
        description="SQLAlchemy 连接串，支持 SQLite 与 PostgreSQL",
    )

    database_echo: bool = Field(
        default=False,
        title="打印 SQL",
        description="是否在日志中输出执行的 SQL 语句",
    )


database_config = DatabaseConfig()


class Base(DeclarativeBase):
    pass


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    """为 SQLite 连接开启外键约束。"""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


_connect_args = (
    {"check_same_thread": False}
    if database_config.database_url.startswith("sqlite")
    else {}
)

engine = create_engine(
    database_config.database_url,
    echo=database_config.database_echo,
    connect_args=_connect_args,
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    """FastAPI 依赖：为每个请求提供独立会话。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """创建全部数据表。"""
    # 导入模型以注册元数据
    from src.server.feeds import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
