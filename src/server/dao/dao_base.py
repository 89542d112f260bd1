# -*- coding: utf-8 -*-
"""
DAO 基类

公开接口：
- `BaseDAO`

文件功能：
- 持有数据库会话，并提供「冲突即忽略」的插入能力，供唯一约束去重场景使用。
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


class BaseDAO:
    """DAO 基类"""

    def __init__(self, db_session: Session) -> None:
        self.db_session = db_session

    def insert_ignore_conflicts(
        self,
        table: Table,
        rows: Iterable[Mapping[str, Any]],
    ) -> list[Mapping[str, Any]]:
        """逐行插入，唯一约束冲突时静默跳过，返回实际写入的行。"""
        dialect_name = self.db_session.get_bind().dialect.name
        if dialect_name == "postgresql":
            insert_factory = postgresql.insert
        elif dialect_name == "sqlite":
            insert_factory = sqlite.insert
        else:
            raise ValueError(f"不支持的数据库方言：{dialect_name}")

        inserted: list[Mapping[str, Any]] = []
        for row in rows:
            stmt = insert_factory(table).values(**row).on_conflict_do_nothing()
            result = self.db_session.execute(stmt)
            if result.rowcount:
                inserted.append(row)
        self.db_session.commit()
        return inserted
