# -*- coding: utf-8 -*-
"""
应用入口

公开接口：
- `app`
- `create_app`

内部方法：
- `_lifespan`

文件功能：
- 组装 FastAPI 应用：初始化数据表并挂载订阅源路由。
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from src.server.database import init_db
from src.server.feeds.router import router as feeds_router


@asynccontextmanager
async def _lifespan(_: FastAPI):
    init_db()
    logger.info("数据库初始化完成")
    yield


def create_app() -> FastAPI:
    application = FastAPI(title="FeedSync", lifespan=_lifespan)
    application.include_router(feeds_router)
    return application


app = create_app()
