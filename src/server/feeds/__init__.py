# -*- coding: utf-8 -*-
"""
订阅源模块入口

公开接口：
- `feeds_config`
- `router`
- `subscribe_feed`
- `discover_feed_candidates`
- `create_feed_with_initial_items`
- `refresh_all_feeds_for_owner`
- `list_items_for_owner`
- `mark_all_items_read`
- `set_feed_folders`
- `add_feed_folders`

文件功能：
- 订阅、发现、刷新与条目阅读四组能力的导入入口；
- `router` 挂载 `/api` 下的订阅源、条目与文件夹路由，由 `src.server.main` 加载；
- 其余名称在首次访问时才导入服务层，导入本包本身只加载配置。
"""

from typing import Any

from .config import feeds_config

_SERVICE_EXPORTS = {
    "subscribe_feed",
    "discover_feed_candidates",
    "create_feed_with_initial_items",
    "refresh_all_feeds_for_owner",
    "list_items_for_owner",
    "mark_all_items_read",
    "set_feed_folders",
    "add_feed_folders",
}

__all__ = ["feeds_config", "router", *sorted(_SERVICE_EXPORTS)]


def __getattr__(name: str) -> Any:
    if name == "router":
        from .router import router

        return router
    if name in _SERVICE_EXPORTS:
        from . import service

        return getattr(service, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(__all__)
