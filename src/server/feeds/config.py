# -*- coding: utf-8 -*-
"""
订阅源模块配置

公开接口：
- `feeds_config`
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class FeedsConfig(BaseSettings):
    """订阅源模块配置"""

    # HTTP 请求配置
    feeds_http_timeout: float = Field(
        default=7.0,
        title="HTTP 请求超时时间",
        description="单次抓取请求的超时时间（秒）",
    )

    feeds_http_retries: int = Field(
        default=2,
        title="HTTP 重试次数",
        description="抓取订阅源遇到可重试错误时的额外尝试次数",
    )

    feeds_http_max_redirects: int = Field(
        default=5,
        title="最大重定向次数",
        description="单次抓取允许跟随的最大重定向次数",
    )

    feeds_user_agent: str = Field(
        default="FeedSync/0.1 (+https://feedsync.invalid/bot)",
        title="User-Agent",
        description="抓取请求携带的 User-Agent",
    )

    feeds_block_private_hosts: bool = Field(
        default=True,
        title="拦截内网地址",
        description="是否拒绝抓取解析到内网、回环或保留地址的主机",
    )

    # 发现配置
    feeds_discovery_timeout: float = Field(
        default=7.0,
        title="发现请求超时时间",
        description="探测站点页面与候选订阅链接时的超时时间（秒）",
    )

    feeds_max_discovery_candidates: int = Field(
        default=5,
        title="最大候选数量",
        description="单次发现流程返回的候选订阅链接上限",
    )

    # 业务逻辑配置
    feeds_items_per_feed_limit: int = Field(
        default=50,
        title="单源条目保留上限",
        description="每个订阅源最多保留的条目数量，超出部分按时间淘汰",
    )

    feeds_default_item_limit: int = Field(
        default=40,
        title="默认条目限制",
        description="分页读取条目时每页的默认数量",
    )

    feeds_max_item_page_limit: int = Field(
        default=80,
        title="单页条目上限",
        description="分页读取条目时每页允许的最大数量，超出时截断",
    )

    feeds_folder_limit: int = Field(
        default=50,
        title="文件夹数量上限",
        description="每个用户最多可创建的文件夹数量",
    )

    # 批量刷新配置
    feeds_max_concurrent_fetches: int = Field(
        default=5,
        title="最大并发拉取数",
        description="批量刷新时同时执行的最大抓取任务数",
    )


feeds_config = FeedsConfig()
