# -*- coding: utf-8 -*-
"""
订阅地址归一化服务

公开接口：
- `normalize_feed_url`

内部方法：
- `_format_host`

文件功能：
- 将用户输入的站点或订阅地址转换为规范的绝对地址，用于去重与抓取。

规则：
- 去除首尾空白，缺少 `scheme://` 时补全 `https://`；
- 仅接受 http / https，且必须包含可 IDNA 编码的主机；
- 协议与主机小写，去除用户名密码，去除默认端口，非法端口视为无效；
- 空路径补为 `/`，其余路径与查询串原样保留，片段丢弃。
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlsplit, urlunsplit

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def _format_host(hostname: str) -> str:
    # IPv6 字面量需要重新包上方括号
    if ":" in hostname:
        return f"[{hostname}]"
    return hostname


def normalize_feed_url(raw: Any) -> str | None:
    """归一化订阅地址，无法解析时返回 None。"""
    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value:
        return None
    if not _SCHEME_RE.match(value):
        value = f"https://{value}"

    try:
        parts = urlsplit(value)
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        return None
    hostname = parts.hostname
    if not hostname:
        return None
    # 空标签或超长标签无法进行 IDNA 编码，解析主机时会失败
    try:
        hostname.encode("idna")
    except UnicodeError:
        return None

    netloc = _format_host(hostname.lower())
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"

    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, ""))
