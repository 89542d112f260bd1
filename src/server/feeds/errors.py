# -*- coding: utf-8 -*-
"""
订阅源错误定义

公开接口：
- `FeedError`
- `InvalidFeedURLError`
- `FeedFetchError`
- `FeedTimeoutError`
- `FeedNetworkError`
- `FeedHTTPStatusError`
- `FeedBlockedHostError`
- `FeedParseError`
- `NormalizedFeedError`
- `normalize_feed_error`

内部方法：
- `_resolve_error_message`

文件功能：
- 定义抓取、解析链路中的异常层级，每类异常携带稳定的错误码；
- 将任意异常归一为 (错误码, 面向用户的提示文案)，供刷新结果与订阅接口使用。

错误码：
- `invalid_url`、`invalid_xml`、`timeout`、`network`、`http_<状态码>`、`unreachable`
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

FeedErrorContext = Literal["create", "refresh"]


class FeedError(RuntimeError):
    """订阅源处理失败的基类"""

    code = "unreachable"


class InvalidFeedURLError(FeedError):
    """输入无法归一化为合法的 http(s) 地址"""

    code = "invalid_url"


class FeedFetchError(FeedError):
    """抓取失败"""

    code = "unreachable"


class FeedTimeoutError(FeedFetchError):
    """请求超时"""

    code = "timeout"


class FeedNetworkError(FeedFetchError):
    """传输层失败"""

    code = "network"


class FeedBlockedHostError(FeedFetchError):
    """目标主机被出站安全策略拦截"""

    code = "unreachable"


class FeedHTTPStatusError(FeedFetchError):
    """远端返回非 2xx 状态码"""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        super().__init__(message or f"远端请求失败，状态码 {status_code}")
        self.status_code = status_code

    @property
    def code(self) -> str:  # type: ignore[override]
        return f"http_{self.status_code}"


class FeedParseError(FeedError):
    """内容无法识别为 RSS / Atom / JSON Feed"""

    code = "invalid_xml"


class NormalizedFeedError(BaseModel):
    """归一化后的错误信息"""

    code: str
    message: str


_CREATE_MESSAGES = {
    "http_404": "无法访问该订阅源：服务器返回 404，通常意味着订阅地址已变更。",
    "timeout": "该订阅源响应超时，这通常是暂时的。",
    "invalid_xml": "该地址看起来不是有效的 RSS、Atom 或 JSON Feed 订阅源。",
    "invalid_url": "该地址看起来无效。",
}

_REFRESH_MESSAGES = {
    "http_404": "无法访问该订阅源：服务器返回 404，订阅地址可能已变更或不再存在。",
    "timeout": "该订阅源暂时无法更新：服务器未能及时响应，这通常是暂时的。",
    "invalid_xml": "该订阅源返回的内容不是有效的 RSS、Atom 或 JSON Feed。",
    "network": "网络请求失败，该订阅源暂时无法更新。",
    "invalid_url": "该订阅源地址无效。",
}


def _resolve_error_message(code: str, context: FeedErrorContext) -> str:
    if context == "create":
        return _CREATE_MESSAGES.get(code, "无法访问该地址，请检查后重试。")
    if code in _REFRESH_MESSAGES:
        return _REFRESH_MESSAGES[code]
    if code.startswith("http_"):
        return f"该订阅源暂时无法更新：服务器返回 {code[5:]}。"
    return "该订阅源暂时无法更新。"


def normalize_feed_error(
    error: BaseException,
    context: FeedErrorContext,
) -> NormalizedFeedError:
    """将任意异常转换为稳定的错误码与提示文案。"""
    code = error.code if isinstance(error, FeedError) else "unreachable"
    return NormalizedFeedError(code=code, message=_resolve_error_message(code, context))
