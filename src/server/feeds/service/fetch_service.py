# -*- coding: utf-8 -*-
"""
订阅源抓取服务

功能：
- 以条件请求抓取远端文本，手动跟随重定向，对可重试错误做带抖动的指数退避
- 在每一跳连接之前校验目标主机，拒绝内网、回环与云元数据地址

公开接口：
- `fetch_remote_text`
- `fetch_feed_xml`
- `FEED_ACCEPT_HEADER`
- `HTML_ACCEPT_HEADER`

内部方法：
- `_build_client`
- `_resolve_host_addresses`
- `_assert_public_target`
- `_is_retryable`
- `_log_retry`
- `_request_once`
"""

from __future__ import annotations

import ipaddress
import socket
from typing import List
from urllib.parse import urljoin, urlsplit

import httpx
from loguru import logger
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from ..config import feeds_config
from ..errors import (
    FeedBlockedHostError,
    FeedError,
    FeedFetchError,
    FeedHTTPStatusError,
    FeedNetworkError,
    FeedTimeoutError,
    InvalidFeedURLError,
)
from ..schemas import FetchResult

FEED_ACCEPT_HEADER = (
    "application/rss+xml,application/atom+xml,application/xml,text/xml;q=0.9,*/*;q=0.1"
)
HTML_ACCEPT_HEADER = "text/html,application/xhtml+xml;q=0.9,text/plain;q=0.8,*/*;q=0.1"

_REDIRECT_STATUSES = {301, 302, 303, 307, 308}
_RETRYABLE_STATUSES = {408, 429}
_BLOCKED_HOSTNAMES = {
    "localhost",
    "metadata",
    "metadata.google.internal",
    "metadata.goog",
}

# 第 n 次重试前等待 0.2 * 2^(n-1) 秒，封顶 2 秒，另加至多 0.1 秒抖动
_RETRY_WAIT = wait_exponential(multiplier=0.2, max=2.0) + wait_random(0, 0.1)


def _build_client(timeout: float) -> httpx.Client:
    """构建 HTTP 客户端，重定向由调用方手动处理。"""
    return httpx.Client(timeout=timeout, follow_redirects=False)


def _resolve_host_addresses(hostname: str) -> List[str]:
    """解析主机名对应的全部 IP 地址。"""
    infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    return [str(info[4][0]) for info in infos]


def _is_public_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return ip.is_global and not ip.is_multicast


def _assert_public_target(url: str) -> None:
    """校验目标地址可被安全访问，否则抛出异常。"""
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise InvalidFeedURLError(f"无效的地址：{url}") from exc

    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise InvalidFeedURLError(f"无效的地址：{url}")
    if parts.username or parts.password:
        raise FeedBlockedHostError("不允许在地址中携带认证信息")
    if not feeds_config.feeds_block_private_hosts:
        return

    hostname = parts.hostname.lower().rstrip(".")
    if hostname in _BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        logger.warning("拦截对受限主机的请求：host={}", hostname)
        raise FeedBlockedHostError(f"目标主机被拦截：{hostname}")

    try:
        ipaddress.ip_address(hostname)
        addresses = [hostname]
    except ValueError:
        try:
            addresses = _resolve_host_addresses(hostname)
        except UnicodeError as exc:
            raise InvalidFeedURLError(f"无效的主机名：{hostname}") from exc
        except OSError as exc:
            raise FeedNetworkError(f"无法解析主机：{hostname}") from exc

    if not addresses or not all(_is_public_address(address) for address in addresses):
        logger.warning("拦截解析到非公网地址的请求：host={}, 地址={}", hostname, addresses)
        raise FeedBlockedHostError(f"目标主机解析到非公网地址：{hostname}")


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, (FeedTimeoutError, FeedNetworkError)):
        return True
    if isinstance(error, FeedHTTPStatusError):
        return error.status_code in _RETRYABLE_STATUSES or error.status_code >= 500
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    """每次重试前记录一条调试日志。"""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.debug(
        "抓取失败，{:.2f} 秒后重试：url={}, 第 {} 次尝试, 错误={}",
        delay,
        retry_state.args[1] if len(retry_state.args) > 1 else None,
        retry_state.attempt_number,
        exc,
    )


def _request_once(
    client: httpx.Client,
    url: str,
    headers: dict[str, str],
    max_redirects: int,
) -> FetchResult:
    """执行一次完整请求（含重定向链）。"""
    current_url = url
    redirects = 0
    while True:
        _assert_public_target(current_url)
        try:
            response = client.get(current_url, headers=headers)
        except httpx.TimeoutException as exc:
            raise FeedTimeoutError(f"请求超时：{current_url}") from exc
        except httpx.HTTPError as exc:
            raise FeedNetworkError(f"网络请求失败：{exc}") from exc

        if response.status_code in _REDIRECT_STATUSES:
            location = response.headers.get("location")
            if not location:
                raise FeedFetchError(f"重定向缺少 Location：{current_url}")
            if redirects >= max_redirects:
                raise FeedFetchError(f"重定向次数超过上限：{url}")
            redirects += 1
            current_url = urljoin(current_url, location)
            continue

        etag = response.headers.get("etag")
        last_modified = response.headers.get("last-modified")
        if response.status_code == 304:
            return FetchResult(
                status="not_modified",
                etag=etag,
                last_modified=last_modified,
                final_url=current_url,
                status_code=304,
            )
        if not 200 <= response.status_code < 300:
            raise FeedHTTPStatusError(response.status_code)

        return FetchResult(
            status="ok",
            text=response.text,
            etag=etag,
            last_modified=last_modified,
            final_url=current_url,
            status_code=response.status_code,
        )


def fetch_remote_text(
    url: str,
    *,
    etag: str | None = None,
    last_modified: str | None = None,
    timeout: float | None = None,
    retries: int | None = None,
    max_redirects: int | None = None,
    accept: str = FEED_ACCEPT_HEADER,
) -> FetchResult:
    """抓取远端文本，支持条件请求、手动重定向与重试。"""
    timeout = feeds_config.feeds_http_timeout if timeout is None else timeout
    retries = feeds_config.feeds_http_retries if retries is None else retries
    if max_redirects is None:
        max_redirects = feeds_config.feeds_http_max_redirects

    headers = {
        "User-Agent": feeds_config.feeds_user_agent,
        "Accept": accept,
    }
    if etag:
        headers["If-None-Match"] = etag
    if last_modified:
        headers["If-Modified-Since"] = last_modified

    retrying = Retrying(
        stop=stop_after_attempt(max(retries, 0) + 1),
        wait=_RETRY_WAIT,
        retry=retry_if_exception(_is_retryable),
        before_sleep=_log_retry,
        reraise=True,
    )
    with _build_client(timeout) as client:
        try:
            return retrying(_request_once, client, url, headers, max_redirects)
        except FeedError as exc:
            attempts = retrying.statistics.get("attempt_number", 1)
            if attempts > 1:
                logger.warning(
                    "抓取失败，重试已耗尽：url={}, 尝试次数={}, 错误={}",
                    url,
                    attempts,
                    exc,
                )
            raise


def fetch_feed_xml(
    url: str,
    *,
    etag: str | None = None,
    last_modified: str | None = None,
    timeout: float | None = None,
    retries: int | None = None,
) -> FetchResult:
    """以订阅源的 Accept 头抓取内容。"""
    return fetch_remote_text(
        url,
        etag=etag,
        last_modified=last_modified,
        timeout=timeout,
        retries=retries,
        accept=FEED_ACCEPT_HEADER,
    )
