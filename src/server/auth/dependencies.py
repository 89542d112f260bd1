# -*- coding: utf-8 -*-
"""
身份依赖

公开接口：
- `get_current_owner_id`

文件功能：
- 从上游网关注入的请求头中读取当前用户标识。会话校验由外部身份服务负责，此处只做最小校验。
"""

from __future__ import annotations

from fastapi import Header, HTTPException, status


def get_current_owner_id(
    x_owner_id: str | None = Header(default=None, alias="X-Owner-Id"),
) -> str:
    """返回当前请求所属用户的稳定标识。"""
    owner_id = (x_owner_id or "").strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="缺少用户身份信息。",
        )
    return owner_id
