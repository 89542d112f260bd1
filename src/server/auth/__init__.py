# -*- coding: utf-8 -*-
"""身份依赖入口。"""

from .dependencies import get_current_owner_id

__all__ = ["get_current_owner_id"]
