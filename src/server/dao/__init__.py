# -*- coding: utf-8 -*-
"""数据访问层公共基类。"""

from .dao_base import BaseDAO

__all__ = ["BaseDAO"]
