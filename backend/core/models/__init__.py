# backend/core/models/__init__.py
# 功能: 模型包入口，导出所有SQLAlchemy模型
# 包含: 所有数据模型类

"""
数据模型包
导出所有SQLAlchemy模型供其他模块使用
"""

from core.models.base import BaseModel, generate_uuid
from core.models.rate_limit import RateLimitWindow

__all__ = [
    "BaseModel",
    "generate_uuid",
    "RateLimitWindow",
]
