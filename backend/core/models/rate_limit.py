# backend/core/models/rate_limit.py
# 功能: 限流窗口计数表
# 主要类: RateLimitWindow
# 数据结构: (user_id, window_start) 唯一，request_count 原子自增

"""
限流窗口模型
每个用户每个固定窗口一行，由 SqlRateLimitStore 通过 upsert 原子自增
"""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import BaseModel


class RateLimitWindow(BaseModel):
    """
    限流窗口

    Attributes:
        user_id: 用户ID（来自上游认证）
        window_start: 窗口起点（epoch 秒，已按窗口长度对齐）
        request_count: 本窗口内已计数的请求数
    """
    __tablename__ = "rate_limit_windows"
    __table_args__ = (
        UniqueConstraint("user_id", "window_start", name="uq_rate_limit_user_window"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    window_start: Mapped[int] = mapped_column(Integer, nullable=False)
    request_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
