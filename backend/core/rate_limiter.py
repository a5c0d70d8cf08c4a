# backend/core/rate_limiter.py
# 功能: 按用户的固定窗口限流
# 主要类: RateLimiter, RateLimitResult, RateLimitStore (SqlRateLimitStore / RedisRateLimitStore / InMemoryRateLimitStore)
# 主要函数: RateLimiter.check()
#
# 设计原则:
#   - 计数器的「自增并读取」在存储端一次原子完成，并发调用不会丢计数
#   - 存储不可用时放行（fail open），但必须记 warning 日志
#   - 只有异步接口，没有「先乐观放行再异步记账」的同步版本

"""
限流器

窗口按 window_seconds 对齐（window_start = floor(now / window) * window），
键为 (user_id, window_start)。每次 check 先自增再比较，第 limit+1 次起拒绝。
"""

import asyncio
import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import delete, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.errors import ValidationError
from core.models.rate_limit import RateLimitWindow

logger = logging.getLogger("rate_limiter")


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in: int  # 距窗口结束的秒数，至少为 1
    limit: int
    # 存储不可用、按放行处理时为 True
    degraded: bool = False


class RateLimitStoreUnavailable(Exception):
    """计数存储不可用（连接失败、超时等）"""


# ============== 计数存储 ==============

class RateLimitStore(ABC):
    """共享计数存储：必须保证 increment 在并发调用下原子"""

    @abstractmethod
    async def increment(self, user_id: str, window_start: int, ttl_seconds: int) -> int:
        """把 (user_id, window_start) 的计数加一并返回新值"""


class InMemoryRateLimitStore(RateLimitStore):
    """
    进程内计数（本地开发 / 测试用）

    多进程、多实例部署时各自计数，不能用于生产。
    """

    def __init__(self):
        self._counts: Dict[Tuple[str, int], int] = {}
        self._lock = asyncio.Lock()

    async def increment(self, user_id: str, window_start: int, ttl_seconds: int) -> int:
        async with self._lock:
            # 顺手清掉过期窗口
            expired = [k for k in self._counts if k[1] + ttl_seconds <= window_start]
            for key in expired:
                del self._counts[key]
            key = (user_id, window_start)
            self._counts[key] = self._counts.get(key, 0) + 1
            return self._counts[key]


class SqlRateLimitStore(RateLimitStore):
    """
    数据库计数（rate_limit_windows 表）

    用 INSERT ... ON CONFLICT DO UPDATE ... RETURNING 一条语句完成自增，
    支持 SQLite (>= 3.35) 和 PostgreSQL。
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        dialect = engine.dialect.name
        if dialect == "postgresql":
            self._insert = postgresql.insert
        elif dialect == "sqlite":
            self._insert = sqlite.insert
        else:
            raise ValueError(f"不支持的数据库方言: {dialect}")
        # SQLite 用 StaticPool 共享单连接，线程间必须串行
        self._lock = threading.Lock() if dialect == "sqlite" else None

    def _increment_sync(self, user_id: str, window_start: int) -> int:
        stmt = self._insert(RateLimitWindow).values(
            user_id=user_id,
            window_start=window_start,
            request_count=1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "window_start"],
            set_={
                "request_count": RateLimitWindow.request_count + 1,
                "updated_at": func.now(),
            },
        ).returning(RateLimitWindow.request_count)

        if self._lock is None:
            with self.engine.begin() as conn:
                return conn.execute(stmt).scalar_one()
        with self._lock:
            with self.engine.begin() as conn:
                return conn.execute(stmt).scalar_one()

    def purge_before(self, window_start: int) -> int:
        """删除早于 window_start 的窗口行，返回删除行数（运维脚本调用）"""
        stmt = delete(RateLimitWindow).where(RateLimitWindow.window_start < window_start)
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount

    async def increment(self, user_id: str, window_start: int, ttl_seconds: int) -> int:
        try:
            return await asyncio.to_thread(self._increment_sync, user_id, window_start)
        except SQLAlchemyError as e:
            raise RateLimitStoreUnavailable(str(e)) from e


class RedisRateLimitStore(RateLimitStore):
    """
    Redis 计数

    INCR + EXPIRE NX 放在同一个事务 pipeline 中，键随窗口自动过期。
    """

    def __init__(self, client: Redis, key_prefix: str = "ratelimit"):
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRateLimitStore":
        return cls(Redis.from_url(url, decode_responses=True), **kwargs)

    async def increment(self, user_id: str, window_start: int, ttl_seconds: int) -> int:
        key = f"{self.key_prefix}:{user_id}:{window_start}"
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, ttl_seconds, nx=True)
                count, _ = await pipe.execute()
        except RedisError as e:
            raise RateLimitStoreUnavailable(str(e)) from e
        return int(count)


# ============== 限流器 ==============

class RateLimiter:
    """
    固定窗口限流器

    用法:
        limiter = RateLimiter(InMemoryRateLimitStore(), limit=20, window_seconds=3600)
        result = await limiter.check(user_id)
        if not result.allowed: ...
    """

    def __init__(
        self,
        store: RateLimitStore,
        limit: int = 20,
        window_seconds: int = 3600,
        clock: Optional[Callable[[], float]] = None,
    ):
        if limit < 1 or window_seconds < 1:
            raise ValueError("limit 和 window_seconds 必须为正数")
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock or time.time

    def window_start(self, now: float) -> int:
        return int(now // self.window_seconds) * self.window_seconds

    async def check(self, user_id: str) -> RateLimitResult:
        """
        计数一次并判断是否放行。

        Raises:
            ValidationError: user_id 为空
        """
        if not user_id:
            raise ValidationError("user_id is required for rate limiting")

        now = self.clock()
        window_start = self.window_start(now)
        reset_in = max(1, math.ceil(window_start + self.window_seconds - now))

        try:
            count = await self.store.increment(user_id, window_start, self.window_seconds)
        except RateLimitStoreUnavailable as e:
            logger.warning(
                "[RateLimiter] 计数存储不可用，放行请求 user=%s: %s", user_id, e
            )
            return RateLimitResult(
                allowed=True,
                remaining=self.limit,
                reset_in=reset_in,
                limit=self.limit,
                degraded=True,
            )

        allowed = count <= self.limit
        if not allowed:
            logger.info(
                "[RateLimiter] 超出限额 user=%s count=%d limit=%d reset_in=%ds",
                user_id, count, self.limit, reset_in,
            )
        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, self.limit - count),
            reset_in=reset_in,
            limit=self.limit,
        )
