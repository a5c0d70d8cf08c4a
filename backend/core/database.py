# backend/core/database.py
# 功能: 数据库连接管理
# 主要函数: get_engine(), init_db()
# 数据结构: Base (SQLAlchemy declarative base)

"""
数据库连接管理模块
使用 SQLAlchemy 2.0

核心只拥有一张表（rate_limit_windows），计划/目标等业务数据由外部持久化层负责。
"""

from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from core.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy 声明式基类"""
    pass


def _ensure_sqlite_dir(database_url: str) -> None:
    """sqlite:///./data/x.db 的父目录不存在时自动创建"""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    获取数据库引擎
    SQLite使用StaticPool确保单连接（适合本地单用户）；其他数据库用默认连接池
    """
    database_url = database_url or settings.database_url
    if make_url(database_url).get_backend_name() == "sqlite":
        _ensure_sqlite_dir(database_url)
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=settings.debug,  # 调试模式打印SQL
        )
    return create_engine(database_url, pool_pre_ping=True, echo=settings.debug)


def init_db(engine: Optional[Engine] = None) -> Engine:
    """初始化数据库（创建所有表）"""
    engine = engine or get_engine()
    # 导入所有模型以确保它们被注册
    from core import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    return engine
