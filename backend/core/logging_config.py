# backend/core/logging_config.py
# 功能: 应用日志配置 + 敏感信息脱敏
# 主要函数: setup_logging()
# 主要类: SensitiveDataFilter

"""
日志配置

各组件使用具名 logger（orchestrator / rate_limiter / completion / ...），
统一输出到 stdout，并在输出前把形似 API key / token 的字符串打码。
"""

import logging
import re
import sys

from core.config import settings

# 需要单独设置级别的组件 logger
COMPONENT_LOGGERS = (
    "orchestrator",
    "rate_limiter",
    "goal_extraction",
    "completion",
    "llm_logger",
    "chat",
    "goals",
    "startup",
)

LOG_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
DATE_FORMAT = "%H:%M:%S"

# sk-ant-... / sk-... / Bearer xxx / JWT
SECRET_PATTERNS = (
    re.compile(r"(sk-(?:ant-)?[A-Za-z0-9]{0,4})[A-Za-z0-9_\-]{12,}"),
    re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]{12,}", re.IGNORECASE),
    re.compile(r"(eyJ[A-Za-z0-9_\-]{4})[A-Za-z0-9_\-]*\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+"),
)


def redact(text: str) -> str:
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(r"\1...REDACTED", text)
    return text


class SensitiveDataFilter(logging.Filter):
    """把日志消息中的密钥打码（格式化后的整条消息）"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def setup_logging() -> None:
    """配置应用日志，确保核心组件日志可见"""
    log_level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(SensitiveDataFilter())

    for name in COMPONENT_LOGGERS:
        lg = logging.getLogger(name)
        lg.setLevel(log_level)
        if not lg.handlers:
            lg.addHandler(handler)
        lg.propagate = False  # 避免重复输出

    # root logger 保持 INFO（避免 SQLAlchemy / httpx 等噪音）
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    for root_handler in logging.getLogger().handlers:
        root_handler.addFilter(SensitiveDataFilter())
