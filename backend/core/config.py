# backend/core/config.py
# 功能: 应用配置管理，从环境变量加载配置
# 主要类: Settings
# 数据结构: Settings(BaseSettings)

"""
配置管理模块
使用 pydantic-settings 从 .env 文件加载配置
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """应用配置"""

    # LLM Provider: "anthropic" | "openai"
    llm_provider: str = "anthropic"

    # Anthropic
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"

    # OpenAI（也支持 OpenRouter 等兼容 API）
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_api_base: str = ""

    # 模型调用参数
    llm_max_tokens: int = 4096
    llm_temperature: float = 0.7
    completion_timeout_seconds: float = 60.0

    # 本地开发：不调用真实模型，返回预置回复
    mock_ai_responses: bool = False

    # 限流：固定窗口，每个用户每窗口最多 N 次对话
    rate_limit_requests: int = 20
    rate_limit_window_seconds: int = 3600
    # "database" | "redis" | "memory"（memory 仅限本地开发）
    rate_limit_backend: str = "database"
    redis_url: str = "redis://localhost:6379/0"

    # 上传文档摘要注入 system prompt 的最大字符数
    document_context_max_chars: int = 8000

    # Database
    database_url: str = "sqlite:///./data/planner.db"

    # Server
    backend_port: int = 8000
    debug: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache()
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()


settings = get_settings()
