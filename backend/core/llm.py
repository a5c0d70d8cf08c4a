# backend/core/llm.py
# 功能: 统一的 LLM 实例构造，支持 Anthropic 和 OpenAI
# 主要导出: get_chat_model(), infer_provider()
# 设计: 通过 LLM_PROVIDER 环境变量切换默认 provider；
#        传入具体 model 名时，自动根据前缀判断 provider（claude-* → Anthropic，其余 → OpenAI）
#
# 支持的 provider:
# 1. anthropic — ChatAnthropic（Anthropic 原生 API）
# 2. openai  — ChatOpenAI（支持 OpenAI 直连和 OpenRouter 等兼容 API）
#
# 不在导入时创建实例：没有配置 API key 的环境（测试、mock 模式）也能导入本模块

"""
统一 LLM 实例构造

用法:
    from core.llm import get_chat_model

    model = get_chat_model()
    response = await model.ainvoke([SystemMessage(content="..."), HumanMessage(content="...")])

重试由调用方决定，这里固定 max_retries=0。
"""

from typing import Optional

from langchain_core.language_models.chat_models import BaseChatModel

from core.config import settings


def infer_provider(model: Optional[str] = None) -> str:
    """
    推断 provider。

    传入 model 时按前缀判断（claude-* → anthropic，其余 → openai）；
    不传时沿用全局 LLM_PROVIDER。
    """
    if model:
        return "anthropic" if model.startswith("claude-") else "openai"
    return (settings.llm_provider or "anthropic").lower().strip()


def get_chat_model(
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    timeout: Optional[float] = None,
    **kwargs,
) -> BaseChatModel:
    """
    获取 LLM 实例。

    Args:
        model: 模型名称。传入时自动判断 provider；不传时用全局默认
        temperature: 温度（默认 settings.llm_temperature）
        max_tokens: 最大输出 token（默认 settings.llm_max_tokens）
        timeout: 单次请求超时秒数（默认 settings.completion_timeout_seconds）
        **kwargs: 其他参数

    Returns:
        BaseChatModel 实例（ChatAnthropic 或 ChatOpenAI）
    """
    provider = infer_provider(model)
    temperature = settings.llm_temperature if temperature is None else temperature
    max_tokens = max_tokens or settings.llm_max_tokens
    timeout = timeout or settings.completion_timeout_seconds

    if provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(
            model=model or settings.anthropic_model,
            api_key=settings.anthropic_api_key,
            temperature=temperature,
            timeout=timeout,
            max_retries=0,
            max_tokens=max_tokens,
            **kwargs,
        )
    else:
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=model or settings.openai_model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_api_base or None,
            temperature=temperature,
            timeout=timeout,
            max_retries=0,
            max_tokens=max_tokens,
            **kwargs,
        )
