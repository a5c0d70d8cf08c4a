# backend/core/llm_compat.py
# 功能: LLM Provider 兼容性工具函数
# 主要导出: normalize_content, get_stop_reason, get_model_name, get_token_usage, to_langchain_messages
# 设计: 屏蔽 OpenAI / Anthropic 返回值差异，让下游代码无需感知 Provider

"""
LLM Provider 兼容层。

所有直接读取 LLM 返回值的下游代码应通过本模块提供的工具函数，
而非直接访问 response.content / response.response_metadata 等字段。

用法:
    from core.llm_compat import normalize_content, get_stop_reason, to_langchain_messages

    text = normalize_content(response.content)
    reason, truncated = get_stop_reason(response)
"""

from __future__ import annotations

from typing import Any, Iterable, List, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from core.config import settings
from core.llm import infer_provider
from core.messages import MessageLike, coerce_message


def normalize_content(content: Any) -> str:
    """
    将 LLM 返回的 content 归一化为 str。

    ChatOpenAI:     content 始终是 str
    ChatAnthropic:  content 可能是 str 或 list[dict]（内容块列表）

    对 list 输入只提取 text 块并拼接（thinking / tool_use 块忽略）。
    对 None / 其他类型做安全回退。
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, dict):
                if block.get("type", "text") == "text":
                    parts.append(block.get("text", ""))
            elif isinstance(block, str):
                parts.append(block)
            else:
                parts.append(str(block))
        return "".join(parts)
    return str(content) if content else ""


def get_stop_reason(response: Any) -> Tuple[str, bool]:
    """
    从 LLM 响应中提取停止原因。

    Returns:
        (reason, is_truncated) — is_truncated 为 True 表示输出达到 max_tokens 被截断。

    OpenAI:     response_metadata["finish_reason"] = "stop" | "length"
    Anthropic:  response_metadata["stop_reason"]   = "end_turn" | "max_tokens"
    """
    meta = getattr(response, "response_metadata", None) or {}
    reason = meta.get("finish_reason", meta.get("stop_reason", "stop"))
    is_truncated = reason in ("length", "max_tokens")
    return reason, is_truncated


def get_token_usage(response: Any) -> Tuple[int, int]:
    """(input_tokens, output_tokens)，拿不到时为 (0, 0)"""
    usage = getattr(response, "usage_metadata", None) or {}
    return int(usage.get("input_tokens", 0) or 0), int(usage.get("output_tokens", 0) or 0)


def get_model_name() -> str:
    """当前 provider 的模型名（用于日志）"""
    if infer_provider() == "anthropic":
        return settings.anthropic_model
    return settings.openai_model


def to_langchain_messages(system_prompt: str, messages: Iterable[MessageLike]) -> List[BaseMessage]:
    """
    system prompt + 对话消息 → LangChain 消息列表。

    空内容的消息会被跳过（Anthropic 拒绝空 content）。
    """
    result: List[BaseMessage] = [SystemMessage(content=system_prompt)]
    for item in messages:
        msg = coerce_message(item)
        if not msg.content.strip():
            continue
        if msg.is_user:
            result.append(HumanMessage(content=msg.content))
        else:
            result.append(AIMessage(content=msg.content))
    return result
