# backend/core/llm_logger.py
# 功能: LangChain 回调处理器，记录每次模型调用的耗时、token 和结果
# 主要类: CompletionLogCallback
# 设计: 作为 callback 注入 ainvoke，无需在每个调用点手动计时
# 注意: 只记录长度和计数，不记录消息原文（对话内容是用户隐私数据）

"""
模型调用日志回调

每次模型调用结束（或失败）后写一条日志，包含：
- 操作类型（chat_turn / goal_extraction）和 plan_id
- 模型名
- 输入消息条数与总字符数
- token 数（优先使用 API 返回值，否则按 4 字符/token 估算）
- 耗时
"""

import time
import logging
from typing import Any, Dict, List
from uuid import UUID

from langchain_core.callbacks import AsyncCallbackHandler
from langchain_core.messages import BaseMessage
from langchain_core.outputs import LLMResult

from core.llm_compat import get_model_name, get_token_usage

logger = logging.getLogger("llm_logger")


def _input_size(messages: List[List[BaseMessage]]) -> tuple:
    """(消息条数, 总字符数)"""
    count = 0
    chars = 0
    for msg_list in messages:
        for msg in msg_list:
            count += 1
            content = getattr(msg, "content", "")
            chars += len(content) if isinstance(content, str) else len(str(content))
    return count, chars


def _usage_from_result(response: LLMResult) -> tuple:
    """从 LLMResult 中取 (model_name, tokens_in, tokens_out, output_chars)"""
    model_name = get_model_name()
    tokens_in = tokens_out = output_chars = 0

    if response.generations and response.generations[0]:
        gen = response.generations[0][0]
        output_chars = len(gen.text or "")
        message = getattr(gen, "message", None)
        tokens_in, tokens_out = get_token_usage(message)
        meta = getattr(message, "response_metadata", None) or {}
        model_name = meta.get("model_name") or meta.get("model") or model_name

    # OpenAI 旧格式
    if response.llm_output and not tokens_in:
        usage = response.llm_output.get("token_usage", {}) or {}
        tokens_in = usage.get("prompt_tokens", 0)
        tokens_out = usage.get("completion_tokens", 0)
        model_name = response.llm_output.get("model_name", model_name)

    return model_name, tokens_in, tokens_out, output_chars


class CompletionLogCallback(AsyncCallbackHandler):
    """
    异步回调：每次模型调用结束后写日志。

    使用方式：
        await model.ainvoke(messages, config={"callbacks": [CompletionLogCallback("chat_turn", plan_id)]})
    """

    def __init__(self, operation: str = "", plan_id: str = ""):
        super().__init__()
        self.operation = operation or "llm_call"
        self.plan_id = plan_id
        self._start_times: Dict[UUID, float] = {}
        self._input_chars: Dict[UUID, int] = {}

    async def on_chat_model_start(
        self,
        serialized: Dict[str, Any],
        messages: List[List[BaseMessage]],
        *,
        run_id: UUID,
        **kwargs: Any,
    ) -> None:
        self._start_times[run_id] = time.time()
        count, chars = _input_size(messages)
        self._input_chars[run_id] = chars
        logger.debug(
            "[llm_logger] start: op=%s plan=%s messages=%d chars=%d",
            self.operation, self.plan_id, count, chars,
        )

    async def on_llm_end(
        self,
        response: LLMResult,
        *,
        run_id: UUID,
        **kwargs: Any,
    ) -> None:
        start_time = self._start_times.pop(run_id, time.time())
        input_chars = self._input_chars.pop(run_id, 0)
        duration_ms = int((time.time() - start_time) * 1000)

        model_name, tokens_in, tokens_out, output_chars = _usage_from_result(response)
        # 没有 token 信息时估算
        if not tokens_in:
            tokens_in = input_chars // 4
        if not tokens_out:
            tokens_out = output_chars // 4

        logger.info(
            "[llm_logger] done: op=%s plan=%s model=%s in=%d out=%d %dms",
            self.operation, self.plan_id, model_name, tokens_in, tokens_out, duration_ms,
        )

    async def on_llm_error(
        self,
        error: BaseException,
        *,
        run_id: UUID,
        **kwargs: Any,
    ) -> None:
        start_time = self._start_times.pop(run_id, time.time())
        self._input_chars.pop(run_id, None)
        duration_ms = int((time.time() - start_time) * 1000)
        logger.warning(
            "[llm_logger] failed: op=%s plan=%s %dms error=%s: %s",
            self.operation, self.plan_id, duration_ms, type(error).__name__, error,
        )
