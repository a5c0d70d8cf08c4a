# backend/core/completion.py
# 功能: 模型补全服务 —— 编排器和抽取流程只依赖这里的抽象接口
# 主要类: CompletionService (抽象), ChatModelCompletionService (LangChain 实现), MockCompletionService
# 主要函数: classify_error()
#
# 错误分类（上游异常 → 核心错误）:
#   缺少凭证 / 401 / 403      → UpstreamAuthError（不可重试，需要运维介入）
#   429                       → UpstreamTransientError(reason="rate_limited")
#   超时                      → UpstreamTransientError(reason="timeout")
#   其他                      → UpstreamError

"""
补全服务

用哪个实现（真实模型 / mock）只在组合根 api/deps.py 中决定，
核心模块不读环境变量判断是否 mock。
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

import anthropic
import openai
from langchain_core.language_models.chat_models import BaseChatModel

from core.config import settings
from core.errors import UpstreamAuthError, UpstreamError, UpstreamTransientError
from core.llm import get_chat_model, infer_provider
from core.llm_compat import get_stop_reason, normalize_content, to_langchain_messages
from core.llm_logger import CompletionLogCallback
from core.messages import MessageLike

logger = logging.getLogger("completion")


_AUTH_ERRORS = (
    anthropic.AuthenticationError,
    anthropic.PermissionDeniedError,
    openai.AuthenticationError,
    openai.PermissionDeniedError,
)
_RATE_LIMIT_ERRORS = (anthropic.RateLimitError, openai.RateLimitError)
_TIMEOUT_ERRORS = (asyncio.TimeoutError, anthropic.APITimeoutError, openai.APITimeoutError)


def classify_error(error: BaseException) -> Exception:
    """把上游异常转换为核心错误（不抛出，由调用方 raise ... from）"""
    if isinstance(error, (UpstreamAuthError, UpstreamTransientError, UpstreamError)):
        return error
    if isinstance(error, _AUTH_ERRORS):
        return UpstreamAuthError(f"Model provider rejected credentials: {error}")
    if isinstance(error, _RATE_LIMIT_ERRORS):
        return UpstreamTransientError(f"Model provider rate limited: {error}", reason="rate_limited")
    if isinstance(error, _TIMEOUT_ERRORS):
        return UpstreamTransientError(f"Model call timed out: {error}", reason="timeout")

    # 兼容其他 SDK / 代理层：按 HTTP 状态码判断
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status in (401, 403):
        return UpstreamAuthError(f"Model provider rejected credentials ({status}): {error}")
    if status == 429:
        return UpstreamTransientError(f"Model provider rate limited: {error}", reason="rate_limited")
    if status in (408, 504):
        return UpstreamTransientError(f"Model call timed out ({status}): {error}", reason="timeout")
    return UpstreamError(f"Model call failed: {type(error).__name__}: {error}")


class CompletionService(ABC):
    """
    补全服务接口

    complete() 返回模型的纯文本回复；失败时只抛核心错误类型，从不返回空字符串冒充成功。
    """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        messages: Iterable[MessageLike],
        operation: str = "",
        plan_id: str = "",
    ) -> str:
        ...


class ChatModelCompletionService(CompletionService):
    """
    LangChain ChatModel 实现（ChatAnthropic / ChatOpenAI）

    模型实例首次调用时才创建，未配置 API key 时应用仍可启动。
    """

    def __init__(
        self,
        model: Optional[BaseChatModel] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._model = model
        self.timeout_seconds = timeout_seconds or settings.completion_timeout_seconds

    def _check_credentials(self) -> None:
        provider = infer_provider()
        if provider == "anthropic":
            key = settings.anthropic_api_key
            if not key:
                raise UpstreamAuthError("ANTHROPIC_API_KEY is not configured")
            if not key.startswith("sk-ant-"):
                raise UpstreamAuthError("ANTHROPIC_API_KEY has an invalid format")
        elif not settings.openai_api_key:
            raise UpstreamAuthError("OPENAI_API_KEY is not configured")

    @property
    def model(self) -> BaseChatModel:
        if self._model is None:
            self._check_credentials()
            self._model = get_chat_model()
        return self._model

    async def complete(
        self,
        system_prompt: str,
        messages: Iterable[MessageLike],
        operation: str = "",
        plan_id: str = "",
    ) -> str:
        lc_messages = to_langchain_messages(system_prompt, messages)
        callback = CompletionLogCallback(operation=operation, plan_id=plan_id)
        try:
            response = await asyncio.wait_for(
                self.model.ainvoke(lc_messages, config={"callbacks": [callback]}),
                timeout=self.timeout_seconds,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise classify_error(e) from e

        reason, truncated = get_stop_reason(response)
        if truncated:
            logger.warning(
                "[completion] 输出被截断 op=%s plan=%s stop_reason=%s",
                operation, plan_id, reason,
            )
        return normalize_content(response.content)


# ============== Mock（本地开发，无需 API key） ==============

MOCK_REPLIES: List[str] = [
    "Thank you for sharing that with me. It sounds like you're in a significant moment of transition. "
    "What are the 2-3 areas of your life where you feel strongest or most fulfilled right now?",
    "That's really helpful context. Can you tell me more about what prompted this reflection? "
    "What's happening in your life that made you want to create a strategic plan?",
    "When you look at everything you're doing - work, hobbies, projects, obligations - "
    "which activities make you lose track of time?",
    "Before we dream big, let's ground ourselves. What does 'enough' look like for you right now?",
    "I think I have a good understanding of this area. Ready to move on to the next phase?",
]

MOCK_EXTRACTION_REPLY = """{
  "values": [{"title": "Growth", "description": "Keep learning", "confidence": 0.8}],
  "goals": [{"title": "Finish certification", "parent_title": "Growth",
             "timeframe_suggestion": "quarterly", "confidence": 0.7}],
  "tasks": [{"title": "Book the exam", "parent_title": "Finish certification", "confidence": 0.7}],
  "reassessment_recommendation": {"months": 12, "reason": "Light goal load."}
}"""


class MockCompletionService(CompletionService):
    """按消息条数轮换预置回复；抽取调用返回固定 JSON"""

    def __init__(self, replies: Optional[List[str]] = None, delay_seconds: float = 0.0):
        self.replies = replies or MOCK_REPLIES
        self.delay_seconds = delay_seconds

    async def complete(
        self,
        system_prompt: str,
        messages: Iterable[MessageLike],
        operation: str = "",
        plan_id: str = "",
    ) -> str:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if operation == "goal_extraction":
            return MOCK_EXTRACTION_REPLY
        count = len(list(messages))
        return self.replies[count % len(self.replies)]
