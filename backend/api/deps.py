# backend/api/deps.py
# 功能: 组合根 —— 根据配置选择补全服务、限流存储，并组装编排器 / 抽取器
# 主要函数: get_completion_service(), get_rate_limiter(), get_prompt_engine(), get_orchestrator(),
#          get_goal_extractor(), get_plan_access(), get_current_user_id(), get_request_id()
# 注意: 核心模块不读配置做策略选择，全部集中在这里；测试用 app.dependency_overrides 替换

"""
FastAPI 依赖
"""

import dataclasses
import logging
import uuid
from functools import lru_cache
from typing import Optional

from fastapi import Header, Request

from core.completion import ChatModelCompletionService, CompletionService, MockCompletionService
from core.config import settings
from core.database import get_engine
from core.errors import AuthenticationRequired, PlanNotFound
from core.goal_extraction import GoalExtractor
from core.orchestrator import ConversationOrchestrator
from core.prompt_engine import PromptEngine
from core.prompt_rules import DEFAULT_PROMPT_RULES
from core.rate_limiter import (
    InMemoryRateLimitStore,
    RateLimiter,
    RateLimitStore,
    RedisRateLimitStore,
    SqlRateLimitStore,
)

logger = logging.getLogger("startup")


@lru_cache()
def get_completion_service() -> CompletionService:
    if settings.mock_ai_responses:
        logger.warning("MOCK_AI_RESPONSES 已开启，返回预置回复，不调用真实模型")
        return MockCompletionService()
    return ChatModelCompletionService()


@lru_cache()
def get_rate_limit_store() -> RateLimitStore:
    backend = (settings.rate_limit_backend or "database").lower().strip()
    if backend == "redis":
        return RedisRateLimitStore.from_url(settings.redis_url)
    if backend == "memory":
        logger.warning("限流使用进程内计数，多实例部署时不生效")
        return InMemoryRateLimitStore()
    return SqlRateLimitStore(get_engine())


@lru_cache()
def get_prompt_engine() -> PromptEngine:
    return PromptEngine(dataclasses.replace(
        DEFAULT_PROMPT_RULES,
        document_context_max_chars=settings.document_context_max_chars,
    ))


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    return RateLimiter(
        get_rate_limit_store(),
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


def get_orchestrator() -> ConversationOrchestrator:
    return ConversationOrchestrator(
        completion=get_completion_service(),
        rate_limiter=get_rate_limiter(),
        engine=get_prompt_engine(),
    )


def get_goal_extractor() -> GoalExtractor:
    return GoalExtractor(get_completion_service())


# ============== 计划归属 ==============

class PlanAccessPolicy:
    """
    计划归属校验

    计划数据由外部持久化层保存，这里默认放行；
    宿主应用通过 app.dependency_overrides[get_plan_access] 换成查库实现。
    """

    async def owns(self, user_id: str, plan_id: str) -> bool:
        return True

    async def check(self, user_id: str, plan_id: str) -> None:
        if not await self.owns(user_id, plan_id):
            raise PlanNotFound(f"Plan {plan_id} not found for user {user_id}")


def get_plan_access() -> PlanAccessPolicy:
    return PlanAccessPolicy()


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    当前用户 ID。

    认证由上游网关完成，网关通过 X-User-Id 头传入已认证的用户。
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationRequired("Missing X-User-Id header")
    return x_user_id.strip()


def get_request_id(request: Request) -> str:
    """由 main.py 的中间件写入；直接调用路由（无中间件）时临时生成"""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
    return request_id
