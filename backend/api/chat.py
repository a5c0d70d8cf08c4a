# backend/api/chat.py
# 功能: 访谈对话 API —— 一次请求对应一轮对话
# 主要路由: POST /api/chat
# 关联: core/orchestrator.py, core/document_context.py

"""
对话 API

请求体校验（长度 / 条数 / 角色）在这里完成，阶段和模式的解析交给核心，
以便返回核心定义的错误码（如 UNKNOWN_PHASE）。
"""

import logging
import re
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.deps import PlanAccessPolicy, get_current_user_id, get_orchestrator, get_plan_access, get_request_id
from api.responses import success_response
from core.document_context import build_document_context
from core.errors import ValidationError
from core.orchestrator import (
    MAX_HISTORY_MESSAGE_CHARS,
    MAX_HISTORY_MESSAGES,
    MAX_MESSAGE_CHARS,
    ConversationOrchestrator,
    TurnInput,
)

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = logging.getLogger("chat")


# ============== Schemas ==============

class HistoryItem(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(max_length=MAX_HISTORY_MESSAGE_CHARS)


class DocumentIn(BaseModel):
    """上游已抽取文本的用户文档"""
    document_type: str
    extracted_text: Optional[str] = None
    custom_type_name: Optional[str] = None


class ChatRequest(BaseModel):
    plan_id: UUID
    message: str = Field(min_length=1, max_length=MAX_MESSAGE_CHARS)
    phase: str
    conversation_history: List[HistoryItem] = Field(default_factory=list, max_length=MAX_HISTORY_MESSAGES)
    mode: Optional[str] = None
    # 二选一：已拼好的文档上下文，或原始文档列表
    document_context: Optional[str] = None
    documents: Optional[List[DocumentIn]] = None
    plan_context: Optional[str] = None


# ============== Helpers ==============

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JS_URL_RE = re.compile(r"javascript:", re.IGNORECASE)
_INLINE_HANDLER_RE = re.compile(r"on\w+\s*=", re.IGNORECASE)
_DATA_URI_RE = re.compile(r"data:", re.IGNORECASE)


def sanitize_message(text: str) -> str:
    """去掉脚本标签、javascript: 链接、内联事件，屏蔽 data: URI"""
    text = _SCRIPT_RE.sub("", text)
    text = _JS_URL_RE.sub("", text)
    text = _INLINE_HANDLER_RE.sub("", text)
    text = _DATA_URI_RE.sub("data-blocked:", text)
    return text.strip()


def resolve_document_context(document_context: Optional[str], documents: Optional[List[DocumentIn]]) -> Optional[str]:
    if document_context:
        return document_context
    if documents:
        return build_document_context(d.model_dump() for d in documents) or None
    return None


# ============== Routes ==============

@router.post("")
async def chat(
    data: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    request_id: str = Depends(get_request_id),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    plan_access: PlanAccessPolicy = Depends(get_plan_access),
):
    """一轮访谈对话"""
    await plan_access.check(user_id, str(data.plan_id))
    message = sanitize_message(data.message)
    if not message:
        raise ValidationError("Message cannot be empty after sanitization")

    result = await orchestrator.turn(TurnInput(
        user_id=user_id,
        plan_id=str(data.plan_id),
        message=message,
        phase=data.phase,
        history=[item.model_dump() for item in data.conversation_history],
        mode=data.mode,
        document_context=resolve_document_context(data.document_context, data.documents),
        plan_context=data.plan_context,
    ))

    rate = result.rate_limit
    logger.info(
        "[%s] chat ok plan=%s phase=%s suggested=%s remaining=%d",
        request_id, data.plan_id, data.phase,
        result.suggested_next_phase.value if result.suggested_next_phase else None,
        rate.remaining,
    )
    return success_response(
        {
            "message": result.message,
            "suggested_next_phase": result.suggested_next_phase.value if result.suggested_next_phase else None,
            "follow_up_questions": result.follow_up_questions,
            "mode": result.mode.value,
            "rate_limit": {"remaining": rate.remaining, "reset_in": rate.reset_in},
        },
        request_id,
        headers={
            "X-RateLimit-Limit": str(rate.limit),
            "X-RateLimit-Remaining": str(rate.remaining),
            "X-RateLimit-Reset": str(rate.reset_in),
        },
    )
