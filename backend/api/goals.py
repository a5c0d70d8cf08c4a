# backend/api/goals.py
# 功能: 目标抽取 API —— 访谈完成后把 transcript 转成价值观 / 目标 / 任务建议
# 主要路由: POST /api/goals/extract
# 关联: core/goal_extraction.py

"""
目标抽取 API

只返回建议；入库（并回填数据库 id）由外部持久化层负责。
saved_counts 表示可入库的条数（任务中父目标无法匹配的已被丢弃）。
"""

import logging
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.chat import DocumentIn, resolve_document_context
from api.deps import PlanAccessPolicy, get_current_user_id, get_goal_extractor, get_plan_access, get_request_id
from api.responses import success_response
from core.goal_extraction import GoalExtractor
from core.orchestrator import MAX_HISTORY_MESSAGE_CHARS

router = APIRouter(prefix="/api/goals", tags=["goals"])
logger = logging.getLogger("goals")


class TranscriptItem(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(max_length=MAX_HISTORY_MESSAGE_CHARS)


class ExtractRequest(BaseModel):
    transcript: List[TranscriptItem] = Field(min_length=1)
    plan_id: Optional[str] = None
    document_context: Optional[str] = None
    documents: Optional[List[DocumentIn]] = None


@router.post("/extract")
async def extract_goals(
    data: ExtractRequest,
    user_id: str = Depends(get_current_user_id),
    request_id: str = Depends(get_request_id),
    extractor: GoalExtractor = Depends(get_goal_extractor),
    plan_access: PlanAccessPolicy = Depends(get_plan_access),
):
    """从访谈记录中抽取目标建议"""
    if data.plan_id:
        await plan_access.check(user_id, data.plan_id)
    result = await extractor.extract(
        [item.model_dump() for item in data.transcript],
        document_context=resolve_document_context(data.document_context, data.documents),
        plan_id=data.plan_id or "",
    )

    payload = result.to_dict()
    payload["saved_counts"] = {
        "values": len(result.values),
        "goals": len(result.goals),
        "tasks": len(result.tasks),
        "dropped_tasks": result.dropped_tasks,
    }
    payload["recommended_date"] = result.reassessment_recommendation.due_date(date.today()).isoformat()

    logger.info("[%s] extract ok user=%s plan=%s counts=%s", request_id, user_id, data.plan_id, payload["saved_counts"])
    return success_response(payload, request_id)
