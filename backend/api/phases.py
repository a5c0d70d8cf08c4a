# backend/api/phases.py
# 功能: 阶段元数据 API（前端进度条 / 阶段切换用）
# 主要路由: GET /api/phases

"""
阶段元数据（静态）
"""

from fastapi import APIRouter, Depends

from api.deps import get_request_id
from api.responses import success_response
from core.phase_config import PHASE_DEFINITIONS, TERMINAL_PHASE
from core.phase_service import phase_machine

router = APIRouter(prefix="/api/phases", tags=["phases"])


@router.get("")
def list_phases(request_id: str = Depends(get_request_id)):
    """按顺序返回全部阶段"""
    phases = []
    for index, definition in enumerate(PHASE_DEFINITIONS):
        code = definition["code"]
        next_phase = phase_machine.next_phase(code)
        phases.append({
            "code": code.value,
            "order": index,
            "display_name": definition["display_name"],
            "quick_minutes": definition["quick_minutes"],
            "deep_minutes": definition["deep_minutes"],
            "next_phase": next_phase.value if next_phase else None,
            "is_terminal": code == TERMINAL_PHASE,
            "follow_up_questions": phase_machine.follow_up_questions(code),
        })
    return success_response(phases, request_id)
