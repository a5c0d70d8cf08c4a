# backend/core/phase_service.py
# 功能: 阶段状态机 —— 阶段解析、下一阶段计算、推进建议
# 主要类: PhaseStateMachine
# 主要函数: parse_phase(), parse_mode()
#
# 设计原则: 无状态，每次调用都可以传入任意阶段；
#           推进建议只是提示，是否真正推进由调用方（前端/用户）决定

"""
阶段状态机。

阶段顺序来自 phase_config.PHASE_ORDER，推进单调向前。
跳转到任意阶段是外层应用的能力，本模块只需容忍以任意阶段被调用。
"""

from typing import Iterable, List, Optional, Union

from core.errors import UnknownPhaseError, ValidationError
from core.phase_config import (
    ADVANCE_INDICATORS,
    DEFAULT_MODE,
    FOLLOW_UP_QUESTIONS,
    MODE_ALIAS,
    PHASE_ORDER,
    TERMINAL_PHASE,
    Mode,
    Phase,
)


def parse_phase(value: Union[str, Phase]) -> Phase:
    """把字符串解析为 Phase，不在规范列表中则抛 UnknownPhaseError"""
    if isinstance(value, Phase):
        return value
    try:
        return Phase(str(value).strip())
    except ValueError:
        raise UnknownPhaseError(value) from None


def parse_mode(value: Union[str, Mode, None]) -> Mode:
    """解析模式（兼容 short/long 旧名），None 时返回默认模式"""
    if value is None or value == "":
        return DEFAULT_MODE
    if isinstance(value, Mode):
        return value
    mode = MODE_ALIAS.get(str(value).strip().lower())
    if mode is None:
        raise ValidationError(f"Unknown mode: {value!r}")
    return mode


class PhaseStateMachine:
    """
    阶段状态机

    职责:
    - next_phase: 固定顺序中的下一阶段
    - should_advance: 关键词启发式，判断模型回复是否在提示进入下一阶段
    - suggest_next_phase: 两者组合
    """

    def __init__(self, indicators: Optional[Iterable[str]] = None):
        self.indicators: List[str] = [
            i.lower() for i in (indicators if indicators is not None else ADVANCE_INDICATORS)
        ]

    def ordinal(self, phase: Union[str, Phase]) -> int:
        return PHASE_ORDER.index(parse_phase(phase))

    def next_phase(self, current: Union[str, Phase]) -> Optional[Phase]:
        """
        返回下一阶段。

        reflection → completed；completed → None（终止信号，重复调用结果不变）
        """
        phase = parse_phase(current)
        if phase == TERMINAL_PHASE:
            return None
        return PHASE_ORDER[PHASE_ORDER.index(phase) + 1]

    def should_advance(self, reply_text: str) -> bool:
        """大小写不敏感的子串匹配"""
        if not reply_text:
            return False
        # 模型偶尔输出弯引号（let’s explore）
        lowered = reply_text.lower().replace("’", "'")
        return any(indicator in lowered for indicator in self.indicators)

    def suggest_next_phase(self, reply_text: str, current: Union[str, Phase]) -> Optional[Phase]:
        phase = parse_phase(current)
        if phase == TERMINAL_PHASE:
            return None
        if not self.should_advance(reply_text):
            return None
        return self.next_phase(phase)

    def follow_up_questions(self, phase: Union[str, Phase]) -> List[str]:
        return list(FOLLOW_UP_QUESTIONS.get(parse_phase(phase), []))


# 单例
phase_machine = PhaseStateMachine()
